"""Server-Sent Events stream of one batch's progress.

Wire format, one event per block:

    event: <type>
    data: <JSON payload>
    <blank line>

Two modes:
- viewer: poll the batch every sse_poll_interval seconds until it is
  complete or sse_max_polls is reached
- worker (start_worker=true): drive GenerationWorker for the batch and
  forward its job events, bounded by sse_max_iterations

A disconnecting client ends the stream but never the job in flight; the
job task is held independently of the generator and finishes on its own.
"""

import asyncio
import json
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from getcare.core.config import Settings, get_settings
from getcare.core.errors import PipelineError
from getcare.core.logging import get_logger
from getcare.services.generation_queue import BatchProgress, GenerationQueue
from getcare.services.generation_worker import GenerationWorker, JobResult

logger = get_logger(__name__)

TERMINAL_BATCH_STATUSES = frozenset({"completed", "partial", "failed"})

# Batches currently driven by a worker stream in this process
_active_workers: set[str] = set()
# Strong references so in-flight jobs survive a closed stream
_job_tasks: set[asyncio.Task[Any]] = set()


def format_event(event_type: str, payload: dict[str, Any]) -> str:
    """Render one SSE event."""
    data = json.dumps(payload, default=str, ensure_ascii=False)
    return f"event: {event_type}\ndata: {data}\n\n"


def is_worker_active(batch_id: str) -> bool:
    return batch_id in _active_workers


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _progress_payload(progress: BatchProgress) -> dict[str, Any]:
    return {
        "batchId": progress.batch_id,
        "status": progress.status,
        "total": progress.total,
        "completed": progress.completed,
        "failed": progress.failed,
        "isComplete": progress.is_complete,
        "currentJob": progress.current_job,
    }


class ProgressStream:
    """Builds the event iterator served by the status endpoint."""

    def __init__(
        self,
        queue: GenerationQueue,
        worker: GenerationWorker,
        settings: Settings | None = None,
    ) -> None:
        self._queue = queue
        self._worker = worker
        self._settings = settings or get_settings()

    async def stream(self, batch_id: str, start_worker: bool = False) -> AsyncIterator[str]:
        """Yield SSE events for a batch until it settles or a cap is reached."""
        try:
            yield format_event("connected", {"batchId": batch_id, "timestamp": _now()})
            progress = await self._queue.get_batch_progress(batch_id)
            yield format_event("progress", _progress_payload(progress))

            if start_worker:
                async for event in self._drive_worker(batch_id, progress):
                    yield event
            else:
                async for event in self._poll(batch_id, progress):
                    yield event

            yield format_event("done", {"message": "Stream completed", "timestamp": _now()})

        except (PipelineError, SQLAlchemyError) as e:
            logger.error(
                "Progress stream failed",
                extra={"batch_id": batch_id, "error_type": type(e).__name__, "error": str(e)},
                exc_info=True,
            )
            yield format_event("error", {"message": str(e), "timestamp": _now()})

    async def _poll(self, batch_id: str, progress: BatchProgress) -> AsyncIterator[str]:
        polls = 0
        while not progress.is_complete and polls < self._settings.sse_max_polls:
            await asyncio.sleep(self._settings.sse_poll_interval)
            progress = await self._queue.get_batch_progress(batch_id)
            yield format_event("progress", _progress_payload(progress))
            polls += 1

    async def _drive_worker(self, batch_id: str, progress: BatchProgress) -> AsyncIterator[str]:
        if batch_id in _active_workers:
            yield format_event(
                "error",
                {"message": "A worker is already running for this batch", "timestamp": _now()},
            )
            return

        _active_workers.add(batch_id)
        try:
            yield format_event(
                "worker_started",
                {"batchId": batch_id, "total": progress.total, "timestamp": _now()},
            )

            iterations = 0
            max_iterations = self._settings.sse_max_iterations
            while iterations < max_iterations:
                iterations += 1
                progress = await self._queue.get_batch_progress(batch_id)
                yield format_event("progress", _progress_payload(progress))
                if progress.is_complete or progress.status in TERMINAL_BATCH_STATUSES:
                    break

                result: JobResult | None = None
                async for item in self._run_one_job(batch_id):
                    if isinstance(item, str):
                        yield item
                    else:
                        result = item

                if result is None:
                    # Another worker holds the last jobs; wait for them to settle
                    await asyncio.sleep(self._settings.sse_idle_sleep)
            else:
                logger.warning(
                    "Worker stream hit its iteration cap",
                    extra={"batch_id": batch_id, "iterations": iterations},
                )

            report = await self._queue.get_batch_report(batch_id)
            yield format_event("batch_completed", {**report, "timestamp": _now()})
        finally:
            _active_workers.discard(batch_id)

    async def _run_one_job(self, batch_id: str) -> AsyncIterator[str | JobResult | None]:
        """Process one job, yielding its events as they happen, then its result."""
        events: asyncio.Queue[tuple[str, dict[str, Any]]] = asyncio.Queue()

        async def on_event(event_type: str, payload: dict[str, Any]) -> None:
            await events.put((event_type, payload))

        task = asyncio.create_task(self._worker.process_next_job(batch_id, on_event))
        _job_tasks.add(task)
        task.add_done_callback(_job_tasks.discard)

        while True:
            getter = asyncio.ensure_future(events.get())
            try:
                done, _ = await asyncio.wait(
                    {task, getter}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                if not getter.done():
                    getter.cancel()
            if getter in done:
                yield format_event(*getter.result())
                continue
            break

        while not events.empty():
            yield format_event(*events.get_nowait())
        yield task.result()
