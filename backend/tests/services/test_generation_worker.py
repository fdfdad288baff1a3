"""Tests for GenerationWorker.

Tests cover:
- Draining a batch with mixed outcomes (partial status)
- Job events emitted through on_event
- Pipeline exceptions recorded as UnexpectedError
- Batch options passed to the pipeline
- run_worker limits
"""

from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from conftest import FakeLLM, get_keyword_row
from getcare.core.config import Settings
from getcare.models.generation import BatchStatus
from getcare.models.keyword import KeywordStatus
from getcare.repositories.generation import GenerationRepository
from getcare.services.generation_queue import GenerationQueue
from getcare.services.generation_worker import GenerationWorker


@pytest.fixture
def queue(
    async_session_factory: async_sessionmaker[AsyncSession], test_settings: Settings
) -> GenerationQueue:
    return GenerationQueue(async_session_factory, settings=test_settings)


@pytest.fixture
def make_worker(
    async_session_factory: async_sessionmaker[AsyncSession],
    make_pipeline,
    test_settings: Settings,
):
    def _make(llm: Any = None) -> GenerationWorker:
        return GenerationWorker(
            async_session_factory, make_pipeline(llm=llm), settings=test_settings
        )

    return _make


class EventRecorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def __call__(self, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append((event_type, payload))

    def types(self) -> list[str]:
        return [event_type for event_type, _ in self.events]


class TestProcessBatch:
    """Tests for draining one batch."""

    @pytest.mark.asyncio
    async def test_mixed_outcomes_give_partial_batch(
        self,
        queue: GenerationQueue,
        make_worker,
        make_keyword,
        async_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Failed keywords fail their jobs while the rest complete, leaving a partial batch."""
        texts = [
            "rhinoplasty Seoul",
            "FAILME eyelid surgery",
            "dental veneers Gangnam",
            "FAILME hair transplant",
            "lasik Korea",
        ]
        ids = [await make_keyword(text=text) for text in texts]
        submission = await queue.add_batch(ids)
        worker = make_worker(llm=FakeLLM(fail_when="FAILME"))

        results = await worker.process_batch(submission.batch_id)

        assert len(results) == 5
        assert sum(1 for r in results if r.success) == 3

        progress = await queue.get_batch_progress(submission.batch_id)
        assert progress.completed == 3
        assert progress.failed == 2
        assert progress.status == BatchStatus.PARTIAL.value
        assert progress.is_complete is True

        report = await queue.get_batch_report(submission.batch_id)
        failed = [job for job in report["jobs"] if job["status"] == "failed"]
        assert {job["keyword"] for job in failed} == {
            "FAILME eyelid surgery",
            "FAILME hair transplant",
        }
        assert all(job["errorMessage"].startswith("GenerationError:") for job in failed)
        completed = [job for job in report["jobs"] if job["status"] == "completed"]
        assert all(job["blogPostId"] for job in completed)
        assert all(job["qualityScore"] is not None for job in completed)

        for job in failed:
            keyword = await get_keyword_row(async_session_factory, job["keywordId"])
            assert keyword.status == KeywordStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_all_success_completes_batch(
        self, queue: GenerationQueue, make_worker, make_keyword
    ) -> None:
        """A batch where every job succeeds ends completed."""
        ids = [await make_keyword(text=f"breast augmentation {i}") for i in range(2)]
        submission = await queue.add_batch(ids)

        await make_worker().process_batch(submission.batch_id)

        progress = await queue.get_batch_progress(submission.batch_id)
        assert progress.status == BatchStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_all_failures_fail_batch(
        self, queue: GenerationQueue, make_worker, make_keyword
    ) -> None:
        ids = [await make_keyword(text=f"liposuction {i}") for i in range(2)]
        submission = await queue.add_batch(ids)

        await make_worker(llm=FakeLLM(success=False)).process_batch(submission.batch_id)

        progress = await queue.get_batch_progress(submission.batch_id)
        assert progress.status == BatchStatus.FAILED.value
        assert progress.failed == 2

    @pytest.mark.asyncio
    async def test_only_own_batch_drained(
        self, queue: GenerationQueue, make_worker, make_keyword
    ) -> None:
        """Processing one batch never claims jobs of another."""
        first = await queue.add_batch([await make_keyword(text="first batch")])
        second = await queue.add_batch([await make_keyword(text="second batch")])

        results = await make_worker().process_batch(first.batch_id)

        assert [r.batch_id for r in results] == [first.batch_id]
        progress = await queue.get_batch_progress(second.batch_id)
        assert progress.completed == 0


class TestEvents:
    """Tests for on_event notifications."""

    @pytest.mark.asyncio
    async def test_started_then_completed_or_failed(
        self, queue: GenerationQueue, make_worker, make_keyword
    ) -> None:
        """Each job emits job_started followed by exactly one completion event."""
        ids = [
            await make_keyword(text="thread lift"),
            await make_keyword(text="FAILME jaw surgery"),
        ]
        submission = await queue.add_batch(ids)
        recorder = EventRecorder()

        await make_worker(llm=FakeLLM(fail_when="FAILME")).process_batch(
            submission.batch_id, on_event=recorder
        )

        types = recorder.types()
        assert types[0] == types[2] == "job_started"
        assert sorted(types[1::2]) == ["job_completed", "job_failed"]

        by_type = {event_type: payload for event_type, payload in recorder.events}
        started = recorder.events[0][1]
        assert started["batchId"] == submission.batch_id
        assert started["jobId"] in submission.job_ids

        completed = by_type["job_completed"]
        assert completed["keyword"] == "thread lift"
        assert completed["blogPostId"]
        assert completed["imagesGenerated"] == 3
        assert completed["totalCost"] > 0
        assert "qualityScore" in completed

        failed = by_type["job_failed"]
        assert failed["keyword"] == "FAILME jaw surgery"
        assert failed["errorCategory"] == "GenerationError"
        assert failed["error"]

    @pytest.mark.asyncio
    async def test_pipeline_exception_becomes_unexpected_error(
        self,
        queue: GenerationQueue,
        make_worker,
        make_keyword,
        async_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """An exception escaping the pipeline fails the job as UnexpectedError."""
        keyword_id = await make_keyword()
        submission = await queue.add_batch([keyword_id])
        recorder = EventRecorder()

        result = await make_worker(llm=FakeLLM(raise_error=RuntimeError("kaput"))).process_next_job(
            submission.batch_id, on_event=recorder
        )

        assert result.success is False
        assert result.error_category == "UnexpectedError"
        assert recorder.events[-1][1]["errorCategory"] == "UnexpectedError"

        async with async_session_factory() as session:
            job = await GenerationRepository(session).get_job(submission.job_ids[0])
        assert job.status == "failed"
        assert job.error_message == "UnexpectedError: kaput"

        keyword = await get_keyword_row(async_session_factory, keyword_id)
        assert keyword.status == KeywordStatus.PENDING.value


class TestBatchOptions:
    """Tests for options carried from the batch to the pipeline."""

    @pytest.mark.asyncio
    async def test_auto_publish_and_no_images(
        self,
        queue: GenerationQueue,
        make_worker,
        make_keyword,
        fake_images,
        async_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Batch options are passed through to the pipeline run."""
        keyword_id = await make_keyword()
        submission = await queue.add_batch(
            [keyword_id], auto_publish=True, include_images=False
        )

        result = await make_worker().process_next_job(submission.batch_id)

        assert result.success is True
        assert fake_images.requests == []
        keyword = await get_keyword_row(async_session_factory, keyword_id)
        assert keyword.status == KeywordStatus.PUBLISHED.value


class TestRunWorker:
    """Tests for the queue-wide worker loop."""

    @pytest.mark.asyncio
    async def test_stops_when_queue_empty(
        self, queue: GenerationQueue, make_worker, make_keyword
    ) -> None:
        """run_worker returns once the queue is drained."""
        await queue.add_batch([await make_keyword(text="acne scar laser")])
        await queue.add_batch([await make_keyword(text="skin booster")])

        processed = await make_worker().run_worker()

        assert processed == 2
        stats = await queue.get_queue_stats()
        assert stats["queued"] == 0
        assert stats["completed"] == 2
        assert stats["active_batches"] == 0

    @pytest.mark.asyncio
    async def test_max_jobs(
        self, queue: GenerationQueue, make_worker, make_keyword
    ) -> None:
        """run_worker stops after max_jobs even with work left."""
        ids = [await make_keyword(text=f"health checkup {i}") for i in range(3)]
        await queue.add_batch(ids)

        processed = await make_worker().run_worker(max_jobs=2)

        assert processed == 2
        stats = await queue.get_queue_stats()
        assert stats["queued"] == 1

    @pytest.mark.asyncio
    async def test_empty_queue(self, make_worker) -> None:
        assert await make_worker().run_worker() == 0
        assert await make_worker().process_next_job() is None
