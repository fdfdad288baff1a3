"""Sequential worker for the generation queue.

Jobs are processed one at a time. The worker never retries a failed job:
the keyword is already back in 'pending', and re-running it is an explicit
new submission. Systemic LLM failures (such as exhausted credit) therefore
show up as failed jobs instead of silent retry loops.

Progress is reported through an optional async `on_event(type, payload)`
callback; the SSE stream uses it to forward job events to the client.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from getcare.core.config import Settings, get_settings
from getcare.core.logging import get_logger, pipeline_logger
from getcare.repositories.generation import GenerationRepository
from getcare.services.content_pipeline import (
    ContentPipeline,
    PipelineOptions,
    PipelineResult,
)

logger = get_logger(__name__)

EventCallback = Callable[[str, dict[str, Any]], Awaitable[None]]


@dataclass
class ClaimedJob:
    """Detached view of a claimed job and its batch options."""

    id: str
    batch_id: str
    keyword_id: str
    keyword: str
    auto_publish: bool
    include_images: bool
    image_count: int


@dataclass
class JobResult:
    job_id: str
    batch_id: str
    keyword_id: str
    keyword: str
    success: bool
    blog_post_id: str | None = None
    quality_score: float | None = None
    error: str | None = None
    error_category: str | None = None


def _now() -> str:
    return datetime.now(UTC).isoformat()


class GenerationWorker:
    """Claims queued jobs and runs them through the content pipeline."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        pipeline: ContentPipeline,
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._pipeline = pipeline
        self._settings = settings or get_settings()

    async def _claim(self, batch_id: str | None) -> ClaimedJob | None:
        async with self._session_factory() as session:
            repo = GenerationRepository(session)
            job = await repo.claim_next_job(batch_id)
            if job is None:
                return None
            batch = await repo.get_batch(job.batch_id)
            await session.commit()
            claimed = ClaimedJob(
                id=job.id,
                batch_id=job.batch_id,
                keyword_id=job.keyword_id,
                keyword=job.keyword,
                auto_publish=bool(batch and batch.auto_publish),
                include_images=bool(batch.include_images) if batch else True,
                image_count=batch.image_count if batch else self._settings.pipeline_default_image_count,
            )
        pipeline_logger.job_event("claimed", claimed.id, claimed.batch_id, keyword_id=claimed.keyword_id)
        return claimed

    async def _finish(self, job: ClaimedJob, result: PipelineResult) -> None:
        """Record the outcome and refresh batch counters, best effort."""
        try:
            async with self._session_factory() as session:
                repo = GenerationRepository(session)
                if result.success:
                    await repo.complete_job(job.id, result.blog_post_id, result.quality_score)
                else:
                    message = f"{result.error_category}: {result.error}"
                    await repo.fail_job(
                        job.id, message[: self._settings.pipeline_error_message_max_length]
                    )
                await repo.refresh_batch(job.batch_id)
                await session.commit()
        except SQLAlchemyError as e:
            # Left 'running'; stuck-job recovery will fail it later
            logger.error(
                "Failed to record generation job outcome",
                extra={
                    "job_id": job.id,
                    "batch_id": job.batch_id,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
                exc_info=True,
            )

    async def process_job(
        self, job: ClaimedJob, on_event: EventCallback | None = None
    ) -> JobResult:
        """Run one claimed job and record its outcome."""
        base = {"jobId": job.id, "keywordId": job.keyword_id, "keyword": job.keyword}
        if on_event:
            await on_event("job_started", {**base, "batchId": job.batch_id, "timestamp": _now()})
        pipeline_logger.job_event("started", job.id, job.batch_id, keyword_id=job.keyword_id)

        options = PipelineOptions(
            include_images=job.include_images,
            image_count=job.image_count,
            auto_publish=job.auto_publish,
        )
        try:
            result = await self._pipeline.run(job.keyword_id, options)
        except Exception as e:
            logger.error(
                "Content pipeline raised unexpectedly",
                extra={"job_id": job.id, "keyword_id": job.keyword_id, "error_type": type(e).__name__},
                exc_info=True,
            )
            result = PipelineResult(
                success=False,
                keyword_id=job.keyword_id,
                error=str(e) or type(e).__name__,
                error_category="UnexpectedError",
            )

        await self._finish(job, result)

        job_result = JobResult(
            job_id=job.id,
            batch_id=job.batch_id,
            keyword_id=job.keyword_id,
            keyword=job.keyword,
            success=result.success,
            blog_post_id=result.blog_post_id,
            quality_score=result.quality_score,
            error=result.error,
            error_category=result.error_category,
        )

        if result.success:
            pipeline_logger.job_event(
                "completed", job.id, job.batch_id, blog_post_id=result.blog_post_id
            )
            if on_event:
                await on_event(
                    "job_completed",
                    {
                        **base,
                        "blogPostId": result.blog_post_id,
                        "title": result.title,
                        "qualityScore": result.quality_score,
                        "imagesGenerated": result.images_generated,
                        "totalCost": result.total_cost,
                        "timestamp": _now(),
                    },
                )
        else:
            pipeline_logger.job_event(
                "failed", job.id, job.batch_id, error_category=result.error_category
            )
            if on_event:
                await on_event(
                    "job_failed",
                    {
                        **base,
                        "error": result.error,
                        "errorCategory": result.error_category,
                        "timestamp": _now(),
                    },
                )
        return job_result

    async def process_next_job(
        self, batch_id: str | None = None, on_event: EventCallback | None = None
    ) -> JobResult | None:
        """Claim and process the next queued job; None when nothing is queued."""
        job = await self._claim(batch_id)
        if job is None:
            return None
        return await self.process_job(job, on_event)

    async def process_batch(
        self, batch_id: str, on_event: EventCallback | None = None
    ) -> list[JobResult]:
        """Drain the queued jobs of one batch, one after another."""
        results: list[JobResult] = []
        while True:
            result = await self.process_next_job(batch_id, on_event)
            if result is None:
                break
            results.append(result)

        logger.info(
            "Batch drained",
            extra={
                "batch_id": batch_id,
                "processed": len(results),
                "failed": sum(1 for r in results if not r.success),
            },
        )
        return results

    async def run_worker(
        self,
        max_jobs: int | None = None,
        poll_interval: float | None = None,
        stop_on_empty: bool = True,
        on_event: EventCallback | None = None,
    ) -> int:
        """Process jobs from any batch until the queue is empty or max_jobs is hit.

        Returns:
            Number of jobs processed
        """
        interval = poll_interval if poll_interval is not None else self._settings.sse_idle_sleep
        processed = 0
        logger.info("Generation worker started", extra={"max_jobs": max_jobs})

        while max_jobs is None or processed < max_jobs:
            result = await self.process_next_job(on_event=on_event)
            if result is None:
                if stop_on_empty:
                    break
                await asyncio.sleep(interval)
                continue
            processed += 1

        logger.info("Generation worker stopped", extra={"processed": processed})
        return processed
