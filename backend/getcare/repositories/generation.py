"""GenerationRepository: batches and jobs of the generation queue.

Claiming a job is the one operation that must be atomic across workers: it is
a conditional UPDATE that only succeeds while the row is still 'queued'.
Batch counters are recomputed from the job rows on every refresh, so
completed + failed can never exceed total.

ERROR LOGGING REQUIREMENTS:
- Log all exceptions with full stack trace and context
- Include job_id / batch_id in all logs
- Log batch state transitions at INFO level
- Add timing logs for operations >1 second
"""

import time
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from getcare.core.logging import db_logger, get_logger, pipeline_logger
from getcare.models.generation import (
    BatchStatus,
    GenerationBatch,
    GenerationJob,
    JobStatus,
)
from getcare.models.keyword import Keyword

logger = get_logger(__name__)


def resolve_batch_status(total: int, completed: int, failed: int) -> BatchStatus:
    """Status a batch should have for the given counters.

    A batch is 'running' until every job has finished; then it is 'completed'
    if nothing failed, 'failed' if nothing succeeded, otherwise 'partial'.
    """
    if completed + failed < total:
        return BatchStatus.RUNNING
    if failed == 0:
        return BatchStatus.COMPLETED
    if completed == 0:
        return BatchStatus.FAILED
    return BatchStatus.PARTIAL


class GenerationRepository:
    """Repository for GenerationBatch and GenerationJob rows."""

    BATCH_TABLE = "generation_batches"
    JOB_TABLE = "generation_jobs"
    SLOW_OPERATION_THRESHOLD_MS = 1000  # 1 second
    MAX_CLAIM_ATTEMPTS = 5

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def create_batch(
        self,
        total: int,
        requested_by: str | None = None,
        auto_publish: bool = False,
        include_images: bool = True,
        image_count: int = 3,
        notify_email: str | None = None,
    ) -> GenerationBatch:
        """Create a running batch with zeroed counters."""
        try:
            batch = GenerationBatch(
                total=total,
                completed=0,
                failed=0,
                status=BatchStatus.RUNNING.value,
                requested_by=requested_by,
                auto_publish=auto_publish,
                include_images=include_images,
                image_count=image_count,
                notify_email=notify_email,
            )
            self.session.add(batch)
            await self.session.flush()
            logger.info(
                "Generation batch created",
                extra={"batch_id": batch.id, "total": total},
            )
            return batch
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.BATCH_TABLE, context=f"Creating batch total={total}"
            )
            raise

    async def get_batch(self, batch_id: str) -> GenerationBatch | None:
        """Get a batch by ID, re-reading it from the database."""
        try:
            result = await self.session.execute(
                select(GenerationBatch)
                .where(GenerationBatch.id == batch_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.BATCH_TABLE, context=f"Fetching batch_id={batch_id}"
            )
            raise

    async def refresh_batch(self, batch_id: str) -> GenerationBatch | None:
        """Recompute a batch's counters from its jobs and settle its status.

        Terminal statuses are never revisited.
        """
        start_time = time.monotonic()
        batch = await self.get_batch(batch_id)
        if batch is None:
            return None

        try:
            result = await self.session.execute(
                select(GenerationJob.status, func.count())
                .where(GenerationJob.batch_id == batch_id)
                .group_by(GenerationJob.status)
            )
            counts: dict[str, int] = {row[0]: row[1] for row in result.all()}
            completed = counts.get(JobStatus.COMPLETED.value, 0)
            failed = counts.get(JobStatus.FAILED.value, 0)

            values: dict[str, Any] = {"completed": completed, "failed": failed}
            previous_status = batch.status
            if previous_status == BatchStatus.RUNNING.value:
                new_status = resolve_batch_status(batch.total, completed, failed)
                if new_status != BatchStatus.RUNNING:
                    values["status"] = new_status.value
                    values["completed_at"] = datetime.now(UTC)

            await self.session.execute(
                update(GenerationBatch)
                .where(GenerationBatch.id == batch_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.session.flush()

            refreshed = await self.get_batch(batch_id)
            assert refreshed is not None

            if refreshed.status != previous_status:
                logger.info(
                    "Batch status transition",
                    extra={
                        "batch_id": batch_id,
                        "from_status": previous_status,
                        "to_status": refreshed.status,
                        "completed": completed,
                        "failed": failed,
                        "total": refreshed.total,
                    },
                )
            pipeline_logger.batch_status(
                batch_id, refreshed.status, refreshed.total, completed, failed
            )

            duration_ms = (time.monotonic() - start_time) * 1000
            if duration_ms > self.SLOW_OPERATION_THRESHOLD_MS:
                db_logger.slow_query(
                    query=f"UPDATE generation_batches WHERE id={batch_id}",
                    duration_ms=duration_ms,
                    table=self.BATCH_TABLE,
                )
            return refreshed

        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.BATCH_TABLE,
                context=f"Refreshing counters for batch_id={batch_id}",
            )
            raise

    async def count_active_batches(self) -> int:
        """Number of batches still running."""
        try:
            result = await self.session.execute(
                select(func.count())
                .select_from(GenerationBatch)
                .where(GenerationBatch.status == BatchStatus.RUNNING.value)
            )
            return int(result.scalar_one())
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.BATCH_TABLE, context="Counting active batches"
            )
            raise

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def create_job(
        self, batch_id: str, keyword: Keyword, priority: int = 0
    ) -> GenerationJob:
        """Queue one keyword in a batch."""
        try:
            job = GenerationJob(
                batch_id=batch_id,
                keyword_id=keyword.id,
                keyword=keyword.text,
                locale=keyword.locale,
                status=JobStatus.QUEUED.value,
                priority=priority,
                retry_count=0,
            )
            self.session.add(job)
            await self.session.flush()
            return job
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.JOB_TABLE,
                context=f"Queueing keyword_id={keyword.id} in batch_id={batch_id}",
            )
            raise

    async def get_job(self, job_id: str) -> GenerationJob | None:
        """Get a job by ID, re-reading it from the database."""
        try:
            result = await self.session.execute(
                select(GenerationJob)
                .where(GenerationJob.id == job_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.JOB_TABLE, context=f"Fetching job_id={job_id}"
            )
            raise

    async def list_jobs(self, batch_id: str) -> list[GenerationJob]:
        """All jobs of a batch in creation order."""
        try:
            result = await self.session.execute(
                select(GenerationJob)
                .where(GenerationJob.batch_id == batch_id)
                .order_by(GenerationJob.created_at)
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.JOB_TABLE, context=f"Listing jobs of batch_id={batch_id}"
            )
            raise

    async def get_running_job(self, batch_id: str) -> GenerationJob | None:
        """The job of a batch currently being processed, if any."""
        try:
            result = await self.session.execute(
                select(GenerationJob)
                .where(
                    GenerationJob.batch_id == batch_id,
                    GenerationJob.status == JobStatus.RUNNING.value,
                )
                .order_by(GenerationJob.started_at)
                .limit(1)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.JOB_TABLE,
                context=f"Fetching running job of batch_id={batch_id}",
            )
            raise

    async def next_queued_job_id(self, batch_id: str | None = None) -> str | None:
        """ID of the next queued job: highest priority first, then oldest."""
        stmt = select(GenerationJob.id).where(
            GenerationJob.status == JobStatus.QUEUED.value
        )
        if batch_id is not None:
            stmt = stmt.where(GenerationJob.batch_id == batch_id)
        stmt = stmt.order_by(
            GenerationJob.priority.desc(), GenerationJob.created_at.asc()
        ).limit(1)

        try:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.JOB_TABLE, context="Selecting next queued job"
            )
            raise

    async def claim_job(self, job_id: str) -> bool:
        """Move a job from 'queued' to 'running'.

        The UPDATE only matches while the row is still queued, so of two
        concurrent claims exactly one succeeds.

        Returns:
            True if this call claimed the job
        """
        try:
            result = await self.session.execute(
                update(GenerationJob)
                .where(
                    GenerationJob.id == job_id,
                    GenerationJob.status == JobStatus.QUEUED.value,
                )
                .values(
                    status=JobStatus.RUNNING.value,
                    started_at=datetime.now(UTC),
                )
                .execution_options(synchronize_session=False)
            )
            await self.session.flush()
            return bool(result.rowcount)
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.JOB_TABLE, context=f"Claiming job_id={job_id}"
            )
            raise

    async def claim_next_job(self, batch_id: str | None = None) -> GenerationJob | None:
        """Claim the next queued job, or return None when nothing is queued.

        A candidate lost to a concurrent worker is skipped and the next one
        is tried, up to MAX_CLAIM_ATTEMPTS times.
        """
        for attempt in range(self.MAX_CLAIM_ATTEMPTS):
            job_id = await self.next_queued_job_id(batch_id)
            if job_id is None:
                return None
            if await self.claim_job(job_id):
                return await self.get_job(job_id)
            logger.debug(
                "Job claimed by another worker, retrying",
                extra={"job_id": job_id, "attempt": attempt + 1},
            )
        return None

    async def complete_job(
        self,
        job_id: str,
        blog_post_id: str | None,
        quality_score: float | None = None,
    ) -> bool:
        """Mark a running job completed."""
        return await self._finish_job(
            job_id,
            {
                "status": JobStatus.COMPLETED.value,
                "blog_post_id": blog_post_id,
                "quality_score": quality_score,
                "error_message": None,
            },
        )

    async def fail_job(self, job_id: str, error_message: str) -> bool:
        """Mark a running job failed."""
        return await self._finish_job(
            job_id,
            {
                "status": JobStatus.FAILED.value,
                "error_message": error_message,
            },
        )

    async def _finish_job(self, job_id: str, values: dict[str, Any]) -> bool:
        try:
            result = await self.session.execute(
                update(GenerationJob)
                .where(
                    GenerationJob.id == job_id,
                    GenerationJob.status == JobStatus.RUNNING.value,
                )
                .values(completed_at=datetime.now(UTC), **values)
                .execution_options(synchronize_session=False)
            )
            await self.session.flush()
            return bool(result.rowcount)
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.JOB_TABLE,
                context=f"Finishing job_id={job_id} as {values.get('status')}",
            )
            raise

    async def count_jobs_by_status(self) -> dict[str, int]:
        """Job counts for every JobStatus (missing statuses count as 0)."""
        try:
            result = await self.session.execute(
                select(GenerationJob.status, func.count()).group_by(
                    GenerationJob.status
                )
            )
            counts = {status.value: 0 for status in JobStatus}
            for status, count in result.all():
                counts[status] = int(count)
            return counts
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.JOB_TABLE, context="Counting jobs by status"
            )
            raise

    async def find_stuck_jobs(self, started_before: datetime) -> list[GenerationJob]:
        """Running jobs claimed before the given time."""
        try:
            result = await self.session.execute(
                select(GenerationJob)
                .where(
                    GenerationJob.status == JobStatus.RUNNING.value,
                    GenerationJob.started_at < started_before,
                )
                .order_by(GenerationJob.started_at)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.JOB_TABLE, context="Finding stuck jobs"
            )
            raise
