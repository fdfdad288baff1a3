"""Generation queue: batch submission, progress and stuck-job recovery.

Batches and jobs are never deleted; they are the audit trail of what was
generated, when, and with which outcome.

ERROR LOGGING REQUIREMENTS:
- Log batch submission with batch_id, queued and skipped counts
- Log validation failures with field names and rejected values
- Log every recovered job at WARNING level
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from getcare.core.config import Settings, get_settings
from getcare.core.errors import NotFoundError, ValidationError
from getcare.core.logging import get_logger, pipeline_logger
from getcare.models.keyword import KeywordStatus
from getcare.repositories.generation import GenerationRepository
from getcare.repositories.keyword import KeywordRepository

logger = get_logger(__name__)

QUEUEABLE_STATUSES = frozenset({KeywordStatus.PENDING.value, KeywordStatus.GENERATED.value})


@dataclass
class BatchSubmission:
    batch_id: str
    total: int
    job_ids: list[str] = field(default_factory=list)
    skipped: list[dict[str, str]] = field(default_factory=list)


@dataclass
class BatchProgress:
    """Snapshot of one batch for progress endpoints and the SSE stream."""

    batch_id: str
    total: int
    completed: int
    failed: int
    status: str
    current_job: dict[str, Any] | None
    is_complete: bool
    started_at: datetime | None
    updated_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "status": self.status,
            "current_job": self.current_job,
            "is_complete": self.is_complete,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class GenerationQueue:
    """Submits and inspects generation batches."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()

    async def add_batch(
        self,
        keyword_ids: list[str],
        priority: int = 0,
        requested_by: str | None = None,
        auto_publish: bool = False,
        include_images: bool = True,
        image_count: int | None = None,
        notify_email: str | None = None,
    ) -> BatchSubmission:
        """Queue one job per eligible keyword in a new batch.

        Only 'pending' and 'generated' keywords are queued; unknown ids and
        keywords in any other status are returned in `skipped`.

        Raises:
            ValidationError: If the list is empty, too large, or nothing is
                eligible (no batch is created in that case)
        """
        max_size = self._settings.queue_max_batch_size
        unique_ids = list(dict.fromkeys(k for k in keyword_ids if k))
        if not unique_ids:
            raise ValidationError("At least one keyword id is required", field="keyword_ids")
        if len(unique_ids) > max_size:
            logger.warning(
                "Batch rejected: too many keywords",
                extra={"field": "keyword_ids", "count": len(unique_ids), "max": max_size},
            )
            raise ValidationError(
                f"At most {max_size} keywords per batch (got {len(unique_ids)})",
                field="keyword_ids",
                value=len(unique_ids),
            )
        if image_count is None:
            image_count = self._settings.pipeline_default_image_count

        async with self._session_factory() as session:
            keywords = {k.id: k for k in await KeywordRepository(session).get_many(unique_ids)}

            eligible = []
            skipped: list[dict[str, str]] = []
            for keyword_id in unique_ids:
                keyword = keywords.get(keyword_id)
                if keyword is None:
                    skipped.append({"keyword_id": keyword_id, "reason": "Keyword not found"})
                elif keyword.status not in QUEUEABLE_STATUSES:
                    skipped.append(
                        {"keyword_id": keyword_id, "reason": f"Keyword status is '{keyword.status}'"}
                    )
                else:
                    eligible.append(keyword)

            if not eligible:
                raise ValidationError(
                    "No keywords are eligible for generation", field="keyword_ids"
                )

            repo = GenerationRepository(session)
            batch = await repo.create_batch(
                total=len(eligible),
                requested_by=requested_by,
                auto_publish=auto_publish,
                include_images=include_images,
                image_count=image_count,
                notify_email=notify_email,
            )
            job_ids = []
            for keyword in eligible:
                job = await repo.create_job(batch.id, keyword, priority=priority)
                job_ids.append(job.id)
            await session.commit()
            batch_id = batch.id

        logger.info(
            "Generation batch submitted",
            extra={
                "batch_id": batch_id,
                "queued": len(job_ids),
                "skipped": len(skipped),
                "priority": priority,
                "requested_by": requested_by,
            },
        )
        return BatchSubmission(
            batch_id=batch_id, total=len(job_ids), job_ids=job_ids, skipped=skipped
        )

    async def get_batch_progress(self, batch_id: str) -> BatchProgress:
        """Counters, status and the running job of a batch.

        Raises:
            NotFoundError: If the batch does not exist
        """
        async with self._session_factory() as session:
            repo = GenerationRepository(session)
            batch = await repo.get_batch(batch_id)
            if batch is None:
                raise NotFoundError("Batch", batch_id)
            running = await repo.get_running_job(batch_id)

            current_job = None
            if running is not None:
                current_job = {
                    "id": running.id,
                    "keyword_id": running.keyword_id,
                    "keyword": running.keyword,
                    "started_at": running.started_at.isoformat() if running.started_at else None,
                }
            return BatchProgress(
                batch_id=batch.id,
                total=batch.total,
                completed=batch.completed,
                failed=batch.failed,
                status=batch.status,
                current_job=current_job,
                is_complete=batch.completed + batch.failed >= batch.total,
                started_at=batch.started_at,
                updated_at=batch.updated_at,
            )

    async def get_batch_report(self, batch_id: str) -> dict[str, Any]:
        """Final tally of a batch with a summary of every job.

        Raises:
            NotFoundError: If the batch does not exist
        """
        async with self._session_factory() as session:
            repo = GenerationRepository(session)
            batch = await repo.get_batch(batch_id)
            if batch is None:
                raise NotFoundError("Batch", batch_id)
            jobs = await repo.list_jobs(batch_id)
            return {
                "batchId": batch.id,
                "status": batch.status,
                "total": batch.total,
                "completed": batch.completed,
                "failed": batch.failed,
                "jobs": [
                    {
                        "id": job.id,
                        "keywordId": job.keyword_id,
                        "keyword": job.keyword,
                        "status": job.status,
                        "qualityScore": job.quality_score,
                        "blogPostId": job.blog_post_id,
                        "errorMessage": job.error_message,
                    }
                    for job in jobs
                ],
            }

    async def get_queue_stats(self) -> dict[str, int]:
        """Job counts by status plus the number of running batches."""
        async with self._session_factory() as session:
            repo = GenerationRepository(session)
            stats = await repo.count_jobs_by_status()
            stats["active_batches"] = await repo.count_active_batches()
            return stats

    async def recover_stuck_jobs(self, stuck_minutes: int | None = None) -> int:
        """Fail jobs that have been running too long and release their keywords.

        Returns:
            Number of jobs recovered
        """
        minutes = stuck_minutes or self._settings.queue_stuck_job_minutes
        cutoff = datetime.now(UTC) - timedelta(minutes=minutes)
        message = f"Job timed out: running for more than {minutes} minutes"

        async with self._session_factory() as session:
            generation = GenerationRepository(session)
            keywords = KeywordRepository(session)

            stuck = await generation.find_stuck_jobs(cutoff)
            recovered = 0
            batch_ids: set[str] = set()
            for job in stuck:
                if not await generation.fail_job(job.id, message):
                    continue
                recovered += 1
                batch_ids.add(job.batch_id)
                pipeline_logger.job_event("recovered", job.id, job.batch_id, keyword_id=job.keyword_id)

                keyword = await keywords.get(job.keyword_id)
                if keyword is not None and keyword.status == KeywordStatus.GENERATING.value:
                    await keywords.rollback_to_pending(job.keyword_id, message)

            for batch_id in sorted(batch_ids):
                await generation.refresh_batch(batch_id)
            await session.commit()

        if recovered:
            logger.warning(
                "Recovered stuck generation jobs",
                extra={"recovered": recovered, "stuck_minutes": minutes},
            )
        return recovered
