"""Tests for GenerationQueue and the generation repository.

Tests cover:
- Batch submission: eligibility, skipped reasons, de-duplication, limits
- Progress and report snapshots
- Queue statistics
- Job claiming (atomic, priority ordered)
- Batch status resolution
- Stuck-job recovery
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from conftest import get_keyword_row, get_test_settings
from getcare.core.config import Settings
from getcare.core.errors import NotFoundError, ValidationError
from getcare.models.generation import BatchStatus, GenerationBatch, GenerationJob
from getcare.models.keyword import KeywordStatus
from getcare.repositories.generation import GenerationRepository, resolve_batch_status
from getcare.repositories.keyword import KeywordRepository
from getcare.services.generation_queue import GenerationQueue


@pytest.fixture
def queue(
    async_session_factory: async_sessionmaker[AsyncSession], test_settings: Settings
) -> GenerationQueue:
    return GenerationQueue(async_session_factory, settings=test_settings)


async def _job(
    session_factory: async_sessionmaker[AsyncSession], job_id: str
) -> GenerationJob:
    async with session_factory() as session:
        job = await GenerationRepository(session).get_job(job_id)
        assert job is not None
        return job


class TestAddBatch:
    """Tests for batch submission."""

    @pytest.mark.asyncio
    async def test_queues_eligible_keywords(
        self, queue: GenerationQueue, make_keyword
    ) -> None:
        """One job is queued per pending keyword and the batch starts running."""
        ids = [await make_keyword(text=f"dental implants {i}") for i in range(3)]

        submission = await queue.add_batch(ids, requested_by="ops@getcarekorea.com")

        assert submission.total == 3
        assert len(submission.job_ids) == 3
        assert submission.skipped == []

        progress = await queue.get_batch_progress(submission.batch_id)
        assert progress.total == 3
        assert progress.status == BatchStatus.RUNNING.value

    @pytest.mark.asyncio
    async def test_generated_keywords_are_eligible(
        self, queue: GenerationQueue, make_keyword
    ) -> None:
        """Already generated keywords may be queued for regeneration."""
        keyword_id = await make_keyword(status=KeywordStatus.GENERATED)

        submission = await queue.add_batch([keyword_id])

        assert submission.total == 1

    @pytest.mark.asyncio
    async def test_skipped_keywords_have_reasons(
        self, queue: GenerationQueue, make_keyword
    ) -> None:
        """Ineligible and unknown keywords are skipped with a reason each."""
        eligible = await make_keyword()
        published = await make_keyword(status=KeywordStatus.PUBLISHED)
        generating = await make_keyword(status=KeywordStatus.GENERATING)
        missing = str(uuid4())

        submission = await queue.add_batch([eligible, published, generating, missing])

        assert submission.total == 1
        reasons = {s["keyword_id"]: s["reason"] for s in submission.skipped}
        assert reasons == {
            published: "Keyword status is 'published'",
            generating: "Keyword status is 'generating'",
            missing: "Keyword not found",
        }

    @pytest.mark.asyncio
    async def test_duplicate_ids_queued_once(
        self, queue: GenerationQueue, make_keyword
    ) -> None:
        """Repeated ids in one submission produce a single job."""
        keyword_id = await make_keyword()

        submission = await queue.add_batch([keyword_id, keyword_id, keyword_id])

        assert submission.total == 1

    @pytest.mark.asyncio
    async def test_empty_list_rejected(self, queue: GenerationQueue) -> None:
        """An empty submission raises ValidationError on keyword_ids."""
        with pytest.raises(ValidationError) as exc_info:
            await queue.add_batch([])
        assert exc_info.value.field == "keyword_ids"

    @pytest.mark.asyncio
    async def test_oversized_batch_rejected(
        self, async_session_factory: async_sessionmaker[AsyncSession], make_keyword
    ) -> None:
        queue = GenerationQueue(
            async_session_factory, settings=get_test_settings(queue_max_batch_size=2)
        )
        ids = [await make_keyword(text=f"lasik {i}") for i in range(3)]

        with pytest.raises(ValidationError, match="At most 2 keywords"):
            await queue.add_batch(ids)

    @pytest.mark.asyncio
    async def test_nothing_eligible_creates_no_batch(
        self,
        queue: GenerationQueue,
        make_keyword,
        async_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """When nothing is eligible no batch row is written."""
        keyword_id = await make_keyword(status=KeywordStatus.PUBLISHED)

        with pytest.raises(ValidationError, match="No keywords are eligible"):
            await queue.add_batch([keyword_id])

        async with async_session_factory() as session:
            count = await session.scalar(select(func.count()).select_from(GenerationBatch))
        assert count == 0

    @pytest.mark.asyncio
    async def test_batch_options_stored(
        self,
        queue: GenerationQueue,
        make_keyword,
        async_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Per-batch options are stored on the batch row."""
        keyword_id = await make_keyword()

        submission = await queue.add_batch(
            [keyword_id], auto_publish=True, include_images=False, image_count=2
        )

        async with async_session_factory() as session:
            batch = await GenerationRepository(session).get_batch(submission.batch_id)
        assert batch.auto_publish is True
        assert batch.include_images is False
        assert batch.image_count == 2


class TestProgressAndReport:
    """Tests for batch snapshots."""

    @pytest.mark.asyncio
    async def test_unknown_batch(self, queue: GenerationQueue) -> None:
        """Progress and report lookups raise NotFoundError for unknown batches."""
        with pytest.raises(NotFoundError):
            await queue.get_batch_progress(str(uuid4()))
        with pytest.raises(NotFoundError):
            await queue.get_batch_report(str(uuid4()))

    @pytest.mark.asyncio
    async def test_progress_shows_running_job(
        self,
        queue: GenerationQueue,
        make_keyword,
        async_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Progress exposes the job that is currently running."""
        keyword_id = await make_keyword(text="hair transplant Seoul")
        submission = await queue.add_batch([keyword_id])

        async with async_session_factory() as session:
            await GenerationRepository(session).claim_next_job(submission.batch_id)
            await session.commit()

        progress = await queue.get_batch_progress(submission.batch_id)
        assert progress.is_complete is False
        assert progress.current_job["keyword"] == "hair transplant Seoul"
        assert progress.to_dict()["current_job"]["keyword_id"] == keyword_id

    @pytest.mark.asyncio
    async def test_report_uses_camel_case(
        self, queue: GenerationQueue, make_keyword
    ) -> None:
        """The batch report uses the camelCase wire keys."""
        keyword_id = await make_keyword()
        submission = await queue.add_batch([keyword_id])

        report = await queue.get_batch_report(submission.batch_id)

        assert report["batchId"] == submission.batch_id
        assert report["total"] == 1
        job = report["jobs"][0]
        assert job["keywordId"] == keyword_id
        assert job["status"] == "queued"
        assert set(job) == {
            "id", "keywordId", "keyword", "status", "qualityScore", "blogPostId", "errorMessage",
        }

    @pytest.mark.asyncio
    async def test_queue_stats(self, queue: GenerationQueue, make_keyword) -> None:
        ids = [await make_keyword(text=f"botox {i}") for i in range(2)]
        await queue.add_batch(ids)

        stats = await queue.get_queue_stats()

        assert stats["queued"] == 2
        assert stats["running"] == 0
        assert stats["completed"] == 0
        assert stats["failed"] == 0
        assert stats["active_batches"] == 1


class TestClaiming:
    """Tests for job claiming."""

    @pytest.mark.asyncio
    async def test_job_claimed_once(
        self,
        queue: GenerationQueue,
        make_keyword,
        async_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Of two claims on the same job only the first succeeds."""
        submission = await queue.add_batch([await make_keyword()])
        job_id = submission.job_ids[0]

        async with async_session_factory() as first, async_session_factory() as second:
            claimed_first = await GenerationRepository(first).claim_job(job_id)
            await first.commit()
            claimed_second = await GenerationRepository(second).claim_job(job_id)
            await second.commit()

        assert claimed_first is True
        assert claimed_second is False
        job = await _job(async_session_factory, job_id)
        assert job.status == "running"
        assert job.started_at is not None

    @pytest.mark.asyncio
    async def test_higher_priority_claimed_first(
        self,
        queue: GenerationQueue,
        make_keyword,
        async_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Higher-priority jobs are claimed before older low-priority ones."""
        await queue.add_batch([await make_keyword(text="low priority")], priority=0)
        urgent = await queue.add_batch([await make_keyword(text="urgent")], priority=5)

        async with async_session_factory() as session:
            job = await GenerationRepository(session).claim_next_job()
            await session.commit()

        assert job.id == urgent.job_ids[0]

    @pytest.mark.asyncio
    async def test_claim_next_on_empty_queue(
        self, async_session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with async_session_factory() as session:
            assert await GenerationRepository(session).claim_next_job() is None

    @pytest.mark.asyncio
    async def test_only_running_jobs_can_finish(
        self,
        queue: GenerationQueue,
        make_keyword,
        async_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Jobs that are not running cannot be marked completed."""
        submission = await queue.add_batch([await make_keyword()])

        async with async_session_factory() as session:
            repo = GenerationRepository(session)
            assert await repo.complete_job(submission.job_ids[0], None) is False
            await session.commit()


class TestBatchStatus:
    """Tests for batch status resolution."""

    @pytest.mark.parametrize(
        "total,completed,failed,expected",
        [
            (5, 2, 1, BatchStatus.RUNNING),
            (5, 5, 0, BatchStatus.COMPLETED),
            (5, 0, 5, BatchStatus.FAILED),
            (5, 3, 2, BatchStatus.PARTIAL),
        ],
    )
    def test_resolve_batch_status(
        self, total: int, completed: int, failed: int, expected: BatchStatus
    ) -> None:
        assert resolve_batch_status(total, completed, failed) == expected

    @pytest.mark.asyncio
    async def test_refresh_settles_terminal_status(
        self,
        queue: GenerationQueue,
        make_keyword,
        async_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """A refreshed batch settles on its terminal status once all jobs finish."""
        ids = [await make_keyword(text=f"veneers {i}") for i in range(2)]
        submission = await queue.add_batch(ids)

        async with async_session_factory() as session:
            repo = GenerationRepository(session)
            for _ in range(2):
                job = await repo.claim_next_job(submission.batch_id)
                await repo.complete_job(job.id, None, 80.0)
            batch = await repo.refresh_batch(submission.batch_id)
            await session.commit()

        assert batch.completed == 2
        assert batch.failed == 0
        assert batch.status == BatchStatus.COMPLETED.value
        assert batch.completed_at is not None


class TestRecoverStuckJobs:
    """Tests for stuck-job recovery."""

    @pytest.mark.asyncio
    async def test_stuck_job_failed_and_keyword_released(
        self,
        queue: GenerationQueue,
        make_keyword,
        async_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """A job running past the cutoff fails and its keyword returns to pending."""
        keyword_id = await make_keyword()
        submission = await queue.add_batch([keyword_id])
        job_id = submission.job_ids[0]

        async with async_session_factory() as session:
            await GenerationRepository(session).claim_job(job_id)
            await session.execute(
                update(GenerationJob)
                .where(GenerationJob.id == job_id)
                .values(started_at=datetime.now(UTC) - timedelta(hours=2))
            )
            await KeywordRepository(session).start_generating(keyword_id)
            await session.commit()

        recovered = await queue.recover_stuck_jobs(stuck_minutes=30)

        assert recovered == 1
        job = await _job(async_session_factory, job_id)
        assert job.status == "failed"
        assert job.error_message == "Job timed out: running for more than 30 minutes"

        keyword = await get_keyword_row(async_session_factory, keyword_id)
        assert keyword.status == KeywordStatus.PENDING.value
        assert keyword.error_message.startswith("Job timed out")

        progress = await queue.get_batch_progress(submission.batch_id)
        assert progress.status == BatchStatus.FAILED.value
        assert progress.failed == 1

    @pytest.mark.asyncio
    async def test_recent_running_job_left_alone(
        self,
        queue: GenerationQueue,
        make_keyword,
        async_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Jobs within the cutoff are not touched."""
        submission = await queue.add_batch([await make_keyword()])
        async with async_session_factory() as session:
            await GenerationRepository(session).claim_job(submission.job_ids[0])
            await session.commit()

        assert await queue.recover_stuck_jobs(stuck_minutes=30) == 0
        job = await _job(async_session_factory, submission.job_ids[0])
        assert job.status == "running"
