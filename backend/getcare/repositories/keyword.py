"""KeywordRepository: typed access to the keywords table.

The orchestrator depends on this interface only. Every status change goes
through one of the transition methods so it is logged consistently.

ERROR LOGGING REQUIREMENTS:
- Log all exceptions with full stack trace and context
- Include keyword_id in all logs
- Log status transitions at INFO level
- Add timing logs for operations >1 second
"""

import time
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from getcare.core.logging import db_logger, get_logger, pipeline_logger
from getcare.models.keyword import Keyword, KeywordStatus

logger = get_logger(__name__)


class KeywordRepository:
    """Repository for Keyword reads and status transitions."""

    TABLE_NAME = "keywords"
    SLOW_OPERATION_THRESHOLD_MS = 1000  # 1 second

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, keyword_id: str) -> Keyword | None:
        """Get a keyword by ID, always re-reading the row from the database.

        Args:
            keyword_id: UUID of the keyword

        Returns:
            Keyword instance if found, None otherwise

        Raises:
            SQLAlchemyError: On database errors
        """
        start_time = time.monotonic()
        try:
            result = await self.session.execute(
                select(Keyword)
                .where(Keyword.id == keyword_id)
                .execution_options(populate_existing=True)
            )
            keyword = result.scalar_one_or_none()

            duration_ms = (time.monotonic() - start_time) * 1000
            if duration_ms > self.SLOW_OPERATION_THRESHOLD_MS:
                db_logger.slow_query(
                    query=f"SELECT FROM keywords WHERE id={keyword_id}",
                    duration_ms=duration_ms,
                    table=self.TABLE_NAME,
                )
            return keyword

        except SQLAlchemyError as e:
            logger.error(
                "Failed to fetch keyword by ID",
                extra={
                    "keyword_id": keyword_id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )
            raise

    async def get_many(self, keyword_ids: list[str]) -> list[Keyword]:
        """Get the keywords whose IDs are in keyword_ids (unknown IDs are absent)."""
        if not keyword_ids:
            return []
        try:
            result = await self.session.execute(
                select(Keyword)
                .where(Keyword.id.in_(keyword_ids))
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Fetching {len(keyword_ids)} keywords by ID",
            )
            raise

    async def _update(
        self,
        keyword_id: str,
        values: dict[str, Any],
        *conditions: Any,
    ) -> bool:
        """Apply values to one keyword row. Returns False if no row matched."""
        start_time = time.monotonic()
        try:
            result = await self.session.execute(
                update(Keyword)
                .where(Keyword.id == keyword_id, *conditions)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.session.flush()

            duration_ms = (time.monotonic() - start_time) * 1000
            if duration_ms > self.SLOW_OPERATION_THRESHOLD_MS:
                db_logger.slow_query(
                    query=f"UPDATE keywords WHERE id={keyword_id}",
                    duration_ms=duration_ms,
                    table=self.TABLE_NAME,
                )
            return bool(result.rowcount)

        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Updating keyword_id={keyword_id} fields={list(values)}",
            )
            raise

    async def set_status(
        self,
        keyword_id: str,
        status: KeywordStatus,
        error_message: str | None = None,
        clear_error: bool = False,
    ) -> Keyword | None:
        """Set a keyword's status unconditionally.

        Args:
            keyword_id: UUID of the keyword
            status: New status
            error_message: Diagnostic to store alongside the status
            clear_error: Reset error_message to NULL

        Returns:
            Updated Keyword, or None if it does not exist
        """
        current = await self.get(keyword_id)
        if current is None:
            return None

        values: dict[str, Any] = {"status": status.value}
        if error_message is not None:
            values["error_message"] = error_message
        elif clear_error:
            values["error_message"] = None

        await self._update(keyword_id, values)
        if current.status != status.value:
            pipeline_logger.status_transition(keyword_id, current.status, status.value)
        return await self.get(keyword_id)

    async def start_generating(self, keyword_id: str) -> bool:
        """Move a keyword into 'generating' unless it is already there.

        Issued as a single conditional UPDATE, so two concurrent runs cannot
        both take the keyword.

        Returns:
            True if this call took the keyword, False if it was already generating
        """
        current = await self.get(keyword_id)
        if current is None or current.status == KeywordStatus.GENERATING.value:
            return False

        taken = await self._update(
            keyword_id,
            {"status": KeywordStatus.GENERATING.value},
            Keyword.status != KeywordStatus.GENERATING.value,
        )
        if taken:
            pipeline_logger.status_transition(
                keyword_id, current.status, KeywordStatus.GENERATING.value
            )
        return taken

    async def mark_generated(
        self,
        keyword_id: str,
        blog_post_id: str,
        published: bool = False,
    ) -> bool:
        """Link the generated post, flip status and clear error_message."""
        status = KeywordStatus.PUBLISHED if published else KeywordStatus.GENERATED
        updated = await self._update(
            keyword_id,
            {
                "status": status.value,
                "blog_post_id": blog_post_id,
                "error_message": None,
            },
        )
        if updated:
            pipeline_logger.status_transition(
                keyword_id, KeywordStatus.GENERATING.value, status.value
            )
        return updated

    async def rollback_to_pending(self, keyword_id: str, error_message: str) -> bool:
        """Return a generating keyword to 'pending' and record why the run failed.

        Keywords in any other status are left untouched, so a run that
        already linked its post is never undone.
        """
        updated = await self._update(
            keyword_id,
            {
                "status": KeywordStatus.PENDING.value,
                "error_message": error_message,
            },
            Keyword.status == KeywordStatus.GENERATING.value,
        )
        if updated:
            pipeline_logger.status_transition(
                keyword_id, KeywordStatus.GENERATING.value, KeywordStatus.PENDING.value
            )
        return updated
