"""PersonaRepository: typed access to the author_personas table."""

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from getcare.core.logging import db_logger, get_logger
from getcare.models.author_persona import AuthorPersona

logger = get_logger(__name__)


class PersonaRepository:
    """Repository for author persona reads and the usage counter."""

    TABLE_NAME = "author_personas"

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_active(self) -> list[AuthorPersona]:
        """Return all active personas ordered by slug."""
        try:
            result = await self.session.execute(
                select(AuthorPersona)
                .where(AuthorPersona.is_active.is_(True))
                .order_by(AuthorPersona.slug)
            )
            personas = list(result.scalars().all())
            logger.debug("Active personas loaded", extra={"count": len(personas)})
            return personas
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context="Listing active personas"
            )
            raise

    async def increment_usage(self, persona_id: str) -> bool:
        """Add one to total_posts. Returns False if the persona does not exist."""
        try:
            result = await self.session.execute(
                update(AuthorPersona)
                .where(AuthorPersona.id == persona_id)
                .values(total_posts=AuthorPersona.total_posts + 1)
                .execution_options(synchronize_session=False)
            )
            await self.session.flush()
            return bool(result.rowcount)
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Incrementing usage for persona_id={persona_id}",
            )
            raise
