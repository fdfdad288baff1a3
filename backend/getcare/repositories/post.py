"""PostRepository: typed access to the blog_posts table."""

import time
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from getcare.core.logging import db_logger, get_logger
from getcare.models.blog_post import BlogPost

logger = get_logger(__name__)


class PostRepository:
    """Repository for BlogPost inserts and lookups."""

    TABLE_NAME = "blog_posts"
    SLOW_OPERATION_THRESHOLD_MS = 1000  # 1 second

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, **fields: Any) -> BlogPost:
        """Insert a new post and return it with its generated ID.

        Raises:
            IntegrityError: If the slug already exists
            SQLAlchemyError: On other database errors
        """
        start_time = time.monotonic()
        try:
            post = BlogPost(**fields)
            self.session.add(post)
            await self.session.flush()
            await self.session.refresh(post)

            duration_ms = (time.monotonic() - start_time) * 1000
            logger.debug(
                "Blog post created",
                extra={
                    "post_id": post.id,
                    "slug": post.slug,
                    "locale": post.target_locale,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            if duration_ms > self.SLOW_OPERATION_THRESHOLD_MS:
                db_logger.slow_query(
                    query="INSERT INTO blog_posts",
                    duration_ms=duration_ms,
                    table=self.TABLE_NAME,
                )
            return post

        except IntegrityError as e:
            logger.error(
                "Failed to create blog post - integrity error",
                extra={
                    "slug": fields.get("slug"),
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )
            raise

        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Creating blog post slug={fields.get('slug')}",
            )
            raise

    async def get(self, post_id: str) -> BlogPost | None:
        """Get a post by ID."""
        try:
            result = await self.session.execute(
                select(BlogPost).where(BlogPost.id == post_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context=f"Fetching post_id={post_id}"
            )
            raise

    async def find_by_slug(self, slug: str) -> BlogPost | None:
        """Get a post by its unique slug."""
        try:
            result = await self.session.execute(
                select(BlogPost).where(BlogPost.slug == slug)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context=f"Fetching post slug={slug}"
            )
            raise
