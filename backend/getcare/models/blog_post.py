"""BlogPost model: the persisted output of a pipeline run.

- slug: unique, '<sanitized title>-<locale>-<base36 timestamp>'
- target_locale / target_country: locale the post is written for
- content: final HTML with generated images injected
- seo_meta: meta/og/twitter fields
- generation_metadata: costs, image stats, FAQ schema, author linkage
- status: draft or published
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from getcare.core.database import Base


class PostStatus(str, Enum):
    """Publication status of a blog post."""

    DRAFT = "draft"
    PUBLISHED = "published"


class BlogPost(Base):
    """Generated blog post for one keyword in one locale."""

    __tablename__ = "blog_posts"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    slug: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    target_locale: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
    )

    target_country: Mapped[str | None] = mapped_column(
        String(10),
        nullable=True,
    )

    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    excerpt: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    category: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    tags: Mapped[list[str]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )

    keywords: Mapped[list[str]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PostStatus.DRAFT.value,
        server_default=text("'draft'"),
    )

    author_persona_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("author_personas.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    cover_image_url: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    cover_image_alt: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    seo_meta: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    generation_metadata: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=text("now()"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=text("now()"),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("ix_blog_posts_locale_status", "target_locale", "status"),
    )

    def __repr__(self) -> str:
        return f"<BlogPost(id={self.id!r}, slug={self.slug!r}, status={self.status!r})>"
