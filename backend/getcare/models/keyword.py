"""Keyword model: the unit of work for the content pipeline.

Keyword rows are created externally (import/admin UI) in 'pending' and are
mutated only through the orchestrator's transitions:
- pending -> generating (run start)
- generating -> generated | published (success)
- generating -> pending (rollback on failure, error_message set)
- error is reserved for system use; nothing in this service sets it and
  operators cannot set it through the API
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy import text as sa_text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from getcare.core.database import Base


class KeywordStatus(str, Enum):
    """Lifecycle status of a keyword."""

    PENDING = "pending"
    GENERATING = "generating"
    GENERATED = "generated"
    PUBLISHED = "published"
    ERROR = "error"


class Keyword(Base):
    """A search phrase plus locale/category to write one post about.

    Attributes:
        id: UUID primary key
        text: The search phrase
        locale: Target locale tag (ko, en, ja, zh-CN, zh-TW, th, mn, ru)
        category: Free-form topical classification
        status: KeywordStatus value
        blog_post_id: Post generated for this keyword, once generated
        error_message: Truncated diagnostic from the last failed run
        created_at: Timestamp when record was created
        updated_at: Timestamp when record was last updated
    """

    __tablename__ = "keywords"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=sa_text("gen_random_uuid()"),
    )

    text: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    locale: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        index=True,
    )

    category: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="general",
        server_default=sa_text("'general'"),
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=KeywordStatus.PENDING.value,
        server_default=sa_text("'pending'"),
        index=True,
    )

    blog_post_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("blog_posts.id", ondelete="SET NULL"),
        nullable=True,
    )

    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=sa_text("now()"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=sa_text("now()"),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (Index("ix_keywords_locale_status", "locale", "status"),)

    def __repr__(self) -> str:
        return f"<Keyword(id={self.id!r}, text={self.text!r}, status={self.status!r})>"
