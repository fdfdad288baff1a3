"""Generation queue models: GenerationBatch and GenerationJob.

A batch groups the jobs submitted together; each job is one keyword run.
Rows are never deleted and serve as the audit trail of generation work.

Batch status: running -> completed | partial | failed (terminal).
Job status: queued -> running -> completed | failed.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from getcare.core.database import Base


class BatchStatus(str, Enum):
    """Status of a generation batch."""

    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self != BatchStatus.RUNNING


class JobStatus(str, Enum):
    """Status of a single generation job."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class GenerationBatch(Base):
    """A group of generation jobs submitted and tracked together.

    Attributes:
        id: UUID primary key
        total: Number of jobs in the batch
        completed: Jobs that finished successfully
        failed: Jobs that failed
        status: BatchStatus value
        requested_by: Free-form requester identifier
        auto_publish: Publish posts immediately instead of leaving drafts
        include_images: Generate images for each post
        image_count: Images per post
        notify_email: Optional address to notify when the batch finishes
        started_at: When the batch was submitted
        completed_at: When the batch reached a terminal status
    """

    __tablename__ = "generation_batches"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    total: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    completed: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    failed: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=BatchStatus.RUNNING.value,
        server_default=text("'running'"),
        index=True,
    )

    requested_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    auto_publish: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    include_images: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    image_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=3,
        server_default=text("3"),
    )

    notify_email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=text("now()"),
    )

    completed_at: Mapped[datetime | None] = mapped_column(
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

    jobs: Mapped[list["GenerationJob"]] = relationship(
        "GenerationJob",
        back_populates="batch",
        order_by="GenerationJob.created_at",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<GenerationBatch(id={self.id!r}, status={self.status!r}, "
            f"completed={self.completed}/{self.total}, failed={self.failed})>"
        )


class GenerationJob(Base):
    """One keyword run within a batch.

    Attributes:
        id: UUID primary key
        batch_id: Owning batch
        keyword_id: Keyword being generated
        keyword: Denormalized keyword text
        locale: Denormalized keyword locale
        status: JobStatus value
        priority: Higher values are claimed first
        retry_count: Reserved; jobs are never retried automatically
        quality_score: Heuristic 0-100 score of the generated post
        blog_post_id: Post created by the run
        error_message: Truncated failure diagnostic
        started_at: When the job was claimed
        completed_at: When the job finished
    """

    __tablename__ = "generation_jobs"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    batch_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("generation_batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    keyword_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("keywords.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    keyword: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    locale: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=JobStatus.QUEUED.value,
        server_default=text("'queued'"),
    )

    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    retry_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    quality_score: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
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

    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    completed_at: Mapped[datetime | None] = mapped_column(
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

    batch: Mapped["GenerationBatch"] = relationship(
        "GenerationBatch",
        back_populates="jobs",
    )

    __table_args__ = (
        Index(
            "ix_generation_jobs_claim_order",
            "status",
            "priority",
            "created_at",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<GenerationJob(id={self.id!r}, keyword={self.keyword!r}, "
            f"status={self.status!r})>"
        )
