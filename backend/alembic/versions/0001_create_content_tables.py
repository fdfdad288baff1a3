"""Create keywords, blog_posts, author_personas and generation queue tables.

Revision ID: 0001
Revises: None
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=False),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _jsonb(name: str, default: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.JSONB(astext_type=sa.Text()),
        server_default=sa.text(f"'{default}'::jsonb"),
        nullable=False,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create content pipeline tables."""
    op.create_table(
        "author_personas",
        _uuid_pk(),
        sa.Column("slug", sa.String(length=100), nullable=False),
        _jsonb("names", "{}"),
        _jsonb("bios", "{}"),
        sa.Column(
            "years_of_experience",
            sa.Integer(),
            server_default=sa.text("5"),
            nullable=False,
        ),
        sa.Column(
            "primary_specialty",
            sa.String(length=100),
            server_default=sa.text("'general'"),
            nullable=False,
        ),
        _jsonb("secondary_specialties", "[]"),
        _jsonb("languages", "[]"),
        sa.Column(
            "writing_tone",
            sa.String(length=100),
            server_default=sa.text("'warm and professional'"),
            nullable=False,
        ),
        sa.Column(
            "writing_perspective",
            sa.String(length=255),
            server_default=sa.text("'medical interpreter'"),
            nullable=False,
        ),
        _jsonb("messenger_cta", "{}"),
        sa.Column(
            "is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False
        ),
        sa.Column(
            "total_posts", sa.Integer(), server_default=sa.text("0"), nullable=False
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index(
        op.f("ix_author_personas_is_active"),
        "author_personas",
        ["is_active"],
        unique=False,
    )

    op.create_table(
        "blog_posts",
        _uuid_pk(),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("target_locale", sa.String(length=10), nullable=False),
        sa.Column("target_country", sa.String(length=10), nullable=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("excerpt", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        _jsonb("tags", "[]"),
        _jsonb("keywords", "[]"),
        sa.Column(
            "status",
            sa.String(length=20),
            server_default=sa.text("'draft'"),
            nullable=False,
        ),
        sa.Column("author_persona_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("cover_image_url", sa.Text(), nullable=True),
        sa.Column("cover_image_alt", sa.String(length=500), nullable=True),
        _jsonb("seo_meta", "{}"),
        _jsonb("generation_metadata", "{}"),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["author_persona_id"], ["author_personas.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index(
        op.f("ix_blog_posts_author_persona_id"),
        "blog_posts",
        ["author_persona_id"],
        unique=False,
    )
    op.create_index(
        "ix_blog_posts_locale_status",
        "blog_posts",
        ["target_locale", "status"],
        unique=False,
    )

    op.create_table(
        "keywords",
        _uuid_pk(),
        sa.Column("text", sa.String(length=500), nullable=False),
        sa.Column("locale", sa.String(length=10), nullable=False),
        sa.Column(
            "category",
            sa.String(length=100),
            server_default=sa.text("'general'"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.String(length=20),
            server_default=sa.text("'pending'"),
            nullable=False,
        ),
        sa.Column("blog_post_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["blog_post_id"], ["blog_posts.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_keywords_locale"), "keywords", ["locale"], unique=False)
    op.create_index(op.f("ix_keywords_status"), "keywords", ["status"], unique=False)
    op.create_index(
        "ix_keywords_locale_status", "keywords", ["locale", "status"], unique=False
    )

    op.create_table(
        "generation_batches",
        _uuid_pk(),
        sa.Column("total", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "completed", sa.Integer(), server_default=sa.text("0"), nullable=False
        ),
        sa.Column("failed", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "status",
            sa.String(length=20),
            server_default=sa.text("'running'"),
            nullable=False,
        ),
        sa.Column("requested_by", sa.String(length=255), nullable=True),
        sa.Column(
            "auto_publish", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column(
            "include_images", sa.Boolean(), server_default=sa.text("true"), nullable=False
        ),
        sa.Column(
            "image_count", sa.Integer(), server_default=sa.text("3"), nullable=False
        ),
        sa.Column("notify_email", sa.String(length=255), nullable=True),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_generation_batches_status"),
        "generation_batches",
        ["status"],
        unique=False,
    )

    op.create_table(
        "generation_jobs",
        _uuid_pk(),
        sa.Column("batch_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("keyword_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("keyword", sa.String(length=500), nullable=False),
        sa.Column("locale", sa.String(length=10), nullable=False),
        sa.Column(
            "status",
            sa.String(length=20),
            server_default=sa.text("'queued'"),
            nullable=False,
        ),
        sa.Column("priority", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "retry_count", sa.Integer(), server_default=sa.text("0"), nullable=False
        ),
        sa.Column("quality_score", sa.Float(), nullable=True),
        sa.Column("blog_post_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["batch_id"], ["generation_batches.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["keyword_id"], ["keywords.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["blog_post_id"], ["blog_posts.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_generation_jobs_batch_id"), "generation_jobs", ["batch_id"], unique=False
    )
    op.create_index(
        op.f("ix_generation_jobs_keyword_id"),
        "generation_jobs",
        ["keyword_id"],
        unique=False,
    )
    op.create_index(
        "ix_generation_jobs_claim_order",
        "generation_jobs",
        ["status", "priority", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    """Drop content pipeline tables."""
    op.drop_index("ix_generation_jobs_claim_order", table_name="generation_jobs")
    op.drop_index(op.f("ix_generation_jobs_keyword_id"), table_name="generation_jobs")
    op.drop_index(op.f("ix_generation_jobs_batch_id"), table_name="generation_jobs")
    op.drop_table("generation_jobs")

    op.drop_index(op.f("ix_generation_batches_status"), table_name="generation_batches")
    op.drop_table("generation_batches")

    op.drop_index("ix_keywords_locale_status", table_name="keywords")
    op.drop_index(op.f("ix_keywords_status"), table_name="keywords")
    op.drop_index(op.f("ix_keywords_locale"), table_name="keywords")
    op.drop_table("keywords")

    op.drop_index("ix_blog_posts_locale_status", table_name="blog_posts")
    op.drop_index(op.f("ix_blog_posts_author_persona_id"), table_name="blog_posts")
    op.drop_table("blog_posts")

    op.drop_index(op.f("ix_author_personas_is_active"), table_name="author_personas")
    op.drop_table("author_personas")
