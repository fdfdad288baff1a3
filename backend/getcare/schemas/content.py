"""Pydantic schemas for content generation endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GenerateContentRequest(BaseModel):
    """Schema for a synchronous single-keyword generation."""

    keyword_id: str = Field(..., min_length=1, description="Keyword to generate for")
    include_retrieval_context: bool = Field(
        default=True, description="Ground the prompt in retrieved prior content"
    )
    include_images: bool = Field(default=True, description="Generate and inject images")
    image_count: int | None = Field(
        default=None, ge=0, le=6, description="Images to plan (default from settings)"
    )
    auto_publish: bool = Field(default=False, description="Publish instead of saving a draft")

    @field_validator("keyword_id")
    @classmethod
    def validate_keyword_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("keyword_id cannot be empty or whitespace only")
        return v


class ImageErrorItem(BaseModel):
    placeholder: str
    error: str


class PipelineResultResponse(BaseModel):
    """Outcome of one pipeline run."""

    success: bool
    keyword_id: str | None = None
    blog_post_id: str | None = None
    title: str | None = None
    images_generated: int = 0
    total_cost: float = 0.0
    quality_score: float | None = None
    error: str | None = None
    error_category: str | None = None
    validation_errors: list[str] = Field(default_factory=list)
    errors: list[ImageErrorItem] = Field(default_factory=list)
    already_in_progress: bool = False


class BatchCreateRequest(BaseModel):
    """Schema for submitting a generation batch."""

    keyword_ids: list[str] = Field(..., min_length=1, description="Keywords to queue")
    priority: int = Field(default=0, description="Higher runs first")
    requested_by: str | None = Field(default=None, max_length=255)
    auto_publish: bool = Field(default=False)
    include_images: bool = Field(default=True)
    image_count: int | None = Field(default=None, ge=0, le=6)
    notify_email: str | None = Field(default=None, max_length=255)


class SkippedKeyword(BaseModel):
    keyword_id: str
    reason: str


class BatchCreateResponse(BaseModel):
    batch_id: str
    total: int
    skipped: list[SkippedKeyword] = Field(default_factory=list)


class CurrentJob(BaseModel):
    id: str
    keyword_id: str
    keyword: str
    started_at: str | None = None


class BatchProgressResponse(BaseModel):
    """Progress snapshot of one batch."""

    batch_id: str
    total: int
    completed: int
    failed: int
    status: str
    current_job: CurrentJob | None = None
    is_complete: bool
    started_at: datetime | None = None
    updated_at: datetime | None = None


class QueueStatsResponse(BaseModel):
    """Job counts by status plus running batches."""

    queued: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    active_batches: int = 0

    model_config = ConfigDict(extra="allow")

