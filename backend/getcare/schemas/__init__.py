"""Schemas layer - Pydantic models for API validation.

Schemas define request/response structures and validation rules.
They are used for API input validation and serialization.
"""

from getcare.schemas.content import (
    BatchCreateRequest,
    BatchCreateResponse,
    BatchProgressResponse,
    CurrentJob,
    GenerateContentRequest,
    ImageErrorItem,
    PipelineResultResponse,
    QueueStatsResponse,
    SkippedKeyword,
)
from getcare.schemas.keyword import (
    SETTABLE_KEYWORD_STATUSES,
    KeywordResponse,
    KeywordStatusUpdate,
)

__all__ = [
    # Content generation
    "BatchCreateRequest",
    "BatchCreateResponse",
    "BatchProgressResponse",
    "CurrentJob",
    "GenerateContentRequest",
    "ImageErrorItem",
    "PipelineResultResponse",
    "QueueStatsResponse",
    "SkippedKeyword",
    # Keywords
    "SETTABLE_KEYWORD_STATUSES",
    "KeywordResponse",
    "KeywordStatusUpdate",
]
