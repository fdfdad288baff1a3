"""Pydantic schemas for keyword endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Statuses an operator may set directly; 'error' is only set by the system
SETTABLE_KEYWORD_STATUSES = frozenset({"pending", "generating", "generated", "published"})


class KeywordStatusUpdate(BaseModel):
    """Schema for changing a keyword's status."""

    status: str = Field(..., description="New keyword status")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        """Validate status is one an operator may set."""
        if v not in SETTABLE_KEYWORD_STATUSES:
            raise ValueError(
                f"Invalid status '{v}'. Must be one of: {', '.join(sorted(SETTABLE_KEYWORD_STATUSES))}"
            )
        return v


class KeywordResponse(BaseModel):
    """Schema for keyword responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    text: str
    locale: str
    category: str
    status: str
    blog_post_id: str | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime
