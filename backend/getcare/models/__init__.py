"""Models layer - SQLAlchemy ORM models.

Models define the database schema and relationships.
All models inherit from the Base class defined in core.database.
"""

from getcare.core.database import Base
from getcare.models.author_persona import AuthorPersona
from getcare.models.blog_post import BlogPost, PostStatus
from getcare.models.generation import (
    BatchStatus,
    GenerationBatch,
    GenerationJob,
    JobStatus,
)
from getcare.models.keyword import Keyword, KeywordStatus

__all__ = [
    "AuthorPersona",
    "Base",
    "BatchStatus",
    "BlogPost",
    "GenerationBatch",
    "GenerationJob",
    "JobStatus",
    "Keyword",
    "KeywordStatus",
    "PostStatus",
]
