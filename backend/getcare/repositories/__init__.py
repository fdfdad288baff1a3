"""Repositories layer - Data access and persistence.

Repositories handle all database operations using SQLAlchemy.
They abstract the database implementation from the service layer.
"""

from getcare.repositories.generation import GenerationRepository
from getcare.repositories.keyword import KeywordRepository
from getcare.repositories.persona import PersonaRepository
from getcare.repositories.post import PostRepository

__all__ = [
    "GenerationRepository",
    "KeywordRepository",
    "PersonaRepository",
    "PostRepository",
]
