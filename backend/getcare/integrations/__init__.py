"""Integrations layer - External service clients.

Integrations handle communication with external APIs and services.
They abstract the details of external service protocols.
"""

from getcare.integrations.claude import (
    ClaudeClient,
    ClaudeError,
    CompletionResult,
    LLMClient,
    close_claude,
    get_claude,
    init_claude,
)
from getcare.integrations.images import (
    ImageClient,
    ImagenClient,
    ImageRequest,
    ImageResult,
    close_images,
    get_images,
    init_images,
)
from getcare.integrations.retrieval import RetrievalClient, RetrievalProvider
from getcare.integrations.storage import (
    StorageClient,
    StorageError,
    close_storage,
    get_storage,
    init_storage,
)

__all__ = [
    "ClaudeClient",
    "ClaudeError",
    "CompletionResult",
    "ImageClient",
    "ImageRequest",
    "ImageResult",
    "ImagenClient",
    "LLMClient",
    "RetrievalClient",
    "RetrievalProvider",
    "StorageClient",
    "StorageError",
    "close_claude",
    "close_images",
    "close_storage",
    "get_claude",
    "get_images",
    "get_storage",
    "init_claude",
    "init_images",
    "init_storage",
]
