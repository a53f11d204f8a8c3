"""Retrieved-context enrichment for a local chat assistant."""

from ragcontext.config import RetrievalSettings, get_settings
from ragcontext.errors import (
    CollectionNotFoundError,
    EmbeddingError,
    ModelLoadError,
    QueryError,
    RetrievalError,
    VectorStoreConnectionError,
)
from ragcontext.rag import RetrievalService

__version__ = "0.1.0"

__all__ = [
    "CollectionNotFoundError",
    "EmbeddingError",
    "ModelLoadError",
    "QueryError",
    "RetrievalError",
    "RetrievalService",
    "RetrievalSettings",
    "VectorStoreConnectionError",
    "get_settings",
]
