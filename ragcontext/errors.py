"""
Exception hierarchy for the retrieval core.

Every error carries a ``details`` mapping (stage, path, endpoint, ...) so the
facade can log a single line with enough context to diagnose the failure.
"""

from typing import Any, Dict, Optional


class RetrievalError(Exception):
    """Base class for all retrieval core errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ModelLoadError(RetrievalError):
    """The embedding model file is missing, unreadable or not a valid model."""

    def __init__(self, message: str, path: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        details = details or {}
        if path is not None:
            details["path"] = path
        super().__init__(message, details)


class EmbeddingError(RetrievalError):
    """The model is not ready, the input is empty, or the output is unusable."""


class VectorStoreConnectionError(RetrievalError):
    """The vector store could not be reached or did not answer in time."""

    def __init__(self, message: str, endpoint: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        details = details or {}
        if endpoint is not None:
            details["endpoint"] = endpoint
        super().__init__(message, details)


class CollectionNotFoundError(RetrievalError):
    """The named collection does not exist in the store."""

    def __init__(self, name: str, details: Optional[Dict[str, Any]] = None) -> None:
        details = details or {}
        details["collection"] = name
        self.name = name
        super().__init__(f"Collection not found: {name}", details)


class QueryError(RetrievalError):
    """The store rejected the query (e.g. dimension mismatch) or answered malformed data."""
