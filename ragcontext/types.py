"""
Data model shared by the retrieval components.

Vectors are plain ``List[float]`` so every consumer (the store client, tests,
callers) sees the same canonical type regardless of the embedding backend.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

EmbeddingVector = List[float]


class Document(BaseModel):
    """An indexed document as returned by the store."""

    id: str = Field(description="Document identifier")
    text: str = Field(description="Document text content")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Optional metadata")


class QueryResult(BaseModel):
    """A document plus its distance to the query vector (lower = more similar)."""

    document: Document
    distance: float = Field(ge=0.0, description="Non-negative distance to the query")


class ConnectionState(BaseModel):
    """Last known reachability of the vector store."""

    connected: bool = False
    last_checked: Optional[datetime] = None

    @classmethod
    def checked(cls, connected: bool) -> "ConnectionState":
        return cls(connected=connected, last_checked=datetime.now(timezone.utc))


class RelevancePolicy(BaseModel):
    """
    Tunables for candidate retrieval and filtering.

    ``candidate_count`` is intentionally larger than or equal to
    ``max_results`` so the filter has headroom to drop distant candidates.
    """

    model_config = ConfigDict(frozen=True)

    threshold_distance: float = Field(default=35.0, gt=0.0)
    candidate_count: int = Field(default=5, ge=1)
    max_results: int = Field(default=5, ge=1)
