"""
Retrieval configuration.

All tunables are read from ``RAG_*`` environment variables (or a ``.env``
file). The relevance threshold is calibrated for the bundled bge-small GGUF
model and its distance metric; change it together with the model.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ragcontext.types import RelevancePolicy

DEFAULT_MODEL_FILE = "models/hf_CompendiumLabs_bge-small-en-v1.5.Q8_0.gguf"


class RetrievalSettings(BaseSettings):
    """Settings for model loading, store access and relevance filtering."""

    model_config = SettingsConfigDict(
        env_prefix="RAG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    # Embedding model
    resource_dir: Path = Field(
        default=Path("."),
        description="Application resource directory; relative model paths resolve against it",
    )
    model_path: Path = Field(
        default=Path(DEFAULT_MODEL_FILE),
        description="Quantized embedding model (GGUF file or sentence-transformers directory)",
    )
    n_ctx: int = Field(default=512, ge=1, description="Embedding context size in tokens")
    n_threads: Optional[int] = Field(
        default=None,
        ge=1,
        description="CPU threads for inference (None lets the backend decide)",
    )

    # Vector store
    store_endpoint: str = Field(
        default="http://localhost:8000",
        description="Chroma HTTP endpoint",
    )
    collection_name: str = Field(
        default="markdown_embeddings",
        description="Collection holding the indexed documents",
    )
    request_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait for heartbeat, collection lookup and query calls",
    )

    # Relevance
    threshold_distance: float = Field(
        default=35.0,
        gt=0,
        description="Maximum acceptable distance (exclusive) for a result to count as relevant",
    )
    candidate_count: int = Field(
        default=5,
        ge=1,
        description="Nearest results requested from the store before filtering",
    )
    max_results: int = Field(default=5, ge=1, description="Cap on returned documents")

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    @property
    def policy(self) -> RelevancePolicy:
        return RelevancePolicy(
            threshold_distance=self.threshold_distance,
            candidate_count=self.candidate_count,
            max_results=self.max_results,
        )


@lru_cache
def get_settings() -> RetrievalSettings:
    """
    Return the process-wide settings, read once from the environment.

    Usage:
        from ragcontext.config import get_settings
        settings = get_settings()
    """
    return RetrievalSettings()
