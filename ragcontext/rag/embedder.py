import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Optional

import numpy as np

from ragcontext.errors import EmbeddingError
from ragcontext.rag.model_loader import ModelHandle
from ragcontext.types import EmbeddingVector


def to_embedding_vector(raw: Any, dimension: Optional[int] = None) -> EmbeddingVector:
    """
    Normalize a backend's embedding output into one flat ``List[float]``.

    Accepted shapes:
    - a flat sequence or 1-D numpy array (pooled models)
    - a 2-D result: a single row is unwrapped, several rows are treated as
      per-token vectors and mean-pooled
    - a ``create_embedding`` style mapping ``{"data": [{"embedding": ...}]}``

    Raises:
        EmbeddingError: for empty, non-numeric or non-finite output, or when
            the length does not match ``dimension``
    """
    if isinstance(raw, Mapping):
        try:
            raw = raw["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as exc:
            raise EmbeddingError(
                "Embedding response has no data[0].embedding",
                details={"keys": sorted(str(k) for k in raw.keys())},
            ) from exc

    try:
        array = np.asarray(raw, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise EmbeddingError(
            "Embedding output is not numeric",
            details={"type": type(raw).__name__},
        ) from exc

    if array.ndim == 2:
        array = array[0] if array.shape[0] == 1 else array.mean(axis=0)
    elif array.ndim != 1:
        raise EmbeddingError(
            "Unsupported embedding shape",
            details={"shape": list(array.shape)},
        )

    if array.size == 0:
        raise EmbeddingError("Embedding output is empty")
    if not np.all(np.isfinite(array)):
        raise EmbeddingError("Embedding contains non-finite values")
    if dimension is not None and array.size != dimension:
        raise EmbeddingError(
            "Embedding dimension mismatch",
            details={"expected": dimension, "actual": int(array.size)},
        )

    # Plain Python floats so the store client sends a simple list.
    return [float(x) for x in array]


class QueryEmbedder:
    """
    Turns query text into an ``EmbeddingVector`` with a loaded model.

    The embedder does not own the model: the handle is shared and
    inference is serialized through its lock.
    """

    def __init__(self, handle: Optional[ModelHandle] = None) -> None:
        self.log = logging.getLogger("rag.embedder")
        self.handle = handle

    @property
    def ready(self) -> bool:
        return self.handle is not None and not self.handle.closed

    def embed(self, text: str) -> EmbeddingVector:
        """
        Encode ``text`` into a vector of the model's dimension.

        Raises:
            EmbeddingError: if no model is loaded, the text is blank, or the
                backend fails
        """
        handle = self.handle
        if handle is None or handle.closed:
            raise EmbeddingError("Embedding model is not loaded")
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")

        try:
            with handle.lock:
                raw = handle.encode(text)
        except Exception as exc:
            raise EmbeddingError(
                "Embedding backend failed",
                details={"backend": handle.backend, "error": str(exc)},
            ) from exc

        vector = to_embedding_vector(raw, handle.dimension)
        self.log.debug("Embedded %d chars into %d dims", len(text), len(vector))
        return vector

    async def aembed(self, text: str) -> EmbeddingVector:
        """``embed`` in a worker thread so the event loop stays responsive."""
        return await asyncio.to_thread(self.embed, text)
