import asyncio
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ragcontext.errors import ModelLoadError

try:
    from llama_cpp import Llama
except Exception:  # pragma: no cover - optional dependency at dev time
    Llama = None  # type: ignore[assignment]

try:
    from sentence_transformers import SentenceTransformer
except Exception:  # pragma: no cover - optional dependency at dev time
    SentenceTransformer = None  # type: ignore[assignment]


GGUF_MAGIC = b"GGUF"

BACKEND_LLAMA = "llama.cpp"
BACKEND_SENTENCE_TRANSFORMERS = "sentence-transformers"


class ModelHandle:
    """
    A loaded embedding model shared by every query in the process.

    Inference goes through ``encode`` while holding ``lock``: a llama.cpp
    context is not safe for overlapping calls, so callers are serialized.
    """

    def __init__(self, path: Path, backend: str, model: Any, dimension: int) -> None:
        self.path = path
        self.backend = backend
        self.dimension = dimension
        self.lock = threading.Lock()
        self._model = model

    @property
    def closed(self) -> bool:
        return self._model is None

    def encode(self, text: str) -> Any:
        """Run the backend on ``text`` and return its raw, backend-specific output."""
        model = self._model
        if model is None:
            raise RuntimeError(f"Model handle for {self.path} is closed")
        if self.backend == BACKEND_LLAMA:
            return model.embed(text)
        return model.encode(text, convert_to_numpy=True)

    def close(self) -> None:
        """Release the model weights."""
        model, self._model = self._model, None
        close = getattr(model, "close", None)
        if callable(close):
            close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"ModelHandle({str(self.path)!r}, backend={self.backend!r}, dim={self.dimension}, {state})"


class EmbeddingModelLoader:
    """
    Loads embedding models from disk, at most once per path.

    The loader is owned by whoever builds the retrieval service, so the
    process holds exactly as many model copies as it has loaders (one in
    practice). Handles stay cached until ``dispose`` at shutdown.
    """

    def __init__(
        self,
        resource_dir: Union[str, Path, None] = None,
        n_ctx: int = 512,
        n_threads: Optional[int] = None,
    ) -> None:
        self.log = logging.getLogger("rag.model_loader")
        self._resource_dir = Path(resource_dir) if resource_dir is not None else None
        self._n_ctx = n_ctx
        self._n_threads = n_threads
        self._handles: Dict[Path, ModelHandle] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #
    def resolve(self, path: Union[str, Path]) -> Path:
        path = Path(path).expanduser()
        if not path.is_absolute() and self._resource_dir is not None:
            path = self._resource_dir / path
        return path.resolve()

    def load(self, path: Union[str, Path]) -> ModelHandle:
        """
        Return the handle for ``path``, loading the model on first use.

        Raises:
            ModelLoadError: if the path is missing, unreadable or not a model
        """
        resolved = self.resolve(path)

        with self._lock:
            handle = self._handles.get(resolved)
            if handle is not None and not handle.closed:
                return handle

            handle = self._load_uncached(resolved)
            self._handles[resolved] = handle

        self.log.info(
            "Loaded embedding model %s (%s, dim=%d)",
            resolved.name,
            handle.backend,
            handle.dimension,
        )
        return handle

    async def aload(self, path: Union[str, Path]) -> ModelHandle:
        """``load`` in a worker thread; loading takes seconds."""
        return await asyncio.to_thread(self.load, path)

    def _load_uncached(self, path: Path) -> ModelHandle:
        if not path.exists():
            raise ModelLoadError("Embedding model not found", path=str(path))
        if path.is_dir():
            return self._load_sentence_transformer(path)
        return self._load_gguf(path)

    def _load_gguf(self, path: Path) -> ModelHandle:
        try:
            with path.open("rb") as fh:
                magic = fh.read(len(GGUF_MAGIC))
        except OSError as exc:
            raise ModelLoadError("Embedding model is not readable", path=str(path)) from exc

        if magic != GGUF_MAGIC:
            raise ModelLoadError(
                "Embedding model is not a GGUF file",
                path=str(path),
                details={"header": magic.hex()},
            )

        if Llama is None:
            raise ModelLoadError(
                "llama-cpp-python is not installed. Install it to load GGUF models.",
                path=str(path),
            )

        kwargs: Dict[str, Any] = {
            "model_path": str(path),
            "embedding": True,
            "n_ctx": self._n_ctx,
            "verbose": False,
        }
        if self._n_threads is not None:
            kwargs["n_threads"] = self._n_threads

        try:
            model = Llama(**kwargs)
            dimension = int(model.n_embd())
        except Exception as exc:
            raise ModelLoadError(
                "Failed to load embedding model",
                path=str(path),
                details={"error": str(exc)},
            ) from exc

        return ModelHandle(path, BACKEND_LLAMA, model, dimension)

    def _load_sentence_transformer(self, path: Path) -> ModelHandle:
        if SentenceTransformer is None:
            raise ModelLoadError(
                "sentence-transformers is not installed. "
                "Install the 'sentence-transformers' extra to load model directories.",
                path=str(path),
            )

        try:
            model = SentenceTransformer(str(path), device="cpu")
            dimension = int(model.get_sentence_embedding_dimension())
        except Exception as exc:
            raise ModelLoadError(
                "Failed to load embedding model",
                path=str(path),
                details={"error": str(exc)},
            ) from exc

        return ModelHandle(path, BACKEND_SENTENCE_TRANSFORMERS, model, dimension)

    # ------------------------------------------------------------------ #
    # Shutdown
    # ------------------------------------------------------------------ #
    def dispose(self) -> None:
        """Close every loaded model and forget the handles."""
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()

        for handle in handles:
            try:
                handle.close()
            except Exception as exc:  # pragma: no cover - backend specific
                self.log.warning("Failed to release model %s: %s", handle.path, exc)
