"""
Shared fixtures for the retrieval core tests.

Provides: a fake llama.cpp model handle, Chroma-shaped query responses, and
fake async Chroma clients. No test touches a real model file or server.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from unittest.mock import AsyncMock, MagicMock

import pytest

from ragcontext.config import RetrievalSettings
from ragcontext.rag.model_loader import BACKEND_LLAMA, ModelHandle

DIMENSION = 4


def fake_embedding(text: str) -> List[float]:
    """Deterministic 4-dim vector derived from the text."""
    return [float(len(text)), float(sum(map(ord, text)) % 97), 1.0, 0.5]


def chroma_response(
    distances: Sequence[float],
    documents: Optional[Sequence[Optional[str]]] = None,
    metadatas: Optional[Sequence[Optional[Dict[str, Any]]]] = None,
) -> Dict[str, Any]:
    """Build a Chroma ``collection.query`` result for a single query batch."""
    ids = [f"doc-{i}" for i in range(len(distances))]
    if documents is None:
        documents = [f"text at {d}" for d in distances]
    if metadatas is None:
        metadatas = [{"source": f"file{i}.md"} for i in range(len(distances))]
    return {
        "ids": [ids],
        "documents": [list(documents)],
        "metadatas": [list(metadatas)],
        "distances": [list(distances)],
    }


@pytest.fixture
def llama_model() -> MagicMock:
    model = MagicMock()
    model.embed.side_effect = fake_embedding
    model.n_embd.return_value = DIMENSION
    return model


@pytest.fixture
def model_handle(llama_model: MagicMock) -> ModelHandle:
    return ModelHandle(Path("/models/test.gguf"), BACKEND_LLAMA, llama_model, DIMENSION)


@pytest.fixture
def gguf_file(tmp_path: Path) -> Path:
    path = tmp_path / "models" / "embed.gguf"
    path.parent.mkdir()
    path.write_bytes(b"GGUF" + b"\x00" * 32)
    return path


@pytest.fixture
def collection() -> MagicMock:
    coll = MagicMock()
    coll.name = "markdown_embeddings"
    coll.query = AsyncMock(return_value=chroma_response([10, 20, 34, 36, 50]))
    return coll


@pytest.fixture
def chroma_client(collection: MagicMock) -> MagicMock:
    client = MagicMock()
    client.heartbeat = AsyncMock(return_value=1234567890)
    client.get_collection = AsyncMock(return_value=collection)
    return client


@pytest.fixture
def client_factory(chroma_client: MagicMock) -> AsyncMock:
    return AsyncMock(return_value=chroma_client)


@pytest.fixture
def settings(tmp_path: Path) -> RetrievalSettings:
    return RetrievalSettings(
        resource_dir=tmp_path,
        model_path=Path("models/embed.gguf"),
        store_endpoint="http://localhost:8000",
        collection_name="markdown_embeddings",
        threshold_distance=35.0,
        candidate_count=5,
        max_results=5,
        request_timeout=0.5,
    )
