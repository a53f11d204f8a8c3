"""
Retrieval-augmented generation core.

This package provides:
- A loader for local quantized embedding models (`model_loader.py`)
- Query embedding with a single output adapter (`embedder.py`)
- An async client for a remote Chroma server (`vector_store.py`)
- Distance-threshold filtering (`relevance.py`)
- The query-to-context facade used by the chat flow (`retriever.py`)
"""

from .embedder import QueryEmbedder, to_embedding_vector
from .model_loader import EmbeddingModelLoader, ModelHandle
from .relevance import RelevanceFilter, filter_results
from .retriever import RetrievalService, format_context
from ragcontext.types import (
    ConnectionState,
    Document,
    EmbeddingVector,
    QueryResult,
    RelevancePolicy,
)
from .vector_store import VectorStoreClient

__all__ = [
    "ConnectionState",
    "Document",
    "EmbeddingModelLoader",
    "EmbeddingVector",
    "ModelHandle",
    "QueryEmbedder",
    "QueryResult",
    "RelevanceFilter",
    "RelevancePolicy",
    "RetrievalService",
    "VectorStoreClient",
    "filter_results",
    "format_context",
    "to_embedding_vector",
]
