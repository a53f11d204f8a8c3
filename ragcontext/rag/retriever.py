import asyncio
import logging
from typing import List, Optional, Sequence

from ragcontext.config import RetrievalSettings, get_settings
from ragcontext.errors import ModelLoadError, VectorStoreConnectionError
from ragcontext.rag.embedder import QueryEmbedder
from ragcontext.rag.model_loader import EmbeddingModelLoader, ModelHandle
from ragcontext.rag.relevance import RelevanceFilter
from ragcontext.rag.vector_store import VectorStoreClient
from ragcontext.types import ConnectionState, Document


def format_context(query: str, texts: Sequence[str]) -> str:
    """
    Prepend retrieved ``texts`` to ``query`` as numbered documents.

    With no texts the query is returned unchanged.
    """
    if not texts:
        return query

    context = "\n\n".join(f"Document {i}: {text}" for i, text in enumerate(texts, 1))
    return (
        f"Context Information:\n{context}\n\n"
        f"User Query: {query}\n\n"
        "Please answer based on the context provided above."
    )


class RetrievalService:
    """
    Query-to-context facade for the chat flow.

    - Owns the embedding model handle (``init`` / ``dispose``).
    - Tracks the vector store connection, re-probed only on request.
    - Turns any stage failure into an empty result: retrieval enriches the
      prompt, it must never block generation.
    """

    def __init__(
        self,
        settings: Optional[RetrievalSettings] = None,
        *,
        loader: Optional[EmbeddingModelLoader] = None,
        store: Optional[VectorStoreClient] = None,
        embedder: Optional[QueryEmbedder] = None,
    ) -> None:
        self.log = logging.getLogger("rag.retriever")
        self.settings = settings or get_settings()

        self.loader = loader or EmbeddingModelLoader(
            resource_dir=self.settings.resource_dir,
            n_ctx=self.settings.n_ctx,
            n_threads=self.settings.n_threads,
        )
        self.store = store
        self.embedder = embedder or QueryEmbedder()
        self.relevance = RelevanceFilter(self.settings.policy)

        self._model_lock = asyncio.Lock()
        self._model_error: Optional[ModelLoadError] = None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    async def init(self) -> None:
        """
        Load the model and probe the store.

        ``ModelLoadError`` is raised here, once, so a misconfigured model path
        is visible at startup. An unreachable store is only logged.
        """
        await self._ensure_model()

        if self.store is None:
            try:
                self.store = await VectorStoreClient.connect(
                    self.settings.store_endpoint,
                    timeout=self.settings.request_timeout,
                )
            except VectorStoreConnectionError as exc:
                self.log.warning("Vector store unavailable at startup: %s", exc)
                self.store = self._new_store()
        else:
            await self.store.health_check()

    async def dispose(self) -> None:
        """Release the model and drop the store client."""
        if self.store is not None:
            await self.store.close()
        self.embedder.handle = None
        self.loader.dispose()

    async def __aenter__(self) -> "RetrievalService":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    def _new_store(self) -> VectorStoreClient:
        return VectorStoreClient(
            self.settings.store_endpoint,
            timeout=self.settings.request_timeout,
        )

    async def _ensure_model(self) -> ModelHandle:
        async with self._model_lock:
            handle = self.embedder.handle
            if handle is not None and not handle.closed:
                return handle
            if self._model_error is not None:
                raise self._model_error

            try:
                handle = await self.loader.aload(self.settings.model_path)
            except ModelLoadError as exc:
                self._model_error = exc
                raise

            self.embedder.handle = handle
            return handle

    # ------------------------------------------------------------------ #
    # Connection
    # ------------------------------------------------------------------ #
    @property
    def connection_state(self) -> ConnectionState:
        if self.store is None:
            return ConnectionState()
        return self.store.state

    async def refresh_connection(self) -> bool:
        """Re-probe the vector store; the only way to leave the disconnected state."""
        if self.store is None:
            self.store = self._new_store()
        return await self.store.health_check()

    # ------------------------------------------------------------------ #
    # Retrieval
    # ------------------------------------------------------------------ #
    async def retrieve_documents(self, query: str) -> List[Document]:
        """
        Return the relevant documents for ``query``, closest first.

        Any failure is logged once with the failing stage and yields ``[]``.
        """
        policy = self.relevance.policy
        stage = "model"
        try:
            await self._ensure_model()

            stage = "connection"
            store = self.store
            if store is None or not store.is_connected:
                self.log.warning(
                    "Vector store %s is not connected; skipping retrieval",
                    self.settings.store_endpoint,
                )
                return []

            stage = "embed"
            vector = await self.embedder.aembed(query)

            stage = "collection"
            collection = await store.get_collection(self.settings.collection_name)

            stage = "query"
            results = await store.query(collection, vector, policy.candidate_count)

            stage = "filter"
            documents = self.relevance.apply(results)
        except Exception as exc:
            self.log.warning(
                "Retrieval failed at %s stage: %s",
                stage,
                exc,
                exc_info=self.log.isEnabledFor(logging.DEBUG),
            )
            return []

        self.log.debug(
            "Retrieved %d/%d documents under distance %s",
            len(documents),
            len(results),
            policy.threshold_distance,
        )
        return documents

    async def retrieve(self, query: str) -> List[str]:
        """Return the texts of the relevant documents for ``query``."""
        documents = await self.retrieve_documents(query)
        return [doc.text for doc in documents]

    async def augment_prompt(self, query: str) -> str:
        """Return ``query`` with retrieved context prepended, or unchanged if none."""
        return format_context(query, await self.retrieve(query))
