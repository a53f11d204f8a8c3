import asyncio
import logging
import math
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
from urllib.parse import urlparse

import chromadb
import httpx
from chromadb.errors import NotFoundError

from ragcontext.errors import (
    CollectionNotFoundError,
    QueryError,
    VectorStoreConnectionError,
)
from ragcontext.types import (
    ConnectionState,
    Document,
    EmbeddingVector,
    QueryResult,
)

# Float noise from the index can yield distances like -1e-7 for identical vectors.
_NEGATIVE_DISTANCE_TOLERANCE = 1e-6

ClientFactory = Callable[..., Awaitable[Any]]

# Raised when the server cannot be reached at all, as opposed to an error reply.
_TRANSPORT_ERRORS = (OSError, httpx.TransportError)


class VectorStoreClient:
    """
    Async wrapper around a remote Chroma server.

    Responsibilities:
    - Track whether the server is reachable (``state``), refreshed only when
      a caller asks for it: there is no background reconnect loop.
    - Resolve named collections, caching the handles while connected.
    - Run similarity queries and return results sorted by distance.
    """

    def __init__(
        self,
        endpoint: str = "http://localhost:8000",
        timeout: float = 5.0,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.log = logging.getLogger("rag.vector_store")
        self.endpoint = endpoint
        self.timeout = timeout

        parsed = urlparse(endpoint)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ValueError(f"Vector store endpoint must be an http(s) URL, got {endpoint!r}")
        self._host = parsed.hostname
        self._ssl = parsed.scheme == "https"
        self._port = parsed.port or (443 if self._ssl else 8000)

        self._client_factory = client_factory or chromadb.AsyncHttpClient
        self._client: Any = None
        self._collections: Dict[str, Any] = {}
        self._state = ConnectionState()

    @classmethod
    async def connect(
        cls,
        endpoint: str,
        timeout: float = 5.0,
        client_factory: Optional[ClientFactory] = None,
    ) -> "VectorStoreClient":
        """
        Open a client for ``endpoint`` and probe it once.

        The returned client may still be disconnected if the heartbeat failed;
        check ``is_connected``.

        Raises:
            VectorStoreConnectionError: if the HTTP client cannot be created
        """
        client = cls(endpoint, timeout=timeout, client_factory=client_factory)
        await client.open()
        await client.health_check()
        return client

    # ------------------------------------------------------------------ #
    # Connection state
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state.connected

    async def open(self) -> None:
        """Create the underlying async HTTP client if it does not exist yet."""
        if self._client is not None:
            return
        try:
            self._client = await asyncio.wait_for(
                self._client_factory(host=self._host, port=self._port, ssl=self._ssl),
                timeout=self.timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._mark_disconnected()
            raise VectorStoreConnectionError(
                "Failed to create vector store client",
                endpoint=self.endpoint,
                details={"error": str(exc) or type(exc).__name__},
            ) from exc

    async def health_check(self) -> bool:
        """
        Ping the server and record the outcome.

        Never raises: the store may be transiently unreachable and the caller
        only needs to know whether to skip retrieval.
        """
        try:
            await self.open()
            await asyncio.wait_for(self._client.heartbeat(), timeout=self.timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._mark_disconnected()
            self.log.warning(
                "Vector store at %s is unreachable: %s",
                self.endpoint,
                str(exc) or type(exc).__name__,
            )
            return False

        if not self._state.connected:
            self.log.info("Vector store connection successful (%s)", self.endpoint)
        self._state = ConnectionState.checked(True)
        return True

    def _mark_disconnected(self) -> None:
        self._collections.clear()
        self._state = ConnectionState.checked(False)

    async def close(self) -> None:
        self._client = None
        self._mark_disconnected()

    # ------------------------------------------------------------------ #
    # Collections and queries
    # ------------------------------------------------------------------ #
    async def get_collection(self, name: str) -> Any:
        """
        Return the handle of collection ``name``.

        Raises:
            CollectionNotFoundError: if the store has no such collection
            VectorStoreConnectionError: if the store could not answer
        """
        cached = self._collections.get(name)
        if cached is not None:
            return cached

        if self._client is None:
            raise VectorStoreConnectionError("Vector store client is not open", endpoint=self.endpoint)

        try:
            collection = await asyncio.wait_for(
                self._client.get_collection(name=name),
                timeout=self.timeout,
            )
        except (NotFoundError, ValueError) as exc:
            raise CollectionNotFoundError(name, details={"error": str(exc)}) from exc
        except asyncio.TimeoutError as exc:
            self._mark_disconnected()
            raise VectorStoreConnectionError(
                "Timed out resolving collection",
                endpoint=self.endpoint,
                details={"collection": name, "timeout": self.timeout},
            ) from exc
        except asyncio.CancelledError:
            raise
        except _TRANSPORT_ERRORS as exc:
            self._mark_disconnected()
            raise VectorStoreConnectionError(
                "Vector store unreachable while resolving collection",
                endpoint=self.endpoint,
                details={"collection": name, "error": str(exc) or type(exc).__name__},
            ) from exc
        except Exception as exc:
            raise VectorStoreConnectionError(
                "Failed to resolve collection",
                endpoint=self.endpoint,
                details={"collection": name, "error": str(exc)},
            ) from exc

        self._collections[name] = collection
        return collection

    async def query(
        self,
        collection: Any,
        vector: EmbeddingVector,
        candidate_count: int,
    ) -> List[QueryResult]:
        """
        Return up to ``candidate_count`` nearest documents, closest first.

        Raises:
            QueryError: if the store rejects the query or answers malformed data
            VectorStoreConnectionError: if the store is unreachable or does not
                answer in time; the client is then marked disconnected
        """
        if candidate_count < 1:
            raise QueryError("candidate_count must be at least 1", details={"candidate_count": candidate_count})

        name = getattr(collection, "name", "?")
        try:
            response = await asyncio.wait_for(
                collection.query(
                    query_embeddings=[list(vector)],
                    n_results=candidate_count,
                    include=["documents", "metadatas", "distances"],
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            self._mark_disconnected()
            raise VectorStoreConnectionError(
                "Timed out querying collection",
                endpoint=self.endpoint,
                details={"collection": name, "timeout": self.timeout},
            ) from exc
        except asyncio.CancelledError:
            raise
        except _TRANSPORT_ERRORS as exc:
            self._mark_disconnected()
            raise VectorStoreConnectionError(
                "Vector store unreachable while querying collection",
                endpoint=self.endpoint,
                details={"collection": name, "error": str(exc) or type(exc).__name__},
            ) from exc
        except Exception as exc:
            raise QueryError(
                "Vector store rejected the query",
                details={"collection": name, "dimension": len(vector), "error": str(exc)},
            ) from exc

        results = parse_query_response(response)
        return results[:candidate_count]


def _first_batch(response: Any, key: str) -> Optional[Sequence[Any]]:
    batches = response.get(key) if hasattr(response, "get") else None
    if not batches:
        return None
    return batches[0]


def parse_query_response(response: Any) -> List[QueryResult]:
    """
    Convert Chroma's index-aligned parallel sequences into ``QueryResult``s.

    Only the first query batch is read. Entries without document text are
    dropped; the rest are sorted by ascending distance (stable).
    """
    ids = _first_batch(response, "ids") or []
    documents = _first_batch(response, "documents")
    distances = _first_batch(response, "distances")
    metadatas = _first_batch(response, "metadatas")

    if not ids:
        return []
    if documents is None or distances is None:
        raise QueryError("Query response is missing documents or distances")
    if len(documents) != len(ids) or len(distances) != len(ids):
        raise QueryError(
            "Query response sequences are not aligned",
            details={"ids": len(ids), "documents": len(documents), "distances": len(distances)},
        )
    if metadatas is None:
        metadatas = [None] * len(ids)

    results: List[QueryResult] = []
    for doc_id, text, distance, metadata in zip(ids, documents, distances, metadatas):
        if not text:
            continue

        distance = float(distance)
        if math.isnan(distance) or distance < -_NEGATIVE_DISTANCE_TOLERANCE:
            raise QueryError("Invalid distance in query response", details={"id": doc_id, "distance": distance})

        results.append(
            QueryResult(
                document=Document(id=str(doc_id), text=str(text), metadata=dict(metadata or {})),
                distance=max(0.0, distance),
            )
        )

    results.sort(key=lambda r: r.distance)
    return results
