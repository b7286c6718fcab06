"""ChromaDB vector store provider adapter.

Implements :class:`IVectorStoreProvider` with one ChromaDB collection per
collection id.  Connects to a Chroma server via ``chromadb.HttpClient``
when ``CHROMADB_URL`` is set, otherwise persists locally with
``chromadb.PersistentClient``.  Uses cosine distance for similarity.

ChromaDB's client is synchronous; every call runs in a worker thread and
is bounded by the configured store timeout so a hung server cannot stall
the event loop.
"""

from __future__ import annotations

import asyncio
import os
import re
from collections.abc import Callable
from typing import Any, TypeVar
from urllib.parse import urlparse

# Disable ChromaDB telemetry completely before importing chromadb.
# A version mismatch between ChromaDB's bundled PostHog client and the
# installed version causes "capture() takes 1 positional argument but 3
# were given" errors, so telemetry is switched off at three levels:
#   1. ANONYMIZED_TELEMETRY env var
#   2. posthog.disabled = True
#   3. Settings(anonymized_telemetry=False) passed to the client
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import chromadb.errors
import structlog

from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import EmbeddingVector, RetrievedSegment, TextSegment, segment_hash
from src.utils.errors import CollectionNotFoundError, StoreError

logger = structlog.get_logger(logger_name=__name__)

_T = TypeVar("_T")

# Chroma collection names: 3-63 chars, [A-Za-z0-9._-], alphanumeric at both ends.
_VALID_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{1,61}[A-Za-z0-9]$")

# Missing collections raise ValueError on older releases,
# InvalidCollectionException on 0.6, NotFoundError on 1.x.
_NOT_FOUND_ERRORS: tuple[type[Exception], ...] = tuple(
    getattr(chromadb.errors, name)
    for name in ("NotFoundError", "InvalidCollectionException")
    if hasattr(chromadb.errors, name)
) + (ValueError,)


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """No-op embedding function that prevents ChromaDB from loading a model.

    docchat always passes pre-computed embeddings, so ChromaDB's built-in
    embedding is never invoked.  Without this, ChromaDB downloads and loads
    its default all-MiniLM-L6-v2 ONNX model on collection creation.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "docchat uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


def build_chroma_client(
    url: str = "",
    api_key: str = "",
    persist_directory: str = "./data/chromadb",
) -> Any:
    """Return an HttpClient for *url* when given, else a PersistentClient."""
    client_settings = chromadb.config.Settings(anonymized_telemetry=False)
    if url:
        parsed = urlparse(url)
        headers = {"X-Chroma-Token": api_key} if api_key else None
        return chromadb.HttpClient(
            host=parsed.hostname or "localhost",
            port=parsed.port or (443 if parsed.scheme == "https" else 8000),
            ssl=parsed.scheme == "https",
            headers=headers,
            settings=client_settings,
        )
    return chromadb.PersistentClient(path=persist_directory, settings=client_settings)


class ChromaDBProvider(IVectorStoreProvider):
    """Vector store provider backed by ChromaDB, one collection per collection id.

    Parameters
    ----------
    client:
        A ``chromadb`` client (``HttpClient`` or ``PersistentClient``); see
        :func:`build_chroma_client`.
    collection_prefix:
        Prefix applied to every collection name, so one Chroma server can
        host several deployments.
    timeout:
        Upper bound in seconds for each store call.
    batch_size:
        Upsert page size; keeps driver-side buffers bounded for long documents.
    """

    def __init__(
        self,
        client: Any,
        collection_prefix: str = "doc-",
        timeout: float = 30.0,
        batch_size: int = 500,
    ) -> None:
        self._client = client
        self._prefix = collection_prefix
        self._timeout = timeout
        self._batch_size = batch_size

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    async def add_documents(
        self,
        collection_id: str,
        segments: list[TextSegment],
        vectors: list[EmbeddingVector],
    ) -> int:
        """Upsert segments into the collection, creating it on first write."""
        if len(segments) != len(vectors):
            raise ValueError(
                f"segments and vectors length mismatch: {len(segments)} != {len(vectors)}"
            )
        if not segments:
            return 0

        def _upsert() -> int:
            collection = self._client.get_or_create_collection(
                name=self.collection_name(collection_id),
                metadata={
                    "hnsw:space": "cosine",
                    "collection_id": collection_id,
                    "dimension": len(vectors[0]),
                },
                embedding_function=_NoopEmbeddingFunction(),
            )
            stored = 0
            for start in range(0, len(segments), self._batch_size):
                batch = segments[start : start + self._batch_size]
                collection.upsert(
                    ids=[s.segment_id for s in batch],
                    embeddings=vectors[start : start + self._batch_size],
                    documents=[s.content for s in batch],
                    metadatas=[dict(s.source_metadata) or {"source_reference": ""} for s in batch],
                )
                stored += len(batch)
            return stored

        stored = await self._run(_upsert, "add_documents", collection_id)
        logger.info(
            "chromadb_add_documents",
            collection_id=collection_id,
            count=stored,
        )
        return stored

    async def query(
        self,
        collection_id: str,
        query_vector: EmbeddingVector,
        k: int,
    ) -> list[RetrievedSegment]:
        """Return up to *k* nearest segments by cosine similarity, best first."""

        def _query() -> dict[str, Any]:
            collection = self._get_existing(collection_id)
            count = collection.count()
            if count == 0:
                raise CollectionNotFoundError(collection_id, provider_name=self.get_provider_name())
            expected_dim = (collection.metadata or {}).get("dimension")
            if expected_dim is not None and int(expected_dim) != len(query_vector):
                raise StoreError(
                    message=(
                        f"Query vector has {len(query_vector)} dimensions but collection "
                        f"'{collection_id}' was built with {expected_dim}"
                    ),
                    provider_name=self.get_provider_name(),
                )
            return collection.query(
                query_embeddings=[query_vector],
                n_results=min(k, count),
                include=["documents", "metadatas", "distances"],
            )

        results = await self._run(_query, "query", collection_id)

        ids = results["ids"][0] if results.get("ids") else []
        documents = results["documents"][0] if results.get("documents") else [""] * len(ids)
        metadatas = results["metadatas"][0] if results.get("metadatas") else [{}] * len(ids)
        distances = results["distances"][0] if results.get("distances") else [0.0] * len(ids)

        retrieved: list[RetrievedSegment] = []
        for seg_id, doc_text, meta, distance in zip(ids, documents, metadatas, distances, strict=True):
            similarity = max(0.0, min(1.0, 1.0 - distance))
            segment = TextSegment(
                segment_id=seg_id,
                content=doc_text or "",
                source_metadata=dict(meta or {}),
            )
            retrieved.append(RetrievedSegment(segment=segment, relevance_score=similarity))

        retrieved.sort(key=lambda rs: rs.relevance_score, reverse=True)
        retrieved = retrieved[:k]

        logger.info(
            "chromadb_query",
            collection_id=collection_id,
            k=k,
            results_count=len(retrieved),
            top_score=retrieved[0].relevance_score if retrieved else 0.0,
        )
        return retrieved

    async def delete_by_source(self, collection_id: str, source_reference: str) -> int:
        """Delete all entries in the collection that came from *source_reference*."""

        def _delete() -> int:
            try:
                collection = self._get_existing(collection_id)
            except CollectionNotFoundError:
                return 0
            existing = collection.get(where={"source_reference": source_reference}, include=[])
            count = len(existing["ids"]) if existing["ids"] else 0
            if count > 0:
                collection.delete(where={"source_reference": source_reference})
            return count

        deleted = await self._run(_delete, "delete_by_source", collection_id)
        logger.info(
            "chromadb_delete_by_source",
            collection_id=collection_id,
            source_reference=source_reference,
            deleted_count=deleted,
        )
        return deleted

    async def collection_exists(self, collection_id: str) -> bool:
        def _exists() -> bool:
            try:
                return self._get_existing(collection_id).count() > 0
            except CollectionNotFoundError:
                return False

        return await self._run(_exists, "collection_exists", collection_id)

    async def count(self, collection_id: str) -> int:
        """Return the number of entries in the collection (0 when absent)."""

        def _count() -> int:
            try:
                return self._get_existing(collection_id).count()
            except CollectionNotFoundError:
                return 0

        return await self._run(_count, "count", collection_id)

    def get_provider_name(self) -> str:
        return "chromadb"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def collection_name(self, collection_id: str) -> str:
        """Map a caller-supplied id onto a valid Chroma collection name.

        Ids that are not valid names once prefixed (too long, odd
        characters) are replaced by a hash so the mapping stays stable.
        """
        candidate = f"{self._prefix}{collection_id}"
        if _VALID_NAME.match(candidate) and ".." not in candidate:
            return candidate
        return f"{self._prefix}h{segment_hash(collection_id)[:40]}"

    def _get_existing(self, collection_id: str) -> Any:
        try:
            return self._client.get_collection(
                name=self.collection_name(collection_id),
                embedding_function=_NoopEmbeddingFunction(),
            )
        except _NOT_FOUND_ERRORS as exc:
            raise CollectionNotFoundError(
                collection_id, provider_name=self.get_provider_name()
            ) from exc

    async def _run(self, fn: Callable[[], _T], op: str, collection_id: str) -> _T:
        """Run a blocking Chroma call in a thread with a timeout, mapping failures."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn), timeout=self._timeout)
        except StoreError:
            raise
        except asyncio.TimeoutError as exc:
            raise StoreError(
                message=f"ChromaDB {op} timed out after {self._timeout:g}s for '{collection_id}'",
                provider_name=self.get_provider_name(),
                transient=True,
            ) from exc
        except Exception as exc:
            raise StoreError(
                message=f"ChromaDB {op} failed for '{collection_id}': {exc}",
                provider_name=self.get_provider_name(),
                transient=True,
            ) from exc
