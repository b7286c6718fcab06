"""Abstract base class for the vector collection store.

The store is partitioned into named collections, one per collection id.
Ingestion writes a collection; chat queries it read-only.  Collections
never share entries, so operations on different ids never interact.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import EmbeddingVector, RetrievedSegment, TextSegment


# Concrete implementation: ChromaDBProvider (src/providers/vector_store/)
# Local PersistentClient or a remote Chroma server via HttpClient.
class IVectorStoreProvider(ABC):
    """Contract for collection-scoped vector storage and nearest-neighbour search.

    All methods are async; implementations backed by blocking drivers must
    run them off the event loop and bound them with a timeout.
    """

    @abstractmethod
    async def add_documents(
        self,
        collection_id: str,
        segments: list[TextSegment],
        vectors: list[EmbeddingVector],
    ) -> int:
        """Upsert *segments* with their *vectors* into *collection_id*.

        Creates the collection on first write.  Entries are keyed by
        ``segment.segment_id`` so writing the same segment twice replaces
        rather than duplicates it.

        Returns
        -------
        int
            Number of entries written.

        Raises
        ------
        ValueError
            If *segments* and *vectors* differ in length.
        src.utils.errors.StoreError
            If the write fails.
        """

    @abstractmethod
    async def query(
        self,
        collection_id: str,
        query_vector: EmbeddingVector,
        k: int,
    ) -> list[RetrievedSegment]:
        """Return up to *k* nearest entries, ordered by descending relevance.

        Raises
        ------
        src.utils.errors.CollectionNotFoundError
            If *collection_id* has never been written.
        src.utils.errors.StoreError
            If the store is unreachable or the query fails.
        """

    @abstractmethod
    async def delete_by_source(self, collection_id: str, source_reference: str) -> int:
        """Delete every entry of *collection_id* that came from *source_reference*.

        Returns the number of entries removed; ``0`` when the collection
        does not exist yet.
        """

    @abstractmethod
    async def collection_exists(self, collection_id: str) -> bool:
        """Return ``True`` if *collection_id* holds at least one entry."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"chromadb"``."""
