"""Shared pytest fixtures for the docchat test suite."""

from __future__ import annotations

import hashlib
import math
import re
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import fitz
import pytest

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.ingestion import IngestionJob, SourceKind
from src.models.rag import EmbeddingVector, RetrievedSegment, TextSegment
from src.providers.auth.hmac_token_verifier import HMACTokenVerifier
from src.providers.queue.memory_queue import InMemoryJobQueue
from src.utils.errors import CollectionNotFoundError, StoreError

TEST_AUTH_SECRET = "test-secret"

# ---------------------------------------------------------------------------
# Embedding fake
# ---------------------------------------------------------------------------

_EMBEDDING_DIM = 64
_WORD = re.compile(r"[a-z0-9]+")


def _bag_of_words_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Deterministic unit vector: each word increments a hashed bucket.

    Texts that share words get a positive cosine similarity, so retrieval
    behaves like a (very small) real embedding model.
    """
    values = [0.0] * dim
    for word in _WORD.findall(text.lower()):
        bucket = int.from_bytes(hashlib.sha256(word.encode("utf-8")).digest()[:4], "big") % dim
        values[bucket] += 1.0
    magnitude = math.sqrt(sum(v * v for v in values))
    if magnitude == 0:
        values[0] = 1.0
        return values
    return [v / magnitude for v in values]


class BagOfWordsEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [_bag_of_words_vector(t) for t in texts]

    def get_dimension(self) -> int:
        return _EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return "bag-of-words"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Vector store fake
# ---------------------------------------------------------------------------


class InMemoryVectorStore(IVectorStoreProvider):
    """Dict-backed collection store with cosine-similarity queries."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, tuple[TextSegment, EmbeddingVector]]] = {}

    async def add_documents(
        self,
        collection_id: str,
        segments: list[TextSegment],
        vectors: list[EmbeddingVector],
    ) -> int:
        if len(segments) != len(vectors):
            raise ValueError("segments and vectors length mismatch")
        collection = self._collections.setdefault(collection_id, {})
        for segment, vector in zip(segments, vectors, strict=True):
            collection[segment.segment_id] = (segment, vector)
        return len(segments)

    async def query(
        self,
        collection_id: str,
        query_vector: EmbeddingVector,
        k: int,
    ) -> list[RetrievedSegment]:
        collection = self._collections.get(collection_id)
        if not collection:
            raise CollectionNotFoundError(collection_id, provider_name="memory")
        scored = []
        for segment, vector in collection.values():
            if len(vector) != len(query_vector):
                raise StoreError(message="dimension mismatch", provider_name="memory")
            dot = sum(a * b for a, b in zip(query_vector, vector, strict=True))
            scored.append(
                RetrievedSegment(segment=segment, relevance_score=max(0.0, min(1.0, dot)))
            )
        scored.sort(key=lambda r: r.relevance_score, reverse=True)
        return scored[:k]

    async def delete_by_source(self, collection_id: str, source_reference: str) -> int:
        collection = self._collections.get(collection_id, {})
        doomed = [
            seg_id
            for seg_id, (segment, _) in collection.items()
            if segment.source_metadata.get("source_reference") == source_reference
        ]
        for seg_id in doomed:
            del collection[seg_id]
        return len(doomed)

    async def collection_exists(self, collection_id: str) -> bool:
        return bool(self._collections.get(collection_id))

    async def count(self, collection_id: str) -> int:
        return len(self._collections.get(collection_id, {}))

    def get_provider_name(self) -> str:
        return "memory"


# ---------------------------------------------------------------------------
# LLM fake
# ---------------------------------------------------------------------------


class ContextEchoLLM(ILLMProvider):
    """Answers by echoing the context passages it was grounded with."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 1024,
    ) -> str:
        self.calls.append({"system_prompt": system_prompt, "user_prompt": user_prompt})
        context = system_prompt.split("CONTEXT:", 1)[-1].strip()
        return f"From the document: {context}"

    def get_provider_name(self) -> str:
        return "echo"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_pdf(path: Path, pages: list[str]) -> Path:
    """Write a PDF with one page per entry of *pages* using PyMuPDF."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text, fontsize=11)
    doc.save(str(path))
    doc.close()
    return path


def make_job(
    collection_id: str = "abc-1",
    source_reference: str = "/tmp/doc.pdf",
    source_kind: SourceKind = SourceKind.FILE,
    attempts: int = 0,
) -> IngestionJob:
    return IngestionJob(
        source_kind=source_kind,
        source_reference=source_reference,
        owner_id="user-1",
        collection_id=collection_id,
        attempts=attempts,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def embedding_provider() -> BagOfWordsEmbeddingProvider:
    return BagOfWordsEmbeddingProvider()


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def echo_llm() -> ContextEchoLLM:
    return ContextEchoLLM()


@pytest.fixture
def memory_queue() -> InMemoryJobQueue:
    return InMemoryJobQueue(max_attempts=3, retry_backoff=0.0)


@pytest.fixture
def mock_llm_provider() -> ILLMProvider:
    """MagicMock(spec=ILLMProvider) whose complete() returns "ok"."""
    mock = MagicMock(spec=ILLMProvider)
    mock.get_provider_name.return_value = "mock-llm"
    mock.is_available.return_value = True
    mock.complete = AsyncMock(return_value="ok")
    return mock


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        openai_api_key="sk-test-key",
        anthropic_api_key="test-anthropic-key",
        google_api_key="test-google-key",
        chromadb_persist_dir=str(tmp_path / "chromadb"),
        queue_backend="memory",
        auth_secret=TEST_AUTH_SECRET,
        upload_dir=str(tmp_path / "uploads"),
        max_upload_mb=1,
        job_retry_backoff_seconds=0.0,
        app_env="test",
    )


@pytest.fixture
def token_verifier() -> HMACTokenVerifier:
    return HMACTokenVerifier(TEST_AUTH_SECRET, ttl_hours=1)


@pytest.fixture
def tmp_chromadb(tmp_path: Path):
    """Create a temporary ChromaDB instance for integration tests."""
    import chromadb

    persist_dir = str(tmp_path / "chromadb_test")
    client = chromadb.PersistentClient(path=persist_dir)
    return client, persist_dir


@pytest.fixture
def pdf_factory(tmp_path: Path):
    """Return ``make(name, pages) -> Path`` writing PDFs under tmp_path."""

    def _make(name: str, pages: list[str]) -> Path:
        return make_pdf(tmp_path / name, pages)

    return _make


@pytest.fixture
def job_factory():
    """Return :func:`make_job` for building ingestion jobs."""
    return make_job
