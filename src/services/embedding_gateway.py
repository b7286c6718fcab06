"""Embedding gateway: the single path from text to vectors.

Wraps one :class:`~src.interfaces.embedding_provider.IEmbeddingProvider`
with batching, a per-call timeout, bounded retries with exponential
backoff for transient failures, and a dimension check on every vector.
Ingestion and chat share one gateway instance so stored vectors and
query vectors always come from the same provider and model.
"""

from __future__ import annotations

import asyncio

import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.rag import EmbeddingVector
from src.utils.errors import EmbeddingProviderError
from src.utils.retry import RetryPolicy, call_with_retry

logger = structlog.get_logger(logger_name=__name__)


class EmbeddingGateway:
    """Timeout/retry/dimension-checking front for an embedding provider.

    Parameters
    ----------
    provider:
        The embedding backend.
    policy:
        Per-call timeout and retry budget.
    batch_size:
        Texts sent per provider call by :meth:`embed_many`.
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        policy: RetryPolicy | None = None,
        batch_size: int = 64,
    ) -> None:
        self._provider = provider
        self._policy = policy or RetryPolicy()
        self._batch_size = batch_size

    @property
    def provider_name(self) -> str:
        return self._provider.get_provider_name()

    @property
    def dimension(self) -> int:
        return self._provider.get_dimension()

    async def embed(self, text: str) -> EmbeddingVector:
        """Embed a single text."""
        vectors = await self._embed_batch([text])
        return vectors[0]

    async def embed_many(self, texts: list[str]) -> list[EmbeddingVector]:
        """Embed *texts* in batches; output order matches input order."""
        vectors: list[EmbeddingVector] = []
        for start in range(0, len(texts), self._batch_size):
            vectors.extend(await self._embed_batch(texts[start : start + self._batch_size]))
        logger.debug(
            "embedded_texts",
            provider=self.provider_name,
            count=len(vectors),
        )
        return vectors

    async def _embed_batch(self, batch: list[str]) -> list[EmbeddingVector]:
        try:
            vectors = await call_with_retry(
                lambda: self._provider.embed(batch),
                self._policy,
                op_name=f"{self.provider_name}.embed",
            )
        except asyncio.TimeoutError as exc:
            raise EmbeddingProviderError(
                message=(
                    f"Embedding call timed out after {self._policy.timeout:g}s "
                    f"({self._policy.max_attempts} attempts)"
                ),
                provider_name=self.provider_name,
                transient=True,
            ) from exc

        if len(vectors) != len(batch):
            raise EmbeddingProviderError(
                message=f"Provider returned {len(vectors)} vectors for {len(batch)} texts",
                provider_name=self.provider_name,
            )
        expected = self.dimension
        for vector in vectors:
            if len(vector) != expected:
                raise EmbeddingProviderError(
                    message=f"Provider returned a {len(vector)}-dim vector, expected {expected}",
                    provider_name=self.provider_name,
                )
        return vectors
