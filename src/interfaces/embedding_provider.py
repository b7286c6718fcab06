"""Abstract base class for text-embedding service providers.

Defines the contract for generating embedding vectors from text.
Implementations wrap OpenAI ``text-embedding-3-small`` (or any
OpenAI-compatible endpoint) and Google ``text-embedding-004``.  The same
provider instance must serve both ingestion and chat so that stored and
query vectors live in one vector space.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider - text-embedding-3-small (requires API key)
#   GeminiEmbeddingProvider - models/text-embedding-004 (requires Google key)
# Located in: src/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the RAG pipeline.

    Callers normally go through
    :class:`~src.services.embedding_gateway.EmbeddingGateway`, which adds
    timeouts, retries and dimension checks on top of this interface.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.  Implementations should
            handle batching internally if the underlying API has a per-call
            limit.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.  Each
            inner list has length equal to :meth:`get_dimension`.

        Raises
        ------
        src.utils.errors.EmbeddingProviderError
            If the embedding API call fails.  ``transient`` is set for
            rate limits, timeouts and server-side errors.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Must remain constant for the lifetime of the provider instance.
        Example values: ``1536`` (OpenAI ``text-embedding-3-small``),
        ``768`` (Google ``text-embedding-004``).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"openai_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are configured."""
