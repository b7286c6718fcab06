"""Google Gemini embedding provider adapter.

Wraps ``google.generativeai.embed_content`` to implement
:class:`IEmbeddingProvider` with ``models/text-embedding-004`` (768 dims).
The SDK call is synchronous, so it runs in a worker thread.
"""

from __future__ import annotations

import asyncio

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import EmbeddingProviderError

logger = structlog.get_logger(logger_name=__name__)

_GEMINI_BATCH_LIMIT = 100

_MODEL_DIMENSIONS: dict[str, int] = {
    "models/text-embedding-004": 768,
    "models/embedding-001": 768,
}

_TRANSIENT_ERRORS = (
    google_exceptions.ResourceExhausted,
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
)


class GeminiEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by the Gemini embeddings API."""

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.google_api_key
        self._model = settings.gemini_embedding_model
        self._dimension = _MODEL_DIMENSIONS.get(self._model, 768)
        genai.configure(api_key=self._api_key)

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        try:
            all_embeddings: list[list[float]] = []
            for start in range(0, len(texts), _GEMINI_BATCH_LIMIT):
                batch = texts[start : start + _GEMINI_BATCH_LIMIT]
                result = await asyncio.to_thread(
                    genai.embed_content,
                    model=self._model,
                    content=batch,
                )
                all_embeddings.extend(result["embedding"])
                logger.info(
                    "gemini_embedding_batch",
                    model=self._model,
                    batch_size=len(batch),
                )
            return all_embeddings
        except _TRANSIENT_ERRORS as exc:
            raise EmbeddingProviderError(
                message=f"Gemini embedding transient error: {exc}",
                provider_name=self.get_provider_name(),
                transient=True,
            ) from exc
        except google_exceptions.GoogleAPIError as exc:
            raise EmbeddingProviderError(
                message=f"Gemini embedding API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "gemini_embedding"

    def is_available(self) -> bool:
        return bool(self._api_key)
