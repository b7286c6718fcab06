"""Embedding provider implementations.

Embeddings convert text into numeric vectors that capture semantic meaning.
They are stored in ChromaDB at ingestion time and compared against the
question's vector at chat time.

Two implementations of IEmbeddingProvider:
    1. OpenAIEmbeddingProvider - text-embedding-3-small (1536 dims), or any
       OpenAI-compatible endpoint via OPENAI_BASE_URL.
    2. GeminiEmbeddingProvider - models/text-embedding-004 (768 dims).
"""

from src.providers.embedding.gemini_embedding_provider import GeminiEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["GeminiEmbeddingProvider", "OpenAIEmbeddingProvider"]
