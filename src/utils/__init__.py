"""Utility modules for docchat.

- **errors** -- exception hierarchy rooted at DocChatError; each pipeline
  stage raises its own subclass, and ``transient`` marks retryable ones.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **retry** -- per-call timeouts and exponential backoff for every call
  that leaves the process.
"""

from src.utils.errors import (
    AuthError,
    CollectionNotFoundError,
    ConfigurationError,
    DocChatError,
    EmbeddingProviderError,
    ExtractionError,
    GenerationError,
    QueueError,
    RetrievalError,
    StoreError,
    ValidationError,
)
from src.utils.logging import bind_job_context, configure_logging, get_logger
from src.utils.retry import RetryPolicy, call_with_retry, call_with_timeout

__all__ = [
    "AuthError",
    "CollectionNotFoundError",
    "ConfigurationError",
    "DocChatError",
    "EmbeddingProviderError",
    "ExtractionError",
    "GenerationError",
    "QueueError",
    "RetrievalError",
    "RetryPolicy",
    "StoreError",
    "ValidationError",
    "bind_job_context",
    "call_with_retry",
    "call_with_timeout",
    "configure_logging",
    "get_logger",
]
