"""Custom exception hierarchy for docchat.

All application exceptions inherit from :class:`DocChatError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "chromadb", "redis") caused the failure,
and a ``transient`` flag that retry helpers use to decide whether another
attempt is worthwhile.

The hierarchy is organized by pipeline stage:

    DocChatError  (base -- catch-all for any docchat error)
    +-- AuthError               (missing / invalid bearer token)
    +-- ValidationError         (missing or malformed request fields)
    +-- ExtractionError         (unreadable, corrupt, or empty source)
    +-- EmbeddingProviderError  (embedding API failure, transient or not)
    +-- StoreError              (vector store connectivity / driver failure)
    |   +-- CollectionNotFoundError  (collection never written)
    +-- RetrievalError          (chat-time retrieval failed)
    +-- GenerationError         (chat-time model call failed)
    +-- QueueError              (job queue unreachable)
    +-- ConfigurationError      (startup / missing config)
"""


class DocChatError(Exception):
    """Base exception for all docchat errors.

    Every subclass carries a human-readable ``message``, an optional
    ``provider_name`` identifying which external service triggered the
    error, and a ``transient`` flag.  The ``__str__`` method prefixes the
    provider name in brackets for structured log output, e.g.
    ``[openai_embedding] Rate limit exceeded``.
    """

    default_message = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        provider_name: str | None = None,
        transient: bool = False,
    ) -> None:
        self._message = message or self.default_message
        self._provider_name = provider_name
        self._transient = transient
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    @property
    def transient(self) -> bool:
        """``True`` when retrying the same call may succeed."""
        return self._transient

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Request errors
# ---------------------------------------------------------------------------

class AuthError(DocChatError):
    """Raised when a bearer token is missing, malformed, expired, or forged."""

    default_message = "Authentication failed"


class ValidationError(DocChatError):
    """Raised when a request is missing required fields or carries bad values."""

    default_message = "Invalid request"


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------

class ExtractionError(DocChatError):
    """Raised when a source artifact cannot be turned into text segments."""

    default_message = "Text extraction failed"


class EmbeddingProviderError(DocChatError):
    """Raised when the embedding provider fails.

    Set ``transient=True`` for rate limits, timeouts, and 5xx responses so
    the embedding gateway retries with backoff.
    """

    default_message = "Embedding provider call failed"


# ---------------------------------------------------------------------------
# Vector store errors
# ---------------------------------------------------------------------------

class StoreError(DocChatError):
    """Raised when a vector store operation fails."""

    default_message = "Vector store operation failed"


class CollectionNotFoundError(StoreError):
    """Raised when a collection id has never been written to the store."""

    default_message = "Collection not found"

    def __init__(
        self,
        collection_id: str,
        provider_name: str | None = None,
    ) -> None:
        self._collection_id = collection_id
        super().__init__(
            message=f"No collection exists for id '{collection_id}'",
            provider_name=provider_name,
        )

    @property
    def collection_id(self) -> str:
        return self._collection_id


# ---------------------------------------------------------------------------
# Chat errors
# ---------------------------------------------------------------------------

class RetrievalError(DocChatError):
    """Raised when chat-time retrieval fails; the model is never called."""

    default_message = "Retrieval failed"


class GenerationError(DocChatError):
    """Raised when the generative model fails after successful retrieval."""

    default_message = "Answer generation failed"


# ---------------------------------------------------------------------------
# Infrastructure errors
# ---------------------------------------------------------------------------

class QueueError(DocChatError):
    """Raised when the ingestion job queue cannot be reached."""

    default_message = "Job queue operation failed"


class ConfigurationError(DocChatError):
    """Raised when configuration is invalid or missing at startup."""

    default_message = "Invalid or missing configuration"
