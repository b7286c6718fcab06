"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources (priority order):
#
#   1. Environment variables, e.g. OPENAI_API_KEY=sk-abc123
#   2. .env file in the working directory (local development)
#
# Field `openai_api_key` maps to env var `OPENAI_API_KEY`.
#
# Defaults apply when neither source sets a field.  Empty strings mean
# "not configured"; validate_required() turns missing required values
# into a ConfigurationError before the API or worker starts serving.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.utils.errors import ConfigurationError


class Settings(BaseSettings):
    """docchat application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Provider selection ===
    # Empty = pick automatically from whichever API key is configured.
    embedding_provider: str = ""  # "openai" | "gemini"
    llm_provider: str = ""  # "openai" | "anthropic" | "gemini"

    # === OpenAI / OpenAI-compatible ===
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_text_model: str = ""
    openai_embedding_model: str = ""
    # 0 = look the model up in the known-dimension table.
    openai_embedding_dimension: int = 0

    # === Anthropic ===
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"

    # === Google Gemini ===
    google_api_key: str = ""
    gemini_model: str = "gemini-1.5-flash"
    gemini_embedding_model: str = "models/text-embedding-004"

    # === Vector store ===
    # chromadb_url set -> HttpClient against a Chroma server;
    # otherwise a local PersistentClient at chromadb_persist_dir.
    chromadb_url: str = ""
    chromadb_api_key: str = ""
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection_prefix: str = "doc-"

    # === Job queue ===
    # "memory" keeps jobs inside the API process, which then runs the worker itself.
    queue_backend: str = "redis"  # "redis" | "memory"
    redis_url: str = ""
    queue_name: str = "document-ingestion"
    job_max_attempts: int = 3
    job_retry_backoff_seconds: float = 5.0
    queue_heartbeat_ttl_seconds: float = 30.0

    # === Worker ===
    worker_concurrency: int = 1
    worker_poll_timeout_seconds: float = 5.0

    # === RAG ===
    rag_top_k: int = 2
    rag_max_context_chars: int = 12000
    llm_temperature: float = 0.3
    llm_max_tokens: int = 1024

    # === Timeouts and retry for external calls ===
    embedding_timeout_seconds: float = 30.0
    llm_timeout_seconds: float = 60.0
    store_timeout_seconds: float = 30.0
    queue_timeout_seconds: float = 10.0
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 0.5
    retry_max_delay_seconds: float = 8.0

    # === Auth ===
    auth_secret: str = ""
    auth_token_ttl_hours: int = 24

    # === Uploads ===
    upload_dir: str = "./uploads"
    max_upload_mb: int = 20

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def resolved_embedding_provider(self) -> str:
        """Return the embedding provider name, inferring it from API keys when unset."""
        if self.embedding_provider:
            return self.embedding_provider.lower()
        if self.openai_api_key:
            return "openai"
        if self.google_api_key:
            return "gemini"
        return ""

    def resolved_llm_provider(self) -> str:
        """Return the LLM provider name, inferring it from API keys when unset.

        Priority order mirrors the embedding selection: Anthropic -> OpenAI -> Gemini.
        """
        if self.llm_provider:
            return self.llm_provider.lower()
        if self.anthropic_api_key:
            return "anthropic"
        if self.openai_api_key:
            return "openai"
        if self.google_api_key:
            return "gemini"
        return ""

    def validate_required(self, *, require_auth: bool = True) -> None:
        """Fail fast when configuration needed at request time is missing.

        Raises
        ------
        ConfigurationError
            Listing every missing or invalid value at once.
        """
        problems: list[str] = []
        key_for = {
            "openai": ("openai_api_key", self.openai_api_key),
            "anthropic": ("anthropic_api_key", self.anthropic_api_key),
            "gemini": ("google_api_key", self.google_api_key),
        }

        embedding = self.resolved_embedding_provider()
        if embedding not in ("openai", "gemini"):
            problems.append("EMBEDDING_PROVIDER must be 'openai' or 'gemini' (or set an API key)")
        elif not key_for[embedding][1]:
            problems.append(f"{key_for[embedding][0].upper()} is required for {embedding} embeddings")

        llm = self.resolved_llm_provider()
        if llm not in key_for:
            problems.append("LLM_PROVIDER must be 'openai', 'anthropic' or 'gemini' (or set an API key)")
        elif not key_for[llm][1]:
            problems.append(f"{key_for[llm][0].upper()} is required for the {llm} LLM")

        if not self.chromadb_url and not self.chromadb_persist_dir:
            problems.append("CHROMADB_URL or CHROMADB_PERSIST_DIR is required")

        if self.queue_backend not in ("redis", "memory"):
            problems.append("QUEUE_BACKEND must be 'redis' or 'memory'")
        elif self.queue_backend == "redis" and not self.redis_url:
            problems.append("REDIS_URL is required when QUEUE_BACKEND=redis")

        if require_auth and not self.auth_secret:
            problems.append("AUTH_SECRET is required")

        if self.rag_top_k < 1:
            problems.append("RAG_TOP_K must be >= 1")
        if self.rag_max_context_chars < 1:
            problems.append("RAG_MAX_CONTEXT_CHARS must be >= 1")
        if self.job_max_attempts < 1:
            problems.append("JOB_MAX_ATTEMPTS must be >= 1")
        if self.worker_concurrency < 1:
            problems.append("WORKER_CONCURRENCY must be >= 1")
        if self.queue_heartbeat_ttl_seconds <= 0:
            problems.append("QUEUE_HEARTBEAT_TTL_SECONDS must be > 0")

        if problems:
            raise ConfigurationError(message="; ".join(problems))
