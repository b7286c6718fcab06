"""docchat FastAPI application entry point.

Wires together all providers, services, and routes via dependency
injection.  Loads configuration from ``.env`` and ``config/config.yaml``
and configures structured logging.

The ``build_*`` helpers are shared with the worker entry point
(``src/cli/worker.py``) so the API and the worker always construct the
embedding gateway, vector store and job queue the same way.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.config.loader import load_config
from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.job_queue import IJobQueue
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.ingestion import SourceKind
from src.providers.auth.hmac_token_verifier import HMACTokenVerifier
from src.providers.embedding.gemini_embedding_provider import GeminiEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.extraction.pdf_extractor import PDFExtractor
from src.providers.extraction.text_extractor import PlainTextExtractor
from src.providers.extraction.web_page_extractor import WebPageExtractor
from src.providers.extraction.youtube_transcript_extractor import YouTubeTranscriptExtractor
from src.providers.llm.anthropic_provider import AnthropicLLMProvider
from src.providers.llm.gemini_provider import GeminiLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.providers.queue.memory_queue import InMemoryJobQueue
from src.providers.queue.redis_queue import RedisJobQueue
from src.providers.vector_store.chromadb_provider import ChromaDBProvider, build_chroma_client
from src.services.chat_service import ChatService
from src.services.embedding_gateway import EmbeddingGateway
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.extractor import DocumentExtractor
from src.services.ingestion.ingestion_service import IngestionService
from src.services.worker import IngestionWorker
from src.utils.errors import ConfigurationError
from src.utils.logging import configure_logging, get_logger
from src.utils.retry import RetryPolicy

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Return the configured embedding provider (OpenAI, then Gemini)."""
    name = app_settings.resolved_embedding_provider()
    if name == "openai":
        return OpenAIEmbeddingProvider(settings=app_settings)
    if name == "gemini":
        return GeminiEmbeddingProvider(settings=app_settings)
    raise ConfigurationError(message=f"Unknown embedding provider '{name}'")


def build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Return the configured LLM provider.

    Priority order when none is named: Anthropic -> OpenAI -> Gemini.
    """
    name = app_settings.resolved_llm_provider()
    if name == "anthropic":
        return AnthropicLLMProvider(settings=app_settings)
    if name == "openai":
        return OpenAILLMProvider(settings=app_settings)
    if name == "gemini":
        return GeminiLLMProvider(settings=app_settings)
    raise ConfigurationError(message=f"Unknown LLM provider '{name}'")


def retry_policy(app_settings: Settings, timeout: float) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=app_settings.retry_max_attempts,
        base_delay=app_settings.retry_base_delay_seconds,
        max_delay=app_settings.retry_max_delay_seconds,
        timeout=timeout,
    )


def build_job_queue(app_settings: Settings) -> IJobQueue:
    if app_settings.queue_backend == "memory":
        return InMemoryJobQueue(
            max_attempts=app_settings.job_max_attempts,
            retry_backoff=app_settings.job_retry_backoff_seconds,
        )
    return RedisJobQueue.from_url(
        app_settings.redis_url,
        name=app_settings.queue_name,
        max_attempts=app_settings.job_max_attempts,
        retry_backoff=app_settings.job_retry_backoff_seconds,
        policy=retry_policy(app_settings, app_settings.queue_timeout_seconds),
        heartbeat_ttl=app_settings.queue_heartbeat_ttl_seconds,
    )


def build_vector_store(app_settings: Settings) -> IVectorStoreProvider:
    client = build_chroma_client(
        url=app_settings.chromadb_url,
        api_key=app_settings.chromadb_api_key,
        persist_directory=app_settings.chromadb_persist_dir,
    )
    return ChromaDBProvider(
        client=client,
        collection_prefix=app_settings.chromadb_collection_prefix,
        timeout=app_settings.store_timeout_seconds,
    )


def build_embedding_gateway(app_settings: Settings) -> EmbeddingGateway:
    return EmbeddingGateway(
        provider=build_embedding_provider(app_settings),
        policy=retry_policy(app_settings, app_settings.embedding_timeout_seconds),
    )


# Store calls carry their own timeout; the outer bound only has to exceed it.
def _store_policy(app_settings: Settings) -> RetryPolicy:
    return retry_policy(app_settings, app_settings.store_timeout_seconds + 5.0)


def build_chat_service(
    app_settings: Settings,
    config: dict[str, Any],
    embeddings: EmbeddingGateway,
    vector_store: IVectorStoreProvider,
    llm: ILLMProvider,
) -> ChatService:
    chat_config = config.get("chat", {})
    kwargs: dict[str, Any] = {}
    if chat_config.get("system_prompt"):
        kwargs["system_prompt"] = chat_config["system_prompt"]
    return ChatService(
        embeddings=embeddings,
        vector_store=vector_store,
        llm=llm,
        top_k=app_settings.rag_top_k,
        max_context_chars=app_settings.rag_max_context_chars,
        temperature=app_settings.llm_temperature,
        max_tokens=app_settings.llm_max_tokens,
        llm_timeout=app_settings.llm_timeout_seconds,
        store_policy=_store_policy(app_settings),
        **kwargs,
    )


def build_ingestion_service(
    app_settings: Settings,
    config: dict[str, Any],
    embeddings: EmbeddingGateway,
    vector_store: IVectorStoreProvider,
    job_queue: IJobQueue,
) -> IngestionService:
    ingestion_config = config.get("ingestion", {})
    extractor = DocumentExtractor(
        {
            SourceKind.FILE: [PDFExtractor(), PlainTextExtractor()],
            # YouTube first: WebPageExtractor accepts any http(s) URL.
            SourceKind.URL: [
                YouTubeTranscriptExtractor(
                    window_seconds=float(ingestion_config.get("transcript_window_seconds", 60)),
                    languages=list(ingestion_config.get("transcript_languages", ["en"])),
                ),
                WebPageExtractor(),
            ],
        }
    )
    chunker = TextChunker(
        chunk_size=int(ingestion_config.get("chunk_size", 500)),
        overlap=int(ingestion_config.get("chunk_overlap", 100)),
    )
    return IngestionService(
        extractor=extractor,
        chunker=chunker,
        embeddings=embeddings,
        vector_store=vector_store,
        job_queue=job_queue,
        store_policy=_store_policy(app_settings),
    )


def build_embedded_worker(app_settings: Settings, built: dict[str, Any]) -> IngestionWorker:
    """Worker that consumes the in-memory queue from inside the API process.

    An :class:`InMemoryJobQueue` is invisible to other processes, so with
    ``QUEUE_BACKEND=memory`` the API has to ingest its own uploads.
    """
    ingestion = build_ingestion_service(
        app_settings,
        built["config"],
        built["embeddings"],
        built["vector_store"],
        built["job_queue"],
    )
    return IngestionWorker(
        job_queue=built["job_queue"],
        ingestion=ingestion,
        concurrency=app_settings.worker_concurrency,
        poll_timeout=app_settings.worker_poll_timeout_seconds,
    )


def _build_all(app_settings: Settings) -> dict[str, Any]:
    """Construct every component the API serves from.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    config = load_config(settings=app_settings)
    embeddings = build_embedding_gateway(app_settings)
    vector_store = build_vector_store(app_settings)
    llm = build_llm_provider(app_settings)
    job_queue = build_job_queue(app_settings)

    return {
        "settings": app_settings,
        "config": config,
        "job_queue": job_queue,
        "vector_store": vector_store,
        "embeddings": embeddings,
        "chat_service": build_chat_service(app_settings, config, embeddings, vector_store, llm),
        "auth_verifier": HMACTokenVerifier(
            secret=app_settings.auth_secret,
            ttl_hours=app_settings.auth_token_ttl_hours,
        ),
        "provider_registry": {
            "embedding": embeddings.provider_name,
            "llm": llm.get_provider_name(),
            "vector_store": vector_store.get_provider_name(),
            "queue": app_settings.queue_backend,
        },
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


def _make_lifespan(app_settings: Settings, components: dict[str, Any] | None):
    @asynccontextmanager
    async def _lifespan(application: FastAPI):  # noqa: ANN202
        """Build all components on startup, close the queue on shutdown.

        With the in-memory queue the ingestion worker runs as a background
        task of this process and is drained before the queue closes.
        """
        worker: IngestionWorker | None = None
        worker_task: asyncio.Task[None] | None = None
        if components is None:
            app_settings.validate_required()
            built = _build_all(app_settings)
            if app_settings.queue_backend == "memory":
                worker = build_embedded_worker(app_settings, built)
                built["ingestion_worker"] = worker
                worker_task = asyncio.create_task(worker.run())
        else:
            built = components

        for key, value in built.items():
            setattr(application.state, key, value)

        _logger.info(
            "app_startup",
            environment=app_settings.app_env,
            providers=built.get("provider_registry", {}),
            embedded_worker=worker is not None,
        )

        yield

        if worker is not None and worker_task is not None:
            worker.stop()
            await worker_task

        job_queue: IJobQueue | None = built.get("job_queue")
        if job_queue is not None:
            await job_queue.close()
        _logger.info("app_shutdown")

    return _lifespan


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(
    app_settings: Settings | None = None,
    components: dict[str, Any] | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    Parameters
    ----------
    app_settings:
        Settings to serve with; the module-level settings by default.
    components:
        Prebuilt ``app.state`` entries.  When given, startup skips
        configuration validation and provider construction (tests).
    """
    app_settings = app_settings or settings
    application = FastAPI(
        title="docchat API",
        version="0.1.0",
        description=(
            "Upload a document or video URL, let the worker ingest it into "
            "a per-document vector collection, then ask questions answered "
            "from the retrieved passages."
        ),
        lifespan=_make_lifespan(app_settings, components),
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    application.include_router(api_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
