"""FastAPI routes for docchat.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint           Method  Auth  Description
# ─────────────────────────────────────────────────────────────────────
# /upload            POST    yes   Store a file, enqueue its ingestion job
# /chat              POST    yes   Answer a question about a document
# /youtube-upload    POST    yes   Enqueue ingestion of a video transcript
# /youtube-chat      POST    yes   Answer a question about a video
# /jobs/{id}         GET     yes   Ingestion job status for a collection
# /health            GET     no    Liveness + configured providers
#
# Uploads return as soon as the job is enqueued; extraction, embedding
# and storage happen in the worker.  A second upload for a collection
# whose job is still queued or running is rejected with 409.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable
from pathlib import Path
from typing import Annotated, Any, TypeVar
from urllib.parse import urlparse

import structlog
from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile

from src.api.auth import UserDep
from src.api.middleware import error_response
from src.api.schemas import (
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    HealthResponse,
    JobStatusResponse,
    UploadResponse,
    YouTubeUploadRequest,
)
from src.config.settings import Settings
from src.interfaces.job_queue import IJobQueue
from src.models.ingestion import IngestionJob, JobState, SourceKind
from src.services.chat_service import ChatService
from src.utils.errors import AuthError, ValidationError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

_T = TypeVar("_T")

router = APIRouter()

# Collection ids end up in file paths and collection names.
_COLLECTION_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,62}$")
_SAFE_FILENAME = re.compile(r"[^A-Za-z0-9._-]+")

# Read uploads in 64 KB increments so oversized files are rejected early.
_UPLOAD_CHUNK_SIZE = 64 * 1024

_DISCONNECT_POLL_SECONDS = 0.5

# Not an IANA status; the conventional code for "client closed request".
_CLIENT_CLOSED_REQUEST = 499

_DEFAULT_UPLOAD_SUFFIXES = (".pdf", ".txt", ".md")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_job_queue(request: Request) -> IJobQueue:
    return request.app.state.job_queue


def _get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


JobQueueDep = Annotated[IJobQueue, Depends(_get_job_queue)]
ChatServiceDep = Annotated[ChatService, Depends(_get_chat_service)]
SettingsDep = Annotated[Settings, Depends(_get_settings)]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_collection_id(collection_id: str | None) -> str:
    collection_id = (collection_id or "").strip()
    if not collection_id:
        raise ValidationError(message="Missing required field 'id'")
    if not _COLLECTION_ID.match(collection_id):
        raise ValidationError(
            message="'id' must be 1-63 characters of letters, digits, '.', '_' or '-'"
        )
    return collection_id


def _upload_suffixes(request: Request) -> tuple[str, ...]:
    config = getattr(request.app.state, "config", {}) or {}
    suffixes = config.get("ingestion", {}).get("upload_suffixes")
    return tuple(s.lower() for s in suffixes) if suffixes else _DEFAULT_UPLOAD_SUFFIXES


async def _reject_if_active(job_queue: IJobQueue, collection_id: str) -> Response | None:
    status = await job_queue.get_status(collection_id)
    if status is not None and status.state.is_active:
        return error_response(
            409,
            "Conflict",
            f"An ingestion job for '{collection_id}' is already {status.state.value}",
            job_state=status.state,
        )
    return None


async def _enqueue(
    job_queue: IJobQueue,
    *,
    source_kind: SourceKind,
    source_reference: str,
    owner_id: str,
    collection_id: str,
) -> UploadResponse:
    job = IngestionJob(
        source_kind=source_kind,
        source_reference=source_reference,
        owner_id=owner_id,
        collection_id=collection_id,
    )
    await job_queue.enqueue(job)
    _logger.info(
        "upload_accepted",
        collection_id=collection_id,
        job_id=job.job_id,
        source_kind=source_kind.value,
    )
    return UploadResponse(
        message="Upload accepted; processing started",
        id=collection_id,
        job_id=job.job_id,
        state=JobState.QUEUED,
    )


async def _until_disconnect(request: Request, awaitable: Awaitable[_T]) -> _T | None:
    """Await *awaitable*, cancelling it if the client goes away first.

    Returns ``None`` when the client disconnected.
    """
    task = asyncio.ensure_future(awaitable)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=_DISCONNECT_POLL_SECONDS)
            if task in done:
                return task.result()
            if await request.is_disconnected():
                task.cancel()
                _logger.info("request_cancelled_client_disconnected", path=str(request.url.path))
                return None
    finally:
        if not task.done():
            task.cancel()


async def _answer(
    request: Request,
    body: ChatRequest,
    user_id: str,
    job_queue: IJobQueue,
    chat_service: ChatService,
) -> ChatResponse | Response:
    if not body.question or not body.question.strip():
        raise ValidationError(message="Missing required field 'question'")
    if not body.user_id:
        raise ValidationError(message="Missing required field 'userId'")
    collection_id = _require_collection_id(body.collection_id)
    if body.user_id != user_id:
        raise AuthError(message="userId does not match the bearer token")

    status = await job_queue.get_status(collection_id)
    # Echoed in error bodies by ErrorHandlingMiddleware.
    request.state.job_state = status.state if status else None

    turn = await _until_disconnect(request, chat_service.answer(body.question, collection_id))
    if turn is None:
        return Response(status_code=_CLIENT_CLOSED_REQUEST)
    return ChatResponse(role=turn.role, content=turn.content)


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
    },
    summary="Upload a document for ingestion",
)
async def upload_document(
    request: Request,
    user_id: UserDep,
    job_queue: JobQueueDep,
    settings: SettingsDep,
    file: Annotated[UploadFile | None, File()] = None,
    id: Annotated[str | None, Form()] = None,  # noqa: A002
) -> UploadResponse | Response:
    """Store the uploaded file under the upload directory and enqueue it."""
    if file is None or not file.filename:
        raise ValidationError(message="Missing required file field 'file'")
    collection_id = _require_collection_id(id)

    suffix = Path(file.filename).suffix.lower()
    allowed = _upload_suffixes(request)
    if suffix not in allowed:
        raise ValidationError(
            message=f"Unsupported file type '{suffix or file.filename}'. Allowed: {', '.join(allowed)}"
        )

    max_bytes = settings.max_upload_mb * 1024 * 1024
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await file.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_bytes:
            return error_response(
                413,
                "PayloadTooLarge",
                f"File too large: maximum is {settings.max_upload_mb} MB",
            )
        chunks.append(chunk)
    if total_size == 0:
        raise ValidationError(message="Uploaded file is empty")

    conflict = await _reject_if_active(job_queue, collection_id)
    if conflict is not None:
        return conflict

    safe_name = _SAFE_FILENAME.sub("_", Path(file.filename).name).strip("._") or f"upload{suffix}"
    if not safe_name.lower().endswith(suffix):
        safe_name += suffix
    destination = Path(settings.upload_dir).resolve() / collection_id / safe_name

    def _save() -> None:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(b"".join(chunks))

    await asyncio.to_thread(_save)

    return await _enqueue(
        job_queue,
        source_kind=SourceKind.FILE,
        source_reference=str(destination),
        owner_id=user_id,
        collection_id=collection_id,
    )


@router.post(
    "/youtube-upload",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Enqueue ingestion of a video transcript",
)
async def upload_youtube(
    body: YouTubeUploadRequest,
    user_id: UserDep,
    job_queue: JobQueueDep,
) -> UploadResponse | Response:
    url = (body.url or "").strip()
    if not url:
        raise ValidationError(message="Missing required field 'url'")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(message="'url' must be an http(s) URL")
    collection_id = _require_collection_id(body.collection_id)

    conflict = await _reject_if_active(job_queue, collection_id)
    if conflict is not None:
        return conflict

    return await _enqueue(
        job_queue,
        source_kind=SourceKind.URL,
        source_reference=url,
        owner_id=user_id,
        collection_id=collection_id,
    )


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


@router.post(
    "/chat",
    response_model=ChatResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Ask a question about an uploaded document",
)
async def chat(
    request: Request,
    body: ChatRequest,
    user_id: UserDep,
    job_queue: JobQueueDep,
    chat_service: ChatServiceDep,
) -> ChatResponse | Response:
    return await _answer(request, body, user_id, job_queue, chat_service)


@router.post(
    "/youtube-chat",
    response_model=ChatResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Ask a question about an ingested video",
)
async def youtube_chat(
    request: Request,
    body: ChatRequest,
    user_id: UserDep,
    job_queue: JobQueueDep,
    chat_service: ChatServiceDep,
) -> ChatResponse | Response:
    return await _answer(request, body, user_id, job_queue, chat_service)


# ---------------------------------------------------------------------------
# Status / health
# ---------------------------------------------------------------------------


@router.get(
    "/jobs/{collection_id}",
    response_model=JobStatusResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Ingestion job status for a collection",
)
async def get_job_status(
    collection_id: str,
    user_id: UserDep,
    job_queue: JobQueueDep,
) -> JobStatusResponse | Response:
    status = await job_queue.get_status(collection_id)
    if status is None:
        return error_response(404, "NotFound", f"No ingestion job for '{collection_id}'")
    return JobStatusResponse(
        id=status.collection_id,
        job_id=status.job_id,
        state=status.state,
        attempts=status.attempts,
        error=status.error,
        dead_lettered=status.dead_lettered,
        updated_at=status.updated_at,
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and configured providers."""
    providers: dict[str, Any] = dict(getattr(request.app.state, "provider_registry", {}) or {})
    status = "healthy" if providers and all(providers.values()) else "degraded"
    config = getattr(request.app.state, "config", {}) or {}
    return HealthResponse(
        status=status,
        version=str(config.get("app", {}).get("version", "0.1.0")),
        providers=providers,
    )
