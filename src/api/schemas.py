"""Pydantic request/response schemas for the docchat API.

Defines the public contract for every REST endpoint: upload, chat, the
YouTube variants, job status and health.

# ─── FIELD NAMING ─────────────────────────────────────────────────────
#
# The browser client sends camelCase (``userId``) and calls the
# collection id plain ``id``.  Request models keep snake_case Python
# attribute names and accept the wire names through aliases;
# ``populate_by_name`` lets tests and the CLI use either.
#
# Request fields are Optional on purpose: a missing field is reported
# as a 400 ValidationError by the route, not as FastAPI's 422.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.chat import ChatRole
from src.models.ingestion import JobState


class UploadResponse(BaseModel):
    """Returned once an artifact is stored and its job is enqueued."""

    message: str
    id: str = Field(description="Collection id the artifact will be written to.")
    job_id: str
    state: JobState = JobState.QUEUED


class ChatRequest(BaseModel):
    """A question about one collection."""

    model_config = ConfigDict(populate_by_name=True)

    question: str | None = None
    user_id: str | None = Field(default=None, alias="userId")
    collection_id: str | None = Field(default=None, alias="id")


class ChatResponse(BaseModel):
    """The assistant's grounded reply."""

    role: ChatRole = ChatRole.ASSISTANT
    content: str


class YouTubeUploadRequest(BaseModel):
    """A video URL to ingest under a collection id."""

    model_config = ConfigDict(populate_by_name=True)

    url: str | None = None
    collection_id: str | None = Field(default=None, alias="id")


class JobStatusResponse(BaseModel):
    """Latest state of the job writing a collection."""

    id: str
    job_id: str
    state: JobState
    attempts: int = 0
    error: str | None = None
    dead_lettered: bool = False
    updated_at: datetime


class HealthResponse(BaseModel):
    status: str = Field(description="'healthy' or 'degraded'")
    version: str
    providers: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Body of every non-2xx response."""

    error: str = Field(description="Error class name, e.g. 'RetrievalError'.")
    detail: str
    job_state: JobState | None = Field(
        default=None,
        description="State of the collection's ingestion job, when one is known.",
    )
