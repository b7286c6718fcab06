"""Ingestion job models.

An :class:`IngestionJob` is created by the API when an artifact is
accepted and travels through the job queue to the worker.  The job is a
tagged variant over :class:`SourceKind`: the extractor dispatches on
``source_kind`` instead of guessing from which fields are present.

:class:`JobStatus` is the per-collection status record the worker
updates on every state transition and the API reads for
``GET /jobs/{id}``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class SourceKind(str, Enum):
    """Where an ingestion job's text comes from."""

    FILE = "file"
    URL = "url"


class JobState(str, Enum):
    """Lifecycle of one ingestion job.

    ``queued`` is set on enqueue and again when a failed attempt is
    scheduled for redelivery.  ``failed`` is terminal once the job has
    been dead-lettered.
    """

    QUEUED = "queued"
    RECEIVED = "received"
    EXTRACTING = "extracting"
    EMBEDDING = "embedding"
    STORING = "storing"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        """``True`` while the job is waiting or being processed."""
        return self not in (JobState.DONE, JobState.FAILED)


class IngestionJob(BaseModel):
    """One unit of ingestion work keyed by the caller-supplied collection id."""

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique id of this job (distinct from the collection id).",
    )
    source_kind: SourceKind = Field(description="Whether source_reference is a file path or a URL.")
    source_reference: str = Field(
        min_length=1,
        description="Local file path for file jobs, http(s) URL for url jobs.",
    )
    owner_id: str = Field(min_length=1, description="Id of the authenticated uploader.")
    collection_id: str = Field(
        min_length=1,
        description="Caller-generated id joining ingestion writes to chat reads.",
    )
    submitted_at: datetime = Field(default_factory=_utcnow)
    attempts: int = Field(
        default=0,
        ge=0,
        description="Number of failed deliveries so far.",
    )


class JobStatus(BaseModel):
    """Latest known state of the job writing a collection."""

    model_config = ConfigDict(frozen=True)

    collection_id: str
    job_id: str
    state: JobState
    attempts: int = Field(default=0, ge=0)
    error: str | None = Field(default=None, description="Message of the most recent failure.")
    dead_lettered: bool = False
    updated_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def for_job(
        cls,
        job: IngestionJob,
        state: JobState,
        error: str | None = None,
        dead_lettered: bool = False,
    ) -> JobStatus:
        return cls(
            collection_id=job.collection_id,
            job_id=job.job_id,
            state=state,
            attempts=job.attempts,
            error=error,
            dead_lettered=dead_lettered,
        )
