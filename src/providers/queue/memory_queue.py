"""In-process job queue for single-process deployments and tests.

Same semantics as :class:`RedisJobQueue` (reserve/ack, bounded retries
with backoff, dead-letter list, per-collection status) but state lives
in memory and is lost on restart.
"""

from __future__ import annotations

import asyncio
import time

import structlog

from src.interfaces.job_queue import IJobQueue
from src.models.ingestion import IngestionJob, JobState, JobStatus

logger = structlog.get_logger(logger_name=__name__)


class InMemoryJobQueue(IJobQueue):
    """asyncio-backed job queue; API and workers must share one process."""

    def __init__(self, max_attempts: int = 3, retry_backoff: float = 5.0) -> None:
        self._max_attempts = max_attempts
        self._retry_backoff = retry_backoff
        self._pending: asyncio.Queue[IngestionJob] = asyncio.Queue()
        self._delayed: list[tuple[float, IngestionJob]] = []
        self._in_flight: dict[str, IngestionJob] = {}
        self._dead: list[IngestionJob] = []
        self._statuses: dict[str, JobStatus] = {}

    async def enqueue(self, job: IngestionJob) -> None:
        await self._pending.put(job)
        await self.set_status(JobStatus.for_job(job, JobState.QUEUED))
        logger.info(
            "job_enqueued",
            queue="memory",
            job_id=job.job_id,
            collection_id=job.collection_id,
            source_kind=job.source_kind.value,
        )

    async def reserve(self, timeout: float) -> IngestionJob | None:
        self._promote_due()
        try:
            job = self._pending.get_nowait()
        except asyncio.QueueEmpty:
            try:
                job = await asyncio.wait_for(self._pending.get(), timeout=timeout)
            except asyncio.TimeoutError:
                return None
        self._in_flight[job.job_id] = job
        return job

    async def ack(self, job: IngestionJob) -> None:
        self._in_flight.pop(job.job_id, None)
        logger.info("job_acked", job_id=job.job_id, collection_id=job.collection_id)

    async def fail(self, job: IngestionJob, error: str) -> bool:
        self._in_flight.pop(job.job_id, None)
        failed = job.model_copy(update={"attempts": job.attempts + 1})

        if failed.attempts < self._max_attempts:
            delay = self._retry_backoff * (2 ** (failed.attempts - 1))
            if delay > 0:
                self._delayed.append((time.monotonic() + delay, failed))
            else:
                await self._pending.put(failed)
            await self.set_status(JobStatus.for_job(failed, JobState.QUEUED, error=error))
            logger.warning(
                "job_retry_scheduled",
                job_id=job.job_id,
                collection_id=job.collection_id,
                attempts=failed.attempts,
                max_attempts=self._max_attempts,
                backoff_s=delay,
                error=error,
            )
            return True

        self._dead.append(failed)
        await self.set_status(
            JobStatus.for_job(failed, JobState.FAILED, error=error, dead_lettered=True)
        )
        logger.error(
            "job_dead_lettered",
            job_id=job.job_id,
            collection_id=job.collection_id,
            attempts=failed.attempts,
            error=error,
        )
        return False

    async def set_status(self, status: JobStatus) -> None:
        self._statuses[status.collection_id] = status

    async def get_status(self, collection_id: str) -> JobStatus | None:
        return self._statuses.get(collection_id)

    async def recover_in_flight(self) -> int:
        # One process owns this queue, so anything in flight before the worker starts is orphaned.
        stale = list(self._in_flight.values())
        self._in_flight.clear()
        for job in stale:
            await self._pending.put(job)
        if stale:
            logger.warning("in_flight_jobs_recovered", queue="memory", count=len(stale))
        return len(stale)

    async def dead_letters(self) -> list[IngestionJob]:
        return list(self._dead)

    async def close(self) -> None:
        return None

    def pending_count(self) -> int:
        return self._pending.qsize() + len(self._delayed)

    def _promote_due(self) -> None:
        now = time.monotonic()
        still_waiting: list[tuple[float, IngestionJob]] = []
        for ready_at, job in self._delayed:
            if ready_at <= now:
                self._pending.put_nowait(job)
            else:
                still_waiting.append((ready_at, job))
        self._delayed = still_waiting
