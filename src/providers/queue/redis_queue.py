"""Redis-backed durable job queue.

Implements :class:`IJobQueue` on top of the redis-py asyncio client with
the reliable-queue pattern, one processing list per worker:

    {name}:pending                LIST    jobs waiting for a worker
    {name}:processing:{worker}    LIST    jobs reserved by one worker, not yet acked
    {name}:heartbeat:{worker}     STRING  expires when the worker stops refreshing it
    {name}:workers                SET     worker ids that have reserved jobs
    {name}:delayed                ZSET    failed jobs waiting out their backoff (score = ready-at)
    {name}:dead                   LIST    jobs that exhausted their retry budget
    {name}:status                 HASH    collection id -> JobStatus JSON

``BLMOVE`` moves a job from pending to the worker's own processing list
atomically.  A worker that dies mid-job leaves its list behind and its
heartbeat expires; :meth:`recover_in_flight` on any other worker then
moves that list back to pending.  Live workers are never touched, so
several worker processes can share one queue.  Jobs are JSON encoded
with pydantic.
"""

from __future__ import annotations

import asyncio
import os
import socket
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import redis.asyncio as aioredis
import structlog
from redis import exceptions as redis_exceptions

from src.interfaces.job_queue import IJobQueue
from src.models.ingestion import IngestionJob, JobState, JobStatus
from src.utils.errors import QueueError
from src.utils.retry import RetryPolicy, call_with_retry

logger = structlog.get_logger(logger_name=__name__)

_T = TypeVar("_T")

_TRANSIENT_REDIS_ERRORS = (
    redis_exceptions.ConnectionError,
    redis_exceptions.TimeoutError,
    asyncio.TimeoutError,
)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, _TRANSIENT_REDIS_ERRORS)


class RedisJobQueue(IJobQueue):
    """Durable at-least-once job queue stored in Redis.

    Parameters
    ----------
    client:
        A ``redis.asyncio.Redis`` created with ``decode_responses=True``.
        Use :meth:`from_url` in production.
    name:
        Key prefix shared by every list, set and hash of this queue.
    max_attempts:
        Deliveries allowed per job before it is dead-lettered.
    retry_backoff:
        Base delay in seconds before redelivery; doubled on each failure.
    policy:
        Timeout and retry policy applied to every Redis round-trip.
    worker_id:
        Owner of this instance's processing list.  Defaults to
        ``host:pid:random`` so every process gets its own.
    heartbeat_ttl:
        Seconds a worker's heartbeat lives without a refresh.  Its
        processing list is recoverable once the heartbeat has expired.
    """

    def __init__(
        self,
        client: aioredis.Redis,
        name: str = "document-ingestion",
        max_attempts: int = 3,
        retry_backoff: float = 5.0,
        policy: RetryPolicy | None = None,
        worker_id: str | None = None,
        heartbeat_ttl: float = 30.0,
    ) -> None:
        self._client = client
        self._name = name
        self._max_attempts = max_attempts
        self._retry_backoff = retry_backoff
        self._policy = policy or RetryPolicy(timeout=10.0)
        self._worker_id = worker_id or f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"
        self._heartbeat_ttl = heartbeat_ttl
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._registered = False
        # job_id -> exact payload moved into the processing list, needed for LREM.
        self._in_flight: dict[str, str] = {}

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisJobQueue:
        client = aioredis.from_url(url, decode_responses=True)
        return cls(client=client, **kwargs)

    # -- keys -------------------------------------------------------------

    @property
    def _pending_key(self) -> str:
        return f"{self._name}:pending"

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def _processing_key(self) -> str:
        return self._processing_key_for(self._worker_id)

    def _processing_key_for(self, worker_id: str) -> str:
        return f"{self._name}:processing:{worker_id}"

    def _heartbeat_key_for(self, worker_id: str) -> str:
        return f"{self._name}:heartbeat:{worker_id}"

    @property
    def _workers_key(self) -> str:
        return f"{self._name}:workers"

    @property
    def _delayed_key(self) -> str:
        return f"{self._name}:delayed"

    @property
    def _dead_key(self) -> str:
        return f"{self._name}:dead"

    @property
    def _status_key(self) -> str:
        return f"{self._name}:status"

    # ------------------------------------------------------------------
    # IJobQueue implementation
    # ------------------------------------------------------------------

    async def enqueue(self, job: IngestionJob) -> None:
        payload = job.model_dump_json()
        await self._call("enqueue", lambda: self._client.rpush(self._pending_key, payload))
        await self.set_status(JobStatus.for_job(job, JobState.QUEUED))
        logger.info(
            "job_enqueued",
            queue=self._name,
            job_id=job.job_id,
            collection_id=job.collection_id,
            source_kind=job.source_kind.value,
        )

    async def reserve(self, timeout: float) -> IngestionJob | None:
        # Registered before the move so the processing list is always discoverable.
        await self._beat()
        await self._promote_due()
        # The blocking pop needs its own allowance on top of the round-trip timeout.
        policy = RetryPolicy(
            max_attempts=self._policy.max_attempts,
            base_delay=self._policy.base_delay,
            max_delay=self._policy.max_delay,
            timeout=self._policy.timeout + timeout,
        )
        raw = await self._call(
            "reserve",
            lambda: self._client.blmove(
                self._pending_key, self._processing_key, timeout, "LEFT", "RIGHT"
            ),
            policy=policy,
        )
        if raw is None:
            return None
        job = IngestionJob.model_validate_json(raw)
        self._in_flight[job.job_id] = raw
        return job

    async def ack(self, job: IngestionJob) -> None:
        raw = self._in_flight.pop(job.job_id, None)
        if raw is not None:
            await self._call("ack", lambda: self._client.lrem(self._processing_key, 1, raw))
        logger.info("job_acked", job_id=job.job_id, collection_id=job.collection_id)

    async def fail(self, job: IngestionJob, error: str) -> bool:
        raw = self._in_flight.pop(job.job_id, None)
        if raw is not None:
            await self._call("fail", lambda: self._client.lrem(self._processing_key, 1, raw))

        failed = job.model_copy(update={"attempts": job.attempts + 1})
        payload = failed.model_dump_json()

        if failed.attempts < self._max_attempts:
            delay = self._retry_backoff * (2 ** (failed.attempts - 1))
            ready_at = time.time() + delay
            await self._call("fail", lambda: self._client.zadd(self._delayed_key, {payload: ready_at}))
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

        await self._call("fail", lambda: self._client.rpush(self._dead_key, payload))
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
        await self._call(
            "set_status",
            lambda: self._client.hset(self._status_key, status.collection_id, status.model_dump_json()),
        )

    async def get_status(self, collection_id: str) -> JobStatus | None:
        raw = await self._call("get_status", lambda: self._client.hget(self._status_key, collection_id))
        if raw is None:
            return None
        return JobStatus.model_validate_json(raw)

    async def recover_in_flight(self) -> int:
        """Requeue the processing lists of workers whose heartbeat expired.

        Also starts this instance's heartbeat so that other workers leave
        its own reservations alone while it runs.
        """
        await self._beat()
        self._start_heartbeat()

        workers: set[str] = await self._call("recover", lambda: self._client.smembers(self._workers_key))
        recovered = 0
        for worker_id in sorted(workers):
            if worker_id == self._worker_id:
                continue
            alive = await self._call(
                "recover", lambda: self._client.exists(self._heartbeat_key_for(worker_id))
            )
            if alive:
                continue
            recovered += await self._drain_processing(worker_id)
            await self._call("recover", lambda: self._client.srem(self._workers_key, worker_id))
        if recovered:
            logger.warning("in_flight_jobs_recovered", queue=self._name, count=recovered)
        return recovered

    async def dead_letters(self) -> list[IngestionJob]:
        raws = await self._call("dead_letters", lambda: self._client.lrange(self._dead_key, 0, -1))
        return [IngestionJob.model_validate_json(raw) for raw in raws]

    async def close(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None
        if self._registered:
            # Anything still in our processing list becomes recoverable at once.
            try:
                await self._call(
                    "close", lambda: self._client.delete(self._heartbeat_key_for(self._worker_id))
                )
            except QueueError as exc:
                logger.warning("heartbeat_clear_failed", worker_id=self._worker_id, error=str(exc))
            self._registered = False
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _beat(self) -> None:
        """Refresh this worker's heartbeat and register its processing list."""
        ttl_ms = max(1, int(self._heartbeat_ttl * 1000))
        await self._call(
            "heartbeat",
            lambda: self._client.set(self._heartbeat_key_for(self._worker_id), str(time.time()), px=ttl_ms),
        )
        if not self._registered:
            await self._call("heartbeat", lambda: self._client.sadd(self._workers_key, self._worker_id))
            self._registered = True

    def _start_heartbeat(self) -> None:
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    async def _heartbeat_loop(self) -> None:
        # Long jobs do not call reserve(), so the heartbeat needs its own loop.
        interval = max(self._heartbeat_ttl / 3, 0.05)
        while True:
            await asyncio.sleep(interval)
            try:
                await self._beat()
            except QueueError as exc:
                logger.warning("heartbeat_failed", worker_id=self._worker_id, error=str(exc))

    async def _drain_processing(self, worker_id: str) -> int:
        """Move every job in *worker_id*'s processing list back to pending."""
        source = self._processing_key_for(worker_id)
        moved = 0
        while True:
            # LMOVE is atomic, so concurrent recoverers never requeue an entry twice.
            raw = await self._call(
                "recover", lambda: self._client.lmove(source, self._pending_key, "LEFT", "RIGHT")
            )
            if raw is None:
                return moved
            moved += 1

    async def _promote_due(self) -> None:
        """Move delayed jobs whose backoff has elapsed onto the pending list."""
        now = time.time()
        due: list[str] = await self._call(
            "promote", lambda: self._client.zrangebyscore(self._delayed_key, "-inf", now)
        )
        for raw in due:
            # ZREM decides the winner when several workers promote at once.
            removed = await self._call("promote", lambda: self._client.zrem(self._delayed_key, raw))
            if removed:
                await self._call("promote", lambda: self._client.rpush(self._pending_key, raw))

    async def _call(
        self,
        op: str,
        operation: Callable[[], Awaitable[_T]],
        policy: RetryPolicy | None = None,
    ) -> _T:
        try:
            return await call_with_retry(
                operation,
                policy or self._policy,
                op_name=f"redis_{op}",
                is_transient=_is_transient,
            )
        except (redis_exceptions.RedisError, asyncio.TimeoutError) as exc:
            raise QueueError(
                message=f"Redis {op} failed: {exc or type(exc).__name__}",
                provider_name="redis",
                transient=True,
            ) from exc
