"""Queue consumer that feeds jobs to the ingestion service.

:class:`IngestionWorker` reserves jobs from the
:class:`~src.interfaces.job_queue.IJobQueue`, runs each through
:class:`~src.services.ingestion.IngestionService` and settles it:
``ack`` on success, ``fail`` on error (the queue decides between
redelivery with backoff and the dead-letter list).

At most ``concurrency`` jobs run at once, bounded by an
``asyncio.Semaphore``.  A failing job never stops the loop; a failing
queue backend is logged and retried after a short pause.
"""

from __future__ import annotations

import asyncio

import structlog

from src.interfaces.job_queue import IJobQueue
from src.models.ingestion import IngestionJob
from src.services.ingestion.ingestion_service import IngestionService
from src.utils.errors import QueueError
from src.utils.logging import bind_job_context

logger = structlog.get_logger(logger_name=__name__)

_QUEUE_ERROR_PAUSE_SECONDS = 2.0


class IngestionWorker:
    """Long-running consumer of the ingestion queue.

    Parameters
    ----------
    job_queue:
        Source of jobs and owner of their status records.
    ingestion:
        Runs one job through extract -> embed -> store.
    concurrency:
        Maximum number of jobs processed at the same time.
    poll_timeout:
        Seconds each reserve call blocks waiting for a job.
    """

    def __init__(
        self,
        job_queue: IJobQueue,
        ingestion: IngestionService,
        concurrency: int = 1,
        poll_timeout: float = 5.0,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._queue = job_queue
        self._ingestion = ingestion
        self._concurrency = concurrency
        self._poll_timeout = poll_timeout
        self._stopping = asyncio.Event()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def running_jobs(self) -> int:
        return len(self._tasks)

    async def run(self) -> None:
        """Consume jobs until :meth:`stop` is called.

        Jobs left in flight by a previous worker process are requeued
        first.  On stop, jobs already running are allowed to finish.
        """
        recovered = await self._queue.recover_in_flight()
        logger.info(
            "worker_started",
            concurrency=self._concurrency,
            recovered_jobs=recovered,
        )
        semaphore = asyncio.Semaphore(self._concurrency)

        while not self._stopping.is_set():
            await semaphore.acquire()
            try:
                job = await self._queue.reserve(self._poll_timeout)
            except QueueError as exc:
                semaphore.release()
                logger.error("queue_reserve_failed", error=str(exc))
                await self._pause()
                continue

            if job is None:
                semaphore.release()
                continue

            task = asyncio.create_task(self._run_job(job, semaphore))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        if self._tasks:
            logger.info("worker_draining", running_jobs=len(self._tasks))
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("worker_stopped")

    def stop(self) -> None:
        """Ask :meth:`run` to return after the current poll."""
        self._stopping.set()

    async def run_once(self, timeout: float | None = None) -> bool:
        """Reserve and process a single job; return ``False`` if none arrived."""
        job = await self._queue.reserve(self._poll_timeout if timeout is None else timeout)
        if job is None:
            return False
        await self.process_one(job)
        return True

    async def process_one(self, job: IngestionJob) -> bool:
        """Process *job* and settle it with the queue.

        Returns ``True`` when the job succeeded.  Failures are recorded,
        never raised, so one bad job cannot stop the consumer.
        """
        with bind_job_context(job.job_id, job.collection_id):
            try:
                await self._ingestion.process(job)
            except Exception as exc:
                error = str(exc) or type(exc).__name__
                try:
                    requeued = await self._queue.fail(job, error)
                except QueueError as queue_exc:
                    # Still in the processing list; recovered on next start.
                    logger.error("job_fail_unrecorded", error=str(queue_exc))
                    return False
                logger.warning(
                    "job_failed",
                    attempts=job.attempts + 1,
                    requeued=requeued,
                    error=error,
                )
                return False

            try:
                await self._queue.ack(job)
            except QueueError as queue_exc:
                # Redelivery is harmless: writes are idempotent.
                logger.error("job_ack_failed", error=str(queue_exc))
            return True

    async def _run_job(self, job: IngestionJob, semaphore: asyncio.Semaphore) -> None:
        try:
            await self.process_one(job)
        finally:
            semaphore.release()

    async def _pause(self) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=_QUEUE_ERROR_PAUSE_SECONDS)
        except asyncio.TimeoutError:
            pass
