"""Abstract base class for the ingestion job queue.

The queue decouples upload acceptance from processing.  Delivery is
at-least-once: a reserved job stays in an in-flight list until it is
acknowledged, so a worker crash never loses it.  Failed jobs are retried
with backoff up to a bounded attempt count and then dead-lettered.

The queue also owns the per-collection :class:`JobStatus` record because
both the API (reader) and the worker (writer) already share it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.ingestion import IngestionJob, JobStatus


# Concrete implementations:
#   RedisJobQueue - durable, redis-py asyncio client
#   InMemoryJobQueue - single-process, development and tests
# Located in: src/providers/queue/
class IJobQueue(ABC):
    """Contract for durable job delivery plus job-status lookup."""

    @abstractmethod
    async def enqueue(self, job: IngestionJob) -> None:
        """Persist *job* for delivery and record status ``queued``.

        Raises
        ------
        src.utils.errors.QueueError
            If the queue backend cannot be reached.
        """

    @abstractmethod
    async def reserve(self, timeout: float) -> IngestionJob | None:
        """Wait up to *timeout* seconds for the next job and mark it in-flight.

        Returns ``None`` when no job became available in time.
        """

    @abstractmethod
    async def ack(self, job: IngestionJob) -> None:
        """Acknowledge successful processing; the job is discarded."""

    @abstractmethod
    async def fail(self, job: IngestionJob, error: str) -> bool:
        """Record a failed delivery of *job*.

        Returns
        -------
        bool
            ``True`` if the job was scheduled for another attempt,
            ``False`` if its retry budget is exhausted and it was moved to
            the dead-letter list with status ``failed``.
        """

    @abstractmethod
    async def set_status(self, status: JobStatus) -> None:
        """Overwrite the status record for ``status.collection_id``."""

    @abstractmethod
    async def get_status(self, collection_id: str) -> JobStatus | None:
        """Return the status record for *collection_id*, or ``None`` if unknown."""

    @abstractmethod
    async def recover_in_flight(self) -> int:
        """Return in-flight jobs abandoned by a crashed worker to the queue.

        Jobs reserved by workers that are still alive stay where they
        are, so any number of workers may call this on start.  Returns
        the number of jobs requeued.
        """

    @abstractmethod
    async def dead_letters(self) -> list[IngestionJob]:
        """Return jobs that exhausted their retry budget."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections held by the queue."""
