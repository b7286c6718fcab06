"""Per-job ingestion pipeline: **extract -> chunk -> embed -> store**.

:class:`IngestionService` runs one :class:`~src.models.ingestion.IngestionJob`
through an explicit state machine::

    received -> extracting -> embedding -> storing -> done
         \\___________\\____________\\__________\\___> failed

Every transition is written to the job-status record (through the job
queue) and logged.  On any exception the job is marked ``failed`` with
the error and the exception propagates to the worker, which decides
between redelivery and dead-lettering.  There is no checkpointing: a
redelivered job starts again at extraction.

Writes are idempotent.  Before storing, every entry previously written
for the job's source reference is deleted, and the new entries are
upserted under content-derived ids, so a job delivered twice leaves the
collection exactly as a single delivery would.
"""

from __future__ import annotations

import time

import structlog

from src.interfaces.job_queue import IJobQueue
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.ingestion import IngestionJob, JobState, JobStatus
from src.models.rag import IngestionResult
from src.services.embedding_gateway import EmbeddingGateway
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.extractor import DocumentExtractor
from src.utils.errors import QueueError
from src.utils.retry import RetryPolicy, call_with_retry

logger = structlog.get_logger(logger_name=__name__)


class IngestionService:
    """Orchestrates extraction, chunking, embedding and storage for one job.

    All collaborators are injected, so providers can be swapped without
    touching this class.

    Parameters
    ----------
    extractor:
        Dispatches the job to the right source extractor.
    chunker:
        Splits extracted segments into embedding-sized windows.
    embeddings:
        Shared embedding gateway (same instance as the chat service).
    vector_store:
        Destination collection store.
    job_queue:
        Holds the per-collection status record.
    store_policy:
        Retry budget for vector store writes.
    """

    def __init__(
        self,
        extractor: DocumentExtractor,
        chunker: TextChunker,
        embeddings: EmbeddingGateway,
        vector_store: IVectorStoreProvider,
        job_queue: IJobQueue,
        store_policy: RetryPolicy | None = None,
    ) -> None:
        self._extractor = extractor
        self._chunker = chunker
        self._embeddings = embeddings
        self._vector_store = vector_store
        self._job_queue = job_queue
        self._store_policy = store_policy or RetryPolicy()

    async def process(self, job: IngestionJob) -> IngestionResult:
        """Run *job* to completion.

        Raises
        ------
        src.utils.errors.DocChatError
            Whatever stage failed; the status record is already ``failed``.
        """
        start = time.monotonic()
        state = JobState.RECEIVED
        try:
            await self._transition(job, state)

            state = JobState.EXTRACTING
            await self._transition(job, state)
            extracted = await self._extractor.extract(job)
            segments = self._chunker.split(extracted, job.collection_id)

            state = JobState.EMBEDDING
            await self._transition(job, state)
            vectors = await self._embeddings.embed_many([s.content for s in segments])

            state = JobState.STORING
            await self._transition(job, state)
            deleted = await call_with_retry(
                lambda: self._vector_store.delete_by_source(job.collection_id, job.source_reference),
                self._store_policy,
                op_name="vector_store.delete_by_source",
            )
            stored = await call_with_retry(
                lambda: self._vector_store.add_documents(job.collection_id, segments, vectors),
                self._store_policy,
                op_name="vector_store.add_documents",
            )

            await self._transition(job, JobState.DONE)
        except Exception as exc:
            await self._mark_failed(job, state, exc)
            raise

        elapsed = round(time.monotonic() - start, 3)
        logger.info(
            "ingestion_complete",
            segments_extracted=len(extracted),
            segments_stored=stored,
            replaced=deleted,
            duration_s=elapsed,
        )
        return IngestionResult(
            job_id=job.job_id,
            collection_id=job.collection_id,
            source_reference=job.source_reference,
            segments_extracted=len(extracted),
            segments_stored=stored,
            duration_seconds=elapsed,
        )

    async def _transition(self, job: IngestionJob, state: JobState) -> None:
        await self._job_queue.set_status(JobStatus.for_job(job, state))
        logger.info("job_state_transition", state=state.value, attempts=job.attempts)

    async def _mark_failed(self, job: IngestionJob, state: JobState, exc: Exception) -> None:
        error = str(exc) or type(exc).__name__
        logger.error(
            "job_state_transition",
            state=JobState.FAILED.value,
            failed_during=state.value,
            error=error,
            error_type=type(exc).__name__,
        )
        try:
            await self._job_queue.set_status(JobStatus.for_job(job, JobState.FAILED, error=error))
        except QueueError as status_exc:
            # The original failure is what the worker needs to see.
            logger.warning("job_status_write_failed", error=str(status_exc))
