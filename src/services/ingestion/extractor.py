"""Source-kind dispatch for text extraction.

:class:`DocumentExtractor` picks the first registered
:class:`~src.interfaces.source_extractor.ISourceExtractor` for the job's
:class:`~src.models.ingestion.SourceKind` whose :meth:`supports` accepts
the reference.  Strategies are tried in registration order, so more
specific ones (YouTube) go before catch-alls (any web page).
"""

from __future__ import annotations

import structlog

from src.interfaces.source_extractor import ISourceExtractor
from src.models.ingestion import IngestionJob, SourceKind
from src.models.rag import TextSegment
from src.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)


class DocumentExtractor:
    """Turns an :class:`IngestionJob` into ordered text segments.

    Parameters
    ----------
    strategies:
        Mapping of source kind to the strategies that handle it, in
        priority order.
    """

    def __init__(self, strategies: dict[SourceKind, list[ISourceExtractor]]) -> None:
        self._strategies = strategies

    def resolve(self, job: IngestionJob) -> ISourceExtractor:
        """Return the strategy for *job*, or raise :class:`ExtractionError`."""
        for strategy in self._strategies.get(job.source_kind, []):
            if strategy.supports(job.source_reference):
                return strategy
        raise ExtractionError(
            message=(
                f"No extractor supports {job.source_kind.value} source "
                f"'{job.source_reference}'"
            )
        )

    async def extract(self, job: IngestionJob) -> list[TextSegment]:
        strategy = self.resolve(job)
        segments = await strategy.extract(job.source_reference)
        if not segments:
            raise ExtractionError(
                message=f"No text extracted from '{job.source_reference}'",
                provider_name=strategy.get_provider_name(),
            )
        logger.info(
            "extraction_complete",
            extractor=strategy.get_provider_name(),
            segments=len(segments),
        )
        return segments
