"""Abstract base class for source extraction strategies.

Each strategy turns one kind of artifact (PDF, plain text, video
transcript, web page) into an ordered list of
:class:`~src.models.rag.TextSegment`.  The
:class:`~src.services.ingestion.extractor.DocumentExtractor` picks a
strategy from the job's :class:`~src.models.ingestion.SourceKind` and
:meth:`supports`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import TextSegment


class ISourceExtractor(ABC):
    """Contract for format-specific text extraction."""

    @abstractmethod
    def supports(self, source_reference: str) -> bool:
        """Return ``True`` if this strategy can read *source_reference*."""

    @abstractmethod
    async def extract(self, source_reference: str) -> list[TextSegment]:
        """Read *source_reference* into ordered text segments.

        The same artifact must always produce the same ordered segment
        contents.

        Raises
        ------
        src.utils.errors.ExtractionError
            If the artifact is missing, unreadable, corrupt, or has no text.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"pymupdf"``."""
