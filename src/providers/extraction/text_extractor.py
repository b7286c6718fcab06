"""Plain-text and Markdown source extractor.

The whole file becomes a single segment; paragraph-aware splitting is
left to :class:`~src.services.ingestion.chunker.TextChunker`.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from src.interfaces.source_extractor import ISourceExtractor
from src.models.ingestion import SourceKind
from src.models.rag import TextSegment
from src.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

_SUFFIXES = frozenset({".txt", ".md", ".markdown"})


class PlainTextExtractor(ISourceExtractor):
    """Reads UTF-8 text files."""

    def supports(self, source_reference: str) -> bool:
        return Path(source_reference).suffix.lower() in _SUFFIXES

    async def extract(self, source_reference: str) -> list[TextSegment]:
        text = await asyncio.to_thread(self._read, source_reference)
        logger.info("text_extracted", source_reference=source_reference, chars=len(text))
        return [
            TextSegment(
                content=text,
                source_metadata={
                    "source_reference": source_reference,
                    "source_kind": SourceKind.FILE.value,
                    "page_number": 1,
                },
            )
        ]

    def get_provider_name(self) -> str:
        return "plain_text"

    def _read(self, file_path: str) -> str:
        path = Path(file_path)
        if not path.is_file():
            raise ExtractionError(
                message=f"File not found: {file_path}",
                provider_name=self.get_provider_name(),
            )
        try:
            text = path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as exc:
            raise ExtractionError(
                message=f"Could not read {file_path} as UTF-8 text: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        if not text:
            raise ExtractionError(
                message=f"No text in {file_path}",
                provider_name=self.get_provider_name(),
            )
        return text
