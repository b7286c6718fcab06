"""PDF source extractor backed by PyMuPDF.

Reads a PDF page-by-page and returns one :class:`TextSegment` per page
that carries text, tagged with its 1-based ``page_number``.  Pages with
no extractable text (blank or image-only) are skipped; a document with
no text at all is an extraction failure rather than an empty collection.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from src.interfaces.source_extractor import ISourceExtractor
from src.models.ingestion import SourceKind
from src.models.rag import TextSegment
from src.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)


class PDFExtractor(ISourceExtractor):
    """Extracts per-page text segments from PDF files."""

    def supports(self, source_reference: str) -> bool:
        return Path(source_reference).suffix.lower() == ".pdf"

    async def extract(self, source_reference: str) -> list[TextSegment]:
        pages = await asyncio.to_thread(self._extract_pages, source_reference)

        segments = [
            TextSegment(
                content=text,
                source_metadata={
                    "source_reference": source_reference,
                    "source_kind": SourceKind.FILE.value,
                    "page_number": page_number,
                },
            )
            for page_number, text in pages
        ]
        logger.info(
            "pdf_extracted",
            source_reference=source_reference,
            pages_with_text=len(segments),
        )
        return segments

    def get_provider_name(self) -> str:
        return "pymupdf"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _extract_pages(self, file_path: str) -> list[tuple[int, str]]:
        """Return ``(page_number, page_text)`` for every page with text.

        Raises
        ------
        ExtractionError
            If the file is missing, cannot be opened as a PDF, or contains
            no extractable text.
        """
        if not Path(file_path).is_file():
            raise ExtractionError(
                message=f"File not found: {file_path}",
                provider_name=self.get_provider_name(),
            )

        try:
            doc = fitz.open(file_path)
        except Exception as exc:
            raise ExtractionError(
                message=f"Could not open PDF {file_path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        pages: list[tuple[int, str]] = []
        try:
            if not doc.is_pdf:
                raise ExtractionError(
                    message=f"Not a PDF document: {file_path}",
                    provider_name=self.get_provider_name(),
                )
            for page_num in range(len(doc)):
                text = doc[page_num].get_text("text").strip()
                if text:
                    pages.append((page_num + 1, text))
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(
                message=f"Could not read PDF {file_path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        finally:
            doc.close()

        if not pages:
            raise ExtractionError(
                message=f"No extractable text in {file_path}",
                provider_name=self.get_provider_name(),
            )
        return pages
