"""Web page source extractor using httpx and trafilatura.

Fetches HTML via httpx and keeps only the main content via trafilatura,
stripping navigation, ads, and boilerplate.  Used for any http(s) URL
that is not a YouTube video.
"""

from __future__ import annotations

from urllib.parse import urlparse

import httpx
import structlog
import trafilatura

from src.interfaces.source_extractor import ISourceExtractor
from src.models.ingestion import SourceKind
from src.models.rag import TextSegment
from src.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 15.0
_DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; docchat/0.1)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


class WebPageExtractor(ISourceExtractor):
    """Article text extraction backed by httpx + trafilatura."""

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(_DEFAULT_TIMEOUT),
            headers=_DEFAULT_HEADERS,
            follow_redirects=True,
        )

    def supports(self, source_reference: str) -> bool:
        parsed = urlparse(source_reference)
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)

    async def extract(self, source_reference: str) -> list[TextSegment]:
        try:
            response = await self._client.get(source_reference)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ExtractionError(
                message=f"Timeout fetching {source_reference}",
                provider_name=self.get_provider_name(),
                transient=True,
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise ExtractionError(
                message=f"HTTP {exc.response.status_code} for {source_reference}",
                provider_name=self.get_provider_name(),
                transient=exc.response.status_code >= 500,
            ) from exc
        except httpx.HTTPError as exc:
            raise ExtractionError(
                message=f"HTTP error fetching {source_reference}: {exc}",
                provider_name=self.get_provider_name(),
                transient=True,
            ) from exc

        text = trafilatura.extract(response.text, include_comments=False, include_tables=True)
        if not text:
            raise ExtractionError(
                message=f"No readable text at {source_reference}",
                provider_name=self.get_provider_name(),
            )

        logger.info("web_page_extracted", url=source_reference, text_length=len(text))
        return [
            TextSegment(
                content=text.strip(),
                source_metadata={
                    "source_reference": source_reference,
                    "source_kind": SourceKind.URL.value,
                    "page_number": 1,
                },
            )
        ]

    async def close(self) -> None:
        await self._client.aclose()

    def get_provider_name(self) -> str:
        return "web_page"
