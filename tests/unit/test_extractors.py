"""Unit tests for source extractors and the DocumentExtractor dispatcher."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from youtube_transcript_api import TranscriptsDisabled

from src.interfaces.source_extractor import ISourceExtractor
from src.models.ingestion import SourceKind
from src.models.rag import TextSegment
from src.providers.extraction import (
    PDFExtractor,
    PlainTextExtractor,
    WebPageExtractor,
    YouTubeTranscriptExtractor,
    parse_video_id,
)
from src.services.ingestion.extractor import DocumentExtractor
from src.utils.errors import ExtractionError

# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------


class TestPDFExtractor:
    @pytest.mark.asyncio()
    async def test_one_segment_per_page(self, pdf_factory) -> None:
        path = pdf_factory("doc.pdf", ["The sky is blue.", "Grass is green."])
        segments = await PDFExtractor().extract(str(path))

        assert [s.content for s in segments] == ["The sky is blue.", "Grass is green."]
        assert [s.page_number for s in segments] == [1, 2]
        assert segments[0].source_metadata["source_reference"] == str(path)
        assert segments[0].source_metadata["source_kind"] == "file"

    @pytest.mark.asyncio()
    async def test_same_file_extracts_identically(self, pdf_factory) -> None:
        path = pdf_factory("doc.pdf", ["The sky is blue.", "", "Grass is green."])
        extractor = PDFExtractor()

        first = await extractor.extract(str(path))
        second = await extractor.extract(str(path))

        assert [s.content for s in first] == [s.content for s in second]
        assert [s.page_number for s in first] == [s.page_number for s in second]
        assert [s.source_metadata for s in first] == [s.source_metadata for s in second]

    @pytest.mark.asyncio()
    async def test_blank_pages_are_skipped(self, pdf_factory) -> None:
        path = pdf_factory("doc.pdf", ["", "Only page two has text."])
        segments = await PDFExtractor().extract(str(path))

        assert len(segments) == 1
        assert segments[0].page_number == 2

    @pytest.mark.asyncio()
    async def test_pdf_without_text_fails(self, pdf_factory) -> None:
        path = pdf_factory("blank.pdf", ["", ""])
        with pytest.raises(ExtractionError, match="No extractable text"):
            await PDFExtractor().extract(str(path))

    @pytest.mark.asyncio()
    async def test_corrupted_pdf_fails(self, tmp_path) -> None:
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"this is not a pdf at all")
        with pytest.raises(ExtractionError):
            await PDFExtractor().extract(str(path))

    @pytest.mark.asyncio()
    async def test_missing_file_fails(self, tmp_path) -> None:
        with pytest.raises(ExtractionError, match="File not found"):
            await PDFExtractor().extract(str(tmp_path / "absent.pdf"))

    def test_supports_pdf_suffix_only(self) -> None:
        extractor = PDFExtractor()
        assert extractor.supports("/data/Report.PDF")
        assert not extractor.supports("/data/notes.txt")


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------


class TestPlainTextExtractor:
    @pytest.mark.asyncio()
    async def test_whole_file_is_one_segment(self, tmp_path) -> None:
        path = tmp_path / "notes.md"
        path.write_text("# Title\n\nFirst paragraph.\n\nSecond paragraph.\n", encoding="utf-8")
        (segment,) = await PlainTextExtractor().extract(str(path))

        assert segment.content == "# Title\n\nFirst paragraph.\n\nSecond paragraph."
        assert segment.page_number == 1

    @pytest.mark.asyncio()
    async def test_empty_file_fails(self, tmp_path) -> None:
        path = tmp_path / "empty.txt"
        path.write_text("  \n", encoding="utf-8")
        with pytest.raises(ExtractionError, match="No text"):
            await PlainTextExtractor().extract(str(path))

    @pytest.mark.asyncio()
    async def test_binary_file_fails(self, tmp_path) -> None:
        path = tmp_path / "binary.txt"
        path.write_bytes(b"\xff\xfe\x00\x80\x81")
        with pytest.raises(ExtractionError, match="UTF-8"):
            await PlainTextExtractor().extract(str(path))

    def test_supports(self) -> None:
        extractor = PlainTextExtractor()
        assert extractor.supports("a.txt")
        assert extractor.supports("b.markdown")
        assert not extractor.supports("c.pdf")


# ---------------------------------------------------------------------------
# YouTube
# ---------------------------------------------------------------------------


class TestParseVideoId:
    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtube.com/watch?v=dQw4w9WgXcQ&t=42s",
            "https://m.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ?si=abc",
            "https://www.youtube.com/shorts/dQw4w9WgXcQ",
            "https://www.youtube.com/embed/dQw4w9WgXcQ",
            "https://www.youtube.com/live/dQw4w9WgXcQ",
        ],
    )
    def test_recognised_forms(self, url: str) -> None:
        assert parse_video_id(url) == "dQw4w9WgXcQ"

    @pytest.mark.parametrize(
        "url",
        [
            "https://vimeo.com/123456",
            "https://www.youtube.com/watch?v=short",
            "https://www.youtube.com/channel/UC123",
            "not a url",
        ],
    )
    def test_rejected_forms(self, url: str) -> None:
        assert parse_video_id(url) is None


def _snippet(start: float, text: str) -> SimpleNamespace:
    return SimpleNamespace(start=start, text=text, duration=5.0)


class TestYouTubeTranscriptExtractor:
    @pytest.mark.asyncio()
    async def test_snippets_grouped_into_windows(self) -> None:
        api = MagicMock()
        api.fetch.return_value = [
            _snippet(0.0, "Welcome to the talk."),
            _snippet(10.5, "Today we cover  retrieval."),
            _snippet(65.0, "First, embeddings."),
            _snippet(70.0, "\n"),
            _snippet(130.2, "Questions?"),
        ]
        extractor = YouTubeTranscriptExtractor(window_seconds=60, languages=["en"], api=api)
        url = "https://youtu.be/dQw4w9WgXcQ"

        segments = await extractor.extract(url)

        api.fetch.assert_called_once_with("dQw4w9WgXcQ", languages=["en"])
        assert [s.source_metadata["start_seconds"] for s in segments] == [0, 65, 130]
        assert segments[0].content == "Welcome to the talk. Today we cover retrieval."
        assert segments[1].content == "First, embeddings."
        assert segments[0].source_metadata["video_id"] == "dQw4w9WgXcQ"
        assert segments[0].source_metadata["source_kind"] == SourceKind.URL.value

    @pytest.mark.asyncio()
    async def test_missing_transcript_is_permanent_failure(self) -> None:
        api = MagicMock()
        api.fetch.side_effect = TranscriptsDisabled("dQw4w9WgXcQ")
        extractor = YouTubeTranscriptExtractor(api=api)

        with pytest.raises(ExtractionError, match="TranscriptsDisabled") as exc_info:
            await extractor.extract("https://youtu.be/dQw4w9WgXcQ")
        assert exc_info.value.transient is False

    @pytest.mark.asyncio()
    async def test_network_error_is_transient(self) -> None:
        api = MagicMock()
        api.fetch.side_effect = ConnectionError("reset")
        extractor = YouTubeTranscriptExtractor(api=api)

        with pytest.raises(ExtractionError) as exc_info:
            await extractor.extract("https://youtu.be/dQw4w9WgXcQ")
        assert exc_info.value.transient is True

    @pytest.mark.asyncio()
    async def test_empty_transcript_fails(self) -> None:
        api = MagicMock()
        api.fetch.return_value = [_snippet(0.0, "  ")]
        extractor = YouTubeTranscriptExtractor(api=api)

        with pytest.raises(ExtractionError, match="empty"):
            await extractor.extract("https://youtu.be/dQw4w9WgXcQ")

    def test_supports_only_video_urls(self) -> None:
        extractor = YouTubeTranscriptExtractor(api=MagicMock())
        assert extractor.supports("https://www.youtube.com/watch?v=dQw4w9WgXcQ")
        assert not extractor.supports("https://example.com/article")


# ---------------------------------------------------------------------------
# Web pages
# ---------------------------------------------------------------------------

_ARTICLE_HTML = """
<html><head><title>Colours</title></head>
<body>
<nav>Home | About | Contact</nav>
<article>
<h1>Why the sky is blue</h1>
<p>The sky is blue because air molecules scatter short wavelengths of
sunlight far more strongly than long ones. This effect is called Rayleigh
scattering and it explains the colour of the daytime sky.</p>
<p>At sunset light travels through more atmosphere, so the blue is scattered
away before it reaches the observer and the sky turns red and orange.</p>
</article>
<footer>Copyright 2024</footer>
</body></html>
"""


def _web_extractor(handler) -> WebPageExtractor:
    return WebPageExtractor(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestWebPageExtractor:
    @pytest.mark.asyncio()
    async def test_extracts_main_content(self) -> None:
        extractor = _web_extractor(lambda request: httpx.Response(200, text=_ARTICLE_HTML))
        (segment,) = await extractor.extract("https://example.com/sky")
        await extractor.close()

        assert "Rayleigh" in segment.content
        assert segment.source_metadata["source_kind"] == "url"

    @pytest.mark.asyncio()
    async def test_server_error_is_transient(self) -> None:
        extractor = _web_extractor(lambda request: httpx.Response(503))
        with pytest.raises(ExtractionError) as exc_info:
            await extractor.extract("https://example.com/sky")
        assert exc_info.value.transient is True

    @pytest.mark.asyncio()
    async def test_not_found_is_permanent(self) -> None:
        extractor = _web_extractor(lambda request: httpx.Response(404))
        with pytest.raises(ExtractionError, match="HTTP 404") as exc_info:
            await extractor.extract("https://example.com/missing")
        assert exc_info.value.transient is False

    def test_supports_http_urls(self) -> None:
        extractor = _web_extractor(lambda request: httpx.Response(200))
        assert extractor.supports("https://example.com/a")
        assert not extractor.supports("ftp://example.com/a")
        assert not extractor.supports("/local/file.pdf")


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


def _strategy(name: str, supported: bool, segments: list[TextSegment] | None = None) -> MagicMock:
    strategy = MagicMock(spec=ISourceExtractor)
    strategy.supports.return_value = supported
    strategy.get_provider_name.return_value = name
    strategy.extract = AsyncMock(return_value=segments or [])
    return strategy


class TestDocumentExtractor:
    def test_first_supporting_strategy_wins(self, job_factory) -> None:
        first = _strategy("youtube", supported=False)
        second = _strategy("web", supported=True)
        third = _strategy("other", supported=True)
        extractor = DocumentExtractor({SourceKind.URL: [first, second, third]})

        job = job_factory(source_kind=SourceKind.URL, source_reference="https://example.com")
        assert extractor.resolve(job) is second

    def test_dispatch_is_by_source_kind(self, job_factory) -> None:
        extractor = DocumentExtractor({SourceKind.URL: [_strategy("web", supported=True)]})
        with pytest.raises(ExtractionError, match="No extractor supports file source"):
            extractor.resolve(job_factory(source_kind=SourceKind.FILE))

    @pytest.mark.asyncio()
    async def test_returns_segments(self, job_factory) -> None:
        segments = [TextSegment(content="The sky is blue.")]
        extractor = DocumentExtractor({SourceKind.FILE: [_strategy("pdf", True, segments)]})
        assert await extractor.extract(job_factory()) == segments

    @pytest.mark.asyncio()
    async def test_empty_result_is_an_error(self, job_factory) -> None:
        extractor = DocumentExtractor({SourceKind.FILE: [_strategy("pdf", True, [])]})
        with pytest.raises(ExtractionError, match="No text extracted"):
            await extractor.extract(job_factory())
