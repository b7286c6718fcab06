"""Source extraction strategies, one per artifact format."""

from src.providers.extraction.pdf_extractor import PDFExtractor
from src.providers.extraction.text_extractor import PlainTextExtractor
from src.providers.extraction.web_page_extractor import WebPageExtractor
from src.providers.extraction.youtube_transcript_extractor import (
    YouTubeTranscriptExtractor,
    parse_video_id,
)

__all__ = [
    "PDFExtractor",
    "PlainTextExtractor",
    "WebPageExtractor",
    "YouTubeTranscriptExtractor",
    "parse_video_id",
]
