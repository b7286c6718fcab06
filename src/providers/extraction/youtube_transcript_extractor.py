"""YouTube transcript extractor backed by youtube-transcript-api.

Fetches the caption track of a video and groups the caption snippets
into fixed-length time windows so each segment carries enough context
to answer a question, tagged with the window's ``start_seconds``.
"""

from __future__ import annotations

import asyncio
import re
from urllib.parse import parse_qs, urlparse

import structlog
from youtube_transcript_api import CouldNotRetrieveTranscript, YouTubeTranscriptApi

from src.interfaces.source_extractor import ISourceExtractor
from src.models.ingestion import SourceKind
from src.models.rag import TextSegment
from src.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

_YOUTUBE_HOSTS = frozenset({
    "youtube.com",
    "www.youtube.com",
    "m.youtube.com",
    "music.youtube.com",
    "youtu.be",
})
_VIDEO_ID = re.compile(r"^[A-Za-z0-9_-]{11}$")
_PATH_PREFIXES = ("/shorts/", "/embed/", "/live/", "/v/")


def parse_video_id(url: str) -> str | None:
    """Return the 11-character video id in a YouTube *url*, or ``None``.

    Accepts ``watch?v=``, ``youtu.be/``, ``/shorts/``, ``/embed/`` and
    ``/live/`` forms.
    """
    parsed = urlparse(url.strip())
    host = (parsed.hostname or "").lower()
    if host not in _YOUTUBE_HOSTS:
        return None

    candidate: str | None = None
    if host == "youtu.be":
        candidate = parsed.path.lstrip("/").split("/")[0]
    elif parsed.path == "/watch":
        candidate = (parse_qs(parsed.query).get("v") or [None])[0]
    else:
        for prefix in _PATH_PREFIXES:
            if parsed.path.startswith(prefix):
                candidate = parsed.path[len(prefix):].split("/")[0]
                break

    if candidate and _VIDEO_ID.match(candidate):
        return candidate
    return None


class YouTubeTranscriptExtractor(ISourceExtractor):
    """Turns a YouTube video URL into time-windowed transcript segments.

    Parameters
    ----------
    window_seconds:
        Length of each transcript window.
    languages:
        Caption languages to try, in order of preference.
    """

    def __init__(
        self,
        window_seconds: float = 60.0,
        languages: list[str] | None = None,
        api: YouTubeTranscriptApi | None = None,
    ) -> None:
        self._window_seconds = window_seconds
        self._languages = languages or ["en"]
        self._api = api or YouTubeTranscriptApi()

    def supports(self, source_reference: str) -> bool:
        return parse_video_id(source_reference) is not None

    async def extract(self, source_reference: str) -> list[TextSegment]:
        video_id = parse_video_id(source_reference)
        if video_id is None:
            raise ExtractionError(
                message=f"Not a YouTube video URL: {source_reference}",
                provider_name=self.get_provider_name(),
            )

        try:
            transcript = await asyncio.to_thread(
                self._api.fetch, video_id, languages=self._languages
            )
        except CouldNotRetrieveTranscript as exc:
            raise ExtractionError(
                message=f"No transcript available for video {video_id}: {type(exc).__name__}",
                provider_name=self.get_provider_name(),
            ) from exc
        except OSError as exc:
            raise ExtractionError(
                message=f"Network error fetching transcript for {video_id}: {exc}",
                provider_name=self.get_provider_name(),
                transient=True,
            ) from exc

        windows = self._window([(snippet.start, snippet.text) for snippet in transcript])
        if not windows:
            raise ExtractionError(
                message=f"Transcript for video {video_id} is empty",
                provider_name=self.get_provider_name(),
            )

        segments = [
            TextSegment(
                content=text,
                source_metadata={
                    "source_reference": source_reference,
                    "source_kind": SourceKind.URL.value,
                    "video_id": video_id,
                    "start_seconds": int(start),
                },
            )
            for start, text in windows
        ]
        logger.info(
            "transcript_extracted",
            video_id=video_id,
            windows=len(segments),
        )
        return segments

    def get_provider_name(self) -> str:
        return "youtube_transcript"

    def _window(self, snippets: list[tuple[float, str]]) -> list[tuple[float, str]]:
        """Group ``(start, text)`` snippets into ``window_seconds`` buckets."""
        windows: list[tuple[float, str]] = []
        window_start: float | None = None
        parts: list[str] = []

        for start, text in snippets:
            text = " ".join(text.split())
            if not text:
                continue
            if window_start is None:
                window_start = start
            elif start - window_start >= self._window_seconds:
                windows.append((window_start, " ".join(parts)))
                window_start, parts = start, []
            parts.append(text)

        if window_start is not None and parts:
            windows.append((window_start, " ".join(parts)))
        return windows
