"""Overlapping, paragraph-preserving text chunking.

Splits extracted :class:`~src.models.rag.TextSegment` objects into
windows sized for embedding models (~500 tokens with ~100 tokens of
overlap) and gives every window a stable ``segment_id``.

Chunk boundaries align with paragraph breaks (double newlines) where
possible.  A paragraph longer than the budget on its own is split at
sentence boundaries with an abbreviation-aware splitter that does not
break on "Dr.", "vs.", etc.  Consecutive windows share trailing
paragraphs (or sentences) up to the overlap budget so a fact that
straddles a boundary is retrievable from at least one window.

Token counts use the ``len(text) // 4`` approximation.
"""

from __future__ import annotations

import re

import structlog

from src.models.rag import TextSegment, segment_hash

logger = structlog.get_logger(logger_name=__name__)

# Periods after these never end a sentence.
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "Fig",
        "Vol",
        "No",
        "vs",
        "etc",
        "approx",
        "e.g",
        "i.e",
        "inc",
        "ltd",
        "co",
    }
)

_Part = tuple[str, int]  # (text, token_count)


def count_tokens(text: str) -> int:
    """Approximate token count of *text*."""
    return len(text) // 4


class TextChunker:
    """Splits segments into overlapping windows with stable ids.

    Parameters
    ----------
    chunk_size:
        Target maximum token count per window (default 500).
    overlap:
        Maximum tokens carried over from the end of one window into the
        next (default 100).
    """

    def __init__(self, chunk_size: int = 500, overlap: int = 100) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= overlap < chunk_size:
            raise ValueError("overlap must be >= 0 and smaller than chunk_size")
        self._chunk_size = chunk_size
        self._overlap = overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def split(self, segments: list[TextSegment], collection_id: str) -> list[TextSegment]:
        """Split *segments* into windows, numbering them across the document.

        Each window inherits its parent's ``source_metadata`` plus a
        document-wide ``chunk_index``.  Its ``segment_id`` hashes the
        collection id, source reference, parent position, chunk index and
        content, so the same document always yields the same ids.
        """
        windows: list[TextSegment] = []
        for segment in segments:
            metadata = dict(segment.source_metadata)
            position = metadata.get("page_number", metadata.get("start_seconds", ""))
            for text in self.chunk_text(segment.content):
                chunk_index = len(windows)
                windows.append(
                    TextSegment(
                        segment_id=segment_hash(
                            collection_id,
                            metadata.get("source_reference", ""),
                            position,
                            chunk_index,
                            text,
                        ),
                        content=text,
                        source_metadata={**metadata, "chunk_index": chunk_index},
                    )
                )

        logger.debug(
            "chunking_complete",
            collection_id=collection_id,
            segments_in=len(segments),
            segments_out=len(windows),
        )
        return windows

    def chunk_text(self, text: str) -> list[str]:
        """Split one block of text into overlapping windows.

        Blank input returns an empty list.
        """
        if not text or not text.strip():
            return []
        return self._accumulate(self._split_paragraphs(text), joiner="\n\n", allow_split=True)

    # ------------------------------------------------------------------
    # Paragraph / sentence splitting
    # ------------------------------------------------------------------

    @staticmethod
    def _split_paragraphs(text: str) -> list[str]:
        parts = re.split(r"\n\s*\n", text)
        return [p.strip() for p in parts if p.strip()]

    @staticmethod
    def _split_sentences(text: str) -> list[str]:
        """Split *text* at ``.``, ``!`` or ``?`` followed by whitespace.

        Periods after known abbreviations are masked with ``\\x00`` first;
        the mask has the same length, so match offsets index the original.
        """
        masked = text
        for abbr in _ABBREVIATIONS:
            masked = re.sub(rf"\b{re.escape(abbr)}\.", f"{abbr}\x00", masked)

        sentences: list[str] = []
        last = 0
        for match in re.finditer(r"[.!?](?:\s|$)", masked):
            sentence = text[last : match.end()].strip()
            if sentence:
                sentences.append(sentence)
            last = match.end()

        remainder = text[last:].strip()
        if remainder:
            sentences.append(remainder)
        return sentences or [text]

    # ------------------------------------------------------------------
    # Window accumulation
    # ------------------------------------------------------------------

    def _accumulate(self, pieces: list[str], joiner: str, allow_split: bool) -> list[str]:
        """Greedily pack *pieces* into windows of at most ``chunk_size`` tokens.

        With *allow_split*, a piece that is over budget on its own is
        re-chunked at sentence level.  A single sentence over budget is
        kept whole.
        """
        windows: list[str] = []
        current: list[_Part] = []
        current_tokens = 0

        for piece in pieces:
            tokens = count_tokens(piece)

            if allow_split and tokens > self._chunk_size:
                if current:
                    windows.append(joiner.join(t for t, _ in current))
                    current, current_tokens = [], 0
                windows.extend(
                    self._accumulate(self._split_sentences(piece), joiner=" ", allow_split=False)
                )
                continue

            if current and current_tokens + tokens > self._chunk_size:
                windows.append(joiner.join(t for t, _ in current))
                current, current_tokens = self._tail(current)

            current.append((piece, tokens))
            current_tokens += tokens

        if current:
            windows.append(joiner.join(t for t, _ in current))
        return windows

    def _tail(self, parts: list[_Part]) -> tuple[list[_Part], int]:
        """Return the trailing *parts* whose combined tokens fit the overlap."""
        kept: list[_Part] = []
        total = 0
        for text, tokens in reversed(parts):
            if total + tokens > self._overlap:
                break
            kept.insert(0, (text, tokens))
            total += tokens
        return kept, total
