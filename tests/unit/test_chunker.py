"""Unit tests for the TextChunker - paragraph-aware overlapping text chunking."""

from __future__ import annotations

import pytest

from src.models.rag import TextSegment
from src.services.ingestion.chunker import TextChunker, count_tokens

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _paragraph(n: int) -> str:
    """A ~40-token paragraph whose first word identifies it."""
    text = f"Paragraph{n} " + "lorem ipsum dolor sit amet " * 6
    return text[:160].strip() + "."


def _segment(text: str, page: int, source: str = "/tmp/doc.pdf") -> TextSegment:
    return TextSegment(
        content=text,
        source_metadata={"source_reference": source, "source_kind": "file", "page_number": page},
    )


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_overlap_must_be_smaller_than_chunk_size(self) -> None:
        with pytest.raises(ValueError):
            TextChunker(chunk_size=100, overlap=100)

    def test_chunk_size_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            TextChunker(chunk_size=0, overlap=0)


class TestChunkText:
    def test_blank_text_yields_nothing(self) -> None:
        assert TextChunker().chunk_text("   \n\n  ") == []

    def test_short_text_is_one_window(self) -> None:
        assert TextChunker().chunk_text("  The sky is blue.  ") == ["The sky is blue."]

    def test_windows_keep_whole_paragraphs(self) -> None:
        paragraphs = [_paragraph(i) for i in range(6)]
        windows = TextChunker(chunk_size=100, overlap=40).chunk_text("\n\n".join(paragraphs))

        assert len(windows) > 1
        for window in windows:
            for part in window.split("\n\n"):
                assert part in paragraphs
        for paragraph in paragraphs:
            assert any(paragraph in window for window in windows)

    def test_consecutive_windows_overlap(self) -> None:
        paragraphs = [_paragraph(i) for i in range(6)]
        windows = TextChunker(chunk_size=100, overlap=40).chunk_text("\n\n".join(paragraphs))

        for current, following in zip(windows, windows[1:]):
            assert following.split("\n\n")[0] == current.split("\n\n")[-1]

    def test_no_overlap_when_disabled(self) -> None:
        paragraphs = [_paragraph(i) for i in range(6)]
        windows = TextChunker(chunk_size=100, overlap=0).chunk_text("\n\n".join(paragraphs))

        seen = [part for window in windows for part in window.split("\n\n")]
        assert seen == paragraphs

    def test_long_paragraph_splits_on_sentences(self) -> None:
        sentence = "The quick brown fox jumps over the lazy dog near the river bank."
        text = " ".join([sentence] * 40)
        windows = TextChunker(chunk_size=60, overlap=10).chunk_text(text)

        assert len(windows) > 1
        for window in windows:
            assert count_tokens(window) <= 60
            assert window.endswith(".")

    def test_abbreviations_do_not_end_sentences(self) -> None:
        sentences = TextChunker._split_sentences("Dr. Smith arrived late. He sat down vs. standing!")
        assert sentences == ["Dr. Smith arrived late.", "He sat down vs. standing!"]


class TestSplit:
    def test_chunk_index_runs_across_segments(self) -> None:
        chunker = TextChunker(chunk_size=100, overlap=0)
        segments = [
            _segment("\n\n".join(_paragraph(i) for i in range(3)), page=1),
            _segment("The sky is blue.", page=2),
        ]
        windows = chunker.split(segments, "abc-1")

        assert [w.source_metadata["chunk_index"] for w in windows] == list(range(len(windows)))
        assert windows[-1].source_metadata["page_number"] == 2
        assert windows[-1].content == "The sky is blue."
        assert all(w.source_metadata["source_reference"] == "/tmp/doc.pdf" for w in windows)

    def test_segment_ids_are_stable(self) -> None:
        chunker = TextChunker()
        segments = [_segment("The sky is blue.", page=1), _segment("Grass is green.", page=2)]

        first = [w.segment_id for w in chunker.split(segments, "abc-1")]
        second = [w.segment_id for w in chunker.split(segments, "abc-1")]

        assert first == second
        assert len(set(first)) == 2
        assert all(len(seg_id) == 64 for seg_id in first)

    def test_segment_ids_depend_on_collection(self) -> None:
        chunker = TextChunker()
        segments = [_segment("The sky is blue.", page=1)]

        a = chunker.split(segments, "abc-1")[0].segment_id
        b = chunker.split(segments, "abc-2")[0].segment_id
        assert a != b

    def test_transcript_windows_keep_start_seconds(self) -> None:
        segment = TextSegment(
            content="Welcome to the talk.",
            source_metadata={"source_reference": "https://youtu.be/x", "start_seconds": 65},
        )
        (window,) = TextChunker().split([segment], "talk-1")
        assert window.source_metadata["start_seconds"] == 65
        assert window.source_metadata["chunk_index"] == 0
