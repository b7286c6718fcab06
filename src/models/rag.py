"""RAG data models: text segments, retrieval results, ingestion summaries.

All models use frozen config so a segment cannot change between the
moment it is embedded and the moment it is stored.

RAG overview:

    1. EXTRACTION: an uploaded artifact (PDF, text file, transcript, web
       page) is read into ordered TextSegments, one per logical unit.
    2. CHUNKING: long segments are split into overlapping windows.
    3. EMBEDDING: every segment becomes a fixed-dimension vector.
    4. STORAGE: segments + vectors go into the collection named by the
       caller's collection id.
    5. RETRIEVAL: at chat time the question is embedded and the k nearest
       segments of that collection ground the model's answer.
"""

from __future__ import annotations

import hashlib
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

# One embedding: a fixed-length list of floats whose length equals the
# provider's declared dimension.
EmbeddingVector = list[float]

MetadataValue = Union[str, int, float, bool]


def segment_hash(*parts: object) -> str:
    """Return a stable SHA-256 hex digest over *parts*.

    Used as the vector-store id of a segment so that redelivering the same
    job rewrites entries instead of duplicating them.
    """
    digest = hashlib.sha256()
    for part in parts:
        digest.update(str(part).encode("utf-8"))
        digest.update(b"\x1f")
    return digest.hexdigest()


class TextSegment(BaseModel):
    """A unit of source text ready for embedding and storage."""

    model_config = ConfigDict(frozen=True)

    segment_id: str = Field(default="", description="Stable content hash; empty until chunked.")
    content: str = Field(description="The segment's text.")
    source_metadata: dict[str, MetadataValue] = Field(
        default_factory=dict,
        description=(
            "Provenance: source_reference, source_kind, page_number or "
            "start_seconds, chunk_index."
        ),
    )

    @property
    def page_number(self) -> int | None:
        value = self.source_metadata.get("page_number")
        return int(value) if value is not None else None


class RetrievedSegment(BaseModel):
    """A segment returned from a collection query with its relevance score."""

    model_config = ConfigDict(frozen=True)

    segment: TextSegment
    relevance_score: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Cosine similarity between the query and this segment.",
    )


# Ordered by descending relevance_score, at most k entries.
RetrievalResult = list[RetrievedSegment]


class IngestionResult(BaseModel):
    """Summary of one successful ingestion job."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    collection_id: str
    source_reference: str
    segments_extracted: int = Field(default=0, ge=0)
    segments_stored: int = Field(default=0, ge=0)
    duration_seconds: float = Field(default=0.0, ge=0.0)
