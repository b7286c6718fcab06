"""docchat domain models - re-exports all public model classes.

The models are organized across three submodules by domain concern:
    - ingestion.py - ingestion jobs, source kinds, job states and status
    - rag.py - text segments, retrieval results, ingestion summaries
    - chat.py - chat turns returned to the caller
"""

from __future__ import annotations

from src.models.chat import ChatRole, ChatTurn
from src.models.ingestion import IngestionJob, JobState, JobStatus, SourceKind
from src.models.rag import (
    EmbeddingVector,
    IngestionResult,
    RetrievalResult,
    RetrievedSegment,
    TextSegment,
    segment_hash,
)

__all__ = [
    "ChatRole",
    "ChatTurn",
    "EmbeddingVector",
    "IngestionJob",
    "IngestionResult",
    "JobState",
    "JobStatus",
    "RetrievalResult",
    "RetrievedSegment",
    "SourceKind",
    "TextSegment",
    "segment_hash",
]
