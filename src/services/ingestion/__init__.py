"""Document ingestion pipeline: extract -> chunk -> embed -> store.

1. **Extract** (extractor.py / DocumentExtractor) -- dispatches a job on
   its source kind to a format-specific strategy (PDF, text, YouTube
   transcript, web page) that returns ordered text segments.

2. **Chunk** (chunker.py / TextChunker) -- splits segments into ~500-token
   overlapping windows on paragraph and sentence boundaries and assigns
   stable segment ids.

3. **Embed** (EmbeddingGateway) -- vectors with timeout and retry.

4. **Store** (IVectorStoreProvider) -- delete-then-upsert into the
   collection named by the job's collection id.

:class:`IngestionService` runs those stages for one job and records each
state transition.
"""

from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.extractor import DocumentExtractor
from src.services.ingestion.ingestion_service import IngestionService

__all__ = [
    "DocumentExtractor",
    "IngestionService",
    "TextChunker",
]
