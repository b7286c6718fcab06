"""Abstract interfaces (ports) for every external collaborator.

Services depend only on these ABCs; concrete adapters live under
``src/providers/`` and are wired together in ``src/main.py`` and
``src/cli/worker.py``.
"""

from src.interfaces.auth_verifier import IAuthVerifier
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.job_queue import IJobQueue
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.source_extractor import ISourceExtractor
from src.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "IAuthVerifier",
    "IEmbeddingProvider",
    "IJobQueue",
    "ILLMProvider",
    "ISourceExtractor",
    "IVectorStoreProvider",
]
