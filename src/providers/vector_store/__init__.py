"""Vector store provider implementations.

ChromaDB is the sole vector store implementation: one collection per
collection id, cosine similarity, local persistence or a remote Chroma
server.  To swap it for another database, implement IVectorStoreProvider
and wire it in main.py.
"""

from src.providers.vector_store.chromadb_provider import ChromaDBProvider, build_chroma_client

__all__ = ["ChromaDBProvider", "build_chroma_client"]
