"""Vector store provider implementations.

SQLiteVectorStore is the only implementation.  Documents and chunk
embeddings share one SQLite database file (DATABASE_PATH, default
``data/knowledge.db``), so committing a document's chunks and flipping it
to READY is a single local transaction.  Similarity is computed in-process
with numpy over the querying assistant's READY chunks.

To move to a dedicated vector database, implement IVectorStoreProvider and
IDocumentRepository and wire the new class in main.py.
"""

from src.providers.vector_store.sqlite_vector_store import SQLiteVectorStore

__all__ = ["SQLiteVectorStore"]
