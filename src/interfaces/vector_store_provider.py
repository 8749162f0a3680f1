"""Abstract base class for chunk/embedding storage and similarity search.

The vector store holds every chunk of every READY document together with
its embedding.  Two guarantees matter to callers:

* **Atomic readiness** -- :meth:`IVectorStoreProvider.store` writes all of
  a document's chunks and flips the document to READY in one transaction,
  so a concurrent search either sees the whole chunk set or none of it.
* **Query-level scoping** -- :meth:`IVectorStoreProvider.search` filters by
  assistant and by READY status inside the query itself; results are never
  post-filtered in Python.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.document import StoreStats
from src.models.rag import ChunkMatch, TextChunk


# Concrete implementation: SQLiteVectorStore (src/providers/vector_store/)
class IVectorStoreProvider(ABC):
    """Contract for vector-store services used by the RAG pipeline."""

    @abstractmethod
    async def store(
        self,
        document_id: str,
        chunks: list[TextChunk],
        embeddings: list[list[float]],
    ) -> bool:
        """Persist all chunks of a document and mark it READY, atomically.

        The write is conditional: it happens only while the document still
        exists and is still PROCESSING.

        Parameters
        ----------
        document_id:
            The document the chunks belong to.
        chunks:
            Chunker output, in index order.
        embeddings:
            One vector per chunk, positionally aligned with *chunks*.

        Returns
        -------
        bool
            ``True`` if committed; ``False`` if the document was deleted (or
            already left PROCESSING) and nothing was written.

        Raises
        ------
        ValueError
            If *chunks* and *embeddings* differ in length.
        src.utils.errors.StorageFailure
            If the transaction fails.
        """

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete a document and, by cascade, every chunk it owns.

        Returns ``True`` if a document row was removed.
        """

    @abstractmethod
    async def search(
        self,
        assistant_id: str,
        query_vector: list[float],
        top_k: int,
    ) -> list[ChunkMatch]:
        """Return up to *top_k* chunks of the assistant's READY documents.

        Ranked by cosine similarity (descending), ties broken by
        ``(document_id, chunk_index)`` ascending.
        """

    @abstractmethod
    async def count_chunks(self, document_id: str) -> int:
        """Return how many chunk rows are stored for *document_id*."""

    @abstractmethod
    async def get_stats(self) -> StoreStats:
        """Return aggregate document/chunk counts."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"sqlite"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store is initialized and usable."""
