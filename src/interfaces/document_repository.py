"""Abstract base class for document metadata persistence.

Documents move through ``processing -> ready | error``.  The repository
creates them in PROCESSING and records failures; the READY transition is
owned by :meth:`IVectorStoreProvider.store` because it must commit together
with the chunks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.document import Document, DocumentStatus


# Concrete implementation: SQLiteVectorStore (src/providers/vector_store/)
# serves both this interface and IVectorStoreProvider from one database so
# that document status and chunk rows share a transaction.
class IDocumentRepository(ABC):
    """Contract for storing and querying uploaded-document records."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indexes if they do not exist.  Safe to call repeatedly."""

    @abstractmethod
    async def create_document(self, document: Document) -> Document:
        """Insert a new PROCESSING document and return it."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        """Return the document, or ``None`` if it does not exist."""

    @abstractmethod
    async def list_documents(
        self,
        assistant_id: str,
        status: DocumentStatus | None = None,
    ) -> list[Document]:
        """Return the assistant's documents, newest first, optionally by status."""

    @abstractmethod
    async def mark_error(self, document_id: str, error_message: str) -> bool:
        """Move a PROCESSING document to ERROR with *error_message*.

        Returns ``False`` when the document no longer exists or has already
        reached a terminal status.
        """

    @abstractmethod
    async def has_ready_documents(self, assistant_id: str) -> bool:
        """Return ``True`` if the assistant has at least one READY document."""

    @abstractmethod
    async def fail_processing(self, error_message: str) -> int:
        """Move every PROCESSING document to ERROR; return how many changed.

        Used at startup for documents whose ingestion was interrupted by a
        restart and will never finish.
        """
