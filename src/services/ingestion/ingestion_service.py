"""Orchestrator for the document ingestion pipeline.

Pipeline stages: **extract -> chunk -> embed -> commit**.

The :class:`IngestionService` implements the **Orchestrator pattern**: it
coordinates four collaborators (text extractor, chunker, embedding client,
vector store) without any of them knowing about each other.

Every run ends with the document in a terminal state:

    READY  -- all chunks and embeddings committed in one transaction,
              together with the status flip and ``chunks_count``
    ERROR  -- extraction failed, no text, no chunks, embedding failed or
              storage failed; ``error_message`` says which

If the document is deleted while its ingestion is in flight, the final
commit finds it gone, writes nothing, and the run is reported as
discarded.  Failures are never retried automatically, and no exception
escapes :meth:`IngestionService.ingest`; callers inspect the returned
:class:`~src.models.rag.IngestionResult` or poll the document.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog

from src.models.document import DocumentStatus
from src.models.rag import IngestionResult
from src.services.ingestion.chunker import TextChunker
from src.utils.errors import (
    EmbeddingFailure,
    ExtractionFailure,
    KnowledgeBaseError,
    StorageFailure,
)

if TYPE_CHECKING:
    from src.interfaces.document_repository import IDocumentRepository
    from src.interfaces.text_extractor import ITextExtractor
    from src.interfaces.vector_store_provider import IVectorStoreProvider
    from src.services.embedding_client import EmbeddingClient

logger = structlog.get_logger(logger_name=__name__)

NO_TEXT_MESSAGE = "The document contains no extractable text"
NO_CHUNKS_MESSAGE = "The document produced no chunks"


class IngestionService:
    """Orchestrates ingestion of one document: extract -> chunk -> embed -> commit.

    Parameters
    ----------
    chunker:
        Splits raw text into bounded windows.
    embedding_client:
        Batched, retrying access to the embedding model.
    vector_store:
        Persists chunks and flips the document to READY atomically.
    documents:
        Records ERROR outcomes on the document.
    extractor:
        Turns uploaded payloads into text for :meth:`ingest_payload`.
    """

    def __init__(
        self,
        chunker: TextChunker,
        embedding_client: EmbeddingClient,
        vector_store: IVectorStoreProvider,
        documents: IDocumentRepository,
        extractor: ITextExtractor,
    ) -> None:
        self._chunker = chunker
        self._embedding_client = embedding_client
        self._vector_store = vector_store
        self._documents = documents
        self._extractor = extractor

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest_payload(
        self,
        document_id: str,
        payload: bytes,
        mime_type: str,
    ) -> IngestionResult:
        """Extract text from an uploaded payload, then run :meth:`ingest`."""
        start = time.monotonic()
        logger.info("ingestion_started", document_id=document_id, mime_type=mime_type)
        try:
            raw_text = await asyncio.to_thread(self._extractor.extract, payload, mime_type)
        except ExtractionFailure as exc:
            return await self._fail(document_id, exc.message, start, stage="extraction")
        return await self._guarded_run(document_id, raw_text, start)

    async def ingest(self, document_id: str, raw_text: str) -> IngestionResult:
        """Chunk, embed and commit *raw_text* for a PROCESSING document.

        Returns
        -------
        IngestionResult
            The terminal status reached, chunk/token totals and timing.
        """
        start = time.monotonic()
        logger.info("ingestion_started", document_id=document_id)
        return await self._guarded_run(document_id, raw_text, start)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _guarded_run(self, document_id: str, raw_text: str, start: float) -> IngestionResult:
        try:
            return await self._run(document_id, raw_text, start)
        except KnowledgeBaseError as exc:
            # StorageFailure from the commit itself, or anything a
            # collaborator raised that _run did not map to a stage.
            return await self._fail(document_id, str(exc), start, stage="storage")

    async def _run(self, document_id: str, raw_text: str, start: float) -> IngestionResult:
        if not raw_text or not raw_text.strip():
            return await self._fail(document_id, NO_TEXT_MESSAGE, start, stage="extraction")

        chunks = self._chunker.chunk(raw_text)
        if not chunks:
            return await self._fail(document_id, NO_CHUNKS_MESSAGE, start, stage="chunking")
        total_tokens = sum(c.token_count for c in chunks)
        logger.info(
            "chunking_complete",
            document_id=document_id,
            chunks=len(chunks),
            total_tokens=total_tokens,
        )

        try:
            embeddings = await self._embedding_client.embed([c.content for c in chunks])
        except EmbeddingFailure as exc:
            return await self._fail(document_id, exc.message, start, stage="embedding")
        logger.info("embedding_complete", document_id=document_id, vectors=len(embeddings))

        try:
            committed = await self._vector_store.store(document_id, chunks, embeddings)
        except (StorageFailure, ValueError) as exc:
            return await self._fail(document_id, str(exc), start, stage="storage")

        elapsed = round(time.monotonic() - start, 3)
        if not committed:
            logger.info("ingestion_discarded", document_id=document_id, elapsed_s=elapsed)
            return IngestionResult(
                document_id=document_id,
                status=DocumentStatus.ERROR,
                ingestion_time=elapsed,
                error_message="Document was removed before ingestion finished",
                discarded=True,
            )

        logger.info(
            "ingestion_complete",
            document_id=document_id,
            chunks=len(chunks),
            total_tokens=total_tokens,
            elapsed_s=elapsed,
        )
        return IngestionResult(
            document_id=document_id,
            status=DocumentStatus.READY,
            chunks_created=len(chunks),
            total_tokens=total_tokens,
            ingestion_time=elapsed,
        )

    async def _fail(
        self,
        document_id: str,
        reason: str,
        start: float,
        stage: str,
    ) -> IngestionResult:
        """Record *reason* on the document and build the ERROR result."""
        elapsed = round(time.monotonic() - start, 3)
        logger.warning(
            "ingestion_failed",
            document_id=document_id,
            stage=stage,
            reason=reason,
            elapsed_s=elapsed,
        )
        try:
            recorded = await self._documents.mark_error(document_id, reason)
        except StorageFailure as exc:
            logger.error(
                "ingestion_error_not_recorded",
                document_id=document_id,
                error=str(exc),
            )
            recorded = False
        return IngestionResult(
            document_id=document_id,
            status=DocumentStatus.ERROR,
            ingestion_time=elapsed,
            error_message=reason,
            discarded=not recorded,
        )
