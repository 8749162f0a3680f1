"""Document management: upload, list, fetch and delete knowledge-base files.

# ─── ARCHITECTURE ROLE ───────────────────────────────────────────────
#
# Layer: Services.  Used by the HTTP routes and the CLI.
#
# An upload is validated synchronously (type allow-list, size cap,
# non-empty payload) and rejected with ValidationError before anything is
# stored.  A valid upload creates a PROCESSING document row and schedules
# ingestion as a background asyncio task; the caller gets the document
# back immediately and polls its status.
#
# Deleting a document is unconditional.  An ingestion still running for it
# finds the row gone at its final commit and writes nothing.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from pathlib import PurePath
from typing import TYPE_CHECKING

import structlog

from src.models.document import Document, DocumentStatus, SupportedTypes
from src.utils.errors import StorageFailure, ValidationError

if TYPE_CHECKING:
    from src.interfaces.document_repository import IDocumentRepository
    from src.interfaces.vector_store_provider import IVectorStoreProvider
    from src.models.rag import IngestionResult
    from src.services.ingestion.ingestion_service import IngestionService

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_MAX_UPLOAD_BYTES = 20 * 1024 * 1024

# Accepted MIME types and the extension each one corresponds to.
ALLOWED_MIME_TYPES: dict[str, str] = {
    "application/pdf": ".pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "text/plain": ".txt",
    "text/markdown": ".md",
}

# Aliases some clients send for the accepted types.
_MIME_ALIASES: dict[str, str] = {
    "text/x-markdown": "text/markdown",
    "application/x-pdf": "application/pdf",
}

# Content types that say nothing about the payload; the extension decides.
_GENERIC_MIME_TYPES = frozenset({"", "application/octet-stream", "binary/octet-stream"})

_EXTENSION_TO_MIME: dict[str, str] = {ext: mime for mime, ext in ALLOWED_MIME_TYPES.items()}
_EXTENSION_TO_MIME[".markdown"] = "text/markdown"

_UNEXPECTED_FAILURE_MESSAGE = "Unexpected error while processing the document"
_INTERRUPTED_MESSAGE = "Processing was interrupted by a restart; please upload the document again"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DocumentService:
    """Owns the upload lifecycle and background ingestion tasks.

    Parameters
    ----------
    documents:
        Document metadata persistence.
    vector_store:
        Chunk storage; deleting through it cascades to chunks.
    ingestion:
        Pipeline run for each accepted upload.
    max_upload_bytes:
        Upload size cap (inclusive).
    """

    def __init__(
        self,
        documents: IDocumentRepository,
        vector_store: IVectorStoreProvider,
        ingestion: IngestionService,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self._documents = documents
        self._vector_store = vector_store
        self._ingestion = ingestion
        self._max_upload_bytes = max_upload_bytes
        # Strong references keep running tasks from being garbage collected.
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def supported_types(self) -> SupportedTypes:
        return SupportedTypes(
            extensions=sorted(set(ALLOWED_MIME_TYPES.values())),
            mime_types=sorted(ALLOWED_MIME_TYPES),
            max_size_bytes=self._max_upload_bytes,
        )

    def resolve_mime_type(self, filename: str, mime_type: str | None) -> str:
        """Return the accepted MIME type for an upload or raise ``ValidationError`` (415).

        Parameters are stripped (``text/plain; charset=utf-8`` is
        ``text/plain``).  A missing or generic content type falls back to
        the filename's extension.
        """
        normalized = (mime_type or "").split(";", 1)[0].strip().lower()
        normalized = _MIME_ALIASES.get(normalized, normalized)
        if normalized in ALLOWED_MIME_TYPES:
            return normalized
        if normalized in _GENERIC_MIME_TYPES:
            extension = PurePath(filename or "").suffix.lower()
            if extension in _EXTENSION_TO_MIME:
                return _EXTENSION_TO_MIME[extension]
        raise ValidationError(
            message=(
                f"Unsupported file type '{mime_type or 'unknown'}'. "
                "Accepted: PDF, Word (.docx), plain text and Markdown."
            ),
            status_code=415,
        )

    def validate_upload(self, filename: str, mime_type: str | None, size: int) -> str:
        """Check type and size; return the normalized MIME type."""
        resolved = self.resolve_mime_type(filename, mime_type)
        if size <= 0:
            raise ValidationError(message="Uploaded file is empty", status_code=400)
        if size > self._max_upload_bytes:
            raise ValidationError(
                message=(
                    f"File exceeds the {self._max_upload_bytes // (1024 * 1024)} MB limit"
                ),
                status_code=413,
            )
        return resolved

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload(
        self,
        assistant_id: str,
        filename: str,
        mime_type: str | None,
        payload: bytes,
        name: str | None = None,
    ) -> Document:
        """Validate, record and schedule ingestion of one uploaded file.

        Returns the new document in PROCESSING status.

        Raises
        ------
        ValidationError
            The upload was rejected; nothing was stored.
        StorageFailure
            The document row could not be created; nothing was scheduled.
        """
        if not assistant_id or not assistant_id.strip():
            raise ValidationError(message="assistant_id is required", status_code=400)
        resolved_mime = self.validate_upload(filename, mime_type, len(payload))

        original_filename = PurePath(filename or "").name or "upload"
        display_name = (name or "").strip() or PurePath(original_filename).stem or original_filename
        now = _utc_now()
        document = Document(
            document_id=str(uuid.uuid4()),
            assistant_id=assistant_id,
            name=display_name,
            original_filename=original_filename,
            mime_type=resolved_mime,
            file_size=len(payload),
            status=DocumentStatus.PROCESSING,
            created_at=now,
            updated_at=now,
        )
        document = await self._documents.create_document(document)

        task = asyncio.create_task(
            self._run_ingestion(document, payload),
            name=f"ingest-{document.document_id}",
        )
        self._tasks[document.document_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(document.document_id, None))

        logger.info(
            "document_upload_accepted",
            document_id=document.document_id,
            assistant_id=assistant_id,
            mime_type=resolved_mime,
            file_size=len(payload),
        )
        return document

    async def _run_ingestion(self, document: Document, payload: bytes) -> None:
        try:
            result: IngestionResult = await self._ingestion.ingest_payload(
                document.document_id, payload, document.mime_type
            )
        except asyncio.CancelledError:
            logger.info("ingestion_task_cancelled", document_id=document.document_id)
            raise
        except Exception:
            # Task boundary: nothing above us would see this exception.
            logger.exception("ingestion_task_crashed", document_id=document.document_id)
            try:
                await self._documents.mark_error(document.document_id, _UNEXPECTED_FAILURE_MESSAGE)
            except StorageFailure as exc:
                logger.error(
                    "ingestion_error_not_recorded",
                    document_id=document.document_id,
                    error=str(exc),
                )
            return

        logger.info(
            "ingestion_task_finished",
            document_id=document.document_id,
            status=result.status.value,
            chunks=result.chunks_created,
            discarded=result.discarded,
        )

    async def wait_for(self, assistant_id: str, document_id: str) -> Document | None:
        """Wait for one document's ingestion to finish and return its final state."""
        task = self._tasks.get(document_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return await self.get_document(assistant_id, document_id)

    async def drain(self) -> None:
        """Wait until every scheduled ingestion task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel in-flight ingestions.

        Their documents stay PROCESSING until the next startup calls
        :meth:`recover_interrupted`.
        """
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def recover_interrupted(self) -> int:
        """Fail documents left PROCESSING by a previous process; return the count."""
        return await self._documents.fail_processing(_INTERRUPTED_MESSAGE)

    # ------------------------------------------------------------------
    # Queries / deletion
    # ------------------------------------------------------------------

    async def list_documents(
        self,
        assistant_id: str,
        status: DocumentStatus | None = None,
    ) -> list[Document]:
        return await self._documents.list_documents(assistant_id, status)

    async def get_document(self, assistant_id: str, document_id: str) -> Document | None:
        """Return the document only if it belongs to *assistant_id*."""
        document = await self._documents.get_document(document_id)
        if document is None or document.assistant_id != assistant_id:
            return None
        return document

    async def delete_document(self, assistant_id: str, document_id: str) -> bool:
        """Delete the document and all its chunks.

        Returns ``False`` if it does not exist or belongs to another assistant.
        """
        document = await self.get_document(assistant_id, document_id)
        if document is None:
            return False
        deleted = await self._vector_store.delete_document(document_id)
        logger.info(
            "document_delete_requested",
            document_id=document_id,
            assistant_id=assistant_id,
            was_status=document.status.value,
            deleted=deleted,
        )
        return deleted
