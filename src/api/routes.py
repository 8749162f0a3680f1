"""FastAPI API routes for the assistant knowledge base.

Provides REST endpoints for document upload, listing, status polling,
deletion, context retrieval and health.  Service dependencies are resolved
from ``app.state`` via FastAPI's ``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                                         Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/documents/supported-types                GET     Upload constraints
# /api/v1/assistants/{aid}/documents               POST    Upload -> 202, processing
# /api/v1/assistants/{aid}/documents               GET     List (optional ?status=)
# /api/v1/assistants/{aid}/documents/{did}         GET     Poll one document
# /api/v1/assistants/{aid}/documents/{did}         DELETE  Delete + cascade chunks
# /api/v1/assistants/{aid}/context                 POST    Retrieve + format context
# /api/v1/health                                   GET     Health check + store stats
#
# Rejected uploads raise ValidationError; ErrorHandlingMiddleware turns
# it into 400 / 413 / 415 with an ErrorResponse body.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Form, HTTPException, Query, Request, UploadFile

from src.api.schemas import (
    ContextRequest,
    ContextResponse,
    DeleteDocumentResponse,
    DocumentListResponse,
    DocumentResponse,
    ErrorResponse,
    HealthResponse,
    SupportedTypesResponse,
)
from src.config.settings import Settings
from src.models.document import DocumentStatus
from src.services.context_formatter import ContextFormatter
from src.services.document_service import DocumentService
from src.services.retrieval_service import RetrievalService
from src.utils.errors import StorageFailure, ValidationError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

# Uploads are read in 64 KB increments so an oversized file is rejected
# once the limit is crossed, without buffering the rest of it.
_UPLOAD_CHUNK_SIZE = 64 * 1024

_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Dependency injection helpers
# ---------------------------------------------------------------------------


def _get_document_service(request: Request) -> DocumentService:
    """Return the document service from application state."""
    return request.app.state.document_service


def _get_retrieval_service(request: Request) -> RetrievalService:
    """Return the retrieval service from application state."""
    return request.app.state.retrieval_service


def _get_context_formatter(request: Request) -> ContextFormatter:
    """Return the context formatter from application state."""
    return request.app.state.context_formatter


def _get_settings(request: Request) -> Settings:
    """Return the settings the application was built with."""
    return request.app.state.settings


DocumentServiceDep = Annotated[DocumentService, Depends(_get_document_service)]
RetrievalServiceDep = Annotated[RetrievalService, Depends(_get_retrieval_service)]
FormatterDep = Annotated[ContextFormatter, Depends(_get_context_formatter)]
SettingsDep = Annotated[Settings, Depends(_get_settings)]


async def _read_upload(file: UploadFile, max_bytes: int) -> bytes:
    """Read *file* fully, raising ``ValidationError`` (413) past *max_bytes*."""
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await file.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_bytes:
            raise ValidationError(
                message=f"File exceeds the {max_bytes // (1024 * 1024)} MB limit",
                status_code=413,
            )
        chunks.append(chunk)
    return b"".join(chunks)


# ---------------------------------------------------------------------------
# Document endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/documents/supported-types",
    response_model=SupportedTypesResponse,
    summary="List accepted upload types and the size limit",
)
async def supported_types(documents: DocumentServiceDep) -> SupportedTypesResponse:
    types = documents.supported_types()
    return SupportedTypesResponse(
        extensions=types.extensions,
        mime_types=types.mime_types,
        max_size_bytes=types.max_size_bytes,
        max_size_mb=types.max_size_bytes // (1024 * 1024),
    )


@router.post(
    "/assistants/{assistant_id}/documents",
    response_model=DocumentResponse,
    status_code=202,
    responses={
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        415: {"model": ErrorResponse},
    },
    summary="Upload a document to an assistant's knowledge base",
)
async def upload_document(
    assistant_id: str,
    file: UploadFile,
    documents: DocumentServiceDep,
    settings: SettingsDep,
    name: Annotated[str | None, Form()] = None,
) -> DocumentResponse:
    """Accept a PDF, DOCX, TXT or Markdown file and start processing it.

    Returns immediately with the document in ``processing`` status; poll
    the document endpoint until it becomes ``ready`` or ``error``.
    """
    filename = file.filename or "upload"
    # Type check first so a wrong type is reported as 415 even when large.
    documents.resolve_mime_type(filename, file.content_type)
    payload = await _read_upload(file, settings.max_upload_bytes)

    document = await documents.upload(
        assistant_id=assistant_id,
        filename=filename,
        mime_type=file.content_type,
        payload=payload,
        name=name,
    )
    return DocumentResponse.from_document(document)


@router.get(
    "/assistants/{assistant_id}/documents",
    response_model=DocumentListResponse,
    summary="List an assistant's documents",
)
async def list_documents(
    assistant_id: str,
    documents: DocumentServiceDep,
    status: Annotated[DocumentStatus | None, Query()] = None,
) -> DocumentListResponse:
    items = await documents.list_documents(assistant_id, status)
    return DocumentListResponse(
        assistant_id=assistant_id,
        documents=[DocumentResponse.from_document(d) for d in items],
        total=len(items),
    )


@router.get(
    "/assistants/{assistant_id}/documents/{document_id}",
    response_model=DocumentResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get one document (poll its processing status)",
)
async def get_document(
    assistant_id: str,
    document_id: str,
    documents: DocumentServiceDep,
) -> DocumentResponse:
    document = await documents.get_document(assistant_id, document_id)
    if document is None:
        raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
    return DocumentResponse.from_document(document)


@router.delete(
    "/assistants/{assistant_id}/documents/{document_id}",
    response_model=DeleteDocumentResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a document and all of its chunks",
)
async def delete_document(
    assistant_id: str,
    document_id: str,
    documents: DocumentServiceDep,
) -> DeleteDocumentResponse:
    deleted = await documents.delete_document(assistant_id, document_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
    return DeleteDocumentResponse(id=document_id)


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


@router.post(
    "/assistants/{assistant_id}/context",
    response_model=ContextResponse,
    summary="Retrieve prompt context for a chat message",
)
async def retrieve_context(
    assistant_id: str,
    body: ContextRequest,
    retrieval: RetrievalServiceDep,
    formatter: FormatterDep,
    settings: SettingsDep,
) -> ContextResponse:
    """Return the assistant's most relevant chunks, formatted for a prompt.

    An empty ``context`` means nothing relevant was found; the chat should
    continue without knowledge-base context.
    """
    matches = await retrieval.retrieve_context(
        body.query,
        assistant_id,
        top_k=body.top_k,
        similarity_threshold=body.similarity_threshold,
    )
    budget = body.max_tokens or settings.context_max_tokens
    formatted = formatter.format(matches, budget)
    return ContextResponse.build(
        assistant_id=assistant_id,
        matches=matches,
        formatted=formatted,
        summary=retrieval.summarize(matches),
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    vector_store = getattr(request.app.state, "vector_store", None)
    store_ok = False
    if vector_store is not None:
        try:
            stats = await vector_store.get_stats()
            store_ok = True
            providers["documents"] = stats.total_documents
            providers["chunks"] = stats.total_chunks
            providers["documents_by_status"] = stats.documents_by_status
        except StorageFailure as exc:
            _logger.warning("health_store_unavailable", error=str(exc))
    providers["store"] = store_ok

    embedding_ok = bool(providers.get("embedding"))
    if store_ok and embedding_ok:
        status = "healthy"
    elif store_ok:
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(status=status, version=_VERSION, providers=providers)
