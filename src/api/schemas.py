"""Pydantic request/response schemas for the knowledge-base API.

# ─── HOW SCHEMAS WORK ─────────────────────────────────────────────────
#
# These models define the shape of every HTTP request and response body.
# FastAPI uses them to validate incoming JSON (422 on failure), to
# serialize responses via ``response_model=...``, and to generate the
# OpenAPI docs at /docs.
#
# Convention: request schemas end with "Request", response schemas end
# with "Response".  Domain models from src.models are converted here so
# the wire format can evolve independently of them.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from src.models.document import Document
from src.models.rag import ChunkMatch, FormattedContext


class DocumentResponse(BaseModel):
    """A knowledge-base document as seen by API clients."""

    id: str
    assistant_id: str
    name: str
    original_filename: str
    mime_type: str
    file_size: int
    status: str = Field(description="processing, ready or error")
    error_message: str | None = None
    chunks_count: int = 0
    created_at: str
    updated_at: str

    @classmethod
    def from_document(cls, document: Document) -> DocumentResponse:
        return cls(
            id=document.document_id,
            assistant_id=document.assistant_id,
            name=document.name,
            original_filename=document.original_filename,
            mime_type=document.mime_type,
            file_size=document.file_size,
            status=document.status.value,
            error_message=document.error_message,
            chunks_count=document.chunks_count,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )


class DocumentListResponse(BaseModel):
    """All documents of one assistant, newest first."""

    assistant_id: str
    documents: list[DocumentResponse] = Field(default_factory=list)
    total: int = 0


class DeleteDocumentResponse(BaseModel):
    """Confirmation of a deleted document."""

    id: str
    deleted: bool = True


class SupportedTypesResponse(BaseModel):
    """Upload constraints, so clients can validate before uploading."""

    extensions: list[str]
    mime_types: list[str]
    max_size_bytes: int
    max_size_mb: int


class ContextRequest(BaseModel):
    """Retrieve knowledge-base context for one chat turn."""

    query: str = Field(..., min_length=1, max_length=8000)
    top_k: int | None = Field(default=None, ge=1, le=50)
    similarity_threshold: float | None = Field(default=None, ge=-1.0, le=1.0)
    max_tokens: int | None = Field(default=None, ge=1, le=100_000)


class ContextMatchResponse(BaseModel):
    """One retrieved chunk with its source label number."""

    label: int
    document_id: str
    document_name: str
    chunk_index: int
    similarity: float
    content: str


class ContextResponse(BaseModel):
    """Formatted context plus the matches it was built from."""

    assistant_id: str
    context: str = Field(description="Prompt-ready block; empty if nothing relevant was found.")
    token_count: int = 0
    summary: str = ""
    matches: list[ContextMatchResponse] = Field(default_factory=list)
    dropped: int = Field(default=0, description="Matches left out because of the token budget.")

    @classmethod
    def build(
        cls,
        assistant_id: str,
        matches: list[ChunkMatch],
        formatted: FormattedContext,
        summary: str,
    ) -> ContextResponse:
        included = matches[: formatted.included]
        return cls(
            assistant_id=assistant_id,
            context=formatted.text,
            token_count=formatted.token_count,
            summary=summary,
            matches=[
                ContextMatchResponse(
                    label=source.label,
                    document_id=match.document_id,
                    document_name=match.document_name,
                    chunk_index=match.chunk_index,
                    similarity=round(match.similarity, 4),
                    content=match.content,
                )
                for source, match in zip(formatted.sources, included)
            ],
            dropped=formatted.dropped,
        )


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
