"""Document domain models -- files uploaded to an assistant's knowledge base.

# ─── ARCHITECTURE ROLE ───────────────────────────────────────────────
#
# Layer: Models (bottom of the dependency graph -- no imports from upper layers).
#
# A Document is created when an administrator uploads a file to one
# assistant.  It starts in PROCESSING, and only the ingestion pipeline moves
# it to READY (chunks committed) or ERROR (error_message set).  Both of
# those are terminal: a failed document is never retried automatically,
# the administrator deletes and re-uploads it.
#
# All models are frozen.  Status changes happen in the store, and callers
# re-read the document to observe them.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DocumentStatus(str, Enum):
    """Lifecycle states for an uploaded document."""

    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not DocumentStatus.PROCESSING


class Document(BaseModel):
    """One uploaded file belonging to exactly one assistant.

    ``chunks_count`` is denormalized from the chunk table at commit time; a
    READY document always has exactly that many stored chunks.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(description="Unique identifier (UUID) for this document.")
    assistant_id: str = Field(description="Owning assistant; every query is scoped by it.")
    name: str = Field(description="Display name, used in context source labels.")
    original_filename: str = Field(description="Filename as supplied by the uploader.")
    mime_type: str = Field(description="Normalized MIME type of the payload.")
    file_size: int = Field(default=0, ge=0, description="Payload size in bytes.")
    status: DocumentStatus = Field(
        default=DocumentStatus.PROCESSING,
        description="processing until ingestion finishes, then ready or error.",
    )
    error_message: str | None = Field(
        default=None,
        description="Human-readable failure reason; set only when status is error.",
    )
    chunks_count: int = Field(default=0, ge=0, description="Number of stored chunks.")
    created_at: str = Field(description="UTC ISO-8601 creation timestamp.")
    updated_at: str = Field(description="UTC ISO-8601 timestamp of the last status change.")


class SupportedTypes(BaseModel):
    """Upload constraints advertised to clients before they pick a file."""

    model_config = ConfigDict(frozen=True)

    extensions: list[str] = Field(default_factory=list)
    mime_types: list[str] = Field(default_factory=list)
    max_size_bytes: int = Field(default=0, ge=0)


class StoreStats(BaseModel):
    """Snapshot of what the document store holds, for health and the CLI."""

    model_config = ConfigDict(frozen=True)

    total_documents: int = Field(default=0, ge=0)
    total_chunks: int = Field(default=0, ge=0)
    documents_by_status: dict[str, int] = Field(default_factory=dict)
    total_assistants: int = Field(default=0, ge=0)
