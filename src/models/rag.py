"""RAG pipeline data models for the assistant knowledge base.

Defines Pydantic v2 models for text chunks, stored chunks, retrieval
matches, assembled prompt context and ingestion outcomes.  All models use
frozen config.

Pipeline overview:

    1. CHUNKING: extracted document text is split into ~4000-character
       windows (``TextChunk``) by src/services/ingestion/chunker.py.
    2. EMBEDDING: each chunk's text becomes a fixed-length vector.
    3. STORAGE: chunks + embeddings (``StoredChunk``) are committed together
       with the document's READY status in one transaction.
    4. RETRIEVAL: at chat time the query is embedded and compared against
       the assistant's READY chunks, yielding ranked ``ChunkMatch`` objects.
    5. FORMATTING: matches are packed into a token-bounded
       ``FormattedContext`` that the prompt builder injects before the
       assistant's own instructions.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from src.models.document import DocumentStatus


# ---------------------------------------------------------------------------
# TextChunk -- chunker output, before embedding.
# ---------------------------------------------------------------------------
class TextChunk(BaseModel):
    """A contiguous window of a document's text.

    ``index`` is 0-based and contiguous within one document.
    """

    model_config = ConfigDict(frozen=True)

    content: str = Field(description="The chunk's textual content.")
    index: int = Field(ge=0, description="Position of the chunk within its document.")
    token_count: int = Field(default=0, ge=0, description="Approximate token count.")


# ---------------------------------------------------------------------------
# StoredChunk -- a persisted chunk with its embedding.
# ---------------------------------------------------------------------------
class StoredChunk(BaseModel):
    """A chunk row as held by the vector store."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str = Field(description="Unique identifier (UUID) for this chunk.")
    document_id: str = Field(description="Owning document.")
    chunk_index: int = Field(ge=0)
    content: str
    token_count: int = Field(default=0, ge=0)
    embedding: list[float] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# ChunkMatch -- a search result from the vector store.
# ---------------------------------------------------------------------------
class ChunkMatch(BaseModel):
    """A stored chunk returned for a query, with its similarity score.

    ``similarity`` is cosine similarity in [-1, 1]; in practice embedding
    models keep it in [0, 1].
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    document_id: str
    document_name: str = Field(description="Display name of the owning document.")
    chunk_index: int = Field(ge=0)
    content: str
    token_count: int = Field(default=0, ge=0)
    similarity: float = Field(ge=-1.0, le=1.0)


# ---------------------------------------------------------------------------
# FormattedContext -- what the prompt builder receives.
# ---------------------------------------------------------------------------
class ContextSource(BaseModel):
    """Citation data for one ``[Source N: name]`` label in the context text."""

    model_config = ConfigDict(frozen=True)

    label: int = Field(ge=1, description="The N in [Source N: name].")
    document_id: str
    document_name: str
    chunk_index: int = Field(ge=0)
    similarity: float


class FormattedContext(BaseModel):
    """A token-bounded block of retrieved knowledge, ready for a prompt.

    ``text`` is empty when nothing was retrieved or nothing fit the budget.
    """

    model_config = ConfigDict(frozen=True)

    text: str = ""
    sources: list[ContextSource] = Field(default_factory=list)
    token_count: int = Field(default=0, ge=0)
    included: int = Field(default=0, ge=0)
    dropped: int = Field(default=0, ge=0)

    @property
    def is_empty(self) -> bool:
        return not self.text


# ---------------------------------------------------------------------------
# IngestionResult -- outcome of one ingestion run.
# ---------------------------------------------------------------------------
class IngestionResult(BaseModel):
    """Summary of a single document ingestion run.

    Returned by the ingestion pipeline and reported by the CLI.  When
    ``status`` is ERROR, ``error_message`` carries the same reason that was
    recorded on the document.  ``discarded`` is set when the document was
    deleted while it was being processed.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(description="Document that was processed.")
    status: DocumentStatus = Field(description="Terminal status reached.")
    chunks_created: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    ingestion_time: float = Field(
        default=0.0,
        ge=0.0,
        description="Wall-clock time in seconds for the ingestion run.",
    )
    error_message: str | None = None
    discarded: bool = False
