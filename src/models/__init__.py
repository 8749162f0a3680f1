"""Knowledge-base domain models -- re-exports all public model classes.

The models are organized by domain concern:
    - document.py -- uploaded documents, their status lifecycle, store stats
    - rag.py      -- chunks, retrieval matches, formatted context, ingestion results
"""

from src.models.document import Document, DocumentStatus, StoreStats, SupportedTypes
from src.models.rag import (
    ChunkMatch,
    ContextSource,
    FormattedContext,
    IngestionResult,
    StoredChunk,
    TextChunk,
)

__all__ = [
    "ChunkMatch",
    "ContextSource",
    "Document",
    "DocumentStatus",
    "FormattedContext",
    "IngestionResult",
    "StoreStats",
    "StoredChunk",
    "SupportedTypes",
    "TextChunk",
]
