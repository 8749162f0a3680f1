"""Document ingestion pipeline for the assistant knowledge base.

Orchestrates the pipeline: **extract -> chunk -> embed -> commit**.

1. **Extract** (via ITextExtractor) -- PDF / DOCX / TXT / Markdown payloads
   become plain text.

2. **Chunk** (chunker.py / TextChunker) -- Text is split into ~4000-character
   windows that end on paragraph, line, sentence or word boundaries when
   one is close to the limit.

3. **Embed** (via EmbeddingClient) -- Chunks are embedded in batches with
   retry/backoff under the process-wide concurrency cap.

4. **Commit** (via IVectorStoreProvider) -- Chunks, embeddings and the
   document's READY status are written in one transaction.
"""

from src.services.ingestion.chunker import TextChunker, estimate_tokens
from src.services.ingestion.ingestion_service import IngestionService

__all__ = [
    "IngestionService",
    "TextChunker",
    "estimate_tokens",
]
