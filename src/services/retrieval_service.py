"""Query-time retrieval of an assistant's most relevant chunks.

Called once per chat turn before the assistant's model answers.  The flow:

1. Embed the user's query through the shared :class:`EmbeddingClient`.
2. Ask the vector store for candidates, scoped to the assistant's READY
   documents inside the query itself.
3. Keep candidates whose similarity is at least the threshold.
4. Order by similarity (descending), ties by ``(document_id, chunk_index)``.
5. Truncate to ``top_k``.

Retrieval is best-effort: an empty query, an assistant without documents,
no candidate above the threshold, or an embedding/storage failure all
yield an empty list and the conversation proceeds without knowledge
context.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from src.models.rag import ChunkMatch
from src.utils.errors import KnowledgeBaseError, StorageFailure

if TYPE_CHECKING:
    from src.interfaces.document_repository import IDocumentRepository
    from src.interfaces.vector_store_provider import IVectorStoreProvider
    from src.services.embedding_client import EmbeddingClient

logger = structlog.get_logger(logger_name=__name__)


class RetrievalService:
    """Finds the chunks of one assistant's knowledge base that best match a query.

    Parameters
    ----------
    embedding_client:
        Embeds the query text.
    vector_store:
        Scoped similarity search.
    documents:
        Used by :meth:`has_documents`.
    default_top_k:
        Result count when the caller does not pass one.
    default_threshold:
        Minimum similarity when the caller does not pass one.
    candidate_multiplier:
        How many more candidates than ``top_k`` to request from the store
        before threshold filtering.
    """

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        vector_store: IVectorStoreProvider,
        documents: IDocumentRepository,
        default_top_k: int = 5,
        default_threshold: float = 0.7,
        candidate_multiplier: int = 3,
    ) -> None:
        self._embedding_client = embedding_client
        self._vector_store = vector_store
        self._documents = documents
        self._default_top_k = default_top_k
        self._default_threshold = default_threshold
        self._candidate_multiplier = max(1, candidate_multiplier)

    async def retrieve_context(
        self,
        query_text: str,
        assistant_id: str,
        top_k: int | None = None,
        similarity_threshold: float | None = None,
    ) -> list[ChunkMatch]:
        """Return up to *top_k* matches at or above *similarity_threshold*.

        Never raises: nothing found, an unconfigured or failing provider and a
        storage error all yield an empty list.
        """
        top_k = self._default_top_k if top_k is None else top_k
        threshold = self._default_threshold if similarity_threshold is None else similarity_threshold

        if not query_text or not query_text.strip() or top_k <= 0:
            return []

        try:
            query_vector = await self._embedding_client.embed_one(query_text)
        except KnowledgeBaseError as exc:
            logger.warning("retrieval_embedding_failed", assistant_id=assistant_id, error=str(exc))
            return []
        except Exception:
            # Chat-turn boundary: a retrieval failure means no context.
            logger.exception("retrieval_embedding_crashed", assistant_id=assistant_id)
            return []

        try:
            candidates = await self._vector_store.search(
                assistant_id, query_vector, top_k * self._candidate_multiplier
            )
        except KnowledgeBaseError as exc:
            logger.warning("retrieval_search_failed", assistant_id=assistant_id, error=str(exc))
            return []
        except Exception:
            logger.exception("retrieval_search_crashed", assistant_id=assistant_id)
            return []

        matches = [m for m in candidates if m.similarity >= threshold]
        matches.sort(key=lambda m: (-m.similarity, m.document_id, m.chunk_index))
        matches = matches[:top_k]

        logger.info(
            "retrieval_complete",
            assistant_id=assistant_id,
            candidates=len(candidates),
            returned=len(matches),
            threshold=threshold,
            top_similarity=round(matches[0].similarity, 4) if matches else None,
        )
        return matches

    async def has_documents(self, assistant_id: str) -> bool:
        """Return ``True`` if the assistant has at least one READY document.

        Lets the chat loop skip embedding the query entirely for assistants
        with an empty knowledge base.
        """
        try:
            return await self._documents.has_ready_documents(assistant_id)
        except StorageFailure as exc:
            logger.warning("has_documents_failed", assistant_id=assistant_id, error=str(exc))
            return False

    @staticmethod
    def summarize(matches: list[ChunkMatch]) -> str:
        """One-line human summary of a retrieval, for logs and the CLI."""
        if not matches:
            return "No relevant documents found"
        documents = {m.document_id for m in matches}
        average = sum(m.similarity for m in matches) / len(matches)
        return (
            f"{len(matches)} chunks from {len(documents)} document(s) | "
            f"average similarity {average:.0%}"
        )
