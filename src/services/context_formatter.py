"""Packs retrieved chunks into a token-bounded block for the model prompt.

Each included chunk is introduced by a ``[Source N: <document name>]``
label so the model can cite it; internal identifiers never appear in the
text.  Matches are taken greedily in ranked order, and the first one that
would push the whole block (header, labels, separators and footer
included) over the budget ends the block.  Everything after it is dropped.
"""

from __future__ import annotations

import structlog

from src.models.rag import ChunkMatch, ContextSource, FormattedContext
from src.services.ingestion.chunker import estimate_tokens

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_HEADER = (
    "The following excerpts from this assistant's knowledge base may help "
    "answer the user's question:"
)
DEFAULT_FOOTER = (
    "Use these excerpts when they are relevant and cite them by source number. "
    "If they do not cover the question, answer from general knowledge and say so."
)
_SEPARATOR = "\n\n---\n\n"


class ContextFormatter:
    """Formats ranked :class:`ChunkMatch` objects into prompt context."""

    def __init__(self, header: str = DEFAULT_HEADER, footer: str = DEFAULT_FOOTER) -> None:
        self._header = header
        self._footer = footer

    def format(self, matches: list[ChunkMatch], max_token_budget: int) -> FormattedContext:
        """Build the context block for *matches* within *max_token_budget* tokens.

        Returns an empty :class:`FormattedContext` when there are no
        matches or not even the first one fits.
        """
        blocks: list[str] = []
        sources: list[ContextSource] = []
        text = ""

        for match in matches:
            label = len(blocks) + 1
            block = f"[Source {label}: {_clean_name(match.document_name)}]\n{match.content.strip()}"
            candidate = self._assemble([*blocks, block])
            if estimate_tokens(candidate) > max_token_budget:
                break
            blocks.append(block)
            text = candidate
            sources.append(
                ContextSource(
                    label=label,
                    document_id=match.document_id,
                    document_name=match.document_name,
                    chunk_index=match.chunk_index,
                    similarity=match.similarity,
                )
            )

        dropped = len(matches) - len(blocks)
        if dropped and matches:
            logger.debug(
                "context_budget_reached",
                included=len(blocks),
                dropped=dropped,
                budget=max_token_budget,
            )
        return FormattedContext(
            text=text,
            sources=sources,
            token_count=estimate_tokens(text),
            included=len(blocks),
            dropped=dropped,
        )

    def _assemble(self, blocks: list[str]) -> str:
        parts = [p for p in (self._header, _SEPARATOR.join(blocks), self._footer) if p]
        return "\n\n".join(parts)


def _clean_name(name: str) -> str:
    """Collapse whitespace so a document name cannot break the label line."""
    return " ".join(name.split()) or "Untitled document"
