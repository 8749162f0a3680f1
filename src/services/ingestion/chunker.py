"""Text chunking into bounded character windows that prefer natural boundaries.

Splits extracted document text into :class:`~src.models.rag.TextChunk`
objects of roughly ``target_size`` characters (4000 by default, about 1000
tokens), each of which is embedded separately.

Boundary selection:

1. **Natural breaks first** -- when a window has to end, the chunker looks
   inside a tolerance band just below ``target_size`` for, in order of
   preference: a paragraph break, a line break, the end of a sentence, and
   finally any whitespace.  Sentence detection skips common abbreviations
   so "Dr. Smith" is not treated as a sentence end.

2. **Hard cut fallback** -- text with no boundary in the band (minified
   data, a very long token) is cut at exactly ``target_size``.

3. **Optional overlap** -- with ``overlap > 0`` every chunk after the first
   begins with the last ``overlap`` characters of the previous chunk, so a
   passage spanning a boundary is fully contained in at least one chunk.

No chunk is ever longer than ``target_size + overlap`` characters, and
chunk indices run 0, 1, 2, ... without gaps.
"""

from __future__ import annotations

import math
import re

import structlog

from src.models.rag import TextChunk

logger = structlog.get_logger(logger_name=__name__)

# Approximate characters per token for English text with BPE tokenizers.
CHARS_PER_TOKEN = 4

# "Dr. Smith" should remain one sentence, not split at the period.
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "vs",
        "etc",
        "approx",
        "dept",
        "est",
        "inc",
        "ltd",
        "co",
        "e.g",
        "i.e",
        "Fig",
        "No",
    }
)

_SENTENCE_END = re.compile(r"[.!?]\s")
_WHITESPACE = re.compile(r"\s")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def estimate_tokens(text: str) -> int:
    """Approximate token count: characters / 4, rounded up."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class TextChunker:
    """Splits text into bounded, optionally overlapping character windows.

    Parameters
    ----------
    target_size:
        Maximum characters of new text per chunk (default 4000).
    overlap:
        Characters repeated from the end of the previous chunk (default 0).
        Must be smaller than *target_size*.
    tolerance:
        Fraction of *target_size* below the limit in which a natural
        boundary may be chosen (default 0.2, i.e. the last 20 %).
    """

    def __init__(self, target_size: int = 4000, overlap: int = 0, tolerance: float = 0.2) -> None:
        if target_size <= 0:
            raise ValueError(f"target_size must be positive, got {target_size}")
        if not 0 <= overlap < target_size:
            raise ValueError(
                f"overlap must be in [0, target_size), got {overlap} for target_size {target_size}"
            )
        if not 0.0 <= tolerance < 1.0:
            raise ValueError(f"tolerance must be in [0, 1), got {tolerance}")
        self._target_size = target_size
        self._overlap = overlap
        self._tolerance = tolerance

    @property
    def target_size(self) -> int:
        return self._target_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str) -> list[TextChunk]:
        """Split *text* into :class:`TextChunk` objects.

        Parameters
        ----------
        text:
            Raw extracted text.  Line endings are normalized and runs of
            three or more newlines collapse to a single paragraph break.

        Returns
        -------
        list[TextChunk]
            Chunks in document order.  Empty or whitespace-only input
            returns an empty list.
        """
        normalized = self.normalize(text)
        if not normalized:
            return []

        spans = self._window_spans(normalized)
        chunks: list[TextChunk] = []
        for start, end in spans:
            # A window of nothing but whitespace carries no content; indices
            # are assigned after skipping so they stay contiguous.
            if not normalized[start:end].strip():
                continue
            # The previous window ends exactly at ``start``, so reaching
            # back ``overlap`` characters repeats its tail.
            content_start = max(0, start - self._overlap) if chunks else start
            content = normalized[content_start:end]
            chunks.append(
                TextChunk(content=content, index=len(chunks), token_count=estimate_tokens(content))
            )

        logger.debug(
            "chunking_complete",
            num_chunks=len(chunks),
            characters=len(normalized),
            target_size=self._target_size,
            overlap=self._overlap,
        )
        return chunks

    @staticmethod
    def normalize(text: str) -> str:
        """Normalize line endings, collapse excess blank lines and trim."""
        if not text:
            return ""
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = _EXCESS_NEWLINES.sub("\n\n", text)
        return text.strip()

    # ------------------------------------------------------------------
    # Window selection
    # ------------------------------------------------------------------

    def _window_spans(self, text: str) -> list[tuple[int, int]]:
        """Return ``(start, end)`` offsets of consecutive, non-overlapping windows."""
        spans: list[tuple[int, int]] = []
        length = len(text)
        start = 0
        while start < length:
            if length - start <= self._target_size:
                end = length
            else:
                end = self._find_boundary(text, start)
            spans.append((start, end))
            start = end
        return spans

    def _find_boundary(self, text: str, start: int) -> int:
        """Return the end offset for a window beginning at *start*.

        Searches ``[start + target*(1-tolerance), start + target]`` for the
        best natural boundary; the returned offset sits just after the
        separator so the next window starts on content.
        """
        hi = start + self._target_size
        lo = start + max(1, math.floor(self._target_size * (1.0 - self._tolerance)))

        for separator in ("\n\n", "\n"):
            idx = text.rfind(separator, lo, hi)
            if idx != -1:
                return idx + len(separator)

        sentence_end = self._last_sentence_end(text, lo, hi)
        if sentence_end is not None:
            return sentence_end

        last_space = None
        for match in _WHITESPACE.finditer(text, lo, hi):
            last_space = match.end()
        if last_space is not None:
            return last_space

        return hi

    @staticmethod
    def _last_sentence_end(text: str, lo: int, hi: int) -> int | None:
        last: int | None = None
        for match in _SENTENCE_END.finditer(text, lo, hi):
            mark = match.start()
            if text[mark] == "." and _is_abbreviation(text, mark):
                continue
            last = match.end()
        return last


def _is_abbreviation(text: str, dot_pos: int) -> bool:
    """Return True if the word ending at *dot_pos* is a known abbreviation."""
    word_start = dot_pos
    while word_start > 0 and (text[word_start - 1].isalpha() or text[word_start - 1] == "."):
        word_start -= 1
    return text[word_start:dot_pos] in _ABBREVIATIONS
