"""Unit tests for the TextChunker: bounded windows with natural boundaries."""

from __future__ import annotations

import pytest

from src.services.ingestion.chunker import TextChunker, estimate_tokens

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_chunker(target_size: int = 200, overlap: int = 0, tolerance: float = 0.2) -> TextChunker:
    """Build a TextChunker with a predictable configuration."""
    return TextChunker(target_size=target_size, overlap=overlap, tolerance=tolerance)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestEstimateTokens:
    def test_empty_text_is_zero(self) -> None:
        assert estimate_tokens("") == 0

    def test_rounds_up(self) -> None:
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_four_thousand_chars_is_a_thousand_tokens(self) -> None:
        assert estimate_tokens("x" * 4000) == 1000


class TestConstruction:
    def test_defaults(self) -> None:
        chunker = TextChunker()
        assert chunker.target_size == 4000
        assert chunker.overlap == 0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"target_size": 0},
            {"target_size": 100, "overlap": 100},
            {"target_size": 100, "overlap": -1},
            {"target_size": 100, "tolerance": 1.0},
        ],
    )
    def test_invalid_arguments_rejected(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            TextChunker(**kwargs)


class TestEmptyInput:
    @pytest.mark.parametrize("text", ["", "   ", "\n\n\n", "\t \r\n"])
    def test_blank_text_yields_no_chunks(self, text: str) -> None:
        assert _make_chunker().chunk(text) == []


class TestBasicChunking:
    def test_short_text_is_single_chunk(self) -> None:
        chunks = _make_chunker(target_size=200).chunk("A short note about refunds.")

        assert len(chunks) == 1
        assert chunks[0].content == "A short note about refunds."
        assert chunks[0].index == 0
        assert chunks[0].token_count == estimate_tokens(chunks[0].content)

    def test_twelve_thousand_chars_default_size_is_three_chunks(self) -> None:
        paragraph = ("lorem ipsum " * 400)[:3998]
        text = "\n\n".join([paragraph] * 3)

        chunks = TextChunker().chunk(text)

        assert len(chunks) == 3
        assert all(len(c.content) <= 4000 for c in chunks)

    def test_unbroken_text_is_hard_cut_at_target(self) -> None:
        chunks = TextChunker().chunk("x" * 12_000)

        assert [len(c.content) for c in chunks] == [4000, 4000, 4000]

    def test_indices_are_contiguous(self, sample_text: str) -> None:
        chunks = _make_chunker(target_size=150).chunk(sample_text)

        assert len(chunks) > 3
        assert [c.index for c in chunks] == list(range(len(chunks)))

    def test_no_chunk_exceeds_target_without_overlap(self, sample_text: str) -> None:
        chunks = _make_chunker(target_size=150).chunk(sample_text)

        assert all(0 < len(c.content) <= 150 for c in chunks)

    def test_chunks_reassemble_to_normalized_text(self, sample_text: str) -> None:
        chunker = _make_chunker(target_size=150)
        chunks = chunker.chunk(sample_text)

        assert "".join(c.content for c in chunks) == chunker.normalize(sample_text)

    def test_larger_target_gives_fewer_chunks(self, sample_text: str) -> None:
        small = _make_chunker(target_size=100).chunk(sample_text)
        large = _make_chunker(target_size=1000).chunk(sample_text)

        assert len(small) > len(large)


class TestBoundaryPreference:
    def test_prefers_paragraph_break(self) -> None:
        first = "a" * 85
        text = first + "\n\n" + "b" * 200
        chunks = _make_chunker(target_size=100).chunk(text)

        assert chunks[0].content == first + "\n\n"
        assert chunks[1].content.startswith("b")

    def test_prefers_line_break_over_sentence_end(self) -> None:
        text = "x" * 82 + ". " + "y" * 5 + "\n" + "z" * 200
        chunks = _make_chunker(target_size=100).chunk(text)

        assert chunks[0].content.endswith("\n")

    def test_sentence_end_when_no_line_break(self) -> None:
        text = "w" * 85 + ". " + "v" * 200
        chunks = _make_chunker(target_size=100).chunk(text)

        assert chunks[0].content == "w" * 85 + ". "

    def test_abbreviation_is_not_a_sentence_end(self) -> None:
        # "Dr. " is the only period in the band; the cut falls back to the
        # last whitespace instead of ending the chunk after the title.
        text = "word " * 17 + "Dr. Smith went" + "q" * 200
        chunks = _make_chunker(target_size=100).chunk(text)

        assert chunks[0].content.endswith("Dr. Smith ")

    def test_hard_cut_without_any_boundary(self) -> None:
        text = "x" * 250
        chunks = _make_chunker(target_size=100).chunk(text)

        assert [len(c.content) for c in chunks] == [100, 100, 50]


class TestOverlap:
    def test_each_chunk_starts_with_tail_of_previous(self, sample_text: str) -> None:
        chunks = _make_chunker(target_size=150, overlap=30).chunk(sample_text)

        assert len(chunks) > 1
        for previous, current in zip(chunks, chunks[1:]):
            assert current.content[:30] == previous.content[-30:]

    def test_chunk_length_bounded_by_target_plus_overlap(self, sample_text: str) -> None:
        chunks = _make_chunker(target_size=150, overlap=30).chunk(sample_text)

        assert all(len(c.content) <= 180 for c in chunks)

    def test_first_chunk_has_no_overlap_prefix(self) -> None:
        text = "x" * 250
        chunks = _make_chunker(target_size=100, overlap=20).chunk(text)

        assert len(chunks[0].content) == 100
        assert len(chunks[1].content) == 120


class TestNormalization:
    def test_crlf_and_excess_blank_lines_collapse(self) -> None:
        text = "first\r\n\r\n\r\n\r\nsecond\r\nthird"
        assert TextChunker.normalize(text) == "first\n\nsecond\nthird"

    def test_surrounding_whitespace_trimmed(self) -> None:
        chunks = _make_chunker().chunk("\n\n  hello world  \n\n")
        assert chunks[0].content == "hello world"


class TestWhitespaceRuns:
    def test_window_of_only_spaces_is_not_a_chunk(self) -> None:
        chunks = TextChunker(target_size=4000).chunk("x" * 3000 + " " * 5000 + "y")

        assert [c.index for c in chunks] == [0, 1]
        assert all(c.content.strip() for c in chunks)
        assert chunks[1].content == "y"

    def test_indices_stay_contiguous_after_skipped_window(self) -> None:
        text = "a" * 90 + " " * 300 + "b" * 50 + " " * 300 + "c"

        chunks = _make_chunker(target_size=100).chunk(text)

        assert [c.index for c in chunks] == list(range(len(chunks)))
        assert all(c.content.strip() for c in chunks)
        assert "".join(c.content for c in chunks).replace(" ", "") == "a" * 90 + "b" * 50 + "c"
