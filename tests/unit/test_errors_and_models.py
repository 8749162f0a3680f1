"""Unit tests for the error hierarchy and the frozen domain models."""

from __future__ import annotations

import pydantic
import pytest

from src.models.document import DocumentStatus
from src.models.rag import ChunkMatch, TextChunk
from src.utils.errors import (
    ConfigurationError,
    EmbeddingFailure,
    ExtractionFailure,
    KnowledgeBaseError,
    ProviderUnavailableError,
    RateLimitError,
    StorageFailure,
    ValidationError,
)
from tests.conftest import make_document


class TestErrors:
    @pytest.mark.parametrize(
        "cls",
        [
            ValidationError,
            ExtractionFailure,
            EmbeddingFailure,
            StorageFailure,
            ProviderUnavailableError,
            RateLimitError,
            ConfigurationError,
        ],
    )
    def test_all_inherit_from_base(self, cls: type) -> None:
        assert issubclass(cls, KnowledgeBaseError)
        assert cls().message

    def test_str_prefixes_provider(self) -> None:
        assert str(StorageFailure("disk full", provider_name="sqlite")) == "[sqlite] disk full"
        assert str(StorageFailure("disk full")) == "disk full"

    def test_validation_status_code(self) -> None:
        assert ValidationError().status_code == 400
        assert ValidationError("too big", status_code=413).status_code == 413

    def test_embedding_failure_keeps_cause(self) -> None:
        cause = RuntimeError("upstream")
        assert EmbeddingFailure("failed", cause=cause).cause is cause
        assert EmbeddingFailure().cause is None


class TestDocumentStatus:
    def test_terminal_states(self) -> None:
        assert DocumentStatus.PROCESSING.is_terminal is False
        assert DocumentStatus.READY.is_terminal is True
        assert DocumentStatus.ERROR.is_terminal is True

    def test_string_values(self) -> None:
        assert DocumentStatus("ready") is DocumentStatus.READY
        assert DocumentStatus.ERROR.value == "error"


class TestModels:
    def test_document_is_frozen(self) -> None:
        document = make_document()
        with pytest.raises(pydantic.ValidationError):
            document.status = DocumentStatus.READY

    def test_document_defaults(self) -> None:
        document = make_document()
        assert document.status is DocumentStatus.PROCESSING
        assert document.error_message is None
        assert document.chunks_count == 0

    def test_chunk_index_must_be_non_negative(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            TextChunk(content="x", index=-1)

    def test_similarity_bounded(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            ChunkMatch(
                chunk_id="c",
                document_id="d",
                document_name="D",
                chunk_index=0,
                content="x",
                similarity=1.5,
            )
