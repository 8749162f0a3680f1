"""Shared pytest fixtures for the knowledge-base test suite."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from pathlib import Path

import pytest

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.document import Document, DocumentStatus
from src.providers.vector_store.sqlite_vector_store import SQLiteVectorStore
from src.services.embedding_client import EmbeddingClient
from src.utils.concurrency import EmbeddingConcurrencyPool

_EMBEDDING_DIM = 16


# ---------------------------------------------------------------------------
# Embedding fakes
# ---------------------------------------------------------------------------


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Deterministic unit vector derived from the SHA-256 of *text*.

    Identical texts get identical vectors (similarity 1.0); unrelated texts
    land near 0.
    """
    raw = hashlib.sha256(text.encode("utf-8")).digest()
    while len(raw) < dim:
        raw += hashlib.sha256(raw).digest()
    values = [(b - 127.5) / 127.5 for b in raw[:dim]]
    magnitude = max(sum(v * v for v in values) ** 0.5, 1e-10)
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests.

    Records every batch it receives in ``calls``.
    """

    def __init__(self, dimension: int = _EMBEDDING_DIM) -> None:
        self._dimension = dimension
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [_hash_to_vector(t, self._dimension) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return _hash_to_vector(text, self._dimension)

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


def unit_vector(*components: float, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Pad *components* with zeros to *dim*; handy for exact-similarity fixtures."""
    return list(components) + [0.0] * (dim - len(components))


def make_document(
    assistant_id: str = "assistant-1",
    document_id: str = "doc-1",
    name: str = "Handbook",
    status: DocumentStatus = DocumentStatus.PROCESSING,
    created_at: str | None = None,
) -> Document:
    now = created_at or datetime.now(timezone.utc).isoformat()
    return Document(
        document_id=document_id,
        assistant_id=assistant_id,
        name=name,
        original_filename=f"{name}.txt",
        mime_type="text/plain",
        file_size=100,
        status=status,
        created_at=now,
        updated_at=now,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def embedding_pool() -> EmbeddingConcurrencyPool:
    return EmbeddingConcurrencyPool(max_concurrency=4)


@pytest.fixture
def embedding_client(
    mock_embedding_provider: MockEmbeddingProvider,
    embedding_pool: EmbeddingConcurrencyPool,
) -> EmbeddingClient:
    return EmbeddingClient(
        provider=mock_embedding_provider,
        pool=embedding_pool,
        batch_size=100,
        max_attempts=3,
        base_delay=0.0,
        max_delay=0.0,
    )


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "knowledge.db"


@pytest.fixture
async def store(db_path: Path) -> SQLiteVectorStore:
    """An initialised SQLite store in a temporary directory."""
    vector_store = SQLiteVectorStore(db_path=db_path, dimension=_EMBEDDING_DIM)
    await vector_store.initialize()
    return vector_store


@pytest.fixture
def sample_text() -> str:
    """Multi-paragraph prose used by chunking and ingestion tests."""
    paragraphs = [
        (
            "Our support team is available Monday to Friday. Requests received "
            "on weekends are answered on the next business day."
        ),
        (
            "Refunds are issued within 14 days of purchase. Dr. Smith from the "
            "billing department reviews every request over 500 euros."
        ),
        (
            "Accounts can be closed at any time from the settings page. Closing "
            "an account deletes all stored documents after 30 days."
        ),
    ]
    return "\n\n".join(paragraphs * 6)
