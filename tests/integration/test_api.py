"""Integration tests for the knowledge-base HTTP API using TestClient.

The app is assembled from real services over a temporary SQLite database;
only the embedding model is replaced by the deterministic mock provider.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.api.middleware import ErrorHandlingMiddleware
from src.api.routes import router as api_router
from src.config.settings import Settings
from src.models.rag import TextChunk
from src.providers.extraction.document_text_extractor import DocumentTextExtractor
from src.providers.vector_store.sqlite_vector_store import SQLiteVectorStore
from src.services.context_formatter import ContextFormatter
from src.services.document_service import DocumentService
from src.services.embedding_client import EmbeddingClient
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.ingestion_service import IngestionService
from src.services.retrieval_service import RetrievalService
from src.utils.concurrency import EmbeddingConcurrencyPool
from tests.conftest import MockEmbeddingProvider, make_document, unit_vector

_MAX_UPLOAD = 4096
_BASE = "/api/v1/assistants"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _create_test_app(db_path: Path) -> tuple[FastAPI, SQLiteVectorStore]:
    """Create a FastAPI app wired like production, minus the lifespan."""
    app = FastAPI()
    app.add_middleware(ErrorHandlingMiddleware)
    app.include_router(api_router)

    provider = MockEmbeddingProvider()
    embedding_client = EmbeddingClient(
        provider=provider,
        pool=EmbeddingConcurrencyPool(2),
        batch_size=10,
        max_attempts=2,
        base_delay=0.0,
        max_delay=0.0,
    )
    store = SQLiteVectorStore(db_path=db_path, dimension=provider.get_dimension())
    asyncio.run(store.initialize())

    ingestion = IngestionService(
        chunker=TextChunker(target_size=400, overlap=0),
        embedding_client=embedding_client,
        vector_store=store,
        documents=store,
        extractor=DocumentTextExtractor(),
    )

    app.state.settings = Settings(_env_file=None, max_upload_bytes=_MAX_UPLOAD, context_max_tokens=500)
    app.state.document_service = DocumentService(store, store, ingestion, max_upload_bytes=_MAX_UPLOAD)
    app.state.retrieval_service = RetrievalService(embedding_client, store, store)
    app.state.context_formatter = ContextFormatter()
    app.state.vector_store = store
    app.state.provider_registry = {
        "embedding": True,
        "embedding_provider": provider.get_provider_name(),
        "vector_store": store.get_provider_name(),
    }
    return app, store


def _wait_terminal(client: TestClient, assistant_id: str, document_id: str) -> dict:
    """Poll the document endpoint until ingestion finishes."""
    deadline = time.monotonic() + 10.0
    while True:
        body = client.get(f"{_BASE}/{assistant_id}/documents/{document_id}").json()
        if body["status"] != "processing" or time.monotonic() > deadline:
            return body
        time.sleep(0.05)


@pytest.fixture
def app_and_store(tmp_path: Path) -> tuple[FastAPI, SQLiteVectorStore]:
    return _create_test_app(tmp_path / "api.db")


@pytest.fixture
def client(app_and_store: tuple[FastAPI, SQLiteVectorStore]) -> TestClient:
    app, _ = app_and_store
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def store(app_and_store: tuple[FastAPI, SQLiteVectorStore]) -> SQLiteVectorStore:
    return app_and_store[1]


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


class TestSupportedTypes:
    def test_lists_types_and_limit(self, client: TestClient) -> None:
        response = client.get("/api/v1/documents/supported-types")

        assert response.status_code == 200
        body = response.json()
        assert body["extensions"] == [".docx", ".md", ".pdf", ".txt"]
        assert "application/pdf" in body["mime_types"]
        assert body["max_size_bytes"] == _MAX_UPLOAD


class TestUpload:
    def test_upload_returns_202_then_becomes_ready(self, client: TestClient) -> None:
        response = client.post(
            f"{_BASE}/assistant-1/documents",
            files={"file": ("policy.txt", b"Refunds are issued within 14 days.", "text/plain")},
            data={"name": "Refund Policy"},
        )

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "processing"
        assert body["name"] == "Refund Policy"
        assert body["original_filename"] == "policy.txt"

        final = _wait_terminal(client, "assistant-1", body["id"])
        assert final["status"] == "ready"
        assert final["chunks_count"] == 1
        assert final["error_message"] is None

    def test_name_defaults_to_filename_stem(self, client: TestClient) -> None:
        response = client.post(
            f"{_BASE}/assistant-1/documents",
            files={"file": ("faq.md", b"# FAQ\n\nAsk us anything.", "text/markdown")},
        )

        assert response.status_code == 202
        assert response.json()["name"] == "faq"

    def test_whitespace_only_file_ends_in_error(self, client: TestClient) -> None:
        response = client.post(
            f"{_BASE}/assistant-1/documents",
            files={"file": ("blank.txt", b"   \n\n  ", "text/plain")},
        )

        final = _wait_terminal(client, "assistant-1", response.json()["id"])
        assert final["status"] == "error"
        assert final["chunks_count"] == 0
        assert final["error_message"]

    def test_unsupported_type_is_415(self, client: TestClient) -> None:
        response = client.post(
            f"{_BASE}/assistant-1/documents",
            files={"file": ("photo.png", b"\x89PNG....", "image/png")},
        )

        assert response.status_code == 415
        assert response.json()["error"] == "ValidationError"

    def test_oversized_file_is_413(self, client: TestClient, store: SQLiteVectorStore) -> None:
        response = client.post(
            f"{_BASE}/assistant-1/documents",
            files={"file": ("big.txt", b"x" * (_MAX_UPLOAD + 1), "text/plain")},
        )

        assert response.status_code == 413
        assert asyncio.run(store.list_documents("assistant-1")) == []

    def test_empty_file_is_400(self, client: TestClient) -> None:
        response = client.post(
            f"{_BASE}/assistant-1/documents",
            files={"file": ("empty.txt", b"", "text/plain")},
        )

        assert response.status_code == 400

    def test_missing_file_is_422(self, client: TestClient) -> None:
        assert client.post(f"{_BASE}/assistant-1/documents").status_code == 422


# ---------------------------------------------------------------------------
# List / get / delete
# ---------------------------------------------------------------------------


class TestDocumentEndpoints:
    def test_list_is_scoped_to_assistant(self, client: TestClient, store: SQLiteVectorStore) -> None:
        asyncio.run(store.create_document(make_document(document_id="mine")))
        asyncio.run(store.create_document(make_document(assistant_id="assistant-2", document_id="theirs")))

        body = client.get(f"{_BASE}/assistant-1/documents").json()

        assert body["total"] == 1
        assert [d["id"] for d in body["documents"]] == ["mine"]

    def test_list_filters_by_status(self, client: TestClient, store: SQLiteVectorStore) -> None:
        asyncio.run(store.create_document(make_document(document_id="a")))
        asyncio.run(store.create_document(make_document(document_id="b")))
        asyncio.run(store.mark_error("a", "bad file"))

        body = client.get(f"{_BASE}/assistant-1/documents", params={"status": "error"}).json()

        assert [d["id"] for d in body["documents"]] == ["a"]
        assert body["documents"][0]["error_message"] == "bad file"

    def test_invalid_status_filter_is_422(self, client: TestClient) -> None:
        response = client.get(f"{_BASE}/assistant-1/documents", params={"status": "done"})
        assert response.status_code == 422

    def test_get_other_assistants_document_is_404(
        self, client: TestClient, store: SQLiteVectorStore
    ) -> None:
        asyncio.run(store.create_document(make_document(assistant_id="assistant-2", document_id="theirs")))

        assert client.get(f"{_BASE}/assistant-1/documents/theirs").status_code == 404
        assert client.get(f"{_BASE}/assistant-2/documents/theirs").status_code == 200

    def test_delete_removes_document_and_chunks(
        self, client: TestClient, store: SQLiteVectorStore
    ) -> None:
        asyncio.run(store.create_document(make_document(document_id="doomed")))
        asyncio.run(
            store.store("doomed", [TextChunk(content="text", index=0, token_count=1)], [unit_vector(1.0)])
        )

        response = client.delete(f"{_BASE}/assistant-1/documents/doomed")

        assert response.status_code == 200
        assert response.json() == {"id": "doomed", "deleted": True}
        assert client.get(f"{_BASE}/assistant-1/documents/doomed").status_code == 404
        assert asyncio.run(store.count_chunks("doomed")) == 0

    def test_delete_other_assistants_document_is_404(
        self, client: TestClient, store: SQLiteVectorStore
    ) -> None:
        asyncio.run(store.create_document(make_document(assistant_id="assistant-2", document_id="theirs")))

        assert client.delete(f"{_BASE}/assistant-1/documents/theirs").status_code == 404
        assert asyncio.run(store.get_document("theirs")) is not None


# ---------------------------------------------------------------------------
# Context retrieval
# ---------------------------------------------------------------------------


class TestContext:
    def test_returns_formatted_context_for_matching_query(self, client: TestClient) -> None:
        text = "Refunds are issued within 14 days of purchase."
        upload = client.post(
            f"{_BASE}/assistant-1/documents",
            files={"file": ("refunds.txt", text.encode(), "text/plain")},
            data={"name": "Refund Policy"},
        )
        assert _wait_terminal(client, "assistant-1", upload.json()["id"])["status"] == "ready"

        response = client.post(f"{_BASE}/assistant-1/context", json={"query": text})

        assert response.status_code == 200
        body = response.json()
        assert "[Source 1: Refund Policy]" in body["context"]
        assert text in body["context"]
        assert body["matches"][0]["label"] == 1
        assert body["matches"][0]["similarity"] == pytest.approx(1.0)
        assert 0 < body["token_count"] <= 500
        assert body["summary"].startswith("1 chunks from 1 document(s)")

    def test_other_assistant_gets_nothing(self, client: TestClient) -> None:
        text = "Support is open on weekdays."
        upload = client.post(
            f"{_BASE}/assistant-1/documents",
            files={"file": ("support.txt", text.encode(), "text/plain")},
        )
        _wait_terminal(client, "assistant-1", upload.json()["id"])

        body = client.post(f"{_BASE}/assistant-2/context", json={"query": text}).json()

        assert body["context"] == ""
        assert body["matches"] == []
        assert body["summary"] == "No relevant documents found"

    def test_empty_query_is_422(self, client: TestClient) -> None:
        assert client.post(f"{_BASE}/assistant-1/context", json={"query": ""}).status_code == 422


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_healthy_with_store_stats(self, client: TestClient, store: SQLiteVectorStore) -> None:
        asyncio.run(store.create_document(make_document()))

        response = client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["providers"]["store"] is True
        assert body["providers"]["documents"] == 1
        assert body["providers"]["documents_by_status"] == {"processing": 1}

    def test_degraded_without_embedding(
        self, app_and_store: tuple[FastAPI, SQLiteVectorStore], client: TestClient
    ) -> None:
        app, _ = app_and_store
        app.state.provider_registry = {**app.state.provider_registry, "embedding": False}

        assert client.get("/api/v1/health").json()["status"] == "degraded"
