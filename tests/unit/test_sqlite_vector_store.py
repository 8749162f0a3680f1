"""Unit tests for SQLiteVectorStore: atomic commits, scoping, cascade, search order."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.models.document import DocumentStatus
from src.models.rag import TextChunk
from src.providers.vector_store.sqlite_vector_store import SQLiteVectorStore
from src.utils.errors import StorageFailure
from tests.conftest import make_document, unit_vector


def _chunks(*contents: str) -> list[TextChunk]:
    return [TextChunk(content=c, index=i, token_count=len(c) // 4) for i, c in enumerate(contents)]


async def _ready_document(
    store: SQLiteVectorStore,
    document_id: str,
    vectors: list[list[float]],
    assistant_id: str = "assistant-1",
    name: str = "Handbook",
) -> None:
    await store.create_document(
        make_document(assistant_id=assistant_id, document_id=document_id, name=name)
    )
    contents = [f"{document_id} chunk {i}" for i in range(len(vectors))]
    assert await store.store(document_id, _chunks(*contents), vectors)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class TestDocuments:
    async def test_create_and_get(self, store: SQLiteVectorStore) -> None:
        document = make_document()
        await store.create_document(document)

        fetched = await store.get_document("doc-1")

        assert fetched == document
        assert fetched.status is DocumentStatus.PROCESSING

    async def test_get_missing_returns_none(self, store: SQLiteVectorStore) -> None:
        assert await store.get_document("nope") is None

    async def test_duplicate_id_raises_storage_failure(self, store: SQLiteVectorStore) -> None:
        await store.create_document(make_document())
        with pytest.raises(StorageFailure):
            await store.create_document(make_document())

    async def test_list_is_scoped_and_newest_first(self, store: SQLiteVectorStore) -> None:
        await store.create_document(make_document(document_id="old", created_at="2026-01-01T00:00:00+00:00"))
        await store.create_document(make_document(document_id="new", created_at="2026-02-01T00:00:00+00:00"))
        await store.create_document(make_document(assistant_id="other", document_id="foreign"))

        documents = await store.list_documents("assistant-1")

        assert [d.document_id for d in documents] == ["new", "old"]

    async def test_list_filters_by_status(self, store: SQLiteVectorStore) -> None:
        await store.create_document(make_document(document_id="a"))
        await store.create_document(make_document(document_id="b"))
        await store.mark_error("b", "broken")

        errored = await store.list_documents("assistant-1", DocumentStatus.ERROR)

        assert [d.document_id for d in errored] == ["b"]
        assert errored[0].error_message == "broken"


# ---------------------------------------------------------------------------
# Atomic commit
# ---------------------------------------------------------------------------


class TestStore:
    async def test_commit_flips_status_and_counts(self, store: SQLiteVectorStore) -> None:
        await store.create_document(make_document())

        committed = await store.store(
            "doc-1", _chunks("one", "two", "three"), [unit_vector(1.0)] * 3
        )

        assert committed is True
        document = await store.get_document("doc-1")
        assert document.status is DocumentStatus.READY
        assert document.chunks_count == 3
        assert await store.count_chunks("doc-1") == 3

    async def test_stored_chunks_round_trip_in_order(self, store: SQLiteVectorStore) -> None:
        await store.create_document(make_document())
        vectors = [unit_vector(1.0), unit_vector(0.0, 1.0)]
        await store.store("doc-1", _chunks("first", "second"), vectors)

        stored = await store.get_chunks("doc-1")

        assert [c.chunk_index for c in stored] == [0, 1]
        assert [c.content for c in stored] == ["first", "second"]
        assert stored[1].embedding == pytest.approx(vectors[1])

    async def test_deleted_document_is_not_committed(self, store: SQLiteVectorStore) -> None:
        await store.create_document(make_document())
        await store.delete_document("doc-1")

        committed = await store.store("doc-1", _chunks("late"), [unit_vector(1.0)])

        assert committed is False
        assert await store.count_chunks("doc-1") == 0
        assert await store.get_document("doc-1") is None

    async def test_error_document_is_not_committed(self, store: SQLiteVectorStore) -> None:
        await store.create_document(make_document())
        await store.mark_error("doc-1", "gave up")

        assert await store.store("doc-1", _chunks("x"), [unit_vector(1.0)]) is False
        assert await store.count_chunks("doc-1") == 0

    async def test_length_mismatch_rejected(self, store: SQLiteVectorStore) -> None:
        await store.create_document(make_document())
        with pytest.raises(ValueError):
            await store.store("doc-1", _chunks("a", "b"), [unit_vector(1.0)])

    async def test_wrong_dimension_rejected(self, store: SQLiteVectorStore) -> None:
        await store.create_document(make_document())
        with pytest.raises(ValueError):
            await store.store("doc-1", _chunks("a"), [[1.0, 0.0]])
        assert (await store.get_document("doc-1")).status is DocumentStatus.PROCESSING

    async def test_failed_insert_rolls_back_everything(self, store: SQLiteVectorStore) -> None:
        await store.create_document(make_document())
        duplicate_index = [
            TextChunk(content="a", index=0, token_count=1),
            TextChunk(content="b", index=0, token_count=1),
        ]

        with pytest.raises(StorageFailure):
            await store.store("doc-1", duplicate_index, [unit_vector(1.0)] * 2)

        assert await store.count_chunks("doc-1") == 0
        assert (await store.get_document("doc-1")).status is DocumentStatus.PROCESSING


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


class TestStatusTransitions:
    async def test_mark_error_only_from_processing(self, store: SQLiteVectorStore) -> None:
        await _ready_document(store, "doc-1", [unit_vector(1.0)])

        assert await store.mark_error("doc-1", "too late") is False
        document = await store.get_document("doc-1")
        assert document.status is DocumentStatus.READY
        assert document.error_message is None

    async def test_mark_error_missing_document(self, store: SQLiteVectorStore) -> None:
        assert await store.mark_error("ghost", "reason") is False

    async def test_fail_processing_only_touches_processing(self, store: SQLiteVectorStore) -> None:
        await store.create_document(make_document(document_id="stuck"))
        await _ready_document(store, "done", [unit_vector(1.0)])

        assert await store.fail_processing("interrupted") == 1
        assert (await store.get_document("stuck")).status is DocumentStatus.ERROR
        assert (await store.get_document("done")).status is DocumentStatus.READY


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


class TestDelete:
    async def test_delete_cascades_to_chunks(self, store: SQLiteVectorStore) -> None:
        await _ready_document(store, "doc-1", [unit_vector(1.0)] * 3)

        assert await store.delete_document("doc-1") is True

        assert await store.count_chunks("doc-1") == 0
        assert await store.search("assistant-1", unit_vector(1.0), 10) == []

    async def test_delete_missing_returns_false(self, store: SQLiteVectorStore) -> None:
        assert await store.delete_document("ghost") is False


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class TestSearch:
    async def test_scoped_to_assistant(self, store: SQLiteVectorStore) -> None:
        await _ready_document(store, "mine", [unit_vector(1.0)], assistant_id="assistant-1")
        await _ready_document(store, "theirs", [unit_vector(1.0)], assistant_id="assistant-2")

        matches = await store.search("assistant-1", unit_vector(1.0), 10)

        assert [m.document_id for m in matches] == ["mine"]

    async def test_only_ready_documents(self, store: SQLiteVectorStore) -> None:
        await _ready_document(store, "ready", [unit_vector(1.0)])
        await store.create_document(make_document(document_id="pending"))

        matches = await store.search("assistant-1", unit_vector(1.0), 10)

        assert {m.document_id for m in matches} == {"ready"}

    async def test_ranked_by_cosine_similarity(self, store: SQLiteVectorStore) -> None:
        await _ready_document(
            store,
            "doc-1",
            [unit_vector(0.0, 1.0), unit_vector(1.0, 1.0), unit_vector(1.0)],
            name="Policies",
        )

        matches = await store.search("assistant-1", unit_vector(1.0), 10)

        assert [m.chunk_index for m in matches] == [2, 1, 0]
        assert matches[0].similarity == pytest.approx(1.0)
        assert matches[1].similarity == pytest.approx(0.70710678, rel=1e-5)
        assert matches[2].similarity == pytest.approx(0.0, abs=1e-9)
        assert matches[0].document_name == "Policies"

    async def test_ties_ordered_by_document_then_chunk(self, store: SQLiteVectorStore) -> None:
        await _ready_document(store, "doc-b", [unit_vector(1.0)] * 2)
        await _ready_document(store, "doc-a", [unit_vector(1.0)] * 2)

        matches = await store.search("assistant-1", unit_vector(1.0), 10)

        assert [(m.document_id, m.chunk_index) for m in matches] == [
            ("doc-a", 0),
            ("doc-a", 1),
            ("doc-b", 0),
            ("doc-b", 1),
        ]

    async def test_top_k_truncates(self, store: SQLiteVectorStore) -> None:
        await _ready_document(store, "doc-1", [unit_vector(1.0)] * 5)

        assert len(await store.search("assistant-1", unit_vector(1.0), 2)) == 2
        assert await store.search("assistant-1", unit_vector(1.0), 0) == []

    async def test_zero_vector_scores_zero(self, store: SQLiteVectorStore) -> None:
        await _ready_document(store, "doc-1", [unit_vector(0.0)])

        matches = await store.search("assistant-1", unit_vector(1.0), 1)

        assert matches[0].similarity == 0.0

    async def test_mismatched_query_dimension_matches_nothing(
        self, store: SQLiteVectorStore
    ) -> None:
        await _ready_document(store, "doc-1", [unit_vector(1.0)])

        assert await store.search("assistant-1", [1.0, 0.0], 5) == []

    async def test_has_ready_documents(self, store: SQLiteVectorStore) -> None:
        await store.create_document(make_document(document_id="pending"))
        assert await store.has_ready_documents("assistant-1") is False

        await _ready_document(store, "done", [unit_vector(1.0)])
        assert await store.has_ready_documents("assistant-1") is True
        assert await store.has_ready_documents("assistant-2") is False


# ---------------------------------------------------------------------------
# Stats / lifecycle
# ---------------------------------------------------------------------------


class TestStats:
    async def test_counts(self, store: SQLiteVectorStore) -> None:
        await _ready_document(store, "doc-1", [unit_vector(1.0)] * 2)
        await store.create_document(make_document(assistant_id="assistant-2", document_id="doc-2"))

        stats = await store.get_stats()

        assert stats.total_documents == 2
        assert stats.total_chunks == 2
        assert stats.total_assistants == 2
        assert stats.documents_by_status == {"ready": 1, "processing": 1}


class TestLifecycle:
    async def test_initialize_creates_parent_directory(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "dir" / "kb.db"
        vector_store = SQLiteVectorStore(db_path=db_path)
        assert vector_store.is_available() is False

        await vector_store.initialize()

        assert db_path.exists()
        assert vector_store.is_available() is True
        assert vector_store.get_provider_name() == "sqlite"

    async def test_initialize_is_idempotent(self, store: SQLiteVectorStore) -> None:
        await store.create_document(make_document())
        await store.initialize()
        assert await store.get_document("doc-1") is not None
