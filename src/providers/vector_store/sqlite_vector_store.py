"""SQLite-backed document repository and vector store.

# ─── ARCHITECTURE ROLE ───────────────────────────────────────────────
#
# Layer: Providers (concrete adapter implementing IVectorStoreProvider
#        and IDocumentRepository).
#
# Database: ``data/knowledge.db`` with two tables:
#
#   assistant_documents -- one row per uploaded file, with its status
#   document_chunks     -- one row per chunk, embedding stored as a
#                          float32 BLOB, FK to its document ON DELETE CASCADE
#
# Document status and chunk rows live in the same database so the READY
# transition and the chunk inserts commit in one transaction.  Deleting a
# document removes its chunks through the cascade; ``foreign_keys`` must be
# enabled on every connection for that to happen.
#
# Similarity search selects only the rows of one assistant's READY
# documents in SQL, then scores them with numpy (cosine similarity).
#
# Uses ``aiosqlite`` for async I/O and ``PRAGMA journal_mode=WAL`` so
# searches keep reading while an ingestion commit is writing.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import aiosqlite
import numpy as np
import structlog

from src.interfaces.document_repository import IDocumentRepository
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.document import Document, DocumentStatus, StoreStats
from src.models.rag import ChunkMatch, StoredChunk, TextChunk
from src.utils.errors import StorageFailure

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/knowledge.db")

# Seconds a writer waits for the database lock before failing.
_BUSY_TIMEOUT = 30.0

# ── Schema DDL ────────────────────────────────────────────────────────

_CREATE_DOCUMENTS_TABLE = """\
CREATE TABLE IF NOT EXISTS assistant_documents (
    document_id       TEXT    PRIMARY KEY,
    assistant_id      TEXT    NOT NULL,
    name              TEXT    NOT NULL,
    original_filename TEXT    NOT NULL,
    mime_type         TEXT    NOT NULL,
    file_size         INTEGER NOT NULL DEFAULT 0,
    status            TEXT    NOT NULL DEFAULT 'processing'
                      CHECK (status IN ('processing', 'ready', 'error')),
    error_message     TEXT,
    chunks_count      INTEGER NOT NULL DEFAULT 0,
    created_at        TEXT    NOT NULL,
    updated_at        TEXT    NOT NULL
);
"""

_CREATE_CHUNKS_TABLE = """\
CREATE TABLE IF NOT EXISTS document_chunks (
    chunk_id     TEXT    PRIMARY KEY,
    document_id  TEXT    NOT NULL
                 REFERENCES assistant_documents(document_id) ON DELETE CASCADE,
    chunk_index  INTEGER NOT NULL,
    content      TEXT    NOT NULL,
    token_count  INTEGER NOT NULL DEFAULT 0,
    embedding    BLOB    NOT NULL,
    created_at   TEXT    NOT NULL,
    UNIQUE(document_id, chunk_index)
);
"""

_CREATE_INDICES = [
    "CREATE INDEX IF NOT EXISTS idx_documents_assistant_status "
    "ON assistant_documents(assistant_id, status);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON document_chunks(document_id);",
]

# ── DML ───────────────────────────────────────────────────────────────

_DOCUMENT_COLUMNS = (
    "document_id, assistant_id, name, original_filename, mime_type, file_size, "
    "status, error_message, chunks_count, created_at, updated_at"
)

_INSERT_DOCUMENT = f"""\
INSERT INTO assistant_documents ({_DOCUMENT_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_DOCUMENT = f"SELECT {_DOCUMENT_COLUMNS} FROM assistant_documents WHERE document_id = ?;"

_SELECT_DOCUMENTS_BY_ASSISTANT = f"""\
SELECT {_DOCUMENT_COLUMNS} FROM assistant_documents
WHERE assistant_id = ?
ORDER BY created_at DESC, document_id;
"""

_SELECT_DOCUMENTS_BY_ASSISTANT_STATUS = f"""\
SELECT {_DOCUMENT_COLUMNS} FROM assistant_documents
WHERE assistant_id = ? AND status = ?
ORDER BY created_at DESC, document_id;
"""

_SELECT_STATUS = "SELECT status FROM assistant_documents WHERE document_id = ?;"

_MARK_READY = """\
UPDATE assistant_documents
SET status = 'ready', error_message = NULL, chunks_count = ?, updated_at = ?
WHERE document_id = ?;
"""

_MARK_ERROR = """\
UPDATE assistant_documents
SET status = 'error', error_message = ?, chunks_count = 0, updated_at = ?
WHERE document_id = ? AND status = 'processing';
"""

_FAIL_PROCESSING = """\
UPDATE assistant_documents
SET status = 'error', error_message = ?, chunks_count = 0, updated_at = ?
WHERE status = 'processing';
"""

_DELETE_DOCUMENT = "DELETE FROM assistant_documents WHERE document_id = ?;"

_INSERT_CHUNK = """\
INSERT INTO document_chunks
    (chunk_id, document_id, chunk_index, content, token_count, embedding, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_CHUNKS = """\
SELECT chunk_id, document_id, chunk_index, content, token_count, embedding
FROM document_chunks WHERE document_id = ?
ORDER BY chunk_index;
"""

_COUNT_CHUNKS = "SELECT COUNT(*) FROM document_chunks WHERE document_id = ?;"

# Scoping happens here, in the query: other assistants' chunks and chunks
# of documents that are not READY are never read.
_SELECT_SEARCH_CANDIDATES = """\
SELECT c.chunk_id, c.document_id, d.name, c.chunk_index, c.content,
       c.token_count, c.embedding
FROM document_chunks c
JOIN assistant_documents d ON d.document_id = c.document_id
WHERE d.assistant_id = ? AND d.status = 'ready'
ORDER BY c.document_id, c.chunk_index;
"""

_HAS_READY = """\
SELECT 1 FROM assistant_documents
WHERE assistant_id = ? AND status = 'ready' LIMIT 1;
"""

_STATS_BY_STATUS = "SELECT status, COUNT(*) FROM assistant_documents GROUP BY status;"
_STATS_CHUNKS = "SELECT COUNT(*) FROM document_chunks;"
_STATS_ASSISTANTS = "SELECT COUNT(DISTINCT assistant_id) FROM assistant_documents;"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_blob(vector: list[float]) -> bytes:
    return np.asarray(vector, dtype=np.float32).tobytes()


def _from_blob(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=np.float32)


def _row_to_document(row: aiosqlite.Row) -> Document:
    return Document(
        document_id=row["document_id"],
        assistant_id=row["assistant_id"],
        name=row["name"],
        original_filename=row["original_filename"],
        mime_type=row["mime_type"],
        file_size=row["file_size"],
        status=DocumentStatus(row["status"]),
        error_message=row["error_message"],
        chunks_count=row["chunks_count"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class SQLiteVectorStore(IVectorStoreProvider, IDocumentRepository):
    """Documents, chunks and embeddings in a single SQLite database.

    Parameters
    ----------
    db_path:
        Location of the database file; parent directories are created.
    dimension:
        Expected embedding length.  When set, :meth:`store` rejects vectors
        of any other length.
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH, dimension: int | None = None) -> None:
        self._db_path = Path(db_path)
        self._dimension = dimension
        self._initialized = False

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection with foreign keys on and autocommit semantics.

        ``isolation_level=None`` leaves transaction control to explicit
        ``BEGIN``/``COMMIT`` statements.  Any sqlite error surfacing inside
        the block is re-raised as :class:`StorageFailure`.
        """
        try:
            async with aiosqlite.connect(
                str(self._db_path), timeout=_BUSY_TIMEOUT, isolation_level=None
            ) as db:
                db.row_factory = aiosqlite.Row
                await db.execute("PRAGMA foreign_keys=ON;")
                yield db
        except aiosqlite.Error as exc:
            logger.error("sqlite_store_error", path=str(self._db_path), error=str(exc))
            raise StorageFailure(
                message=f"Document store operation failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute(_CREATE_DOCUMENTS_TABLE)
            await db.execute(_CREATE_CHUNKS_TABLE)
            for idx_sql in _CREATE_INDICES:
                await db.execute(idx_sql)
        self._initialized = True
        logger.info("knowledge_db_initialized", path=str(self._db_path))

    def get_provider_name(self) -> str:
        return "sqlite"

    def is_available(self) -> bool:
        return self._initialized

    # ── Documents ──────────────────────────────────────────────────────

    async def create_document(self, document: Document) -> Document:
        async with self._connect() as db:
            await db.execute(_INSERT_DOCUMENT, (
                document.document_id,
                document.assistant_id,
                document.name,
                document.original_filename,
                document.mime_type,
                document.file_size,
                document.status.value,
                document.error_message,
                document.chunks_count,
                document.created_at,
                document.updated_at,
            ))
        logger.info(
            "document_created",
            document_id=document.document_id,
            assistant_id=document.assistant_id,
        )
        return document

    async def get_document(self, document_id: str) -> Document | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_DOCUMENT, (document_id,))
            row = await cursor.fetchone()
        return _row_to_document(row) if row else None

    async def list_documents(
        self,
        assistant_id: str,
        status: DocumentStatus | None = None,
    ) -> list[Document]:
        async with self._connect() as db:
            if status is None:
                cursor = await db.execute(_SELECT_DOCUMENTS_BY_ASSISTANT, (assistant_id,))
            else:
                cursor = await db.execute(
                    _SELECT_DOCUMENTS_BY_ASSISTANT_STATUS, (assistant_id, status.value)
                )
            rows = await cursor.fetchall()
        return [_row_to_document(row) for row in rows]

    async def mark_error(self, document_id: str, error_message: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(_MARK_ERROR, (error_message, _utc_now(), document_id))
            updated = cursor.rowcount > 0
        if updated:
            logger.info("document_marked_error", document_id=document_id, reason=error_message)
        return updated

    async def fail_processing(self, error_message: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(_FAIL_PROCESSING, (error_message, _utc_now()))
            changed = cursor.rowcount
        if changed:
            logger.warning("interrupted_documents_failed", count=changed)
        return changed

    async def has_ready_documents(self, assistant_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(_HAS_READY, (assistant_id,))
            row = await cursor.fetchone()
        return row is not None

    async def delete_document(self, document_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(_DELETE_DOCUMENT, (document_id,))
            deleted = cursor.rowcount > 0
        logger.info("document_deleted", document_id=document_id, existed=deleted)
        return deleted

    # ── Chunks ─────────────────────────────────────────────────────────

    async def store(
        self,
        document_id: str,
        chunks: list[TextChunk],
        embeddings: list[list[float]],
    ) -> bool:
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"Got {len(chunks)} chunks but {len(embeddings)} embeddings"
            )
        if self._dimension is not None:
            for vector in embeddings:
                if len(vector) != self._dimension:
                    raise ValueError(
                        f"Embedding has {len(vector)} dimensions, expected {self._dimension}"
                    )

        now = _utc_now()
        rows = [
            (
                str(uuid.uuid4()),
                document_id,
                chunk.index,
                chunk.content,
                chunk.token_count,
                _to_blob(vector),
                now,
            )
            for chunk, vector in zip(chunks, embeddings)
        ]

        async with self._connect() as db:
            # IMMEDIATE takes the write lock up front so the status check
            # and the inserts see the same database state.
            await db.execute("BEGIN IMMEDIATE;")
            try:
                cursor = await db.execute(_SELECT_STATUS, (document_id,))
                row = await cursor.fetchone()
                if row is None or row["status"] != DocumentStatus.PROCESSING.value:
                    await db.execute("ROLLBACK;")
                    logger.info(
                        "chunk_commit_skipped",
                        document_id=document_id,
                        current_status=row["status"] if row else None,
                    )
                    return False
                await db.executemany(_INSERT_CHUNK, rows)
                await db.execute(_MARK_READY, (len(rows), now, document_id))
                await db.execute("COMMIT;")
            except BaseException:
                if db.in_transaction:
                    await db.execute("ROLLBACK;")
                raise

        logger.info("chunks_committed", document_id=document_id, chunks=len(rows))
        return True

    async def get_chunks(self, document_id: str) -> list[StoredChunk]:
        """Return a document's stored chunks in index order."""
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_CHUNKS, (document_id,))
            rows = await cursor.fetchall()
        return [
            StoredChunk(
                chunk_id=row["chunk_id"],
                document_id=row["document_id"],
                chunk_index=row["chunk_index"],
                content=row["content"],
                token_count=row["token_count"],
                embedding=_from_blob(row["embedding"]).tolist(),
            )
            for row in rows
        ]

    async def count_chunks(self, document_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(_COUNT_CHUNKS, (document_id,))
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def search(
        self,
        assistant_id: str,
        query_vector: list[float],
        top_k: int,
    ) -> list[ChunkMatch]:
        if top_k <= 0:
            return []

        async with self._connect() as db:
            cursor = await db.execute(_SELECT_SEARCH_CANDIDATES, (assistant_id,))
            rows = await cursor.fetchall()

        query = np.asarray(query_vector, dtype=np.float64)
        blob_size = query.shape[0] * np.dtype(np.float32).itemsize
        candidates = [row for row in rows if len(row["embedding"]) == blob_size]
        if len(candidates) != len(rows):
            logger.warning(
                "search_dimension_mismatch",
                assistant_id=assistant_id,
                skipped=len(rows) - len(candidates),
                query_dimension=query.shape[0],
            )
        if not candidates:
            return []

        matrix = np.vstack([_from_blob(row["embedding"]) for row in candidates]).astype(np.float64)
        scores = _cosine_similarities(matrix, query)

        # Candidates arrive ordered by (document_id, chunk_index); a stable
        # sort on descending score keeps that order among equal scores.
        order = np.argsort(-scores, kind="stable")[:top_k]
        return [
            ChunkMatch(
                chunk_id=candidates[i]["chunk_id"],
                document_id=candidates[i]["document_id"],
                document_name=candidates[i]["name"],
                chunk_index=candidates[i]["chunk_index"],
                content=candidates[i]["content"],
                token_count=candidates[i]["token_count"],
                similarity=float(scores[i]),
            )
            for i in order
        ]

    # ── Stats ──────────────────────────────────────────────────────────

    async def get_stats(self) -> StoreStats:
        async with self._connect() as db:
            cursor = await db.execute(_STATS_BY_STATUS)
            by_status = {row[0]: int(row[1]) for row in await cursor.fetchall()}
            cursor = await db.execute(_STATS_CHUNKS)
            total_chunks = int((await cursor.fetchone())[0])
            cursor = await db.execute(_STATS_ASSISTANTS)
            total_assistants = int((await cursor.fetchone())[0])
        return StoreStats(
            total_documents=sum(by_status.values()),
            total_chunks=total_chunks,
            documents_by_status=by_status,
            total_assistants=total_assistants,
        )


def _cosine_similarities(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine similarity of each row of *matrix* with *query*; zero vectors score 0."""
    row_norms = np.linalg.norm(matrix, axis=1)
    query_norm = float(np.linalg.norm(query))
    denom = row_norms * query_norm
    dots = matrix @ query
    scores = np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)
    return np.clip(scores, -1.0, 1.0)
