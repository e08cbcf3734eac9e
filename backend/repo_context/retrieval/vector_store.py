"""Vector store abstraction."""

from __future__ import annotations

import logging
import math
import threading
from array import array
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

import orjson

from repo_context.db.sqlite import SQLiteDatabase
from repo_context.models.entities import Document, DocumentEmbedding, DocumentType, VectorSearchResult
from repo_context.utils.time import now_ms, utc_now

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _StoredEmbedding:
    document: Document
    vector: list[float]
    norm: float
    created_at: datetime


class BaseVectorStore:
    """Common vector store interface; every backend holds vectors of one dimension."""

    def __init__(self, dimension: int) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    def store_embeddings(self, embeddings: Sequence[DocumentEmbedding]) -> int:  # pragma: no cover - interface
        raise NotImplementedError

    def search_similar(
        self,
        query_vector: Sequence[float],
        k: int = 10,
        min_score: float = 0.7,
    ) -> list[VectorSearchResult]:  # pragma: no cover - interface
        raise NotImplementedError

    def delete_by_source(self, source_id: str) -> int:  # pragma: no cover - interface
        raise NotImplementedError

    def count(self, source_id: str | None = None) -> int:  # pragma: no cover - interface
        raise NotImplementedError

    def clear(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def _check_dimensions(self, embeddings: Sequence[DocumentEmbedding]) -> None:
        for item in embeddings:
            if len(item.embedding) != self.dimension:
                raise ValueError(
                    f"Vector dimension mismatch for {item.document.id}: "
                    f"got {len(item.embedding)}, store holds {self.dimension}"
                )


class InMemoryVectorStore(BaseVectorStore):
    """Dictionary-backed store using brute-force cosine similarity.

    Writers hold the lock for one batch insert; readers hold it only long
    enough to snapshot the entries and score outside of it.
    """

    def __init__(self, dimension: int) -> None:
        super().__init__(dimension)
        self._entries: dict[str, _StoredEmbedding] = {}
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        return len(self._entries)

    def store_embeddings(self, embeddings: Sequence[DocumentEmbedding]) -> int:
        if not embeddings:
            return 0
        self._check_dimensions(embeddings)
        self._apply(embeddings)
        logger.debug("Stored %s embeddings in memory", len(embeddings))
        return len(embeddings)

    def search_similar(
        self,
        query_vector: Sequence[float],
        k: int = 10,
        min_score: float = 0.7,
    ) -> list[VectorSearchResult]:
        if len(query_vector) != self.dimension:
            raise ValueError("Query vector dimension mismatch")
        if k <= 0:
            return []
        with self._lock:
            snapshot = list(self._entries.values())
        if not snapshot:
            return []
        query_norm = _norm(query_vector)
        results: list[VectorSearchResult] = []
        for stored in snapshot:
            score = _cosine(query_vector, query_norm, stored.vector, stored.norm)
            if score >= min_score:
                results.append(VectorSearchResult(document=stored.document, similarity=score))
        results.sort(key=lambda item: item.similarity, reverse=True)
        logger.debug("Found %s similar documents above threshold %s", len(results), min_score)
        return results[:k]

    def delete_by_source(self, source_id: str) -> int:
        with self._lock:
            doomed = [key for key, stored in self._entries.items() if stored.document.source_id == source_id]
            for key in doomed:
                del self._entries[key]
        logger.info("Removed %s embeddings for source %s", len(doomed), source_id)
        return len(doomed)

    def count(self, source_id: str | None = None) -> int:
        with self._lock:
            if source_id is None:
                return len(self._entries)
            return sum(1 for stored in self._entries.values() if stored.document.source_id == source_id)

    def clear(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Cleared %s embeddings from memory", count)

    def _apply(self, embeddings: Sequence[DocumentEmbedding]) -> None:
        with self._lock:
            for item in embeddings:
                vector = [float(value) for value in item.embedding]
                self._entries[item.document.id] = _StoredEmbedding(
                    document=item.document,
                    vector=vector,
                    norm=_norm(vector),
                    created_at=item.created_at,
                )


class SQLiteVectorStore(InMemoryVectorStore):
    """Persists embeddings in SQLite and serves searches from an in-memory mirror."""

    def __init__(self, database: SQLiteDatabase, dimension: int) -> None:
        super().__init__(dimension)
        self.db = database
        self.db.ensure_schema()
        self._load()

    def store_embeddings(self, embeddings: Sequence[DocumentEmbedding]) -> int:
        if not embeddings:
            return 0
        self._check_dimensions(embeddings)
        now = now_ms()
        with self.db.transaction() as cursor:
            cursor.executemany(
                """
                INSERT OR REPLACE INTO documents (
                  id, source_id, source_name, type, title, content, url, path,
                  last_modified, meta_json, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [_document_row(item.document, now) for item in embeddings],
            )
            cursor.executemany(
                "INSERT OR REPLACE INTO embeddings (document_id, dim, vector, created_at) VALUES (?, ?, ?, ?)",
                [
                    (
                        item.document.id,
                        len(item.embedding),
                        array("f", item.embedding).tobytes(),
                        item.created_at.isoformat(),
                    )
                    for item in embeddings
                ],
            )
        self._apply(embeddings)
        logger.debug("Persisted %s embeddings to %s", len(embeddings), self.db.db_path)
        return len(embeddings)

    def delete_by_source(self, source_id: str) -> int:
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM documents WHERE source_id = ?", [source_id])
        return super().delete_by_source(source_id)

    def clear(self) -> None:
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM documents")
        super().clear()

    def _load(self) -> None:
        rows = self.db.query(
            """
            SELECT documents.*, embeddings.dim, embeddings.vector, embeddings.created_at
            FROM documents
            JOIN embeddings ON embeddings.document_id = documents.id
            """
        )
        loaded: list[DocumentEmbedding] = []
        for row in rows:
            if row["dim"] != self.dimension:
                logger.warning(
                    "Ignoring stored embedding %s with dimension %s (expected %s)",
                    row["id"],
                    row["dim"],
                    self.dimension,
                )
                continue
            floats = array("f")
            floats.frombytes(row["vector"])
            loaded.append(
                DocumentEmbedding(
                    document=_row_to_document(row),
                    embedding=list(floats),
                    created_at=datetime.fromisoformat(row["created_at"]),
                )
            )
        self._apply(loaded)
        logger.info("Loaded %s embeddings from %s", len(loaded), self.db.db_path)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity, 0.0 when either vector has zero norm."""
    if len(a) != len(b):
        raise ValueError("Vector dimensions must match")
    return _cosine(a, _norm(a), b, _norm(b))


def _cosine(a: Sequence[float], norm_a: float, b: Sequence[float], norm_b: float) -> float:
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return _dot(a, b) / (norm_a * norm_b)


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


def _norm(vector: Sequence[float]) -> float:
    return math.sqrt(_dot(vector, vector))


def _document_row(document: Document, now: int) -> tuple:
    return (
        document.id,
        document.source_id,
        document.source_name,
        document.type.value,
        document.title,
        document.content,
        document.url,
        document.path,
        document.last_modified.isoformat(),
        orjson.dumps(dict(document.metadata), default=str).decode("utf-8"),
        now,
    )


def _row_to_document(row) -> Document:
    return Document(
        id=row["id"],
        content=row["content"],
        title=row["title"],
        type=DocumentType(row["type"]),
        source_id=row["source_id"],
        source_name=row["source_name"],
        url=row["url"],
        path=row["path"],
        last_modified=datetime.fromisoformat(row["last_modified"]) if row["last_modified"] else utc_now(),
        metadata=orjson.loads(row["meta_json"]) if row["meta_json"] else {},
    )


__all__ = ["BaseVectorStore", "InMemoryVectorStore", "SQLiteVectorStore", "cosine_similarity"]
