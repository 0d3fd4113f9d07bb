"""Persistent nearest-neighbour index backed by SQLite."""

from __future__ import annotations

import json
import logging
import shutil
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Sequence

import numpy as np

from juno.errors import DimensionMismatchError, IndexNotFoundError, InvalidArgumentError
from juno.models import IndexedItem, RankedResult

LOGGER = logging.getLogger(__name__)

SCHEMA_VERSION = 1
INDEX_FILENAME = "index.sqlite3"
_VECTOR_DTYPE = np.dtype("<f8")


class VectorIndex:
    """Vector store scored by cosine similarity.

    Results are ordered by descending similarity, which is ascending
    ``distance = 1 - similarity``; equal scores keep insertion order. The
    vector dimensionality is fixed by the first insert and checked on every
    later insert and query.
    """

    def __init__(self, directory: Path) -> None:
        self._directory = directory
        self._path = directory / INDEX_FILENAME

    @property
    def directory(self) -> Path:
        return self._directory

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def is_created(self) -> bool:
        return self._path.exists()

    def ensure_created(self) -> None:
        """Create the on-disk structures if absent; otherwise check the schema."""

        self._directory.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                self._create_schema(conn)
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
                LOGGER.info("Created vector index at %s", self._directory)
            elif row["version"] != SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported index schema version {row['version']} (expected {SCHEMA_VERSION})"
                )

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                file_path TEXT,
                vector BLOB NOT NULL,
                metadata_json TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS items_file_path ON items(file_path);

            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )

    @property
    def dimension(self) -> int | None:
        self._require_created()
        with self._connect() as conn:
            return self._dimension(conn)

    def insert(self, item: IndexedItem) -> None:
        self._require_created()
        vector = _as_vector(item.vector)
        with self._connect() as conn:
            self._check_dimension(conn, vector.shape[0])
            self._insert_row(conn, vector, item.metadata)

    def replace_items(self, file_path: str, items: Sequence[IndexedItem]) -> int:
        """Swap every item of ``file_path`` for ``items`` in one transaction.

        Returns the number of evicted items. If any vector is rejected the
        previous items are kept.
        """

        self._require_created()
        vectors = [_as_vector(item.vector) for item in items]
        with self._connect() as conn:
            for vector in vectors:
                self._check_dimension(conn, vector.shape[0])
            cur = conn.execute("DELETE FROM items WHERE file_path = ?", (file_path,))
            for vector, item in zip(vectors, items):
                self._insert_row(conn, vector, {**item.metadata, "filePath": file_path})
            return int(cur.rowcount)

    def _check_dimension(self, conn: sqlite3.Connection, actual: int) -> None:
        expected = self._dimension(conn)
        if expected is None:
            conn.execute("INSERT INTO meta(key, value) VALUES ('dimension', ?)", (str(actual),))
        elif expected != actual:
            raise DimensionMismatchError(expected, actual)

    @staticmethod
    def _insert_row(conn: sqlite3.Connection, vector: np.ndarray, metadata: dict) -> None:
        conn.execute(
            "INSERT INTO items(file_path, vector, metadata_json, created_at) VALUES (?, ?, ?, ?)",
            (
                metadata.get("filePath"),
                vector.astype(_VECTOR_DTYPE).tobytes(),
                json.dumps(metadata),
                datetime.now(timezone.utc).isoformat(),
            ),
        )

    def query(self, vector: Sequence[float], top_k: int) -> list[RankedResult]:
        if top_k <= 0:
            raise InvalidArgumentError(f"top_k must be positive, got {top_k}")
        self._require_created()
        query = _as_vector(vector)
        with self._connect() as conn:
            expected = self._dimension(conn)
            if expected is None:
                return []
            if expected != query.shape[0]:
                raise DimensionMismatchError(expected, query.shape[0])
            rows = conn.execute("SELECT vector, metadata_json FROM items ORDER BY id ASC").fetchall()
        if not rows:
            return []

        matrix = np.vstack([np.frombuffer(row["vector"], dtype=_VECTOR_DTYPE) for row in rows])
        scores = _cosine_similarity(matrix, query)
        # Stable sort on the negated score keeps insertion order for ties.
        order = np.argsort(-scores, kind="stable")[:top_k]
        results: list[RankedResult] = []
        for rank, position in enumerate(order, start=1):
            row = rows[int(position)]
            score = float(scores[position])
            results.append(
                RankedResult(
                    item=IndexedItem(
                        vector=np.frombuffer(row["vector"], dtype=_VECTOR_DTYPE).tolist(),
                        metadata=json.loads(row["metadata_json"]),
                    ),
                    score=score,
                    distance=1.0 - score,
                    rank=rank,
                )
            )
        return results

    def count(self) -> int:
        self._require_created()
        with self._connect() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM items").fetchone()[0])

    def delete_items(self, file_path: str) -> int:
        """Remove every item indexed for ``file_path``; returns how many."""

        self._require_created()
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM items WHERE file_path = ?", (file_path,))
            return int(cur.rowcount)

    def content_hashes(self, file_path: str) -> set[str]:
        self._require_created()
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT metadata_json FROM items WHERE file_path = ?", (file_path,)
            ).fetchall()
        hashes = {json.loads(row["metadata_json"]).get("contentHash") for row in rows}
        return {value for value in hashes if value}

    def delete_index(self) -> bool:
        """Destroy the persisted index. Returns False when nothing existed."""

        if not self._directory.exists():
            return False
        shutil.rmtree(self._directory)
        LOGGER.info("Deleted vector index at %s", self._directory)
        return True

    def _require_created(self) -> None:
        if not self.is_created():
            raise IndexNotFoundError(self._directory)

    @staticmethod
    def _dimension(conn: sqlite3.Connection) -> int | None:
        row = conn.execute("SELECT value FROM meta WHERE key = 'dimension'").fetchone()
        return int(row["value"]) if row else None


def _as_vector(values: Sequence[float]) -> np.ndarray:
    vector = np.asarray(values, dtype=np.float64)
    if vector.ndim != 1 or vector.shape[0] == 0:
        raise InvalidArgumentError("vector must be a non-empty one-dimensional sequence")
    if not np.all(np.isfinite(vector)):
        raise InvalidArgumentError("vector contains non-finite values")
    return vector


def _cosine_similarity(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    scores = np.zeros_like(dots)
    np.divide(dots, norms, out=scores, where=norms > 0)
    return scores
