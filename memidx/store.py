"""
Row Store — SQLite Persistent Backend

Tables:
    memory               - Stored memories (text, metadata, area, term cache)
    knowledge_checksums  - Last imported checksum per knowledge file
    schema_meta          - Schema metadata

The store knows nothing about TF-IDF or areas.  It exposes a narrow
query/command interface; memidx.memory owns the semantics.

Thread safety: uses sqlite3 check_same_thread=False with explicit serialization.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Iterable, List, Sequence

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS memory (
    id          TEXT PRIMARY KEY,
    text        TEXT NOT NULL,
    metadata    TEXT,                 -- JSON object or NULL
    area        TEXT NOT NULL DEFAULT 'MAIN',
    created_at  TEXT NOT NULL,
    terms       TEXT                  -- JSON {term: count}; NULL = not indexed
);

CREATE TABLE IF NOT EXISTS knowledge_checksums (
    filepath    TEXT PRIMARY KEY,     -- relative to the workspace root
    checksum    TEXT NOT NULL,        -- md5 hex digest
    updated_at  TEXT NOT NULL
);

-- Schema metadata for forward compatibility
CREATE TABLE IF NOT EXISTS schema_meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_memory_area ON memory(area);
CREATE INDEX IF NOT EXISTS idx_memory_created ON memory(created_at);
"""


class RowStore:
    """
    SQLite-backed relational row store.

    Two operations matter to callers: ``query`` (read rows) and ``execute``
    (write, committed immediately).  Errors from sqlite3 propagate as-is.
    """

    def __init__(self, db_path: str = ":memory:", wal_mode: bool = True):
        """Open (or create) the database and apply the schema.

        Args:
            db_path: SQLite database path (or ":memory:" for in-memory).
            wal_mode: Enable WAL journal mode for concurrent readers.
        """
        self._db_path = db_path
        self._lock = threading.Lock()
        # Auto-create parent directory for disk-backed databases.
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if wal_mode and db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA_SQL)
        self._conn.execute(
            "INSERT OR IGNORE INTO schema_meta (key, value) VALUES ('schema_version', ?)",
            (str(SCHEMA_VERSION),),
        )
        self._conn.execute(
            "INSERT OR IGNORE INTO schema_meta (key, value) VALUES ('created_by', 'memidx')",
        )
        self._conn.commit()
        logger.info(f"RowStore initialized: {db_path}")

    @property
    def db_path(self) -> str:
        return self._db_path

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        """Run a read statement and return all rows."""
        with self._lock:
            return self._conn.execute(sql, tuple(params)).fetchall()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement, commit, and return the affected row count."""
        with self._lock:
            try:
                cur = self._conn.execute(sql, tuple(params))
                self._conn.commit()
            except sqlite3.Error:
                self._conn.rollback()
                raise
            return cur.rowcount

    def executemany(self, sql: str, seq_of_params: Iterable[Sequence[Any]]) -> int:
        """Run one write statement per parameter tuple in a single transaction."""
        with self._lock:
            try:
                cur = self._conn.executemany(sql, [tuple(p) for p in seq_of_params])
                self._conn.commit()
            except sqlite3.Error:
                self._conn.rollback()
                raise
            return cur.rowcount

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        with self._lock:
            self._conn.close()
