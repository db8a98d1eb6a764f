"""
Tests for memidx.store — RowStore schema and query/execute interface.
"""

import sqlite3

import pytest

from memidx.store import SCHEMA_VERSION, RowStore


@pytest.fixture
def store():
    """Create an in-memory row store for testing."""
    s = RowStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def disk_store(tmp_path):
    """Create a disk-backed row store for testing."""
    s = RowStore(db_path=str(tmp_path / "nested" / "test.db"))
    yield s
    s.close()


def _insert(store, mem_id, text="hello", area="MAIN"):
    return store.execute(
        "INSERT INTO memory (id, text, metadata, area, created_at, terms) "
        "VALUES (?,?,?,?,?,?)",
        (mem_id, text, "{}", area, "2024-01-01T00:00:00+00:00", '{"hello": 1}'),
    )


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class TestSchema:
    def test_schema_version(self, store):
        rows = store.query("SELECT value FROM schema_meta WHERE key='schema_version'")
        assert rows[0]["value"] == str(SCHEMA_VERSION)

    def test_schema_created_by(self, store):
        rows = store.query("SELECT value FROM schema_meta WHERE key='created_by'")
        assert rows[0]["value"] == "memidx"

    def test_all_tables_exist(self, store):
        tables = {
            r["name"] for r in store.query(
                "SELECT name FROM sqlite_master WHERE type='table'"
            )
        }
        assert {"memory", "knowledge_checksums", "schema_meta"} <= tables

    def test_memory_columns(self, store):
        cols = [r["name"] for r in store.query("PRAGMA table_info(memory)")]
        assert cols == ["id", "text", "metadata", "area", "created_at", "terms"]

    def test_area_defaults_to_main(self, store):
        store.execute(
            "INSERT INTO memory (id, text, created_at) VALUES (?,?,?)",
            ("m1", "text", "2024-01-01T00:00:00+00:00"),
        )
        row = store.query("SELECT area, terms FROM memory WHERE id='m1'")[0]
        assert row["area"] == "MAIN"
        assert row["terms"] is None


class TestDiskStore:
    def test_creates_parent_directory(self, tmp_path, disk_store):
        assert (tmp_path / "nested" / "test.db").is_file()
        assert disk_store.db_path == str(tmp_path / "nested" / "test.db")

    def test_wal_mode(self, disk_store):
        mode = disk_store.query("PRAGMA journal_mode")[0][0]
        assert mode == "wal"

    def test_reopen_keeps_data(self, tmp_path):
        path = str(tmp_path / "persist.db")
        s = RowStore(path)
        _insert(s, "m1")
        s.close()
        s = RowStore(path)
        try:
            assert len(s.query("SELECT id FROM memory")) == 1
            versions = s.query("SELECT value FROM schema_meta WHERE key='schema_version'")
            assert len(versions) == 1
        finally:
            s.close()


# ---------------------------------------------------------------------------
# Query / execute
# ---------------------------------------------------------------------------


class TestQueryExecute:
    def test_execute_returns_rowcount(self, store):
        assert _insert(store, "m1") == 1
        assert _insert(store, "m2") == 1
        assert store.execute("DELETE FROM memory") == 2

    def test_query_rows_by_name(self, store):
        _insert(store, "m1", text="alpha", area="SOLUTIONS")
        [row] = store.query("SELECT id, text, area FROM memory WHERE id = ?", ("m1",))
        assert row["text"] == "alpha"
        assert row["area"] == "SOLUTIONS"

    def test_query_empty(self, store):
        assert store.query("SELECT * FROM memory") == []

    def test_params_as_list(self, store):
        _insert(store, "m1")
        assert len(store.query("SELECT id FROM memory WHERE id = ?", ["m1"])) == 1

    def test_executemany(self, store):
        store.executemany(
            "INSERT INTO knowledge_checksums (filepath, checksum, updated_at) "
            "VALUES (?,?,?)",
            [("a.md", "x", "t"), ("b.md", "y", "t")],
        )
        assert len(store.query("SELECT * FROM knowledge_checksums")) == 2

    def test_error_propagates_and_rolls_back(self, store):
        _insert(store, "m1")
        with pytest.raises(sqlite3.IntegrityError):
            _insert(store, "m1")
        assert len(store.query("SELECT id FROM memory")) == 1

    def test_executemany_is_atomic(self, store):
        with pytest.raises(sqlite3.IntegrityError):
            store.executemany(
                "INSERT INTO knowledge_checksums (filepath, checksum, updated_at) "
                "VALUES (?,?,?)",
                [("a.md", "x", "t"), ("a.md", "y", "t")],
            )
        assert store.query("SELECT * FROM knowledge_checksums") == []

    def test_upsert_replaces(self, store):
        sql = ("INSERT OR REPLACE INTO knowledge_checksums "
               "(filepath, checksum, updated_at) VALUES (?,?,?)")
        store.execute(sql, ("a.md", "old", "t1"))
        store.execute(sql, ("a.md", "new", "t2"))
        rows = store.query("SELECT checksum FROM knowledge_checksums")
        assert [r["checksum"] for r in rows] == ["new"]
