"""
Memory Store — TF-IDF indexed memories over a relational row store

Public API (one instance per workspace, see memidx.registry):
    insert(texts, metadata)                  -> ids
    search(query, limit, threshold, filter)  -> ranked ScoredMemory list
    delete(ids) / delete_by_query(query, area)
    get_all_memories(area) / get_memory_by_id(id) / get_knowledge_stats()
    preload_knowledge()                      -> KnowledgeImportResult

Index model:
    Each row carries its term-frequency map (JSON) computed at insert time.
    The IDF table lives in memory only.  It is rebuilt from the full corpus
    after every insert and once at construction; searches and deletes never
    rebuild it, so after a delete the weights stay as of the last insert.

Thread safety: every public operation runs under one re-entrant lock.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from memidx.config import MemoryConfig
from memidx.similarity import build_idf, compute_vector, cosine_similarity, tokenize
from memidx.store import RowStore
from memidx.types import (
    DEFAULT_AREA,
    MEMORY_AREAS,
    KnowledgeChecksum,
    KnowledgeImportResult,
    Memory,
    ScoredMemory,
    _generate_id,
    _now_iso,
    known_area,
)

logger = logging.getLogger(__name__)

_MEMORY_COLUMNS = "id, text, metadata, area, created_at, terms"

# Stay well below SQLITE_MAX_VARIABLE_NUMBER on old builds
_DELETE_BATCH = 500


def resolve_db_path(workspace_path: str, config: MemoryConfig) -> str:
    """Resolve the configured db path against the workspace root."""
    db_path = config.store.db_path
    if db_path == ":memory:" or os.path.isabs(db_path):
        return db_path
    return str(Path(workspace_path) / db_path)


class MemoryStore:
    """
    Persistent memory store for one workspace.

    Args:
        workspace_path: Workspace root; the knowledge directory and relative
            db paths resolve against it.
        rows: Row store to use.  If None, a RowStore is opened at the
            configured db path and closed by close().
        config: MemoryConfig (defaults if None).
    """

    def __init__(
        self,
        workspace_path: str,
        rows: Optional[RowStore] = None,
        config: Optional[MemoryConfig] = None,
    ):
        self.workspace_path = str(workspace_path)
        self.config = config or MemoryConfig()
        self._owns_rows = rows is None
        if rows is None:
            rows = RowStore(
                db_path=resolve_db_path(self.workspace_path, self.config),
                wal_mode=self.config.store.wal_mode,
            )
        self._rows = rows
        self._lock = threading.RLock()
        self._idf: Dict[str, float] = {}
        self.rebuild_idf()

    def __enter__(self) -> MemoryStore:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def rows(self) -> RowStore:
        return self._rows

    @property
    def idf(self) -> Dict[str, float]:
        """Copy of the current IDF table (as of the last rebuild)."""
        with self._lock:
            return dict(self._idf)

    def close(self) -> None:
        """Close the row store if this instance opened it."""
        if self._owns_rows:
            self._rows.close()

    # -- Index -------------------------------------------------------------

    def rebuild_idf(self) -> int:
        """Recompute the IDF table from every indexed row.

        Returns the number of documents that contributed.
        """
        with self._lock:
            rows = self._rows.query(
                "SELECT terms FROM memory WHERE terms IS NOT NULL"
            )
            documents = [json.loads(r["terms"]) for r in rows]
            self._idf = build_idf(documents)
            logger.debug(
                f"IDF rebuilt: {len(documents)} documents, {len(self._idf)} terms"
            )
            return len(documents)

    # -- Write operations --------------------------------------------------

    def insert(
        self,
        texts: Union[str, Sequence[str]],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[str]:
        """
        Store each text as one memory, then rebuild the IDF table.

        Texts longer than ``index.max_text_length`` are silently truncated.
        All texts of one call share *metadata*, area and timestamp.  The
        area comes from ``metadata["area"]`` (MAIN if absent) and is stored
        as given.

        Returns the generated ids, in input order.
        """
        if isinstance(texts, str):
            texts = [texts]
        meta = dict(metadata or {})
        area = meta.get("area") or DEFAULT_AREA
        metadata_json = json.dumps(meta, ensure_ascii=False)
        max_len = self.config.index.max_text_length
        now = _now_iso()

        ids: List[str] = []
        records = []
        for text in texts:
            truncated = text[:max_len]
            terms = tokenize(truncated)
            mem_id = _generate_id("mem")
            records.append((
                mem_id, truncated, metadata_json, area, now,
                json.dumps(terms, ensure_ascii=False),
            ))
            ids.append(mem_id)

        with self._lock:
            if records:
                self._rows.executemany(
                    f"INSERT INTO memory ({_MEMORY_COLUMNS}) VALUES (?,?,?,?,?,?)",
                    records,
                )
            # Unconditional: weights always reflect every committed insert
            n_docs = self.rebuild_idf()
        logger.info(
            f"Inserted {len(ids)} memories into {area} (corpus: {n_docs} indexed)"
        )
        return ids

    def delete(self, ids: Union[str, Sequence[str]]) -> int:
        """Delete memories by id. Unknown ids are ignored.

        Returns the number of rows removed.
        """
        if isinstance(ids, str):
            ids = [ids]
        ids = list(ids)
        removed = 0
        with self._lock:
            for start in range(0, len(ids), _DELETE_BATCH):
                batch = ids[start:start + _DELETE_BATCH]
                placeholders = ",".join("?" for _ in batch)
                removed += self._rows.execute(
                    f"DELETE FROM memory WHERE id IN ({placeholders})", batch,
                )
        logger.debug(f"Deleted {removed} memories ({len(ids)} ids requested)")
        return removed

    def delete_by_query(
        self, query: Optional[str] = None, area: Optional[str] = None,
    ) -> int:
        """Delete memories whose text contains *query* and/or in *area*.

        Matching is a case-sensitive plain substring test.  Both conditions
        must hold when both are given.  With neither, nothing is deleted.

        Returns the number of rows removed.
        """
        area = area or None
        clauses: List[str] = []
        params: List[Any] = []
        if query:
            clauses.append("instr(text, ?) > 0")
            params.append(query)
        if area:
            clauses.append("area = ?")
            params.append(area)
        if not clauses:
            logger.warning("delete_by_query called without query or area; ignored")
            return 0

        with self._lock:
            removed = self._rows.execute(
                f"DELETE FROM memory WHERE {' AND '.join(clauses)}", params,
            )
        logger.info(f"Deleted {removed} memories by query (area={area})")
        return removed

    # -- Search ------------------------------------------------------------

    def search(
        self,
        query: str,
        limit: Optional[int] = None,
        threshold: Optional[float] = None,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[ScoredMemory]:
        """
        Rank indexed memories by TF-IDF cosine similarity to *query*.

        Args:
            query: Free text; tokenized like stored memories.
            limit: Max results (default ``index.default_limit``).
            threshold: Minimum score kept (default ``index.default_threshold``).
            filter: Optional ``{"area": AREA}`` restriction.  An area outside
                MEMORY_AREAS is ignored and every area is searched.

        Returns:
            At most *limit* results with score >= *threshold*, best first.
            Equal scores keep storage (insertion) order.
        """
        if limit is None:
            limit = self.config.index.default_limit
        if threshold is None:
            threshold = self.config.index.default_threshold
        area = known_area((filter or {}).get("area"))

        sql = f"SELECT {_MEMORY_COLUMNS} FROM memory WHERE terms IS NOT NULL"
        params: List[Any] = []
        if area:
            sql += " AND area = ?"
            params.append(area)
        sql += " ORDER BY rowid"

        with self._lock:
            idf = self._idf
            rows = self._rows.query(sql, params)

        query_vector = compute_vector(tokenize(query), idf)
        results: List[ScoredMemory] = []
        for row in rows:
            mem = Memory.from_row(row)
            score = cosine_similarity(
                query_vector, compute_vector(mem.terms or {}, idf),
            )
            if score >= threshold:
                results.append(_scored(mem, score))

        results.sort(key=lambda m: m.score, reverse=True)
        logger.debug(
            f"search: {len(rows)} candidates, {len(results)} above {threshold}"
        )
        return results[:max(limit, 0)]

    # -- Read operations ---------------------------------------------------

    def get_all_memories(self, area: Optional[str] = None) -> List[Memory]:
        """Most recent memories first, capped at ``index.list_limit``.

        An *area* outside MEMORY_AREAS is ignored, as in search().
        """
        area = known_area(area)
        sql = f"SELECT {_MEMORY_COLUMNS} FROM memory"
        params: List[Any] = []
        if area:
            sql += " WHERE area = ?"
            params.append(area)
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(self.config.index.list_limit)
        with self._lock:
            rows = self._rows.query(sql, params)
        return [Memory.from_row(r) for r in rows]

    def get_memory_by_id(self, memory_id: str) -> Optional[Memory]:
        """Read a single memory by id. Returns None if not found."""
        with self._lock:
            rows = self._rows.query(
                f"SELECT {_MEMORY_COLUMNS} FROM memory WHERE id = ?", (memory_id,),
            )
        return Memory.from_row(rows[0]) if rows else None

    def get_knowledge_stats(self) -> Dict[str, int]:
        """Memory count per area.

        Exactly the MEMORY_AREAS keys, zero included.  Rows stored under any
        other area are not reported here; count() still includes them.
        """
        stats = dict.fromkeys(MEMORY_AREAS, 0)
        with self._lock:
            rows = self._rows.query(
                "SELECT area, COUNT(*) AS cnt FROM memory GROUP BY area"
            )
        for row in rows:
            if row["area"] in stats:
                stats[row["area"]] = row["cnt"]
        return stats

    def count(self, area: Optional[str] = None) -> int:
        """Total number of memories, optionally within one stored area."""
        area = area or None
        with self._lock:
            if area:
                rows = self._rows.query(
                    "SELECT COUNT(*) AS cnt FROM memory WHERE area = ?", (area,),
                )
            else:
                rows = self._rows.query("SELECT COUNT(*) AS cnt FROM memory")
        return rows[0]["cnt"]

    # -- Knowledge checksums -----------------------------------------------

    def get_knowledge_checksums(self) -> Dict[str, KnowledgeChecksum]:
        """All recorded knowledge checksums keyed by relative file path."""
        with self._lock:
            rows = self._rows.query(
                "SELECT filepath, checksum, updated_at FROM knowledge_checksums"
            )
        return {
            r["filepath"]: KnowledgeChecksum(
                filepath=r["filepath"],
                checksum=r["checksum"],
                updated_at=r["updated_at"],
            )
            for r in rows
        }

    def update_knowledge_checksum(self, filepath: str, checksum: str) -> None:
        """Insert or replace the checksum recorded for *filepath*."""
        with self._lock:
            self._rows.execute(
                """INSERT OR REPLACE INTO knowledge_checksums
                   (filepath, checksum, updated_at) VALUES (?,?,?)""",
                (filepath, checksum, _now_iso()),
            )

    def preload_knowledge(self) -> KnowledgeImportResult:
        """Import new or changed files from the workspace knowledge directory."""
        from memidx.sync import preload_knowledge

        knowledge = self.config.knowledge
        with self._lock:
            return preload_knowledge(
                self,
                self.workspace_path,
                knowledge_dir=knowledge.dir_name,
                supported_extensions=knowledge.supported_extensions,
            )


def _scored(mem: Memory, score: float) -> ScoredMemory:
    """Attach a score to a loaded memory."""
    return ScoredMemory(
        id=mem.id,
        text=mem.text,
        metadata=mem.metadata,
        area=mem.area,
        created_at=mem.created_at,
        terms=mem.terms,
        score=score,
    )
