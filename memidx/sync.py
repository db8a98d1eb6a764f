"""
Sync — Knowledge Directory Import

Walks the workspace knowledge directory (``.knowledge`` by default) and
imports files into the memory store as KNOWLEDGE memories.  A file is
imported only when the MD5 checksum of its content differs from the one
recorded for its workspace-relative path:

  1. extension not supported → skip (no checksum recorded)
  2. recorded checksum == current checksum → skip
  3. otherwise → insert one memory with the full content, upsert checksum

A changed file is imported as a new memory; the memory created for its
previous content stays in the store.

Per-file failures are collected in the result and never abort the walk.

Public API:
    iter_knowledge_files(root, workspace_path) -> [(abs_path, rel_path)]
    preload_knowledge(memory, workspace_path, ...) -> KnowledgeImportResult
"""

from __future__ import annotations

import logging
import os
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Iterator, Tuple

from memidx.types import KnowledgeImportResult, content_checksum

if TYPE_CHECKING:
    from memidx.memory import MemoryStore

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = frozenset({".txt", ".md", ".pdf", ".csv", ".json", ".html"})

KNOWLEDGE_SOURCE = "knowledge_import"


# ---------------------------------------------------------------------------
# Scan
# ---------------------------------------------------------------------------


def iter_knowledge_files(
    root: str, workspace_path: str,
) -> Iterator[Tuple[str, str]]:
    """Yield ``(abs_path, rel_path)`` for every file below *root*.

    Directories are traversed in sorted order, files sorted within each
    directory.  ``rel_path`` is relative to *workspace_path* and always
    uses forward slashes so checksums survive a platform change.
    """
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for fname in sorted(filenames):
            abs_path = os.path.join(dirpath, fname)
            if not os.path.isfile(abs_path):
                continue
            rel_path = Path(os.path.relpath(abs_path, workspace_path)).as_posix()
            yield abs_path, rel_path


def _read_text(path: str) -> str:
    """Read a file as UTF-8 text; undecodable bytes become U+FFFD."""
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return f.read()


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def preload_knowledge(
    memory: MemoryStore,
    workspace_path: str,
    *,
    knowledge_dir: str = ".knowledge",
    supported_extensions: Iterable[str] = SUPPORTED_EXTENSIONS,
) -> KnowledgeImportResult:
    """Import new or changed knowledge files into *memory*.

    Args:
        memory: Target MemoryStore (also holds the checksum registry).
        workspace_path: Workspace root; relative paths are computed from it.
        knowledge_dir: Knowledge directory, relative to the workspace.
        supported_extensions: Lowercase extensions (with dot) to import.

    Returns:
        KnowledgeImportResult with imported/skipped counts and per-file
        errors ``{"path": rel_path, "error": message}``.  A missing
        knowledge directory yields an all-zero result.
    """
    result = KnowledgeImportResult()
    root = os.path.join(workspace_path, knowledge_dir)
    if not os.path.isdir(root):
        logger.debug(f"No knowledge directory at {root}")
        return result

    exts = {e.lower() for e in supported_extensions}
    checksums = memory.get_knowledge_checksums()

    for abs_path, rel_path in iter_knowledge_files(root, workspace_path):
        try:
            content = _read_text(abs_path)
            checksum = content_checksum(content)
            filename = os.path.basename(abs_path)
            ext = os.path.splitext(filename)[1].lower()

            if ext not in exts:
                result.skipped += 1
                continue

            recorded = checksums.get(rel_path)
            if recorded is not None and recorded.checksum == checksum:
                result.skipped += 1
                continue

            ids = memory.insert([content], {
                "area": "KNOWLEDGE",
                "source": KNOWLEDGE_SOURCE,
                "filepath": rel_path,
                "filename": filename,
                "extension": ext,
                "checksum": checksum,
            })
            memory.update_knowledge_checksum(rel_path, checksum)
            result.imported += 1
            result.memory_ids.extend(ids)
            logger.debug(f"Imported {rel_path} ({checksum})")
        except (OSError, ValueError, sqlite3.Error) as exc:
            logger.warning(f"Knowledge import failed for {rel_path}: {exc}")
            result.errors.append({"path": rel_path, "error": str(exc)})

    logger.info(
        f"Knowledge import: {result.imported} imported, {result.skipped} skipped, "
        f"{len(result.errors)} errors"
    )
    return result
