"""
Memory Data Model

Defines the stored memory record, scored search results, knowledge-file
checksums and the knowledge import summary.  Memories are immutable once
written: there is no update path, only insert and delete.
"""

from __future__ import annotations

import hashlib
import json
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

# ---------------------------------------------------------------------------
# Areas
# ---------------------------------------------------------------------------

MemoryArea = Literal["MAIN", "FRAGMENTS", "SOLUTIONS", "INSTRUMENTS", "KNOWLEDGE"]

# Ordered: stats and listings report areas in this order
MEMORY_AREAS: tuple = ("MAIN", "FRAGMENTS", "SOLUTIONS", "INSTRUMENTS", "KNOWLEDGE")
DEFAULT_AREA: MemoryArea = "MAIN"


def known_area(area: Optional[str]) -> Optional[str]:
    """Return *area* if it is one of MEMORY_AREAS, else None (no filter)."""
    return area if area in MEMORY_AREAS else None


def _now_iso() -> str:
    """Current UTC time as ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def _generate_id(prefix: str = "mem") -> str:
    """Generate a unique memory ID with prefix."""
    return f"{prefix}_{uuid.uuid4()}"


def content_checksum(text: str) -> str:
    """MD5 hex digest of UTF-8 text (change detection, not security)."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------

@dataclass
class Memory:
    """
    A stored unit of knowledge.

    ``terms`` is a cache of ``tokenize(text)`` written at insert time.  It is
    never recomputed on read; ``None`` means the row was never indexed.
    ``area`` is read back as stored, even when it is not one of MEMORY_AREAS.
    """

    id: str = field(default_factory=_generate_id)
    text: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    area: str = DEFAULT_AREA
    created_at: str = field(default_factory=_now_iso)
    terms: Optional[Dict[str, int]] = None

    def to_dict(self, include_terms: bool = False) -> Dict[str, Any]:
        """Serialize to dict (JSON-safe). The term cache is opt-in."""
        d = asdict(self)
        if not include_terms:
            d.pop("terms", None)
        return d

    @classmethod
    def from_row(cls, row) -> Memory:
        """Build from a ``memory`` table row (terms column optional)."""
        keys = row.keys()
        metadata_json = row["metadata"]
        terms_json = row["terms"] if "terms" in keys else None
        return cls(
            id=row["id"],
            text=row["text"],
            metadata=json.loads(metadata_json) if metadata_json else {},
            area=row["area"],
            created_at=row["created_at"],
            terms=json.loads(terms_json) if terms_json else None,
        )

    def preview(self, width: int = 80) -> str:
        """Single-line preview of the text."""
        flat = " ".join(self.text.split())
        if len(flat) <= width:
            return flat
        return flat[: width - 1].rstrip() + "…"


@dataclass
class ScoredMemory(Memory):
    """A search hit: the memory plus its cosine similarity to the query."""

    score: float = 0.0


# ---------------------------------------------------------------------------
# Knowledge import bookkeeping
# ---------------------------------------------------------------------------

@dataclass
class KnowledgeChecksum:
    """Last-imported state of one knowledge file, keyed by relative path."""

    filepath: str = ""
    checksum: str = ""
    updated_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize checksum record to a plain dictionary."""
        return asdict(self)


@dataclass
class KnowledgeImportResult:
    """Aggregate outcome of one knowledge directory import."""

    imported: int = 0
    skipped: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    memory_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }
