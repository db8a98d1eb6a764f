"""
memidx — Embedded long-term memory for AI agent tools.

One SQLite file per workspace.  Memories are ranked by TF-IDF cosine
similarity; a knowledge directory is kept in sync by content checksum.
"""

__version__ = "0.1.0"

from memidx.types import (
    MEMORY_AREAS,
    KnowledgeChecksum,
    KnowledgeImportResult,
    Memory,
    ScoredMemory,
)
from memidx.config import MemoryConfig, load_config
from memidx.store import RowStore, SCHEMA_VERSION
from memidx.memory import MemoryStore
from memidx.registry import MemoryRegistry
from memidx.sync import preload_knowledge

__all__ = [
    "__version__",
    "MEMORY_AREAS",
    "Memory",
    "ScoredMemory",
    "KnowledgeChecksum",
    "KnowledgeImportResult",
    "MemoryConfig",
    "load_config",
    "RowStore",
    "SCHEMA_VERSION",
    "MemoryStore",
    "MemoryRegistry",
    "preload_knowledge",
]
