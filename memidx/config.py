"""
Memory Subsystem Configuration

Configuration dataclasses for memidx: store location, indexing/search
defaults, and knowledge import.  Includes load_config() for reading a JSON
config file with silent fallback to compiled defaults.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(ValueError):
    """Raised when config values are out of valid range."""

    pass


def _check_range(
    errors: List[str], name: str, value, lo, hi, typ=None,
) -> None:
    """Append an error message if value is out of [lo, hi] or wrong type."""
    if typ is not None and not isinstance(value, typ):
        errors.append(f"{name}: expected {typ.__name__}, got {type(value).__name__}")
        return
    if value < lo or value > hi:
        errors.append(f"{name}: {value} not in [{lo}, {hi}]")


@dataclass
class StoreConfig:
    """SQLite store configuration.

    A relative ``db_path`` is resolved against the workspace root.
    """
    db_path: str = ".memory/memory.db"
    wal_mode: bool = True

    def validate(self) -> List[str]:
        """Return list of validation error messages (empty = valid)."""
        errors: List[str] = []
        if not self.db_path:
            errors.append("store.db_path: must not be empty")
        return errors


@dataclass
class IndexConfig:
    """Insert truncation and search/listing defaults."""
    max_text_length: int = 4000
    default_limit: int = 10
    default_threshold: float = 0.1
    list_limit: int = 500

    def validate(self) -> List[str]:
        """Return list of validation error messages (empty = valid)."""
        errors: List[str] = []
        _check_range(errors, "index.max_text_length",
                     self.max_text_length, 1, 1_000_000, int)
        _check_range(errors, "index.default_limit",
                     self.default_limit, 1, 10000, int)
        _check_range(errors, "index.default_threshold",
                     self.default_threshold, 0.0, 1.0, float)
        _check_range(errors, "index.list_limit",
                     self.list_limit, 1, 100000, int)
        return errors


@dataclass
class KnowledgeConfig:
    """Knowledge directory import configuration."""
    dir_name: str = ".knowledge"
    supported_extensions: List[str] = field(
        default_factory=lambda: [".txt", ".md", ".pdf", ".csv", ".json", ".html"]
    )

    def validate(self) -> List[str]:
        """Return list of validation error messages (empty = valid)."""
        errors: List[str] = []
        if not self.dir_name:
            errors.append("knowledge.dir_name: must not be empty")
        for ext in self.supported_extensions:
            if not ext.startswith("."):
                errors.append(
                    f"knowledge.supported_extensions: {ext!r} must start with '.'"
                )
        return errors


@dataclass
class MemoryConfig:
    """Top-level memidx configuration."""
    store: StoreConfig = field(default_factory=StoreConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    knowledge: KnowledgeConfig = field(default_factory=KnowledgeConfig)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> MemoryConfig:
        """Build config from a nested dict (e.g. JSON)."""
        kwargs: Dict[str, Any] = {}
        if "store" in d:
            kwargs["store"] = StoreConfig(**d["store"])
        if "index" in d:
            kwargs["index"] = IndexConfig(**d["index"])
        if "knowledge" in d:
            kwargs["knowledge"] = KnowledgeConfig(**d["knowledge"])
        return cls(**kwargs)

    def validate(self) -> List[str]:
        """Validate all config sections. Returns list of error messages."""
        errors: List[str] = []
        errors.extend(self.store.validate())
        errors.extend(self.index.validate())
        errors.extend(self.knowledge.validate())
        return errors


def load_config(
    path: Optional[str] = None, *, strict: bool = False,
) -> MemoryConfig:
    """Load config from a JSON file. Returns defaults if file missing/invalid.

    Args:
        path: Path to config.json. If None, returns compiled defaults.
        strict: If True, raise ValidationError on invalid config values.

    Returns:
        MemoryConfig with values from file or defaults.

    Raises:
        ValidationError: If strict=True and config values are out of range.
    """
    if path is None:
        cfg = MemoryConfig()
    else:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            cfg = MemoryConfig.from_dict(data)
        except (FileNotFoundError, json.JSONDecodeError, TypeError, KeyError):
            cfg = MemoryConfig()

    if strict:
        errors = cfg.validate()
        if errors:
            raise ValidationError(
                f"Config validation failed: {'; '.join(errors)}"
            )

    return cfg
