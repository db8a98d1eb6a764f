"""
Workspace registry — one MemoryStore per workspace.

Owned by the composition root (CLI command, MCP server) and passed to
whoever needs a store.  Instances are cached by resolved workspace path
until evicted.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Callable, Dict, List, Optional

from memidx.config import MemoryConfig
from memidx.memory import MemoryStore

logger = logging.getLogger(__name__)


class MemoryRegistry:
    """Cache of MemoryStore instances keyed by workspace path."""

    def __init__(
        self,
        config: Optional[MemoryConfig] = None,
        factory: Optional[Callable[[str, MemoryConfig], MemoryStore]] = None,
    ):
        self.config = config or MemoryConfig()
        self._factory = factory or (
            lambda path, cfg: MemoryStore(path, config=cfg)
        )
        self._instances: Dict[str, MemoryStore] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(workspace_path: str) -> str:
        return os.path.realpath(workspace_path)

    def get_or_create(self, workspace_path: str) -> MemoryStore:
        """Return the store for *workspace_path*, creating it on first use."""
        key = self._key(workspace_path)
        with self._lock:
            store = self._instances.get(key)
            if store is None:
                store = self._factory(key, self.config)
                self._instances[key] = store
                logger.info(f"Memory store opened for workspace {key}")
            return store

    def get(self, workspace_path: str) -> Optional[MemoryStore]:
        """Return the cached store for *workspace_path*, or None."""
        with self._lock:
            return self._instances.get(self._key(workspace_path))

    def evict(self, workspace_path: str) -> bool:
        """Drop and close the store for *workspace_path*.

        Returns True if an instance was cached.
        """
        with self._lock:
            store = self._instances.pop(self._key(workspace_path), None)
        if store is None:
            return False
        store.close()
        logger.info(f"Memory store evicted for workspace {workspace_path}")
        return True

    def workspaces(self) -> List[str]:
        """Workspace keys currently cached."""
        with self._lock:
            return list(self._instances)

    def close_all(self) -> None:
        """Evict every cached store."""
        for key in self.workspaces():
            self.evict(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._instances)

    def __contains__(self, workspace_path: str) -> bool:
        with self._lock:
            return self._key(workspace_path) in self._instances
