"""
Tests for memidx.registry — per-workspace MemoryStore cache.
"""

import os

import pytest

from memidx.config import MemoryConfig, StoreConfig
from memidx.memory import MemoryStore
from memidx.registry import MemoryRegistry


@pytest.fixture
def registry():
    cfg = MemoryConfig(store=StoreConfig(db_path=":memory:"))
    r = MemoryRegistry(cfg)
    yield r
    r.close_all()


class TestRegistry:
    def test_get_or_create_caches(self, tmp_path, registry):
        a = registry.get_or_create(str(tmp_path))
        b = registry.get_or_create(str(tmp_path))
        assert isinstance(a, MemoryStore)
        assert a is b
        assert len(registry) == 1

    def test_keys_by_real_path(self, tmp_path, registry):
        (tmp_path / "ws").mkdir()
        a = registry.get_or_create(str(tmp_path / "ws"))
        b = registry.get_or_create(str(tmp_path / "ws" / ".." / "ws"))
        assert a is b
        assert registry.workspaces() == [os.path.realpath(str(tmp_path / "ws"))]

    def test_separate_workspaces(self, tmp_path, registry):
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        a = registry.get_or_create(str(tmp_path / "a"))
        b = registry.get_or_create(str(tmp_path / "b"))
        assert a is not b
        a.insert(["only in workspace a"])
        assert a.count() == 1
        assert b.count() == 0

    def test_store_uses_registry_config(self, tmp_path, registry):
        store = registry.get_or_create(str(tmp_path))
        assert store.config is registry.config
        assert store.rows.db_path == ":memory:"

    def test_get_without_create(self, tmp_path, registry):
        assert registry.get(str(tmp_path)) is None
        assert str(tmp_path) not in registry
        store = registry.get_or_create(str(tmp_path))
        assert registry.get(str(tmp_path)) is store
        assert str(tmp_path) in registry

    def test_evict(self, tmp_path, registry):
        first = registry.get_or_create(str(tmp_path))
        assert registry.evict(str(tmp_path)) is True
        assert registry.evict(str(tmp_path)) is False
        assert len(registry) == 0
        assert registry.get_or_create(str(tmp_path)) is not first

    def test_close_all(self, tmp_path, registry):
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        registry.get_or_create(str(tmp_path / "a"))
        registry.get_or_create(str(tmp_path / "b"))
        registry.close_all()
        assert len(registry) == 0

    def test_custom_factory(self, tmp_path):
        created = []

        def factory(path, cfg):
            created.append(path)
            return MemoryStore(path, config=MemoryConfig(store=StoreConfig(db_path=":memory:")))

        r = MemoryRegistry(factory=factory)
        r.get_or_create(str(tmp_path))
        r.get_or_create(str(tmp_path))
        assert created == [os.path.realpath(str(tmp_path))]
        r.close_all()

    def test_default_factory_opens_workspace_db(self, tmp_path):
        r = MemoryRegistry()
        store = r.get_or_create(str(tmp_path))
        store.insert(["on disk"])
        r.close_all()
        assert (tmp_path / ".memory" / "memory.db").is_file()
