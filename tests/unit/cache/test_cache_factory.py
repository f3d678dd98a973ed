# tests/unit/cache/test_cache_factory.py — v1
"""Tests for cache/cache_factory.py."""

from __future__ import annotations

from backoffice.cache.cache_factory import create_cache_store
from backoffice.cache.memory_store import MemoryCacheStore
from backoffice.config.settings import Settings


class TestCreateCacheStore:
    def test_defaults(self):
        store = create_cache_store()
        assert isinstance(store, MemoryCacheStore)
        assert store.default_ttl == 600
        assert store.version == "1.0.0"

    def test_from_settings(self):
        s = Settings(_env_file=None, cache_default_ttl_seconds=30, cache_version="2.1.0")
        store = create_cache_store(s)
        assert store.default_ttl == 30
        assert store.version == "2.1.0"

    def test_clock_injection(self):
        now = [50.0]
        store = create_cache_store(clock=lambda: now[0])
        store.set("k", 1, ttl=5)
        now[0] = 60.0
        assert store.get("k") is None
