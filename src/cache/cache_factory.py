# src/cache/cache_factory.py — v2
"""Factory for cache store instantiation."""

from __future__ import annotations

import time
from collections.abc import Callable

from backoffice.cache.memory_store import MemoryCacheStore
from backoffice.config.settings import Settings


def create_cache_store(
    settings: Settings | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> MemoryCacheStore:
    """Instantiate the cache store configured by settings.

    Args:
        settings: Application settings. Defaults apply when None.
        clock: Monotonic time source (overridden in tests).

    Returns:
        Configured MemoryCacheStore.
    """
    if settings is None:
        return MemoryCacheStore(clock=clock)

    return MemoryCacheStore(
        default_ttl=settings.cache_default_ttl_seconds,
        version=settings.cache_version,
        max_entries=settings.cache_max_entries,
        clock=clock,
    )
