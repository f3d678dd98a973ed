# src/cache/memory_store.py — v1
"""In-memory, TTL-bounded, versioned cache store.

Entries live for the process lifetime only. Reads evict stale entries
lazily; ``update`` serializes read-modify-write per key with an
``asyncio.Lock`` so that mutators which await cannot interleave and
lose each other's writes.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import json
import logging
import math
import time
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from contextlib import asynccontextmanager
from typing import Any

from backoffice.cache.base_cache_store import BaseCacheStore, Mutator
from backoffice.cache.models import (
    CacheEntry,
    CacheEntryInfo,
    CacheIntegrityReport,
    CacheStats,
)

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 10 * 60
DEFAULT_CACHE_VERSION = "1.0.0"
DEFAULT_MAX_ENTRIES = 10_000


class MemoryCacheStore(BaseCacheStore):
    """Process-local cache store.

    Args:
        default_ttl: TTL in seconds used when ``set`` gets no ttl.
        version: Cache version stamped on every entry. Entries carrying
            another version are treated as misses and purged.
        max_entries: Sanity ceiling checked by ``is_healthy``.
        clock: Monotonic time source in seconds (injectable for tests).
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        version: str = DEFAULT_CACHE_VERSION,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not math.isfinite(default_ttl) or default_ttl <= 0:
            raise ValueError(f"default_ttl must be finite and > 0, got {default_ttl}")
        self._default_ttl = float(default_ttl)
        self._version = version
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._hits = 0
        self._misses = 0

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    @property
    def version(self) -> str:
        return self._version

    def __len__(self) -> int:
        return len(self._entries)

    # --- Core operations ---

    def get(self, key: str, default: Any = None) -> Any:
        """Return the fresh value for key, or ``default`` on miss."""
        entry = self._fresh_entry(key, self._clock())
        if entry is None:
            self._misses += 1
            return default
        self._hits += 1
        return entry.value

    def set(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        tags: Iterable[str] | None = None,
    ) -> None:
        """Create or replace an entry; ``stored_at`` is reset to now."""
        if not _is_valid_key(key):
            logger.warning("Ignoring cache write for malformed key %r", key)
            return
        ttl = self._default_ttl if ttl is None else float(ttl)
        if not math.isfinite(ttl) or ttl <= 0:
            # Non-positive or non-finite ttl: nothing is stored.
            self._entries.pop(key, None)
            logger.debug("Dropped cache write for %s with ttl=%s", key, ttl)
            return
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            stored_at=self._clock(),
            ttl=ttl,
            version=self._version,
            tags=list(tags or []),
        )

    async def update(
        self,
        key: str,
        mutator: Mutator,
        default_factory: Callable[[], Any] = dict,
    ) -> Any:
        """Apply ``mutator`` to the current value and store the result.

        The mutator receives a copy of the fresh value (or
        ``default_factory()`` when absent) and may be sync or async. The
        new value keeps the original entry's expiry and tags; an absent or
        expired entry gets the default ttl. If the mutator raises, the
        exception propagates and the stored entry is left untouched.

        Returns:
            The stored value, or None for a malformed key.
        """
        if not _is_valid_key(key):
            logger.warning("Ignoring cache update for malformed key %r", key)
            return None

        async with self._key_lock(key):
            entry = self._fresh_entry(key, self._clock())
            current = copy.deepcopy(entry.value) if entry else default_factory()

            new_value = mutator(current)
            if inspect.isawaitable(new_value):
                new_value = await new_value

            ttl = self._default_ttl
            tags: list[str] = []
            if entry is not None:
                tags = entry.tags
                remaining = entry.remaining_ttl(self._clock())
                if remaining > 0:
                    ttl = remaining
            self.set(key, new_value, ttl=ttl, tags=tags)
            return new_value

    def invalidate(self, key: str) -> None:
        """Remove one entry unconditionally."""
        if _is_valid_key(key) and self._entries.pop(key, None) is not None:
            logger.debug("Invalidated cache key %s", key)

    def clear_all(self) -> None:
        """Remove every entry."""
        count = len(self._entries)
        self._entries.clear()
        logger.info("Cache cleared (%d entries removed)", count)

    def is_healthy(self) -> bool:
        """Structural check used at bootstrap.

        Unhealthy when the entry count exceeds ``max_entries``, or any
        entry has a corrupted timestamp/ttl or a foreign version.
        """
        if len(self._entries) > self._max_entries:
            logger.warning(
                "Cache holds %d entries (ceiling %d)",
                len(self._entries), self._max_entries,
            )
            return False
        now = self._clock()
        for key, entry in self._entries.items():
            if not entry.is_well_formed(now):
                logger.warning("Cache entry %s has corrupted timestamps", key)
                return False
            if entry.version != self._version:
                logger.warning(
                    "Cache entry %s has version %s (expected %s)",
                    key, entry.version, self._version,
                )
                return False
        return True

    # --- Maintenance ---

    def clear_by_tag(self, tag: str) -> int:
        """Remove every entry carrying ``tag``; return the count removed."""
        doomed = [k for k, e in self._entries.items() if tag in e.tags]
        for key in doomed:
            del self._entries[key]
        logger.debug("Cleared %d cache entries tagged %r", len(doomed), tag)
        return len(doomed)

    def clear_expired(self) -> int:
        """Purge stale and foreign-version entries; return the count removed."""
        now = self._clock()
        doomed = [
            k for k, e in self._entries.items()
            if e.is_expired(now) or e.version != self._version
        ]
        for key in doomed:
            del self._entries[key]
        if doomed:
            logger.debug("Cleared %d expired cache entries", len(doomed))
        return len(doomed)

    def bulk_set(
        self,
        entries: Mapping[str, Any],
        ttl: float | None = None,
        tags: Iterable[str] | None = None,
    ) -> None:
        """Store several values with the same ttl and tags."""
        tag_list = list(tags or [])
        for key, value in entries.items():
            self.set(key, value, ttl=ttl, tags=tag_list)

    # --- Inspection ---

    def keys(self) -> list[str]:
        """Keys currently held (fresh or not yet evicted)."""
        return list(self._entries)

    def info(self, key: str) -> CacheEntryInfo | None:
        """Describe one entry, including expired ones not yet evicted."""
        if not _is_valid_key(key):
            return None
        entry = self._entries.get(key)
        if entry is None:
            return None
        now = self._clock()
        return CacheEntryInfo(
            key=key,
            size=_approximate_size(entry.value),
            age=now - entry.stored_at,
            remaining_ttl=entry.remaining_ttl(now),
            is_expired=entry.is_expired(now),
            version=entry.version,
            tags=list(entry.tags),
            created_at=entry.created_at,
        )

    def stats(self) -> CacheStats:
        return CacheStats(
            item_count=len(self._entries),
            keys=self.keys(),
            hits=self._hits,
            misses=self._misses,
        )

    def validate_integrity(self, keys: Iterable[str]) -> CacheIntegrityReport:
        """Check that each expected key is present and fresh."""
        expected = list(keys)
        report = CacheIntegrityReport(total=len(expected))
        for key in expected:
            info = self.info(key)
            if info is None:
                report.missing += 1
                report.issues.append(f"{key}: no cache data found")
            elif info.is_expired:
                report.expired += 1
                report.issues.append(
                    f"{key}: cache expired ({abs(info.remaining_ttl):.0f}s ago)"
                )
            else:
                report.valid += 1
        return report

    # --- Internals ---

    def _fresh_entry(self, key: str, now: float) -> CacheEntry | None:
        """Return the entry if fresh and current; evict it otherwise."""
        if not _is_valid_key(key):
            return None
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.version != self._version or entry.is_expired(now):
            del self._entries[key]
            logger.debug("Evicted stale cache entry %s", key)
            return None
        return entry

    @asynccontextmanager
    async def _key_lock(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]


def _is_valid_key(key: object) -> bool:
    return isinstance(key, str) and bool(key)


def _approximate_size(value: Any) -> int:
    """Length of the JSON rendering of value (best effort)."""
    try:
        return len(json.dumps(value, default=str))
    except (TypeError, ValueError):
        return len(repr(value))
