# src/cache/base_cache_store.py — v1
"""Abstract cache store interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from backoffice.cache.models import CacheEntryInfo, CacheIntegrityReport, CacheStats

Mutator = Callable[[Any], "Any | Awaitable[Any]"]


class _Miss:
    """Sentinel type for a cache miss, distinct from any stored value."""

    def __repr__(self) -> str:
        return "MISS"


MISS: Any = _Miss()


class BaseCacheStore(ABC):
    """Unified interface for keyed, TTL-bounded result stores.

    Reads never raise for missing or malformed keys; they report a miss.
    """

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the fresh value for key, or ``default`` on miss.

        Pass ``MISS`` as default to tell a miss from a stored None.
        """

    @abstractmethod
    def set(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        tags: Iterable[str] | None = None,
    ) -> None:
        """Create or replace an entry."""

    @abstractmethod
    async def update(
        self,
        key: str,
        mutator: Mutator,
        default_factory: Callable[[], Any] = dict,
    ) -> Any:
        """Serialized read-modify-write of one key."""

    @abstractmethod
    def invalidate(self, key: str) -> None:
        """Remove one entry."""

    @abstractmethod
    def clear_all(self) -> None:
        """Remove every entry."""

    @abstractmethod
    def is_healthy(self) -> bool:
        """Structural sanity check."""

    @abstractmethod
    def info(self, key: str) -> CacheEntryInfo | None:
        """Describe one entry without returning its value."""

    @abstractmethod
    def stats(self) -> CacheStats:
        """Return store statistics."""

    @abstractmethod
    def validate_integrity(self, keys: Iterable[str]) -> CacheIntegrityReport:
        """Check that the expected keys are present and fresh."""
