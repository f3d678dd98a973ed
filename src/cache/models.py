# src/cache/models.py — v1
"""Cache domain models: CacheEntry, CacheEntryInfo, CacheStats, CacheIntegrityReport."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


class CacheEntry(BaseModel):
    """Single stored value with its freshness window.

    ``stored_at`` is read from the store's monotonic clock; ``created_at``
    is wall-clock time kept for inspection only.
    """

    key: str
    value: Any = None
    stored_at: float
    ttl: float
    version: str
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def expires_at(self) -> float:
        return self.stored_at + self.ttl

    def remaining_ttl(self, now: float) -> float:
        return self.expires_at() - now

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at()

    def is_well_formed(self, now: float) -> bool:
        """Timestamps are finite, not in the future, and ttl is positive."""
        return (
            math.isfinite(self.stored_at)
            and math.isfinite(self.ttl)
            and self.ttl > 0
            and self.stored_at <= now
        )


class CacheEntryInfo(BaseModel):
    """Read-only description of one entry (no value)."""

    key: str
    size: int
    age: float
    remaining_ttl: float
    is_expired: bool
    version: str
    tags: list[str] = Field(default_factory=list)
    created_at: datetime


class CacheStats(BaseModel):
    """Point-in-time store statistics."""

    item_count: int
    keys: list[str] = Field(default_factory=list)
    hits: int = 0
    misses: int = 0

    @property
    def hit_rate(self) -> float:
        """Hit rate in percent (0 when nothing was read yet)."""
        lookups = self.hits + self.misses
        return (self.hits / lookups) * 100 if lookups else 0.0


class CacheIntegrityReport(BaseModel):
    """Outcome of checking a set of expected keys."""

    total: int
    valid: int = 0
    expired: int = 0
    missing: int = 0
    issues: list[str] = Field(default_factory=list)

    @property
    def is_healthy(self) -> bool:
        return self.missing == 0 and self.expired < self.total * 0.5
