# src/tracking/optimization.py — v1
"""Optimization tracker — how much work coalescing and caching saved.

The coalescer reports every enqueue and flush, the facade reports cache
hits and misses. Recommendations use fixed thresholds:

  - cache hit rate below 30%        → "cache", high
  - batching efficiency below 20%   → "batching", medium
  - average flush above 2000 ms     → "performance", high
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from backoffice.tracking.models import (
    OptimizationStats,
    OptimizationSummary,
    Recommendation,
)

logger = logging.getLogger(__name__)

LOW_CACHE_HIT_RATE = 0.3
LOW_BATCHING_EFFICIENCY = 0.2
SLOW_RESPONSE_MS = 2000.0


class OptimizationTracker:
    """Accumulates OptimizationStats for one service instance."""

    def __init__(self) -> None:
        self._stats = OptimizationStats()

    @property
    def stats(self) -> OptimizationStats:
        return self._stats.model_copy()

    def record_request(self) -> None:
        self._stats.total_requests += 1

    def record_flush(self, requests: int, fetches: int, response_time_ms: float) -> None:
        """Record one coalesced flush serving ``requests`` with ``fetches`` fetches."""
        s = self._stats
        s.average_response_time_ms = (
            (s.average_response_time_ms * s.batched_requests + response_time_ms)
            / (s.batched_requests + 1)
        )
        s.batched_requests += 1
        s.saved_requests += max(0, requests - fetches)
        s.last_optimization = datetime.now(timezone.utc)

    def record_deduplicated(self, count: int) -> None:
        """Record requests dropped as duplicates outside a flush."""
        if count > 0:
            self._stats.saved_requests += count

    def record_cache_hit(self) -> None:
        self._stats.cache_hits += 1

    def record_cache_miss(self) -> None:
        self._stats.cache_misses += 1

    def reset(self) -> None:
        self._stats = OptimizationStats()

    def recommendations(self) -> list[Recommendation]:
        s = self._stats
        lookups = s.cache_hits + s.cache_misses
        recs: list[Recommendation] = []

        if lookups and s.cache_hits / lookups < LOW_CACHE_HIT_RATE:
            recs.append(Recommendation(
                type="cache",
                priority="high",
                message=(
                    "Low cache hit rate detected. Consider increasing cache "
                    "duration or improving cache keys."
                ),
                action="Review caching strategy",
            ))

        if s.total_requests and s.saved_requests / s.total_requests < LOW_BATCHING_EFFICIENCY:
            recs.append(Recommendation(
                type="batching",
                priority="medium",
                message="Low batching efficiency. Consider combining more requests.",
                action="Implement request batching",
            ))

        if s.average_response_time_ms > SLOW_RESPONSE_MS:
            recs.append(Recommendation(
                type="performance",
                priority="high",
                message=(
                    "High average response time detected. Consider "
                    "optimizing queries."
                ),
                action="Optimize database queries",
            ))

        return recs

    def summary(self) -> OptimizationSummary:
        s = self._stats
        lookups = s.cache_hits + s.cache_misses
        return OptimizationSummary(
            efficiency=(s.saved_requests / s.total_requests) * 100 if s.total_requests else 0.0,
            cache_hit_rate=(s.cache_hits / lookups) * 100 if lookups else 0.0,
            average_response_time_ms=s.average_response_time_ms,
            total_optimizations=s.batched_requests,
            recommendations=self.recommendations(),
        )


@asynccontextmanager
async def measure(name: str = "operation") -> AsyncIterator[None]:
    """Log how long the wrapped block took, including on failure."""
    start = time.perf_counter()
    try:
        yield
    except Exception:
        elapsed = (time.perf_counter() - start) * 1000
        logger.warning("%s failed after %.2fms", name, elapsed)
        raise
    elapsed = (time.perf_counter() - start) * 1000
    logger.info("%s completed in %.2fms", name, elapsed)
