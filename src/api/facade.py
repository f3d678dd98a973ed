# src/api/facade.py — v1
"""Public API facade — cache-first data loading and bulk operations.

Usage:
    from backoffice.api.facade import AdminDataService
    service = AdminDataService(fetchers={"users": fetch_users})
    service.startup()
    users = await service.load("users")

Reads go cache → coalescer; bulk mutations go through the executor and
may write their results back with ``MemoryCacheStore.update``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from backoffice.api.models import BootstrapReport, LoadOutcome
from backoffice.batch.coalescer import Fetcher, GenericFetch, RequestCoalescer
from backoffice.batch.executor import BatchExecutor, ItemOperation
from backoffice.batch.handlers import HandlerRegistry
from backoffice.batch.models import BatchOperation, BatchSummary
from backoffice.cache.cache_factory import create_cache_store
from backoffice.cache.keys import all_cache_keys, resource_cache_key
from backoffice.cache.base_cache_store import MISS
from backoffice.cache.memory_store import MemoryCacheStore
from backoffice.config.settings import Settings
from backoffice.logging.logger import setup_logging_from_settings
from backoffice.tracking.models import PerformanceMetrics
from backoffice.tracking.optimization import OptimizationTracker

logger = logging.getLogger(__name__)

DEFAULT_RESOURCE_TYPES = ("users", "contact", "announcements")


def _extend(current: Any, results: list[Any]) -> Any:
    return [*(current or []), *results]


class AdminDataService:
    """Wires cache store, coalescer, executor and handler registry together.

    Every collaborator may be injected; missing ones are built from
    ``settings`` so independent instances never share state.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        fetchers: Mapping[str, Fetcher] | None = None,
        fetch: GenericFetch | None = None,
        cache: MemoryCacheStore | None = None,
        coalescer: RequestCoalescer | None = None,
        executor: BatchExecutor | None = None,
        handlers: HandlerRegistry | None = None,
        tracker: OptimizationTracker | None = None,
    ) -> None:
        self.settings = settings if settings is not None else Settings()
        self.tracker = tracker if tracker is not None else OptimizationTracker()
        self.cache = cache if cache is not None else create_cache_store(self.settings)
        if coalescer is None:
            coalescer = RequestCoalescer.from_settings(
                self.settings,
                fetchers=fetchers,
                fetch=fetch,
                cache=self.cache,
                tracker=self.tracker,
            )
        self.coalescer = coalescer
        self.executor = (
            executor if executor is not None else BatchExecutor.from_settings(self.settings)
        )
        self.handlers = handlers if handlers is not None else HandlerRegistry()

    # --- Lifecycle ---

    def startup(self, configure_logging: bool = True) -> BootstrapReport:
        """Configure logging, then clear leftover cache state if it fails the health check."""
        if configure_logging:
            setup_logging_from_settings(self.settings)
        healthy = self.cache.is_healthy()
        cleared = False
        if not healthy and self.settings.cache_clear_on_unhealthy:
            logger.warning("Cache failed health check at startup, clearing it")
            self.cache.clear_all()
            cleared = True
        return BootstrapReport(
            healthy=healthy, cleared=cleared, entry_count=len(self.cache),
        )

    async def aclose(self) -> None:
        await self.coalescer.aclose()

    # --- Reads ---

    async def load(self, resource_type: str, force_refresh: bool = False) -> Any:
        """Return a resource from cache, fetching it through the coalescer on miss.

        Raises:
            Whatever the underlying fetch raised.
        """
        key = resource_cache_key(resource_type)
        if force_refresh:
            self.cache.invalidate(key)
        else:
            cached = self.cache.get(key, MISS)
            if cached is not MISS:
                self.tracker.record_cache_hit()
                return cached
        self.tracker.record_cache_miss()
        return await self.coalescer.enqueue(resource_type)

    async def optimize_data_loading(
        self, resource_types: Iterable[str] = DEFAULT_RESOURCE_TYPES,
    ) -> list[LoadOutcome]:
        """Load every cold resource type in one coalesced round-trip.

        Warm types are reported as "cached" without a fetch. Failures are
        reported per type, never raised.
        """
        types = list(dict.fromkeys(resource_types))
        outcomes: dict[str, LoadOutcome] = {}
        cold: list[str] = []
        for rt in types:
            cached = self.cache.get(resource_cache_key(rt), MISS)
            if cached is not MISS:
                self.tracker.record_cache_hit()
                outcomes[rt] = LoadOutcome(type=rt, status="cached", data=cached)
            else:
                self.tracker.record_cache_miss()
                cold.append(rt)

        results = await asyncio.gather(
            *(self.coalescer.enqueue(rt) for rt in cold),
            return_exceptions=True,
        )
        for rt, result in zip(cold, results):
            if isinstance(result, Exception):
                outcomes[rt] = LoadOutcome(type=rt, status="rejected", error=str(result))
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes[rt] = LoadOutcome(type=rt, status="fulfilled", data=result)

        return [outcomes[rt] for rt in types]

    # --- Bulk operations ---

    async def run_tagged(
        self, tag: str, items: Sequence[Any], **config: Any,
    ) -> BatchSummary:
        """Run the handler registered for ``tag`` over items.

        Concurrency defaults by tag family: ``user.*`` and ``contact.*``
        use their dedicated settings, ``cache.*`` the cache one.

        Raises:
            UnknownOperationError: If no handler is registered for tag.
        """
        handler = self.handlers.get_or_raise(tag)
        config.setdefault("concurrency", self._family_concurrency(tag))
        logger.info("Running tagged batch %s over %d items", tag, len(items))
        return await self.executor.run(items, handler, **config)

    async def run_and_store(
        self,
        items: Sequence[Any],
        operation: ItemOperation,
        cache_key: str,
        merge: Callable[[Any, list[Any]], Any] = _extend,
        **config: Any,
    ) -> BatchSummary:
        """Run a batch and merge its successful results into a cache entry."""
        summary = await self.executor.run(items, operation, **config)
        if summary.results:
            await self.cache.update(
                cache_key,
                lambda current: merge(current, summary.results),
                default_factory=list,
            )
        return summary

    async def batch_cache_refresh(self, keys: Sequence[str] | None = None) -> BatchSummary:
        """Invalidate cache keys (all well-known keys by default) as a batch."""
        targets = list(keys) if keys else all_cache_keys()

        async def clear(key: str, index: int) -> dict[str, Any]:
            self.cache.invalidate(key)
            return {"key": key, "cleared": True}

        return await self.executor.run(
            targets, clear, concurrency=self.settings.batch_cache_concurrency,
        )

    # --- Status ---

    def get_status(self, operation_id: str) -> BatchOperation | None:
        return self.executor.get_status(operation_id)

    def cancel(self, operation_id: str) -> bool:
        return self.executor.cancel(operation_id)

    def performance_metrics(self, now: float | None = None) -> PerformanceMetrics:
        """Activity snapshot of executor, coalescer and tracker."""
        active = self.executor.active_operations()
        current = time.monotonic() if now is None else now
        ages = [current - op.started_at for op in active]
        return PerformanceMetrics(
            active_operations=len(active),
            queued_requests=self.coalescer.queued_requests,
            is_processing=self.coalescer.is_flushing,
            average_operation_age_seconds=sum(ages) / len(ages) if ages else 0.0,
            optimization=self.tracker.summary(),
        )

    def _family_concurrency(self, tag: str) -> int:
        family = tag.split(".", 1)[0]
        return {
            "user": self.settings.batch_user_concurrency,
            "contact": self.settings.batch_contact_concurrency,
            "cache": self.settings.batch_cache_concurrency,
        }.get(family, self.executor.defaults.concurrency)
