# src/batch/coalescer.py — v1
"""Request coalescer — one fetch per resource type per debounce window.

Concurrent ``enqueue(resource_type)`` calls inside one window share a
single future. Each new distinct type re-arms a single-shot debounce
timer; the window is capped at ``max_delay`` after its first arrival so
a steady stream of new types cannot postpone the flush forever
(``max_delay=None`` disables the cap).

On flush every queued type is fetched concurrently. Each type's outcome
(value or exception) goes to all of its waiters; one failing type never
affects another. Successful values are offered to the cache store.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from backoffice.cache.keys import resource_cache_key
from backoffice.logging.context import set_resource_context

if TYPE_CHECKING:
    from backoffice.cache.base_cache_store import BaseCacheStore
    from backoffice.config.settings import Settings
    from backoffice.tracking.optimization import OptimizationTracker

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]
GenericFetch = Callable[[str], Awaitable[Any]]


class UnknownResourceError(LookupError):
    """Raised to waiters of a resource type that has no fetcher."""


@dataclass
class PendingRequest:
    """Queued unit for one resource type within the current window."""

    resource_type: str
    future: asyncio.Future[Any]
    waiters: int = 1


class RequestCoalescer:
    """Batch near-simultaneous requests into one fetch per resource type.

    Args:
        fetchers: Mapping of resource type to a zero-argument async fetcher.
        fetch: Fallback ``fetch(resource_type)`` for types without a fetcher.
        cache: Store that receives successfully fetched values.
        debounce: Quiet period in seconds before a flush.
        max_delay: Upper bound in seconds between the first arrival of a
            window and its flush. None means unbounded re-arming.
        tracker: Optional OptimizationTracker fed with request/flush counts.
    """

    def __init__(
        self,
        fetchers: Mapping[str, Fetcher] | None = None,
        fetch: GenericFetch | None = None,
        cache: BaseCacheStore | None = None,
        debounce: float = 0.05,
        max_delay: float | None = 0.5,
        tracker: OptimizationTracker | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if debounce < 0:
            raise ValueError(f"debounce must be >= 0, got {debounce}")
        if max_delay is not None and max_delay < debounce:
            raise ValueError("max_delay must be >= debounce")
        self._fetchers: dict[str, Fetcher] = dict(fetchers or {})
        self._fetch = fetch
        self._cache = cache
        self._debounce = debounce
        self._max_delay = max_delay
        self._tracker = tracker
        self._clock = clock
        self._queue: dict[str, PendingRequest] = {}
        self._window_started: float | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._flush_tasks: set[asyncio.Task[None]] = set()
        self._flushing = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        fetchers: Mapping[str, Fetcher] | None = None,
        fetch: GenericFetch | None = None,
        cache: BaseCacheStore | None = None,
        tracker: OptimizationTracker | None = None,
    ) -> RequestCoalescer:
        return cls(
            fetchers=fetchers,
            fetch=fetch,
            cache=cache,
            debounce=settings.coalescer_debounce_seconds,
            max_delay=settings.coalescer_max_delay_seconds,
            tracker=tracker,
        )

    # --- Introspection ---

    @property
    def pending_count(self) -> int:
        """Number of distinct resource types waiting for the next flush."""
        return len(self._queue)

    @property
    def queued_requests(self) -> int:
        """Number of callers waiting for the next flush."""
        return sum(p.waiters for p in self._queue.values())

    @property
    def is_flushing(self) -> bool:
        return self._flushing > 0

    @property
    def resource_types(self) -> list[str]:
        return sorted(self._fetchers)

    def register(self, resource_type: str, fetcher: Fetcher) -> None:
        """Add or replace the fetcher for a resource type."""
        if resource_type in self._fetchers:
            logger.warning("Overwriting fetcher for resource type %s", resource_type)
        self._fetchers[resource_type] = fetcher

    # --- Operations ---

    async def enqueue(self, resource_type: str) -> Any:
        """Wait for the coalesced fetch of ``resource_type``.

        Returns:
            The fetched value shared by every waiter of this window.

        Raises:
            Whatever the fetch raised, identically for every waiter.
        """
        loop = asyncio.get_running_loop()
        if self._tracker is not None:
            self._tracker.record_request()

        pending = self._queue.get(resource_type)
        if pending is not None:
            pending.waiters += 1
            logger.debug(
                "Coalesced request for %s (%d waiters)", resource_type, pending.waiters,
            )
        else:
            pending = PendingRequest(resource_type, loop.create_future())
            self._queue[resource_type] = pending
            if self._window_started is None:
                self._window_started = self._clock()
            self._arm(loop)

        # Shielded so one cancelled waiter does not cancel the shared fetch.
        return await asyncio.shield(pending.future)

    async def flush(self) -> None:
        """Fetch everything queued so far and settle its waiters."""
        self._cancel_timer()
        batch = self._queue
        self._queue = {}
        self._window_started = None
        if not batch:
            return

        self._flushing += 1
        started = self._clock()
        try:
            outcomes = await asyncio.gather(
                *(self._fetch_one(rt) for rt in batch),
                return_exceptions=True,
            )
        except asyncio.CancelledError:
            for pending in batch.values():
                if not pending.future.done():
                    pending.future.cancel()
            raise
        finally:
            self._flushing -= 1

        for pending, outcome in zip(batch.values(), outcomes):
            self._settle(pending, outcome)

        for pending, outcome in zip(batch.values(), outcomes):
            if self._cache is not None and not isinstance(outcome, BaseException):
                self._cache.set(
                    resource_cache_key(pending.resource_type),
                    outcome,
                    tags=[pending.resource_type],
                )

        elapsed_ms = (self._clock() - started) * 1000
        requests = sum(p.waiters for p in batch.values())
        if self._tracker is not None:
            self._tracker.record_flush(
                requests=requests, fetches=len(batch), response_time_ms=elapsed_ms,
            )
        logger.info(
            "Flushed %d requests as %d fetches in %.1fms",
            requests, len(batch), elapsed_ms,
        )

    async def aclose(self) -> None:
        """Flush anything still queued and wait for running flushes."""
        await self.flush()
        if self._flush_tasks:
            await asyncio.gather(*self._flush_tasks, return_exceptions=True)

    # --- Internals ---

    def _arm(self, loop: asyncio.AbstractEventLoop) -> None:
        """(Re)schedule the single-shot flush timer."""
        self._cancel_timer()
        delay = self._debounce
        if self._max_delay is not None and self._window_started is not None:
            deadline = self._window_started + self._max_delay
            delay = max(0.0, min(delay, deadline - self._clock()))
        self._timer = loop.call_later(delay, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        if not self._queue:
            return
        task = asyncio.get_running_loop().create_task(self.flush())
        self._flush_tasks.add(task)
        task.add_done_callback(self._on_flush_done)

    def _on_flush_done(self, task: asyncio.Task[None]) -> None:
        self._flush_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Timer-driven flush failed: %s", exc, exc_info=exc)

    async def _fetch_one(self, resource_type: str) -> Any:
        set_resource_context(resource_type, component="request_coalescer")
        fetcher = self._fetchers.get(resource_type)
        try:
            if fetcher is not None:
                return await fetcher()
            if self._fetch is not None:
                return await self._fetch(resource_type)
            raise UnknownResourceError(
                f"No fetcher registered for resource type '{resource_type}'"
            )
        except Exception as exc:
            logger.warning("Fetch for %s failed: %s", resource_type, exc)
            raise

    @staticmethod
    def _settle(pending: PendingRequest, outcome: Any) -> None:
        if pending.future.done():
            return
        if isinstance(outcome, asyncio.CancelledError):
            pending.future.cancel()
        elif isinstance(outcome, BaseException):
            pending.future.set_exception(outcome)
        else:
            pending.future.set_result(outcome)
