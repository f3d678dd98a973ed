# src/batch/executor.py — v1
"""Batch executor — bounded-concurrency bulk operations with retry.

Items are processed in fixed-size groups of ``concurrency``: groups run
strictly one after another, the items of a group run concurrently. Each
item is retried with linear backoff; permanent failures are recorded in
the BatchOperation instead of being raised.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, TypeVar

from backoffice.batch.models import (
    BatchInputError,
    BatchItemError,
    BatchOperation,
    BatchSummary,
    ExecutorConfig,
)
from backoffice.batch.registry import OperationRegistry
from backoffice.logging.context import reset_context, set_operation_context

if TYPE_CHECKING:
    from backoffice.config.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

ItemOperation = Callable[[Any, int], "Awaitable[Any] | Any"]


def chunk_items(items: Sequence[T], size: int) -> list[list[T]]:
    """Split items into consecutive groups of ``size`` (last may be shorter)."""
    if size < 1:
        raise ValueError(f"size must be >= 1, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class BatchExecutor:
    """Apply an async operation to many items under a concurrency bound.

    Args:
        registry: Live-operations registry. A private one is created if None.
        defaults: Config used for keys a run does not override.
        sleep: Awaitable sleep used for retry backoff (injectable for tests).
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        registry: OperationRegistry | None = None,
        defaults: ExecutorConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry if registry is not None else OperationRegistry()
        self._defaults = defaults or ExecutorConfig()
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(
        cls, settings: Settings, registry: OperationRegistry | None = None,
    ) -> BatchExecutor:
        """Build an executor whose defaults come from Settings."""
        defaults = ExecutorConfig(
            concurrency=settings.batch_concurrency,
            retry_attempts=settings.batch_retry_attempts,
            retry_delay=settings.batch_retry_delay_seconds,
        )
        return cls(registry=registry, defaults=defaults)

    @property
    def registry(self) -> OperationRegistry:
        return self._registry

    @property
    def defaults(self) -> ExecutorConfig:
        return self._defaults

    async def run(
        self,
        items: Sequence[Any],
        operation: ItemOperation,
        config: ExecutorConfig | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> BatchSummary:
        """Run ``operation(item, index)`` over every item.

        Args:
            items: Ordered items to process.
            operation: Sync or async callable; its return value is the
                item's result.
            config: ExecutorConfig or mapping of config keys. Keys not
                given fall back to the executor defaults; unknown keys
                are ignored.
            **overrides: Config keys taking precedence over ``config``.

        Returns:
            BatchSummary with results and errors in input order.

        Raises:
            BatchInputError: If items is not a sequence, operation is not
                callable, or a config value is out of range.
        """
        cfg = self._resolve_config(config, overrides)
        if isinstance(items, (str, bytes, bytearray)) or not isinstance(items, Sequence):
            raise BatchInputError(
                f"items must be a sequence, got {type(items).__name__}"
            )
        if not callable(operation):
            raise BatchInputError("operation must be callable")

        op = BatchOperation(
            id=self._registry.new_id(),
            total=len(items),
            started_at=self._clock(),
        )
        self._registry.add(op)
        context_tokens = set_operation_context(op.id, component="batch_executor")
        logger.info(
            "Batch %s started: %d items, concurrency=%d, retries=%d",
            op.id, op.total, cfg.concurrency, cfg.retry_attempts,
        )

        indexed_results: list[tuple[int, Any]] = []
        try:
            groups = chunk_items(list(enumerate(items)), cfg.concurrency)
            for group_no, group in enumerate(groups):
                if op.cancelled:
                    logger.info(
                        "Batch %s cancelled before group %d/%d",
                        op.id, group_no + 1, len(groups),
                    )
                    break
                await asyncio.gather(*(
                    self._process_item(op, cfg, operation, index, item, indexed_results)
                    for index, item in group
                ))
        finally:
            op.ended_at = self._clock()
            self._registry.remove(op.id)
            reset_context(context_tokens)

        duration = op.ended_at - op.started_at
        logger.info(
            "Batch %s finished: %d completed, %d failed of %d in %.3fs%s",
            op.id, op.completed, op.failed, op.total, duration,
            " (cancelled)" if op.cancelled else "",
        )
        indexed_results.sort(key=lambda pair: pair[0])
        return BatchSummary(
            id=op.id,
            total=op.total,
            completed=op.completed,
            failed=op.failed,
            results=[value for _, value in indexed_results],
            errors=sorted(op.errors, key=lambda e: e.index),
            duration=duration,
            cancelled=op.cancelled,
        )

    def cancel(self, operation_id: str) -> bool:
        """Request cooperative cancellation.

        In-flight items of the current group finish; no further group is
        started. Returns False when the id is not live.
        """
        op = self._registry.remove(operation_id)
        if op is None:
            return False
        op.cancelled = True
        logger.info("Batch %s cancellation requested", operation_id)
        return True

    def get_status(self, operation_id: str) -> BatchOperation | None:
        """Snapshot of a live operation, or None once it is gone."""
        op = self._registry.get(operation_id)
        return op.snapshot() if op is not None else None

    def active_operations(self) -> list[BatchOperation]:
        return [op.snapshot() for op in self._registry.all()]

    # --- Internals ---

    def _resolve_config(
        self,
        config: ExecutorConfig | Mapping[str, Any] | None,
        overrides: dict[str, Any],
    ) -> ExecutorConfig:
        if isinstance(config, ExecutorConfig):
            return ExecutorConfig.build(config, **overrides)
        if config is not None and not isinstance(config, Mapping):
            raise BatchInputError(
                f"config must be an ExecutorConfig or mapping, got {type(config).__name__}"
            )
        merged = {**dict(config or {}), **overrides}
        return ExecutorConfig.build(self._defaults, **merged)

    async def _process_item(
        self,
        op: BatchOperation,
        cfg: ExecutorConfig,
        operation: ItemOperation,
        index: int,
        item: Any,
        indexed_results: list[tuple[int, Any]],
    ) -> None:
        max_attempts = cfg.retry_attempts + 1
        for attempt in range(1, max_attempts + 1):
            try:
                result = operation(item, index)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as exc:
                if attempt == max_attempts:
                    await self._record_failure(op, cfg, index, item, exc, attempt)
                    return
                delay = cfg.retry_delay * attempt
                logger.debug(
                    "Item %d failed (attempt %d), retrying in %.2fs: %s",
                    index, attempt, delay, exc,
                )
                await self._sleep(delay)
                continue
            op.completed += 1
            op.results.append(result)
            indexed_results.append((index, result))
            await self._notify(cfg.on_progress, op.snapshot())
            return

    async def _record_failure(
        self,
        op: BatchOperation,
        cfg: ExecutorConfig,
        index: int,
        item: Any,
        error: Exception,
        attempts: int,
    ) -> None:
        op.failed += 1
        op.errors.append(BatchItemError(
            item=item,
            index=index,
            error=str(error),
            error_type=type(error).__name__,
            attempts=attempts,
        ))
        logger.warning(
            "Item %d failed permanently after %d attempts: %s",
            index, attempts, error,
        )
        await self._notify(cfg.on_error, error, item)
        await self._notify(cfg.on_progress, op.snapshot())

    async def _notify(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        """Invoke a user callback; its failures are logged, never raised."""
        if callback is None:
            return
        try:
            outcome = callback(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.warning("Batch callback %r raised", callback, exc_info=True)
