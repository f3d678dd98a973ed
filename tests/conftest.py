# tests/conftest.py — v1
"""Shared test fixtures for unit and integration tests.

Provides a controllable clock, a cache store bound to it, and executors
whose retry backoff is recorded instead of slept. No real I/O.
"""

from __future__ import annotations

import logging

import pytest

from backoffice.batch.executor import BatchExecutor
from backoffice.batch.models import ExecutorConfig
from backoffice.batch.registry import OperationRegistry
from backoffice.cache.memory_store import MemoryCacheStore
from backoffice.config.settings import Settings
from backoffice.logging.context import clear_context


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Awaitable stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# === FIXTURES ===


@pytest.fixture(autouse=True)
def _reset_log_context():
    clear_context()
    yield
    clear_context()


@pytest.fixture(autouse=True)
def _restore_backoffice_logger():
    root = logging.getLogger("backoffice")
    level = root.level
    yield
    for handler in list(root.handlers):
        handler.close()
    root.handlers.clear()
    root.setLevel(level)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> MemoryCacheStore:
    return MemoryCacheStore(default_ttl=600, version="1.0.0", clock=clock)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def executor(sleep_recorder: SleepRecorder) -> BatchExecutor:
    return BatchExecutor(
        registry=OperationRegistry(),
        defaults=ExecutorConfig(concurrency=5, retry_attempts=2, retry_delay=1.0),
        sleep=sleep_recorder,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, coalescer_debounce_ms=10, coalescer_max_delay_ms=100)
