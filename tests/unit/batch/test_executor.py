# tests/unit/batch/test_executor.py — v1
"""Tests for batch/executor.py — grouping, retry, progress, cancellation."""

from __future__ import annotations

import asyncio

import pytest

from backoffice.batch.executor import BatchExecutor, chunk_items
from backoffice.batch.models import BatchInputError, BatchOperation, ExecutorConfig
from backoffice.batch.registry import OperationRegistry
from backoffice.config.settings import Settings
from backoffice.logging.context import get_context, set_resource_context


class TestChunkItems:
    def test_groups_of_five(self):
        groups = chunk_items(list(range(23)), 5)
        assert [len(g) for g in groups] == [5, 5, 5, 5, 3]
        assert groups[0] == [0, 1, 2, 3, 4]
        assert groups[-1] == [20, 21, 22]

    def test_empty(self):
        assert chunk_items([], 3) == []

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            chunk_items([1], 0)


class TestRun:
    @pytest.mark.asyncio
    async def test_end_to_end_with_one_failing_item(self, executor):
        async def op(item, index):
            if item == 2:
                raise RuntimeError("cannot write 2")
            return item * 10

        summary = await executor.run([1, 2, 3], op, {"concurrency": 2, "retry_attempts": 0})
        assert summary.total == 3
        assert summary.completed == 2
        assert summary.failed == 1
        assert summary.results == [10, 30]
        assert len(summary.errors) == 1
        assert summary.errors[0].item == 2
        assert summary.errors[0].index == 1
        assert summary.errors[0].error == "cannot write 2"
        assert summary.errors[0].error_type == "RuntimeError"
        assert summary.errors[0].attempts == 1
        assert summary.cancelled is False
        assert summary.duration >= 0

    @pytest.mark.asyncio
    async def test_operation_receives_index(self, executor):
        seen = []

        async def op(item, index):
            seen.append((item, index))
            return index

        await executor.run(["a", "b", "c"], op)
        assert sorted(seen) == [("a", 0), ("b", 1), ("c", 2)]

    @pytest.mark.asyncio
    async def test_sync_operation(self, executor):
        summary = await executor.run([1, 2], lambda item, index: item + 1)
        assert summary.results == [2, 3]

    @pytest.mark.asyncio
    async def test_empty_items(self, executor):
        summary = await executor.run([], lambda item, index: item)
        assert summary.total == 0
        assert summary.completed == 0
        assert summary.results == []

    @pytest.mark.asyncio
    async def test_results_follow_input_order(self, executor):
        async def op(item, index):
            await asyncio.sleep(0.001 * (5 - index))
            return item

        summary = await executor.run(list("abcde"), op, concurrency=5)
        assert summary.results == list("abcde")

    @pytest.mark.asyncio
    async def test_unknown_config_keys_ignored(self, executor):
        summary = await executor.run([1], lambda i, n: i, {"concurrency": 1, "priority": "high"})
        assert summary.completed == 1

    @pytest.mark.asyncio
    async def test_registry_empty_after_run(self, executor):
        await executor.run([1, 2], lambda i, n: i)
        assert len(executor.registry) == 0
        assert executor.active_operations() == []


class TestBoundedParallelism:
    @pytest.mark.asyncio
    async def test_never_more_than_concurrency_in_flight(self, executor):
        active = 0
        peak = 0
        finished: set[int] = set()
        violations: list[int] = []

        async def op(item, index):
            nonlocal active, peak
            # Every item of earlier groups must be done before this one starts.
            group_start = (index // 5) * 5
            if not set(range(group_start)) <= finished:
                violations.append(index)
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.001 * (index % 3))
            active -= 1
            finished.add(index)
            return index

        summary = await executor.run(list(range(23)), op, concurrency=5)
        assert peak == 5
        assert violations == []
        assert summary.completed == 23


class TestRetry:
    @pytest.mark.asyncio
    async def test_succeeds_after_two_failures(self, executor, sleep_recorder):
        calls = 0

        async def flaky(item, index):
            nonlocal calls
            calls += 1
            if calls <= 2:
                raise ConnectionError("transient")
            return "ok"

        summary = await executor.run(["x"], flaky, retry_attempts=2, retry_delay=1.0)
        assert calls == 3
        assert summary.completed == 1
        assert summary.failed == 0
        assert summary.errors == []
        assert summary.results == ["ok"]
        assert sleep_recorder.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted_retries_become_permanent_failure(self, executor, sleep_recorder):
        async def always_fails(item, index):
            raise ValueError("bad item")

        summary = await executor.run(["x"], always_fails, retry_attempts=3, retry_delay=0.5)
        assert summary.failed == 1
        assert summary.errors[0].attempts == 4
        assert sleep_recorder.delays == [0.5, 1.0, 1.5]

    @pytest.mark.asyncio
    async def test_no_retry_when_zero_attempts(self, executor, sleep_recorder):
        async def always_fails(item, index):
            raise ValueError("bad item")

        await executor.run(["x"], always_fails, retry_attempts=0)
        assert sleep_recorder.delays == []


class TestCallbacks:
    @pytest.mark.asyncio
    async def test_progress_invariant(self, executor):
        snapshots: list[BatchOperation] = []

        async def op(item, index):
            if item % 4 == 0:
                raise RuntimeError("multiple of four")
            return item

        summary = await executor.run(
            list(range(1, 11)), op,
            concurrency=3, retry_attempts=0, on_progress=snapshots.append,
        )
        assert len(snapshots) == 10
        for snap in snapshots:
            assert snap.completed + snap.failed <= snap.total
        assert [s.settled for s in snapshots] == list(range(1, 11))
        assert summary.completed + summary.failed == summary.total

    @pytest.mark.asyncio
    async def test_progress_snapshots_are_copies(self, executor):
        snapshots: list[BatchOperation] = []
        await executor.run([1, 2], lambda i, n: i, concurrency=1, on_progress=snapshots.append)
        assert snapshots[0].completed == 1
        assert snapshots[0].results == [1]

    @pytest.mark.asyncio
    async def test_on_error_called_per_permanent_failure(self, executor):
        failures = []

        async def op(item, index):
            raise KeyError(item)

        await executor.run(
            ["a", "b"], op, retry_attempts=1, retry_delay=0,
            on_error=lambda exc, item: failures.append((type(exc).__name__, item)),
        )
        assert sorted(failures) == [("KeyError", "a"), ("KeyError", "b")]

    @pytest.mark.asyncio
    async def test_async_callbacks(self, executor):
        seen = []

        async def on_progress(snapshot):
            await asyncio.sleep(0)
            seen.append(snapshot.settled)

        await executor.run([1, 2, 3], lambda i, n: i, concurrency=1, on_progress=on_progress)
        assert seen == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_abort(self, executor):
        def explode(snapshot):
            raise RuntimeError("callback bug")

        summary = await executor.run([1, 2], lambda i, n: i, on_progress=explode)
        assert summary.completed == 2


class TestStatusAndCancel:
    @pytest.mark.asyncio
    async def test_status_visible_while_running(self, executor):
        statuses = []

        async def op(item, index):
            statuses.extend(executor.active_operations())
            return item

        summary = await executor.run([1], op)
        assert len(statuses) == 1
        assert statuses[0].id == summary.id
        assert statuses[0].total == 1
        assert executor.get_status(summary.id) is None

    @pytest.mark.asyncio
    async def test_cancel_stops_before_next_group(self, executor):
        started = []

        async def op(item, index):
            started.append(index)
            await asyncio.sleep(0)
            return item

        def cancel_on_first(snapshot):
            executor.cancel(snapshot.id)

        summary = await executor.run(
            list(range(10)), op, concurrency=2, on_progress=cancel_on_first,
        )
        assert summary.cancelled is True
        # The in-flight group finishes; nothing after it starts.
        assert sorted(started) == [0, 1]
        assert summary.completed == 2
        assert summary.completed + summary.failed < summary.total
        assert len(executor.registry) == 0

    def test_cancel_unknown_id(self, executor):
        assert executor.cancel("batch_op_missing") is False

    def test_get_status_unknown_id(self, executor):
        assert executor.get_status("batch_op_missing") is None

    @pytest.mark.asyncio
    async def test_shared_registry_between_executors(self):
        registry = OperationRegistry()
        a = BatchExecutor(registry=registry)
        b = BatchExecutor(registry=registry)
        seen = []

        async def op(item, index):
            seen.extend(o.id for o in b.active_operations())
            return item

        summary = await a.run([1], op)
        assert seen == [summary.id]


class TestMalformedInput:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("items", [None, 5, "abc", b"abc", {"a": 1}, {1, 2}])
    async def test_non_sequence_items(self, executor, items):
        with pytest.raises(BatchInputError, match="sequence"):
            await executor.run(items, lambda i, n: i)  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_non_callable_operation(self, executor):
        with pytest.raises(BatchInputError, match="callable"):
            await executor.run([1], "not callable")  # type: ignore[arg-type]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "config",
        [{"concurrency": 0}, {"retry_attempts": -1}, {"retry_delay": -0.5}],
    )
    async def test_out_of_range_config(self, executor, config):
        with pytest.raises(BatchInputError):
            await executor.run([1], lambda i, n: i, config)
        assert len(executor.registry) == 0

    @pytest.mark.asyncio
    async def test_config_of_wrong_type(self, executor):
        with pytest.raises(BatchInputError):
            await executor.run([1], lambda i, n: i, "fast")  # type: ignore[arg-type]


class TestDefaults:
    def test_from_settings(self):
        s = Settings(_env_file=None, batch_concurrency=7, batch_retry_attempts=1, batch_retry_delay_ms=250)
        ex = BatchExecutor.from_settings(s)
        assert ex.defaults.concurrency == 7
        assert ex.defaults.retry_attempts == 1
        assert ex.defaults.retry_delay == 0.25

    @pytest.mark.asyncio
    async def test_executor_defaults_apply_to_dict_config(self, sleep_recorder):
        ex = BatchExecutor(
            defaults=ExecutorConfig(retry_attempts=1, retry_delay=3.0),
            sleep=sleep_recorder,
        )

        async def fails(item, index):
            raise RuntimeError("x")

        await ex.run([1], fails, {"concurrency": 1})
        assert sleep_recorder.delays == [3.0]


class TestLogContext:
    @pytest.mark.asyncio
    async def test_caller_context_restored_after_run(self, executor):
        set_resource_context("users", component="caller")
        seen = []

        async def op(item, index):
            seen.append(get_context().operation_id)
            return item

        summary = await executor.run([1, 2], op)
        assert seen == [summary.id, summary.id]
        ctx = get_context()
        assert ctx.operation_id is None
        assert ctx.resource_type == "users"
        assert ctx.component == "caller"

    @pytest.mark.asyncio
    async def test_context_restored_after_rejected_run(self, executor):
        set_resource_context("contact", component="caller")
        with pytest.raises(BatchInputError):
            await executor.run("abc", lambda i, n: i)  # type: ignore[arg-type]
        assert get_context().component == "caller"
