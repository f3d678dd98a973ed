# tests/unit/batch/test_unit_batch_models.py — v1
"""Tests for batch/models.py."""

from __future__ import annotations

import pytest

from backoffice.batch.models import (
    BatchInputError,
    BatchItemError,
    BatchOperation,
    ExecutorConfig,
)


class TestExecutorConfig:
    def test_defaults(self):
        cfg = ExecutorConfig()
        assert cfg.concurrency == 5
        assert cfg.retry_attempts == 2
        assert cfg.retry_delay == 1.0
        assert cfg.on_progress is None
        assert cfg.on_error is None

    def test_unknown_keys_ignored(self):
        cfg = ExecutorConfig(concurrency=2, colour="blue")
        assert cfg.concurrency == 2
        assert not hasattr(cfg, "colour")

    def test_build_merges_overrides(self):
        base = ExecutorConfig(concurrency=3, retry_attempts=0)
        cfg = ExecutorConfig.build(base, retry_delay=0.1)
        assert (cfg.concurrency, cfg.retry_attempts, cfg.retry_delay) == (3, 0, 0.1)

    def test_build_keeps_callbacks(self):
        def cb(snapshot):
            return None

        cfg = ExecutorConfig.build(ExecutorConfig(on_progress=cb))
        assert cfg.on_progress is cb

    def test_build_from_dict(self):
        assert ExecutorConfig.build({"concurrency": 9}).concurrency == 9

    @pytest.mark.parametrize("bad", [{"concurrency": 0}, {"retry_attempts": -1}, {"retry_delay": -1}])
    def test_build_rejects_out_of_range(self, bad):
        with pytest.raises(BatchInputError):
            ExecutorConfig.build(bad)

    def test_build_rejects_wrong_type(self):
        with pytest.raises(BatchInputError):
            ExecutorConfig.build(42)  # type: ignore[arg-type]

    def test_non_callable_callback_rejected(self):
        with pytest.raises(BatchInputError):
            ExecutorConfig.build(on_progress="print")


class TestBatchOperation:
    def test_counters(self):
        op = BatchOperation(id="x", total=3, started_at=0.0, completed=2, failed=1)
        assert op.settled == 3
        assert op.is_done is True

    def test_snapshot_is_independent(self):
        op = BatchOperation(id="x", total=2, started_at=0.0)
        op.results.append(1)
        snap = op.snapshot()
        op.results.append(2)
        op.completed = 2
        assert snap.results == [1]
        assert snap.completed == 0

    def test_error_entry(self):
        err = BatchItemError(item={"id": 1}, index=0, error="boom", error_type="RuntimeError", attempts=3)
        assert err.item == {"id": 1}
