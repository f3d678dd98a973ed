# src/batch/models.py — v1
"""Batch execution models: ExecutorConfig, BatchOperation, BatchItemError, BatchSummary."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class BatchInputError(ValueError):
    """Raised before any work starts when run() arguments are malformed."""


class ExecutorConfig(BaseModel):
    """Tuning for one executor run. Unknown keys are ignored.

    ``retry_delay`` is in seconds and is a linear backoff multiplier:
    retry k waits ``retry_delay * k``.
    """

    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)

    concurrency: int = Field(default=5, ge=1)
    retry_attempts: int = Field(default=2, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)
    on_progress: Callable[[BatchOperation], Any] | None = None
    on_error: Callable[[BaseException, Any], Any] | None = None

    @classmethod
    def build(
        cls,
        base: ExecutorConfig | dict[str, Any] | None = None,
        **overrides: Any,
    ) -> ExecutorConfig:
        """Merge a config object or dict with keyword overrides.

        Raises:
            BatchInputError: If any recognized value is out of range.
        """
        data: dict[str, Any] = {}
        if isinstance(base, ExecutorConfig):
            data.update({name: getattr(base, name) for name in cls.model_fields})
        elif isinstance(base, dict):
            data.update(base)
        elif base is not None:
            raise BatchInputError(
                f"config must be an ExecutorConfig or dict, got {type(base).__name__}"
            )
        data.update(overrides)
        try:
            return cls(**data)
        except ValidationError as exc:
            raise BatchInputError(f"Invalid batch config: {exc}") from exc


class BatchItemError(BaseModel):
    """Permanent failure of one item after all retries."""

    item: Any
    index: int
    error: str
    error_type: str
    attempts: int


class BatchOperation(BaseModel):
    """Live state of one batch job, owned by the executor."""

    id: str
    total: int
    completed: int = 0
    failed: int = 0
    results: list[Any] = Field(default_factory=list)
    errors: list[BatchItemError] = Field(default_factory=list)
    started_at: float
    ended_at: float | None = None
    cancelled: bool = False

    @property
    def settled(self) -> int:
        return self.completed + self.failed

    @property
    def is_done(self) -> bool:
        return self.settled == self.total

    def snapshot(self) -> BatchOperation:
        """Copy handed to callbacks and status queries.

        Result and error lists are copied; their elements are shared.
        """
        return self.model_copy(
            update={"results": list(self.results), "errors": list(self.errors)}
        )


class BatchSummary(BaseModel):
    """Result returned by BatchExecutor.run()."""

    id: str
    total: int
    completed: int
    failed: int
    results: list[Any] = Field(default_factory=list)
    errors: list[BatchItemError] = Field(default_factory=list)
    duration: float
    cancelled: bool = False


ExecutorConfig.model_rebuild()
