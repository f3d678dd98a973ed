# src/logging/context.py — v1
"""Contextual logging support — attach operation_id, resource_type, component to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging — set per batch run / flush.
_operation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation_id", default=None
)
_resource_type: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "resource_type", default=None
)
_component: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "component", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    operation_id: str | None = None
    resource_type: str | None = None
    component: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        operation_id=_operation_id.get(),
        resource_type=_resource_type.get(),
        component=_component.get(),
    )


def set_operation_context(
    operation_id: str, component: str | None = None,
) -> list[contextvars.Token[Any]]:
    """Set batch-level context (called once per executor run).

    Returns the tokens to hand to reset_context() once the run ends.
    """
    return [_operation_id.set(operation_id), _component.set(component)]


def set_resource_context(resource_type: str, component: str | None = None) -> None:
    """Set resource-level context (called per coalesced fetch)."""
    _resource_type.set(resource_type)
    _component.set(component)


def reset_context(tokens: list[contextvars.Token[Any]]) -> None:
    """Restore the variables changed by set_operation_context()."""
    for token in reversed(tokens):
        token.var.reset(token)


def clear_context() -> None:
    """Reset all context variables."""
    _operation_id.set(None)
    _resource_type.set(None)
    _component.set(None)
