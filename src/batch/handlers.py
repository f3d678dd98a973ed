# src/batch/handlers.py — v1
"""Handler registry — maps operation tags to item handlers.

Business services register one handler per tag ("user.suspend",
"contact.delete", ...) at startup. The executor only ever sees the
resolved callable, never the tag.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[[Any, int], Awaitable[Any]]


class UnknownOperationError(LookupError):
    """Raised when no handler is registered for a tag."""


class HandlerRegistry:
    """Tag → handler strategy map."""

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    def __contains__(self, tag: object) -> bool:
        return tag in self._handlers

    @property
    def tags(self) -> list[str]:
        """Return sorted list of registered tags."""
        return sorted(self._handlers)

    def register(self, tag: str, handler: Handler) -> None:
        if not tag:
            raise ValueError("tag must be a non-empty string")
        if tag in self._handlers:
            logger.warning("Overwriting handler for tag: %s", tag)
        self._handlers[tag] = handler

    def handler(self, tag: str) -> Callable[[Handler], Handler]:
        """Decorator form of register()."""

        def decorator(func: Handler) -> Handler:
            self.register(tag, func)
            return func

        return decorator

    def get(self, tag: str) -> Handler | None:
        return self._handlers.get(tag)

    def get_or_raise(self, tag: str) -> Handler:
        handler = self._handlers.get(tag)
        if handler is None:
            raise UnknownOperationError(f"No handler registered for operation '{tag}'")
        return handler


def variant_handler(
    field: str,
    variants: dict[str, Handler],
) -> Handler:
    """Build a handler that dispatches on ``item[field]``.

    Used for items of mixed kinds (e.g. contact items that are messages,
    feature requests or bug reports) that share one operation tag.
    Items whose kind has no variant fail with UnknownOperationError.
    """

    async def dispatch(item: Any, index: int) -> Any:
        kind = item.get(field) if isinstance(item, dict) else getattr(item, field, None)
        target = variants.get(kind) if isinstance(kind, str) else None
        if target is None:
            raise UnknownOperationError(f"No variant for {field}={kind!r}")
        return await target(item, index)

    return dispatch
