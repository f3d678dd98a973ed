# src/batch/registry.py — v1
"""Live-operations registry — running batch jobs keyed by id.

Each BatchExecutor owns (or is given) one registry instance, so tests and
independent services never share state through module globals.
"""

from __future__ import annotations

import logging
import random
import string
import time

from backoffice.batch.models import BatchOperation

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


class RegistryError(Exception):
    """Raised when an operation id is registered twice."""


def generate_operation_id() -> str:
    """Return an id like ``batch_op_1718000000000_k3j9x0a2b``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"batch_op_{int(time.time() * 1000)}_{suffix}"


class OperationRegistry:
    """Add/remove-only mapping of operation id to live BatchOperation."""

    def __init__(self) -> None:
        self._operations: dict[str, BatchOperation] = {}

    def __len__(self) -> int:
        return len(self._operations)

    def __contains__(self, operation_id: object) -> bool:
        return operation_id in self._operations

    def new_id(self) -> str:
        """Generate an id not currently registered."""
        while True:
            operation_id = generate_operation_id()
            if operation_id not in self._operations:
                return operation_id

    def add(self, operation: BatchOperation) -> None:
        if operation.id in self._operations:
            raise RegistryError(f"Operation '{operation.id}' already registered")
        self._operations[operation.id] = operation
        logger.debug("Registered batch operation %s", operation.id)

    def remove(self, operation_id: str) -> BatchOperation | None:
        operation = self._operations.pop(operation_id, None)
        if operation is not None:
            logger.debug("Unregistered batch operation %s", operation_id)
        return operation

    def get(self, operation_id: str) -> BatchOperation | None:
        """Return the live operation object (not a copy)."""
        return self._operations.get(operation_id)

    def all(self) -> list[BatchOperation]:
        return list(self._operations.values())
