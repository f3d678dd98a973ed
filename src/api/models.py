# src/api/models.py — v1
"""API-level models: LoadOutcome, BootstrapReport."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel


class LoadOutcome(BaseModel):
    """Per-resource result of AdminDataService.optimize_data_loading()."""

    type: str
    status: Literal["fulfilled", "rejected", "cached"]
    data: Any = None
    error: str | None = None


class BootstrapReport(BaseModel):
    """What AdminDataService.startup() found and did."""

    healthy: bool
    cleared: bool
    entry_count: int
