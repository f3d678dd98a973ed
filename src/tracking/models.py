# src/tracking/models.py — v1
"""Tracking models: OptimizationStats, Recommendation, OptimizationSummary, PerformanceMetrics."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class OptimizationStats(BaseModel):
    """Cumulative request-coalescing and cache statistics.

    ``batched_requests`` counts flushes; ``saved_requests`` counts
    requests answered without a fetch of their own.
    """

    total_requests: int = 0
    batched_requests: int = 0
    saved_requests: int = 0
    average_response_time_ms: float = 0.0
    cache_hits: int = 0
    cache_misses: int = 0
    last_optimization: datetime | None = None


class Recommendation(BaseModel):
    """Tuning hint derived from OptimizationStats."""

    type: Literal["cache", "batching", "performance"]
    priority: Literal["low", "medium", "high"]
    message: str
    action: str


class OptimizationSummary(BaseModel):
    """Derived percentages plus recommendations."""

    efficiency: float
    cache_hit_rate: float
    average_response_time_ms: float
    total_optimizations: int
    recommendations: list[Recommendation] = Field(default_factory=list)


class PerformanceMetrics(BaseModel):
    """Snapshot of executor and coalescer activity."""

    active_operations: int
    queued_requests: int
    is_processing: bool
    average_operation_age_seconds: float
    optimization: OptimizationSummary
