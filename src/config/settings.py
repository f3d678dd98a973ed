# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for cache, coalescer, executor and logging tuning.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Cache ===
    cache_default_ttl_seconds: float = 600.0
    cache_version: str = "1.0.0"
    cache_max_entries: int = 10_000
    cache_clear_on_unhealthy: bool = True

    # === Request coalescing ===
    coalescer_debounce_ms: int = 50
    coalescer_max_delay_ms: int | None = 500

    # === Batch execution ===
    batch_concurrency: int = 5
    batch_retry_attempts: int = 2
    batch_retry_delay_ms: int = 1000
    batch_user_concurrency: int = 3
    batch_contact_concurrency: int = 3
    batch_cache_concurrency: int = 10

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("batch_retry_attempts", "batch_retry_delay_ms")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:  # noqa: N805
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        ttl = self.cache_default_ttl_seconds
        if not math.isfinite(ttl) or ttl <= 0:
            errors.append("CACHE_DEFAULT_TTL_SECONDS must be finite and > 0")

        if self.cache_max_entries < 1:
            errors.append("CACHE_MAX_ENTRIES must be >= 1")

        if self.coalescer_debounce_ms < 0:
            errors.append("COALESCER_DEBOUNCE_MS must be >= 0")

        if (
            self.coalescer_max_delay_ms is not None
            and self.coalescer_max_delay_ms < self.coalescer_debounce_ms
        ):
            errors.append(
                "COALESCER_MAX_DELAY_MS must be >= COALESCER_DEBOUNCE_MS"
            )

        for name in (
            "batch_concurrency",
            "batch_user_concurrency",
            "batch_contact_concurrency",
            "batch_cache_concurrency",
        ):
            if getattr(self, name) < 1:
                errors.append(f"{name.upper()} must be >= 1")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def coalescer_debounce_seconds(self) -> float:
        return self.coalescer_debounce_ms / 1000.0

    @property
    def coalescer_max_delay_seconds(self) -> float | None:
        if self.coalescer_max_delay_ms is None:
            return None
        return self.coalescer_max_delay_ms / 1000.0

    @property
    def batch_retry_delay_seconds(self) -> float:
        return self.batch_retry_delay_ms / 1000.0


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or embedding services).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
