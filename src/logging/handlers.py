# src/logging/handlers.py — v1
"""Rotating file handler for the back-office log file."""

from __future__ import annotations

import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

_SIZE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*(B|KB|MB|GB)?$", re.IGNORECASE)
_UNITS = {"B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3}


def parse_size(size: str | int) -> int:
    """Parse a size like '10MB', '512KB', '2.5GB' or a raw byte count.

    Raises:
        ValueError: On an unparsable or non-positive size.
    """
    if isinstance(size, int):
        num_bytes = size
    else:
        match = _SIZE_PATTERN.match(size.strip())
        if not match:
            raise ValueError(f"Invalid size format: {size!r}. Use e.g. '10MB'.")
        unit = (match.group(2) or "B").upper()
        num_bytes = int(float(match.group(1)) * _UNITS[unit])
    if num_bytes <= 0:
        raise ValueError(f"Size must be positive, got {size!r}")
    return num_bytes


def create_rotating_handler(
    log_file: str,
    rotation: str | int = "10MB",
    retention: int = 30,
) -> RotatingFileHandler:
    """Create a size-based rotating file handler.

    The file is opened lazily on first emit so that configuring logging
    never touches the filesystem beyond creating the parent directory.

    Args:
        log_file: Path to log file ("~" is expanded).
        rotation: Max file size before rotation.
        retention: Number of backup files to keep.
    """
    if retention < 0:
        raise ValueError("retention must be >= 0")

    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    return RotatingFileHandler(
        filename=str(path),
        maxBytes=parse_size(rotation),
        backupCount=retention,
        encoding="utf-8",
        delay=True,
    )
