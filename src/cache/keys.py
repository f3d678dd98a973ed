# src/cache/keys.py — v1
"""Well-known cache keys of the admin back-office."""

from __future__ import annotations

from enum import Enum


class CacheKey(str, Enum):
    """Keys for the datasets the admin screens load."""

    USERS = "admin_users_cache"
    CONTACT = "admin_contact_cache"
    ANNOUNCEMENTS = "admin_announcements_cache"
    ADMIN_DASHBOARD = "admin_dashboard_cache"
    RULES = "admin_rules_cache"
    SYSTEM_STATS = "admin_system_stats_cache"


def resource_cache_key(resource_type: str) -> str:
    """Map a coalescer resource type to its cache key.

    Known types ("users", "contact", ...) resolve to their CacheKey value,
    anything else to ``admin_<type>_cache``.
    """
    normalized = resource_type.strip().lower()
    try:
        return CacheKey[normalized.upper()].value
    except KeyError:
        return f"admin_{normalized}_cache"


def all_cache_keys() -> list[str]:
    """Return every well-known key value."""
    return [k.value for k in CacheKey]
