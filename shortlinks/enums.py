"""Shared enums for the short-link service.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "RequestStatus", "CacheStatus", "ClickSource"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"

    @classmethod
    def from_bool(cls, ok: bool) -> "HealthStatus":
        return cls.HEALTHY if ok else cls.UNHEALTHY


class RequestStatus(StrEnum):
    """Outcome label for request metrics."""

    SUCCESS = "success"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"
    ERROR = "error"


class CacheStatus(StrEnum):
    """Cache outcome label for lookup metrics."""

    HIT = "hit"
    MISS = "miss"
    ERROR = "error"


class ClickSource(StrEnum):
    """Where a reported click count came from."""

    CACHE = "cache"
    STORE = "store"
