"""Shared enums for the URL shortener service.

This module defines all status and mode enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "RequestStatus", "CacheStatus", "CacheBackend", "SlugStrategy"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"

    @classmethod
    def from_bool(cls, ok: bool) -> "HealthStatus":
        return cls.HEALTHY if ok else cls.UNHEALTHY


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    ERROR = "error"


class CacheStatus(StrEnum):
    """Cache status values for metrics."""

    HIT = "true"
    MISS = "false"


class CacheBackend(StrEnum):
    """Selectable cache implementations."""

    REDIS = "redis"
    MEMORY = "memory"


class SlugStrategy(StrEnum):
    """Slug allocation strategies."""

    SEQUENTIAL = "sequential"
    RANDOM = "random"

    @classmethod
    def from_str(cls, value: str) -> "SlugStrategy":
        """Safely parse from string, falling back to SEQUENTIAL for unknown values."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.SEQUENTIAL
