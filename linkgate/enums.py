"""Shared enums for the link-shortening gateway.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = [
    "HealthStatus",
    "ServiceStatus",
    "ErrorReason",
    "CacheStatus",
    "WebhookOperation",
    "ItemCategory",
    "RecommendationType",
]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"


class ServiceStatus(StrEnum):
    """Bulk job operational status values."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ErrorReason(StrEnum):
    """Why a shorten attempt degraded to the long URL."""

    NOT_CONFIGURED = "not_configured"
    INVALID_URL = "invalid_url"
    INVALID_ITEM = "invalid_item"
    RATE_LIMITED = "rate_limited"
    ALIAS_CONFLICT = "alias_conflict"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UPSTREAM_ERROR = "upstream_error"
    INTERNAL_ERROR = "internal_error"

    @classmethod
    def from_str(cls, value: str) -> "ErrorReason":
        """Safely parse from string, falling back to INTERNAL_ERROR for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return cls.INTERNAL_ERROR

    @property
    def is_cacheable(self) -> bool:
        """Upstream failures are cached so a failing provider is not hammered."""
        return self in (
            ErrorReason.ALIAS_CONFLICT,
            ErrorReason.UPSTREAM_TIMEOUT,
            ErrorReason.UPSTREAM_UNAVAILABLE,
            ErrorReason.UPSTREAM_ERROR,
        )


class CacheStatus(StrEnum):
    """Cache status values for metrics."""

    HIT = "true"
    MISS = "false"


class WebhookOperation(StrEnum):
    """CMS operations the webhook ingress reacts to."""

    CREATE = "create"
    UPDATE = "update"
    PUBLISH = "publish"

    @classmethod
    def parse(cls, value: str | None) -> "WebhookOperation | None":
        """Return the operation, or None for operations the gateway ignores."""
        try:
            return cls(value)
        except ValueError:
            return None


class ItemCategory(StrEnum):
    """Eligibility bucket of a content item."""

    NEW = "new"
    LEGACY = "legacy"
    INVALID = "invalid"


class RecommendationType(StrEnum):
    """Severity of a validation report recommendation."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"
