"""Error taxonomy for the shortening gateway.

Exceptions are raised by the upstream client and consumed by
``ShortenerClient``, which converts every one of them into a degraded
``ShortenResult``. Callers of the client never see them.
"""

from linkgate.enums import ErrorReason

__all__ = [
    "GatewayError",
    "ValidationError",
    "RateLimitExceeded",
    "UpstreamTimeout",
    "UpstreamUnavailable",
    "UpstreamError",
    "AliasConflict",
]


class GatewayError(Exception):
    """Base class for all gateway failures."""

    reason: ErrorReason = ErrorReason.INTERNAL_ERROR

    def __init__(self, message: str = "", *, code: int | None = None) -> None:
        super().__init__(message or self.reason.value)
        self.code = code


class ValidationError(GatewayError):
    """Item data is missing or malformed; never shortened."""

    reason = ErrorReason.INVALID_ITEM


class RateLimitExceeded(GatewayError):
    """The local quota window is full. Transient and never cached."""

    reason = ErrorReason.RATE_LIMITED


class UpstreamTimeout(GatewayError):
    """The provider did not answer within the configured deadline."""

    reason = ErrorReason.UPSTREAM_TIMEOUT


class UpstreamUnavailable(GatewayError):
    """Connection failure or 5xx from the provider."""

    reason = ErrorReason.UPSTREAM_UNAVAILABLE


class UpstreamError(GatewayError):
    """The provider rejected the request with a terminal error code."""

    reason = ErrorReason.UPSTREAM_ERROR


class AliasConflict(GatewayError):
    """The requested alias is taken; retried internally with another alias."""

    reason = ErrorReason.ALIAS_CONFLICT
