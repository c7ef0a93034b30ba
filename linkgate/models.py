"""Domain data structures for the shortening gateway.

Data Model Overview
===================
::
    ShortenResult (immutable, one per shorten attempt)
    ├─ long_url / short_url
    ├─ alias
    ├─ from_cache
    ├─ succeeded
    └─ error_reason        (succeeded=False  ⇒  short_url == long_url)

    CacheEntry (owned by InMemoryCacheStore)
    └─ wraps exactly one ShortenResult with created_at + ttl_seconds

    EligibilityResult (derived fresh per call, never cached)

    BulkJob (single writer: BulkOrchestrator)
    ├─ results   item_id → ShortenResult
    ├─ errors    item_id → reason
    ├─ skipped   item_id → eligibility reasons
    └─ progress  BulkProgress (replaced atomically, safe to poll)

Key Behaviours
===============
- Results and snapshots are frozen dataclasses; they are shared across
  callers through the cache and must never be mutated in place.
- A degraded ShortenResult always carries the long URL as its short URL,
  so sharing UI always has a usable link.
"""

import datetime
import uuid
from dataclasses import dataclass, field, replace
from typing import Any

from linkgate.enums import ErrorReason, ServiceStatus

__all__ = [
    "ShortenOptions",
    "ShortenResult",
    "CacheEntry",
    "RateLimitStatus",
    "ContentItem",
    "EligibilityResult",
    "BulkProgress",
    "BulkJob",
]


@dataclass(frozen=True)
class ShortenOptions:
    """Caller-supplied knobs for a single shorten request."""

    alias: str | None = None
    description: str | None = None
    tags: tuple[str, ...] = ()
    domain: str | None = None


@dataclass(frozen=True)
class ShortenResult:
    long_url: str
    short_url: str
    alias: str | None = None
    from_cache: bool = False
    succeeded: bool = False
    error_reason: str | None = None

    def __post_init__(self) -> None:
        if not self.succeeded and self.short_url != self.long_url:
            raise ValueError("a degraded result must use the long URL as its short URL")

    @classmethod
    def success(cls, long_url: str, short_url: str, alias: str | None = None) -> "ShortenResult":
        return cls(long_url=long_url, short_url=short_url, alias=alias, succeeded=True)

    @classmethod
    def degraded(
        cls,
        long_url: str,
        reason: ErrorReason | str,
        alias: str | None = None,
    ) -> "ShortenResult":
        return cls(
            long_url=long_url,
            short_url=long_url,
            alias=alias,
            succeeded=False,
            error_reason=str(reason),
        )

    @property
    def is_shortened(self) -> bool:
        return self.succeeded and self.short_url != self.long_url

    def as_cached(self) -> "ShortenResult":
        return replace(self, from_cache=True)


@dataclass
class CacheEntry:
    key: str
    value: ShortenResult
    created_at: float
    ttl_seconds: int

    def is_valid(self, now: float) -> bool:
        return now - self.created_at < self.ttl_seconds


@dataclass(frozen=True)
class RateLimitStatus:
    """Read-only snapshot of the rate window."""

    requests_in_window: int
    max_requests: int
    window_ms: int
    can_make_request: bool
    next_reset_in_ms: int

    @property
    def utilization_percent(self) -> int:
        if self.max_requests <= 0:
            return 100
        return round(self.requests_in_window / self.max_requests * 100)


@dataclass
class ContentItem:
    """A CMS content item as seen by the gateway.

    ``identifier`` is the URL slug; ``id`` is the CMS primary key, if known.
    Timestamps may be datetimes or ISO-8601 strings straight from the CMS.
    """

    identifier: str | None
    title: str | None = None
    id: str | None = None
    published_at: datetime.datetime | str | int | float | None = None
    created_at: datetime.datetime | str | int | float | None = None
    stage: str | None = None
    views: int = 0
    shares: int = 0
    featured: bool = False
    categories: list[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "ContentItem":
        """Build an item from a CMS-shaped dict (``slug``/``publishedAt`` keys)."""
        categories = data.get("categories") or []
        return cls(
            identifier=data.get("identifier") or data.get("slug"),
            title=data.get("title"),
            id=data.get("id"),
            published_at=data.get("published_at") or data.get("publishedAt"),
            created_at=data.get("created_at") or data.get("createdAt"),
            stage=data.get("stage"),
            views=_count(data.get("views")),
            shares=_count(data.get("shares")),
            featured=bool(data.get("featured", False)),
            categories=[c.get("name", "") if isinstance(c, dict) else str(c) for c in categories],
        )


def _count(value: Any) -> int:
    """Non-numeric CMS counters count as 0."""
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class EligibilityResult:
    is_eligible: bool
    is_new_item: bool
    has_valid_data: bool
    publish_date: datetime.datetime | None
    cutoff: datetime.datetime
    reasons: tuple[str, ...] = ()
    forced: bool = False

    @property
    def is_valid(self) -> bool:
        return self.has_valid_data and self.publish_date is not None


@dataclass(frozen=True)
class BulkProgress:
    completed: int = 0
    total: int = 0

    @property
    def is_complete(self) -> bool:
        return self.total > 0 and self.completed >= self.total


@dataclass
class BulkJob:
    items: list[ContentItem]
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    results: dict[str, ShortenResult] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    skipped: dict[str, list[str]] = field(default_factory=dict)
    progress: BulkProgress = field(default_factory=BulkProgress)
    status: ServiceStatus = ServiceStatus.PENDING
    started_at: datetime.datetime | None = None
    finished_at: datetime.datetime | None = None

    @property
    def succeeded_count(self) -> int:
        return sum(1 for result in self.results.values() if result.succeeded)

    @property
    def is_finished(self) -> bool:
        return self.status in (ServiceStatus.COMPLETED, ServiceStatus.FAILED)
