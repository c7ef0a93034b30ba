"""Shortener Client - Core Gateway Logic

This module turns a long URL into a shareable short URL while shielding the
site from a quota-limited, occasionally unreliable provider. Whatever goes
wrong, the caller gets a usable URL back.

Architecture Overview
=====================
::
    ┌─────────────────────────────────────────────────────────────┐
    │                    ShortenerClient                          │
    │  ┌──────────────┐ ┌──────────────┐ ┌──────────────┐        │
    │  │  CacheStore  │ │ RateLimiter  │ │ AliasPolicy  │        │
    │  │ • get / set  │ │ • try_acquire│ │ • derive     │        │
    │  │ • lazy TTL   │ │ • status     │ │   alias      │        │
    │  └──────────────┘ └──────────────┘ └──────────────┘        │
    └─────────────────────────────────────────────────────────────┘
                               │
                               ▼
                  ┌─────────────────────────┐
                  │  UpstreamShortenerAPI   │
                  │  POST /create (httpx)   │
                  └─────────────────────────┘

Shorten Flow
============
::
    ┌─────────────┐
    │ shorten(url)│
    └──────┬──────┘
           ▼
    ┌─────────────┐   HIT
    │ Cache lookup │────────────▶ return (from_cache=True)
    └──────┬──────┘
           ▼
    ┌─────────────┐   IN FLIGHT
    │ Dedup check  │────────────▶ await the running call
    └──────┬──────┘
           ▼
    ┌─────────────┐   DENIED
    │ Rate limiter │────────────▶ degraded "rate_limited" (not cached)
    └──────┬──────┘
           ▼
    ┌─────────────┐   ALIAS CONFLICT
    │ Attempt #1   │────────────▶ Attempt #2 (other alias choice)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Cache result │  success → CACHE_TTL_SECONDS
    │ and return   │  upstream failure → FALLBACK_CACHE_TTL_SECONDS
    └─────────────┘

Key Behaviours
==============
- ``shorten`` never raises; every failure path resolves to a ShortenResult
  whose short URL is the long URL.
- Cache hits consume no rate-limit slot.
- At most two upstream attempts per shorten, and the second one only for an
  alias conflict.
- Concurrent callers for the same uncached key share one upstream call.

Usage Examples
==============
```python
client = ShortenerClient(api, InMemoryCacheStore(), RateLimiter(2, 60_000), settings)
result = await client.shorten("https://blog.example.com/post/hello-world")
share_url = result.short_url  # always usable
```
"""

import asyncio
import logging
import time
from collections.abc import Callable
from functools import partial
from typing import Any

from prometheus_client import Counter, Histogram

from linkgate.alias_policy import derive_alias
from linkgate.cache import CacheStore
from linkgate.cache_key import CacheKey
from linkgate.config import Settings
from linkgate.enums import CacheStatus, ErrorReason
from linkgate.exceptions import AliasConflict, GatewayError, RateLimitExceeded, ValidationError
from linkgate.models import ContentItem, RateLimitStatus, ShortenOptions, ShortenResult
from linkgate.rate_limiter import RateLimiter
from linkgate.upstream import UpstreamShortenerAPI

__all__ = ["ShortenerClient", "MAX_UPSTREAM_ATTEMPTS"]

MAX_UPSTREAM_ATTEMPTS = 2


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

SHORTEN_REQUESTS_TOTAL = Counter(
    "linkgate_shorten_requests_total",
    "Total shorten requests by outcome",
    ["outcome"],
)
SHORTEN_CACHE_LOOKUPS_TOTAL = Counter(
    "linkgate_shorten_cache_lookups_total",
    "Shorten cache lookups",
    ["cache_hit"],
)
SHORTEN_DEGRADED_TOTAL = Counter(
    "linkgate_shorten_degraded_total",
    "Shorten requests that fell back to the long URL",
    ["reason"],
)
SHORTEN_INFLIGHT_SHARED_TOTAL = Counter(
    "linkgate_shorten_inflight_shared_total",
    "Shorten requests served by an already running upstream call",
)
UPSTREAM_ATTEMPTS_TOTAL = Counter(
    "linkgate_upstream_attempts_total",
    "Upstream create attempts by result",
    ["result"],
)
UPSTREAM_DURATION = Histogram(
    "linkgate_upstream_duration_seconds",
    "Time spent in upstream create calls",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


class ShortenerClient:
    """Cache-aside, rate-limited gateway in front of the shortening provider.

    Example:
        >>> client = ShortenerClient(api, cache, limiter, settings)
        >>> result = await client.shorten("https://blog.example.com/post/x")
        >>> result.succeeded, result.short_url
    """

    def __init__(
        self,
        api: UpstreamShortenerAPI,
        cache: CacheStore,
        rate_limiter: RateLimiter,
        settings: Settings,
        alias_policy: Callable[[str], str | None] | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._api = api
        self._cache = cache
        self._rate_limiter = rate_limiter
        self._settings = settings
        self._logger = logger or logging.getLogger("linkgate.shortener")
        self._alias_policy = alias_policy or partial(
            derive_alias,
            namespace=settings.ALIAS_NAMESPACE,
            path_prefix=settings.CONTENT_PATH_PREFIX,
            direct_max_length=settings.ALIAS_DIRECT_MAX_LENGTH,
            max_length=settings.ALIAS_MAX_LENGTH,
        )
        self._inflight: dict[CacheKey, asyncio.Future[ShortenResult]] = {}

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    @property
    def is_configured(self) -> bool:
        return self._api.is_configured

    @property
    def cache(self) -> CacheStore:
        return self._cache

    async def shorten(self, long_url: str, options: ShortenOptions | None = None) -> ShortenResult:
        """Shorten ``long_url``; never raises.

        Args:
            long_url: Canonical URL to shorten
            options: Optional alias/description/tags/domain

        Returns:
            ShortenResult: success, or a degraded result carrying the long URL
        """
        options = options or ShortenOptions()
        try:
            if not long_url or not long_url.strip():
                return self._degraded(long_url or "", ErrorReason.INVALID_URL)

            if not self.is_configured:
                self._logger.warning("Shortener API key not configured, returning original URL")
                return self._degraded(long_url, ErrorReason.NOT_CONFIGURED)

            key = CacheKey.build(long_url, options)
            cached = await self._cache.get(key.digest())
            if cached is not None:
                SHORTEN_CACHE_LOOKUPS_TOTAL.labels(cache_hit=CacheStatus.HIT).inc()
                SHORTEN_REQUESTS_TOTAL.labels(outcome="cached").inc()
                self._logger.debug(f"Cache hit for {long_url}")
                return cached.as_cached()
            SHORTEN_CACHE_LOOKUPS_TOTAL.labels(cache_hit=CacheStatus.MISS).inc()

            running = self._inflight.get(key)
            if running is not None:
                SHORTEN_INFLIGHT_SHARED_TOTAL.inc()
                self._logger.debug(f"Joining in-flight shorten for {long_url}")
                return await asyncio.shield(running)

            return await self._run_once(key, long_url, options)

        except Exception as exc:
            self._logger.error(f"Unexpected shorten error for {long_url}: {exc}")
            return self._degraded(long_url or "", ErrorReason.INTERNAL_ERROR)

    async def shorten_item(self, item: ContentItem, base_url: str | None = None) -> ShortenResult:
        """Shorten the canonical URL of a content item."""
        try:
            long_url = self.build_long_url(item.identifier, base_url)
        except ValidationError as exc:
            self._logger.warning(f"Cannot shorten item {item.id or '<unknown>'}: {exc}")
            return self._degraded(self._base_url(base_url), exc.reason)

        options = ShortenOptions(description=item.title or None)
        return await self.shorten(long_url, options)

    def build_long_url(self, identifier: str | None, base_url: str | None = None) -> str:
        if not identifier or not identifier.strip():
            raise ValidationError("item has no identifier")
        prefix = self._settings.CONTENT_PATH_PREFIX.strip("/")
        return f"{self._base_url(base_url)}/{prefix}/{identifier.strip()}"

    def rate_limit_status(self) -> RateLimitStatus:
        return self._rate_limiter.status()

    async def cache_stats(self) -> dict[str, Any]:
        return await self._cache.stats()

    async def clear_cache(self) -> int:
        removed = await self._cache.clear()
        self._logger.info(f"Shortener cache cleared ({removed} entries)")
        return removed

    async def fetch_analytics(self, alias: str) -> dict[str, Any] | None:
        return await self._api.fetch_analytics(alias)

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    async def _run_once(self, key: CacheKey, long_url: str, options: ShortenOptions) -> ShortenResult:
        future: asyncio.Future[ShortenResult] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await self._shorten_uncached(key, long_url, options)
        except asyncio.CancelledError:
            future.set_result(self._degraded(long_url, ErrorReason.INTERNAL_ERROR))
            raise
        except Exception as exc:
            self._logger.error(f"Shorten pipeline failed for {long_url}: {exc}")
            result = self._degraded(long_url, ErrorReason.INTERNAL_ERROR)
            future.set_result(result)
        else:
            future.set_result(result)
        finally:
            self._inflight.pop(key, None)
        return result

    async def _shorten_uncached(self, key: CacheKey, long_url: str, options: ShortenOptions) -> ShortenResult:
        try:
            self._acquire_slot()
        except RateLimitExceeded:
            self._logger.warning(f"Rate limit reached, returning original URL for {long_url}")
            return self._degraded(long_url, ErrorReason.RATE_LIMITED)

        domain = options.domain or self._settings.SHORTENER_DOMAIN
        last_error: GatewayError | None = None

        for alias in self._alias_attempts(long_url, options):
            start_time = time.perf_counter()
            try:
                link = await self._api.create(
                    long_url,
                    domain,
                    alias=alias,
                    description=options.description,
                    tags=options.tags,
                )
            except AliasConflict as exc:
                UPSTREAM_ATTEMPTS_TOTAL.labels(result=exc.reason).inc()
                self._logger.info(f"Alias {alias!r} unavailable for {long_url}, trying another")
                last_error = exc
                continue
            except GatewayError as exc:
                UPSTREAM_ATTEMPTS_TOTAL.labels(result=exc.reason).inc()
                self._logger.error(f"Upstream shorten failed for {long_url}: {exc}")
                last_error = exc
                break
            finally:
                UPSTREAM_DURATION.observe(time.perf_counter() - start_time)

            UPSTREAM_ATTEMPTS_TOTAL.labels(result="success").inc()
            result = ShortenResult.success(long_url, link.tiny_url, alias=link.alias or alias)
            await self._cache.set(key.digest(), result, self._settings.CACHE_TTL_SECONDS)
            SHORTEN_REQUESTS_TOTAL.labels(outcome="success").inc()
            self._logger.info(f"Created short URL {link.tiny_url} for {long_url}")
            return result

        reason = last_error.reason if last_error is not None else ErrorReason.UPSTREAM_ERROR
        result = self._degraded(long_url, reason)
        if reason.is_cacheable:
            await self._cache.set(key.digest(), result, self._settings.FALLBACK_CACHE_TTL_SECONDS)
        return result

    def _acquire_slot(self) -> None:
        if not self._rate_limiter.try_acquire():
            raise RateLimitExceeded()

    def _alias_attempts(self, long_url: str, options: ShortenOptions) -> list[str | None]:
        """Alias choices in order; the second is only used after an alias conflict."""
        first = options.alias or None
        second = None if first else self._alias_policy(long_url)
        attempts = [first]
        if second != first:
            attempts.append(second)
        return attempts[:MAX_UPSTREAM_ATTEMPTS]

    def _base_url(self, base_url: str | None) -> str:
        return (base_url or self._settings.BASE_URL).rstrip("/")

    def _degraded(self, long_url: str, reason: ErrorReason) -> ShortenResult:
        SHORTEN_REQUESTS_TOTAL.labels(outcome="degraded").inc()
        SHORTEN_DEGRADED_TOTAL.labels(reason=reason).inc()
        return ShortenResult.degraded(long_url, reason)
