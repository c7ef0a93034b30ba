"""Cache-aside storage for shorten results.

Flow Diagram — get(key)
=======================
::
    ┌─────────────┐
    │  get(key)    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Lookup entry │
    └──────┬──────┘
    FOUND & FRESH?
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Evict   │  │ Return  │
│ (lazy), │  │ result  │
│ None    │  │         │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Pick a backing store**::
    store = InMemoryCacheStore()
    # or, shared across processes:
    store = RedisCacheStore(redis.from_url(settings.REDIS_URL, decode_responses=True))

**Step 2 — Read and write**::
    cached = await store.get(key.digest())
    if cached is None:
        await store.set(key.digest(), result, ttl_seconds=86400)

Key Behaviours
===============
- Expired entries are treated as absent and evicted on lookup; there is no
  background sweeper.
- Both successes and degraded fallbacks may be stored; choosing the TTL is
  the caller's job.
- Backend failures never escape: a broken Redis reads as a miss and writes
  become no-ops.

Classes:
    CacheStore:  Protocol shared by all backings.
    InMemoryCacheStore:  Process-local dict with per-entry expiry.
    RedisCacheStore:  Redis-backed store using SETEX.
"""

import logging
import threading
import time
from collections.abc import Callable
from typing import Any, Protocol

import redis.asyncio as redis
from pydantic import ValidationError as PayloadError

from linkgate.models import CacheEntry, ShortenResult
from linkgate.schemas import CachedShortenPayload

__all__ = ["CacheStore", "InMemoryCacheStore", "RedisCacheStore"]

logger = logging.getLogger("linkgate.cache")


class CacheStore(Protocol):
    async def get(self, key: str) -> ShortenResult | None: ...

    async def set(self, key: str, value: ShortenResult, ttl_seconds: int) -> None: ...

    async def clear(self) -> int: ...

    async def stats(self) -> dict[str, Any]: ...

    async def ping(self) -> bool: ...


class InMemoryCacheStore:
    """Process-local cache; contents are lost when the process exits."""

    backend = "memory"

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._clock = clock
        self._lock = threading.Lock()

    async def get(self, key: str) -> ShortenResult | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not entry.is_valid(self._clock()):
                del self._entries[key]
                return None
            return entry.value

    async def set(self, key: str, value: ShortenResult, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                created_at=self._clock(),
                ttl_seconds=ttl_seconds,
            )

    async def clear(self) -> int:
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
        return removed

    async def stats(self) -> dict[str, Any]:
        with self._lock:
            now = self._clock()
            live = sum(1 for entry in self._entries.values() if entry.is_valid(now))
            return {"backend": self.backend, "size": live, "stored": len(self._entries)}

    async def ping(self) -> bool:
        return True


class RedisCacheStore:
    """Redis-backed cache shared by every gateway process."""

    backend = "redis"

    def __init__(self, client: redis.Redis, prefix: str = "shorten") -> None:
        self._redis = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> ShortenResult | None:
        try:
            raw = await self._redis.get(self._key(key))
        except redis.RedisError as exc:
            logger.warning(f"Cache read failed for {key}: {exc}")
            return None
        if not raw:
            return None
        try:
            return CachedShortenPayload.model_validate_json(raw).to_result()
        except (PayloadError, ValueError) as exc:
            logger.error(f"Cache deserialization error for {key}: {exc}")
            return None

    async def set(self, key: str, value: ShortenResult, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        payload = CachedShortenPayload.from_result(value)
        try:
            await self._redis.setex(self._key(key), ttl_seconds, payload.model_dump_json())
        except redis.RedisError as exc:
            logger.warning(f"Cache write failed for {key}: {exc}")

    async def clear(self) -> int:
        removed = 0
        try:
            async for redis_key in self._redis.scan_iter(match=f"{self._prefix}:*"):
                removed += await self._redis.delete(redis_key)
        except redis.RedisError as exc:
            logger.warning(f"Cache clear failed: {exc}")
        return removed

    async def stats(self) -> dict[str, Any]:
        size = 0
        try:
            async for _ in self._redis.scan_iter(match=f"{self._prefix}:*"):
                size += 1
        except redis.RedisError as exc:
            logger.warning(f"Cache stats failed: {exc}")
            return {"backend": self.backend, "size": None, "error": str(exc)}
        return {"backend": self.backend, "size": size}

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except redis.RedisError as exc:
            logger.error(f"Cache health check failed: {exc}")
            return False

    async def close(self) -> None:
        await self._redis.aclose()
