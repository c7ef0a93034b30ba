"""Cache store tests for the in-memory and Redis backings."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis.asyncio as redis

from conftest import FakeClock
from linkgate.cache import InMemoryCacheStore, RedisCacheStore
from linkgate.enums import ErrorReason
from linkgate.models import ShortenResult

LONG_URL = "https://blog.example.com/post/hello-world"


def success() -> ShortenResult:
    return ShortenResult.success(LONG_URL, "https://tinyurl.com/blog-hello-world", alias="blog-hello-world")


@pytest.mark.asyncio
async def test_memory_set_then_get() -> None:
    store = InMemoryCacheStore(clock=FakeClock())
    await store.set("k", success(), ttl_seconds=60)
    assert await store.get("k") == success()


@pytest.mark.asyncio
async def test_memory_miss_returns_none() -> None:
    store = InMemoryCacheStore(clock=FakeClock())
    assert await store.get("missing") is None


@pytest.mark.asyncio
async def test_memory_entry_expires_at_ttl() -> None:
    clock = FakeClock()
    store = InMemoryCacheStore(clock=clock)
    await store.set("k", success(), ttl_seconds=10)

    clock.advance(9.5)
    assert await store.get("k") is not None

    clock.advance(0.5)
    assert await store.get("k") is None
    assert (await store.stats())["stored"] == 0


@pytest.mark.asyncio
async def test_memory_non_positive_ttl_is_not_stored() -> None:
    store = InMemoryCacheStore(clock=FakeClock())
    await store.set("k", success(), ttl_seconds=0)
    assert await store.get("k") is None


@pytest.mark.asyncio
async def test_memory_caches_degraded_results() -> None:
    store = InMemoryCacheStore(clock=FakeClock())
    degraded = ShortenResult.degraded(LONG_URL, ErrorReason.UPSTREAM_UNAVAILABLE)
    await store.set("k", degraded, ttl_seconds=60)
    cached = await store.get("k")
    assert cached.succeeded is False
    assert cached.short_url == LONG_URL


@pytest.mark.asyncio
async def test_memory_stats_count_only_live_entries() -> None:
    clock = FakeClock()
    store = InMemoryCacheStore(clock=clock)
    await store.set("short", success(), ttl_seconds=5)
    await store.set("long", success(), ttl_seconds=500)
    clock.advance(10)

    stats = await store.stats()
    assert stats == {"backend": "memory", "size": 1, "stored": 2}


@pytest.mark.asyncio
async def test_memory_clear_returns_removed_count() -> None:
    store = InMemoryCacheStore(clock=FakeClock())
    await store.set("a", success(), ttl_seconds=60)
    await store.set("b", success(), ttl_seconds=60)
    assert await store.clear() == 2
    assert await store.get("a") is None
    assert await store.ping() is True


def redis_mock() -> MagicMock:
    client = MagicMock()
    client.get = AsyncMock(return_value=None)
    client.setex = AsyncMock()
    client.delete = AsyncMock(return_value=1)
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client


@pytest.mark.asyncio
async def test_redis_set_uses_setex_with_prefix() -> None:
    client = redis_mock()
    store = RedisCacheStore(client, prefix="shorten")
    await store.set("abc", success(), ttl_seconds=3600)

    key, ttl, payload = client.setex.call_args.args
    assert key == "shorten:abc"
    assert ttl == 3600
    assert json.loads(payload)["short_url"] == "https://tinyurl.com/blog-hello-world"


@pytest.mark.asyncio
async def test_redis_get_deserializes_payload() -> None:
    client = redis_mock()
    client.get.return_value = json.dumps(
        {
            "long_url": LONG_URL,
            "short_url": "https://tinyurl.com/x",
            "alias": "x",
            "succeeded": True,
            "error_reason": None,
        }
    )
    store = RedisCacheStore(client)

    result = await store.get("abc")
    assert result == ShortenResult.success(LONG_URL, "https://tinyurl.com/x", alias="x")
    client.get.assert_awaited_once_with("shorten:abc")


@pytest.mark.asyncio
async def test_redis_unknown_error_reason_is_normalised() -> None:
    client = redis_mock()
    client.get.return_value = json.dumps(
        {
            "long_url": LONG_URL,
            "short_url": LONG_URL,
            "alias": None,
            "succeeded": False,
            "error_reason": "quota_blown",
        }
    )

    result = await RedisCacheStore(client).get("abc")

    assert result is not None
    assert result.error_reason is ErrorReason.INTERNAL_ERROR


@pytest.mark.asyncio
async def test_redis_corrupt_payload_is_a_miss() -> None:
    client = redis_mock()
    client.get.return_value = "{not json"
    assert await RedisCacheStore(client).get("abc") is None


@pytest.mark.asyncio
async def test_redis_errors_never_escape() -> None:
    client = redis_mock()
    client.get.side_effect = redis.ConnectionError("down")
    client.setex.side_effect = redis.ConnectionError("down")
    client.ping.side_effect = redis.ConnectionError("down")
    store = RedisCacheStore(client)

    assert await store.get("abc") is None
    await store.set("abc", success(), ttl_seconds=60)
    assert await store.ping() is False


@pytest.mark.asyncio
async def test_redis_clear_and_stats_scan_prefix() -> None:
    client = redis_mock()

    async def scan_iter(match: str):
        assert match == "shorten:*"
        for key in ("shorten:a", "shorten:b"):
            yield key

    client.scan_iter = scan_iter
    store = RedisCacheStore(client)

    assert await store.stats() == {"backend": "redis", "size": 2}
    assert await store.clear() == 2
    await store.close()
    client.aclose.assert_awaited_once()
