"""Shared pytest fixtures: fake clock, fake shortening provider, app client."""

import json
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from linkgate.config import Settings
from linkgate.dependencies import ServiceManager
from linkgate.main import create_app
from linkgate.models import ContentItem

NEW_DATE = "2025-10-01T09:00:00Z"
LEGACY_DATE = "2025-09-20T09:00:00Z"


class FakeClock:
    """Manually advanced time source, in seconds."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """Stand-in for the shortening API behind an ``httpx.MockTransport``.

    Queued behaviours are consumed one per request; once the queue is empty
    every ``/create`` succeeds with ``https://tinyurl.com/<alias>``.
    """

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.queue: list[Any] = []

    def enqueue(self, *behaviours: Any) -> None:
        self.queue.extend(behaviours)

    @property
    def create_calls(self) -> list[dict[str, Any]]:
        return [request["json"] for request in self.requests if request["path"].endswith("/create")]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content) if request.content else {}
        self.requests.append(
            {
                "method": request.method,
                "path": request.url.path,
                "json": payload,
                "headers": dict(request.headers),
            }
        )
        if self.queue:
            behaviour = self.queue.pop(0)
            if isinstance(behaviour, Exception):
                raise behaviour
            if callable(behaviour):
                behaviour = behaviour(request, payload)
                if not isinstance(behaviour, httpx.Response):
                    behaviour = await behaviour
            return behaviour
        return success_response(payload, fallback_alias=f"auto{len(self.requests)}")


def success_response(payload: dict[str, Any], fallback_alias: str = "auto") -> httpx.Response:
    alias = payload.get("alias") or fallback_alias
    return httpx.Response(
        200,
        json={
            "code": 0,
            "data": {"tiny_url": f"https://tinyurl.com/{alias}", "url": payload.get("url"), "alias": alias},
            "errors": [],
        },
    )


def alias_conflict_response() -> httpx.Response:
    return httpx.Response(422, json={"code": 5, "data": [], "errors": ["Alias is not available."]})


def make_item(
    slug: str | None = "hello-world",
    title: str | None = "Hello World",
    published_at: str | None = NEW_DATE,
    **extra: Any,
) -> ContentItem:
    return ContentItem(identifier=slug, title=title, published_at=published_at, **extra)


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "SHORTENER_API_KEY": "test-key",
        "WEBHOOK_SECRET": "hook-secret",
        "METRICS_ENABLED": False,
        "BULK_DELAY_MS": 0,
        "CACHE_BACKEND": "memory",
        "BASE_URL": "https://blog.example.com",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest_asyncio.fixture
async def services_factory(
    clock: FakeClock, provider: FakeProvider
) -> AsyncGenerator[Callable[..., ServiceManager], None]:
    created: list[ServiceManager] = []

    def factory(**overrides: Any) -> ServiceManager:
        manager = ServiceManager(make_settings(**overrides), upstream_transport=provider.transport(), clock=clock)
        created.append(manager)
        return manager

    yield factory

    for manager in created:
        await manager.cleanup()


@pytest.fixture
def services(services_factory: Callable[..., ServiceManager]) -> ServiceManager:
    return services_factory()


@pytest_asyncio.fixture
async def client(services: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(services=services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
