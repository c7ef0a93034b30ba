"""Webhook ingress tests, through the HTTP surface and directly."""

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from conftest import LEGACY_DATE, NEW_DATE, FakeProvider
from linkgate.dependencies import ServiceManager
from linkgate.main import create_app
from linkgate.schemas import WebhookEvent
from linkgate.webhook import WebhookIngress


def event(operation: str = "publish", **data: Any) -> dict[str, Any]:
    payload = {
        "__typename": "Post",
        "id": "ckx1",
        "slug": "hello-world",
        "title": "Hello World",
        "stage": "PUBLISHED",
        "publishedAt": NEW_DATE,
    }
    payload.update(data)
    return {"operation": operation, "data": payload}


@pytest.mark.asyncio
async def test_publish_creates_short_url(client: AsyncClient, provider: FakeProvider) -> None:
    response = await client.post("/webhook", params={"secret": "hook-secret"}, json=event())

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Short URL created successfully"
    assert body["data"]["shortUrl"].startswith("https://tinyurl.com/")
    assert body["data"]["longUrl"] == "https://blog.example.com/post/hello-world"
    assert len(provider.create_calls) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("params", [{"secret": "wrong"}, {}, {"secret": ""}])
async def test_bad_secret_is_rejected(client: AsyncClient, provider: FakeProvider, params: dict) -> None:
    response = await client.post("/webhook", params=params, json=event())

    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Invalid token"}
    assert provider.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"operation": "publish", "data": None}, {"operation": "publish", "data": "oops"}])
async def test_bad_secret_is_checked_before_the_body(
    client: AsyncClient, provider: FakeProvider, body: dict
) -> None:
    response = await client.post("/webhook", params={"secret": "wrong"}, json=body)

    assert response.status_code == 401
    assert provider.requests == []


@pytest.mark.asyncio
async def test_unconfigured_secret_rejects_everything(
    services_factory: Callable[..., ServiceManager], provider: FakeProvider
) -> None:
    app = create_app(services=services_factory(WEBHOOK_SECRET=None))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.post("/webhook", params={"secret": "anything"}, json=event())
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_irrelevant_operation_is_skipped(client: AsyncClient, provider: FakeProvider) -> None:
    response = await client.post("/webhook", params={"secret": "hook-secret"}, json=event("delete"))

    assert response.status_code == 200
    assert response.json()["skipped"] is True
    assert provider.requests == []


@pytest.mark.asyncio
async def test_other_content_type_is_skipped(client: AsyncClient, provider: FakeProvider) -> None:
    response = await client.post("/webhook", params={"secret": "hook-secret"}, json=event(__typename="Author"))

    assert response.status_code == 200
    body = response.json()
    assert body["skipped"] is True
    assert "Author" in body["message"]


@pytest.mark.asyncio
async def test_model_field_is_accepted(client: AsyncClient, provider: FakeProvider) -> None:
    payload = event()
    del payload["data"]["__typename"]
    payload["data"]["model"] = "Post"

    response = await client.post("/webhook", params={"secret": "hook-secret"}, json=payload)

    assert response.json()["message"] == "Short URL created successfully"


@pytest.mark.asyncio
async def test_null_data_is_acknowledged(client: AsyncClient, provider: FakeProvider) -> None:
    response = await client.post(
        "/webhook", params={"secret": "hook-secret"}, json={"operation": "publish", "data": None}
    )

    assert response.status_code == 200
    assert response.json()["skipped"] is True
    assert provider.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "request_kwargs",
    [
        {"json": {"operation": "publish", "data": "oops"}},
        {"json": ["not", "an", "event"]},
        {"content": b"{not json", "headers": {"content-type": "application/json"}},
    ],
)
async def test_unreadable_payload_is_a_soft_warning(
    client: AsyncClient, provider: FakeProvider, request_kwargs: dict
) -> None:
    response = await client.post("/webhook", params={"secret": "hook-secret"}, **request_kwargs)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["skipped"] is True
    assert body["data"]["warning"] == "invalid_item"
    assert provider.requests == []


@pytest.mark.asyncio
async def test_epoch_millisecond_publish_date_is_accepted(client: AsyncClient, provider: FakeProvider) -> None:
    response = await client.post(
        "/webhook", params={"secret": "hook-secret"}, json=event(publishedAt=1759276800000)
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Short URL created successfully"
    assert len(provider.create_calls) == 1


@pytest.mark.asyncio
async def test_draft_update_is_acknowledged_without_shortening(client: AsyncClient, provider: FakeProvider) -> None:
    response = await client.post("/webhook", params={"secret": "hook-secret"}, json=event("update", stage="DRAFT"))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"] == {"slug": "hello-world", "operation": "update"}
    assert provider.requests == []


@pytest.mark.asyncio
async def test_published_update_is_shortened(client: AsyncClient, provider: FakeProvider) -> None:
    response = await client.post("/webhook", params={"secret": "hook-secret"}, json=event("update"))
    assert response.json()["data"]["shortUrl"].startswith("https://tinyurl.com/")


@pytest.mark.asyncio
async def test_legacy_item_is_not_shortened(client: AsyncClient, provider: FakeProvider) -> None:
    response = await client.post(
        "/webhook", params={"secret": "hook-secret"}, json=event(publishedAt=LEGACY_DATE)
    )

    assert response.status_code == 200
    body = response.json()
    assert body["skipped"] is True
    assert body["data"]["isNewItem"] is False
    assert body["data"]["reasons"]
    assert provider.requests == []


@pytest.mark.asyncio
async def test_shortening_failure_is_a_soft_warning(client: AsyncClient, provider: FakeProvider) -> None:
    provider.enqueue(httpx.Response(503, text="down"))

    response = await client.post("/webhook", params={"secret": "hook-secret"}, json=event())

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["warning"] == "upstream_unavailable"
    assert body["data"]["fallbackUrl"] == "https://blog.example.com/post/hello-world"


@pytest.mark.asyncio
async def test_shortener_exception_is_a_soft_warning(services: ServiceManager) -> None:
    shortener = MagicMock()
    shortener.shorten_item = AsyncMock(side_effect=RuntimeError("boom"))
    ingress = WebhookIngress(shortener, services.validator, secret="s3cret")

    outcome = await ingress.handle("s3cret", WebhookEvent.model_validate(event()))

    assert outcome.status_code == 200
    assert outcome.body.success is True
    assert outcome.body.data["warning"] == "internal_error"


def test_secret_comparison(services: ServiceManager) -> None:
    ingress = WebhookIngress(services.shortener, services.validator, secret="s3cret")
    assert ingress.is_authorized("s3cret") is True
    assert ingress.is_authorized("s3cret ") is False
    assert ingress.is_authorized(None) is False
