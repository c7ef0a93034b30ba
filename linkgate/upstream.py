"""HTTP client for the third-party shortening provider.

Wire Contract
=============
::
    POST {SHORTENER_API_BASE}/create
    Authorization: Bearer <api key>
    {"url": ..., "domain": ..., "alias"?: ..., "description"?: ..., "tags"?: [...]}

    → {"code": 0, "data": {"tiny_url": ..., "url": ..., "alias": ...}, "errors": []}

Outcome Mapping
===============
::
    code == 0                         → UpstreamLink
    code == alias-conflict (+ alias)  → AliasConflict
    other non-zero code / 4xx         → UpstreamError
    5xx / connection failure          → UpstreamUnavailable
    deadline exceeded                 → UpstreamTimeout

Key Behaviours
===============
- Every call is bounded by ``asyncio.timeout`` on top of the httpx timeout,
  so a hung connection is cancelled on every exit path.
- This module raises; ``ShortenerClient`` is the only consumer and converts
  every exception into a degraded result.
- The httpx transport is injectable so tests never touch the network.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from linkgate.exceptions import AliasConflict, UpstreamError, UpstreamTimeout, UpstreamUnavailable

__all__ = ["UpstreamLink", "UpstreamShortenerAPI"]

logger = logging.getLogger("linkgate.upstream")

DESCRIPTION_MAX_LENGTH = 500


@dataclass(frozen=True)
class UpstreamLink:
    tiny_url: str
    url: str
    alias: str | None = None


class UpstreamShortenerAPI:
    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://api.tinyurl.com",
        timeout_seconds: float = 10.0,
        alias_conflict_code: int = 5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._alias_conflict_code = alias_conflict_code
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def create(
        self,
        long_url: str,
        domain: str,
        alias: str | None = None,
        description: str | None = None,
        tags: tuple[str, ...] = (),
    ) -> UpstreamLink:
        payload: dict[str, Any] = {"url": long_url, "domain": domain}
        if alias:
            payload["alias"] = alias
        if description:
            payload["description"] = description[:DESCRIPTION_MAX_LENGTH]
        if tags:
            payload["tags"] = list(tags)

        body, status_code = await self._post("/create", payload)

        code = body.get("code")
        errors = body.get("errors") or []
        if status_code < 400 and code == 0:
            data = body.get("data") or {}
            tiny_url = data.get("tiny_url")
            if not tiny_url:
                raise UpstreamError("provider response carried no short URL", code=code)
            return UpstreamLink(tiny_url=tiny_url, url=data.get("url") or long_url, alias=data.get("alias"))

        message = "; ".join(str(error) for error in errors) or f"provider returned code {code} (HTTP {status_code})"
        if self._is_alias_conflict(code, errors, alias):
            raise AliasConflict(message, code=code)
        raise UpstreamError(message, code=code if isinstance(code, int) else status_code)

    async def fetch_analytics(self, alias: str) -> dict[str, Any] | None:
        if not self.is_configured or not alias:
            return None
        try:
            async with asyncio.timeout(self._timeout_seconds):
                response = await self._client.get(f"/analytics/{alias}", headers=self._headers())
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, TimeoutError, ValueError) as exc:
            logger.warning(f"Analytics request failed for {alias}: {exc}")
            return None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> tuple[dict[str, Any], int]:
        try:
            async with asyncio.timeout(self._timeout_seconds):
                response = await self._client.post(path, json=payload, headers=self._headers())
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise UpstreamTimeout(f"no response within {self._timeout_seconds}s") from exc
        except httpx.TransportError as exc:
            raise UpstreamUnavailable(f"transport error: {exc}") from exc

        if response.status_code >= 500:
            raise UpstreamUnavailable(f"provider returned HTTP {response.status_code}", code=response.status_code)

        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamError(f"non-JSON response (HTTP {response.status_code})", code=response.status_code) from exc
        if not isinstance(body, dict):
            raise UpstreamError("unexpected response shape", code=response.status_code)
        return body, response.status_code

    def _is_alias_conflict(self, code: Any, errors: list[Any], alias: str | None) -> bool:
        if code != self._alias_conflict_code:
            return False
        if any("alias" in str(error).lower() for error in errors):
            return True
        return bool(alias) and not errors
