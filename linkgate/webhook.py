"""CMS webhook ingress for automatic shortening on publish.

Flow Diagram — handle(secret, event)
====================================
::
    ┌──────────────────┐
    │ secret matches?   │──── no ───▶ 401 Invalid token
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ payload readable? │──── no ───▶ 200 skipped with warning
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ create / update / │──── no ───▶ 200 skipped
    │ publish ?         │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ content type      │──── no ───▶ 200 skipped
    │ allowed ?         │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ update that is    │──── yes ──▶ 200 acknowledged
    │ not PUBLISHED ?   │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ eligible ?        │──── no ───▶ 200 with reasons
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ shorten_item      │──── degraded / error ──▶ 200 with warning
    └────────┬─────────┘
             ▼
        200 short URL

Key Behaviours
===============
- The body is parsed only after the secret check, so an unauthenticated
  caller always gets 401 whatever it sends.
- Only the secret check can fail the call. Anything after it answers 200 so
  the CMS does not keep retrying a condition that retrying cannot fix.
- No configured secret means every call is rejected.
- Delivery is at-most-once per event; a lost shortening is recovered by the
  next publish or by a bulk run.
"""

import hmac
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PayloadError

from linkgate.eligibility import EligibilityValidator
from linkgate.enums import ErrorReason, WebhookOperation
from linkgate.schemas import WebhookEvent, WebhookResponse
from linkgate.shortener import ShortenerClient

__all__ = ["WebhookIngress", "WebhookOutcome", "PUBLISHED_STAGE"]

PUBLISHED_STAGE = "PUBLISHED"


@dataclass(frozen=True)
class WebhookOutcome:
    status_code: int
    body: WebhookResponse


class WebhookIngress:
    def __init__(
        self,
        shortener: ShortenerClient,
        validator: EligibilityValidator,
        secret: str | None,
        content_types: list[str] | tuple[str, ...] = ("Post",),
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.shortener = shortener
        self.validator = validator
        self._secret = secret
        self._content_types = frozenset(content_types)
        self._logger = logger or logging.getLogger("linkgate.webhook")

    def is_authorized(self, secret: str | None) -> bool:
        if not self._secret or not secret:
            return False
        return hmac.compare_digest(secret.encode("utf-8"), self._secret.encode("utf-8"))

    async def handle(self, secret: str | None, event: WebhookEvent | Any) -> WebhookOutcome:
        """Authorize, then act on a CMS event.

        ``event`` may be a parsed ``WebhookEvent`` or the raw decoded JSON body.
        """
        if not self.is_authorized(secret):
            self._logger.warning("Invalid webhook secret attempted")
            return WebhookOutcome(401, WebhookResponse(success=False, message="Invalid token"))

        if not isinstance(event, WebhookEvent):
            try:
                event = WebhookEvent.model_validate(event)
            except PayloadError as exc:
                self._logger.warning(f"Unreadable webhook payload ({exc.error_count()} errors)")
                return WebhookOutcome(
                    200,
                    WebhookResponse(
                        success=True,
                        message="Webhook payload not understood, no URL shortening needed",
                        data={"warning": ErrorReason.INVALID_ITEM},
                        skipped=True,
                    ),
                )

        data = event.data
        self._logger.info(
            f"Webhook received: {event.operation} for {data.model_type or 'unknown'} with slug {data.slug}"
        )

        operation = WebhookOperation.parse(event.operation)
        if operation is None:
            return self._skipped(f'Operation "{event.operation}" not relevant for URL shortening')

        if data.model_type not in self._content_types:
            return self._skipped(f'Model "{data.model_type}" not relevant for URL shortening')

        summary: dict[str, Any] = {"slug": data.slug, "operation": operation}
        if operation is WebhookOperation.UPDATE and (data.stage or "").upper() != PUBLISHED_STAGE:
            return WebhookOutcome(
                200,
                WebhookResponse(
                    success=True,
                    message=f"Item {operation} acknowledged, no URL shortening needed",
                    data=summary,
                ),
            )

        item = data.to_item()
        validation = self.validator.validate(item)
        if not validation.is_eligible:
            self._logger.info(f"Webhook item {data.slug} not eligible: {', '.join(validation.reasons)}")
            return WebhookOutcome(
                200,
                WebhookResponse(
                    success=True,
                    message="Item not eligible for URL shortening",
                    data={**summary, "isNewItem": validation.is_new_item, "reasons": list(validation.reasons)},
                    skipped=True,
                ),
            )

        try:
            result = await self.shortener.shorten_item(item)
        except Exception as exc:
            self._logger.error(f"Webhook shortening failed for {data.slug}: {exc}")
            return self._soft_failure(summary, ErrorReason.INTERNAL_ERROR, fallback_url=None)

        if not result.succeeded:
            self._logger.warning(f"Webhook shortening degraded for {data.slug}: {result.error_reason}")
            return self._soft_failure(summary, result.error_reason, fallback_url=result.long_url)

        self._logger.info(f"Short URL {result.short_url} created for {data.slug}")
        return WebhookOutcome(
            200,
            WebhookResponse(
                success=True,
                message="Short URL created successfully",
                data={
                    **summary,
                    "shortUrl": result.short_url,
                    "longUrl": result.long_url,
                    "fromCache": result.from_cache,
                },
            ),
        )

    @staticmethod
    def _skipped(message: str) -> WebhookOutcome:
        return WebhookOutcome(200, WebhookResponse(success=True, message=message, skipped=True))

    @staticmethod
    def _soft_failure(summary: dict[str, Any], reason: str | None, fallback_url: str | None) -> WebhookOutcome:
        return WebhookOutcome(
            200,
            WebhookResponse(
                success=True,
                message="Short URL not created, webhook processed",
                data={**summary, "fallbackUrl": fallback_url, "warning": reason or ErrorReason.INTERNAL_ERROR},
            ),
        )
