"""Service wiring and per-request context for the gateway.

One ServiceManager is built per application (or per CLI run) and owns every
long-lived collaborator. It is passed around explicitly; there is no module
level instance.

Ownership Diagram
=================
::
    ServiceManager(settings)
    ├─ logger            "linkgate" (stream handler, LOG_LEVEL)
    ├─ cache             InMemoryCacheStore | RedisCacheStore
    ├─ rate_limiter      RateLimiter(RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_MS)
    ├─ upstream          UpstreamShortenerAPI (httpx.AsyncClient)
    ├─ shortener         ShortenerClient(upstream, cache, rate_limiter)
    ├─ validator         EligibilityValidator(ELIGIBILITY_CUTOFF)
    ├─ bulk              BulkOrchestrator(shortener, validator)
    ├─ jobs              BulkJobRegistry(BULK_JOB_HISTORY)
    └─ webhook           WebhookIngress(shortener, validator, WEBHOOK_SECRET)
"""

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional

import httpx
import redis.asyncio as redis
from fastapi import Depends, Request

from linkgate.bulk import BulkJobRegistry, BulkOrchestrator
from linkgate.cache import CacheStore, InMemoryCacheStore, RedisCacheStore
from linkgate.config import Settings, get_settings
from linkgate.eligibility import EligibilityValidator
from linkgate.rate_limiter import RateLimiter
from linkgate.shortener import ShortenerClient
from linkgate.upstream import UpstreamShortenerAPI
from linkgate.webhook import WebhookIngress


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Owns the shared resources of one gateway instance.

    Args:
        settings: Configuration; defaults to ``get_settings()``
        upstream_transport: httpx transport for the provider client (tests)
        clock: Time source shared by the rate limiter and the in-memory cache
    """

    def __init__(
        self,
        settings: Settings | None = None,
        upstream_transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.logger = self._setup_logger()
        self.cache = self._setup_cache(clock)
        self.rate_limiter = RateLimiter(
            self.settings.RATE_LIMIT_MAX_REQUESTS,
            self.settings.RATE_LIMIT_WINDOW_MS,
            clock=clock or time.monotonic,
        )
        self.upstream = UpstreamShortenerAPI(
            self.settings.SHORTENER_API_KEY,
            base_url=self.settings.SHORTENER_API_BASE,
            timeout_seconds=self.settings.SHORTENER_TIMEOUT_SECONDS,
            alias_conflict_code=self.settings.SHORTENER_ALIAS_CONFLICT_CODE,
            transport=upstream_transport,
        )
        self.shortener = ShortenerClient(self.upstream, self.cache, self.rate_limiter, self.settings)
        self.validator = EligibilityValidator(self.settings.ELIGIBILITY_CUTOFF)
        self.bulk = BulkOrchestrator(
            self.shortener,
            self.validator,
            delay_ms=self.settings.BULK_DELAY_MS,
            max_size=self.settings.BULK_MAX_SIZE,
        )
        self.jobs = BulkJobRegistry(self.settings.BULK_JOB_HISTORY)
        self.webhook = WebhookIngress(
            self.shortener,
            self.validator,
            secret=self.settings.WEBHOOK_SECRET,
            content_types=self.settings.WEBHOOK_CONTENT_TYPES,
        )

        if not self.settings.is_shortener_configured:
            self.logger.warning("SHORTENER_API_KEY is not set; running in pass-through mode")

    def _setup_logger(self) -> logging.Logger:
        """Setup the package logger once."""
        logger = logging.getLogger("linkgate")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger

    def _setup_cache(self, clock: Callable[[], float] | None) -> CacheStore:
        if self.settings.CACHE_BACKEND == "redis":
            client = redis.from_url(self.settings.REDIS_URL, encoding="utf-8", decode_responses=True)
            return RedisCacheStore(client, prefix=self.settings.CACHE_KEY_PREFIX)
        return InMemoryCacheStore(clock=clock or time.time)

    async def cleanup(self) -> None:
        """Release network resources at shutdown."""
        await self.upstream.aclose()
        if isinstance(self.cache, RedisCacheStore):
            await self.cache.close()


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request tracking on top of the shared service manager.

    Attributes:
        service_manager: Shared resources of this app instance
        request_id: Unique identifier for this request
        trace_id: Correlation ID for distributed tracing
        user_agent: Client user agent string
        client_ip: Client IP address
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: Optional[str] = None
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())
    tags: list[str] = field(default_factory=list)

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def shortener(self) -> ShortenerClient:
        return self.service_manager.shortener

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger carrying the request identifiers."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "trace_id": self.trace_id or self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000

    def get_context_headers(self) -> dict[str, str]:
        return {
            "X-Request-ID": self.request_id,
            "X-Trace-ID": self.trace_id or self.request_id,
        }


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def get_service_manager(request: Request) -> ServiceManager:
    return request.app.state.services


def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        service_manager=manager,
        trace_id=request.headers.get("x-trace-id"),
        user_agent=request.headers.get("user-agent"),
        client_ip=request.client.host if request.client else None,
    )
