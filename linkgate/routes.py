"""FastAPI route definitions for the shortening gateway.

API Endpoint Overview
=====================
::
    POST   /shorten                 ShortenRequest → ShortenResponse (200) or 422
    GET    /health                  HealthResponse (200 healthy, 503 degraded)
    POST   /webhook?secret=...      raw CMS event → WebhookResponse (200 or 401)
    POST   /eligibility             EligibilityRequest → EligibilitySchema
    POST   /eligibility/report      ValidationReportRequest → ValidationReportResponse
    POST   /bulk                    BulkRequest → BulkJobResponse (200 wait, 202 queued)
    GET    /bulk/{job_id}           BulkJobResponse or 404
    GET    /analytics/{alias}       provider analytics or 404
    GET    /cache                   cache stats
    DELETE /cache                   clear the cache

Request Flow Diagram
====================
::
    ┌─────────────┐
    │  HTTP       │
    │  Request    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Validate &  │
    │ Parse       │
    │ (Pydantic)  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Inject      │
    │ ServiceMgr  │
    │ + context   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Eligibility │
    │ gate        │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Shortener   │
    │ Client      │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serialize   │
    │ (camelCase) │
    └─────────────┘

Key Behaviours
===============
- Shortening failures are never HTTP errors: the response carries the long
  URL with ``isShortened=false`` and an ``errorReason``.
- A legacy item sent to /shorten without ``force`` is answered with its long
  URL and never reaches the provider.
- Responses carry ``X-Request-ID`` / ``X-Trace-ID`` headers.
"""

import datetime
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response

from linkgate.dependencies import RequestContext, ServiceManager, get_request_context, get_service_manager
from linkgate.enums import HealthStatus
from linkgate.exceptions import ValidationError
from linkgate.schemas import (
    BulkJobResponse,
    BulkRequest,
    EligibilityRequest,
    EligibilitySchema,
    HealthResponse,
    RateLimitStatusSchema,
    ShortenRequest,
    ShortenResponse,
    ValidationReportRequest,
    ValidationReportResponse,
    WebhookResponse,
)

__all__ = ["router"]

router = APIRouter()

APPROACHING_LIMIT_RATIO = 0.8


@router.post("/shorten", response_model=ShortenResponse, response_model_exclude_none=True, tags=["shorten"])
async def shorten(
    payload: ShortenRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    manager: ServiceManager = Depends(get_service_manager),
) -> ShortenResponse:
    ctx.add_tag("shorten")
    response.headers.update(ctx.get_context_headers())
    shortener = manager.shortener

    if payload.item is None:
        ctx.logger.info(f"Shorten requested for {payload.long_url}")
        result = await shortener.shorten(payload.long_url, payload.options.to_options())
        return ShortenResponse(
            success=result.succeeded,
            short_url=result.short_url,
            long_url=result.long_url,
            is_shortened=result.is_shortened,
            from_cache=result.from_cache,
            alias=result.alias,
            error_reason=result.error_reason,
            rate_limit_status=RateLimitStatusSchema.from_status(shortener.rate_limit_status()),
        )

    item = payload.item.to_item()
    validation = manager.validator.validate(item, force=payload.force)
    eligibility = EligibilitySchema.from_result(validation)
    ctx.logger.info(f"Shorten requested for item {item.identifier} (eligible={validation.is_eligible})")

    if not validation.is_eligible:
        try:
            long_url = shortener.build_long_url(item.identifier)
        except ValidationError:
            long_url = ctx.settings.BASE_URL
        return ShortenResponse(
            success=validation.has_valid_data,
            short_url=long_url,
            long_url=long_url,
            is_shortened=False,
            is_new_item=validation.is_new_item,
            eligibility=eligibility,
            rate_limit_status=RateLimitStatusSchema.from_status(shortener.rate_limit_status()),
        )

    result = await shortener.shorten_item(item)
    ctx.logger.info(
        f"Item {item.identifier} shorten finished: succeeded={result.succeeded} "
        f"duration_ms={ctx.get_duration():.1f}"
    )
    return ShortenResponse(
        success=result.succeeded,
        short_url=result.short_url,
        long_url=result.long_url,
        is_shortened=result.is_shortened,
        from_cache=result.from_cache,
        alias=result.alias,
        error_reason=result.error_reason,
        is_new_item=validation.is_new_item,
        eligibility=eligibility,
        rate_limit_status=RateLimitStatusSchema.from_status(shortener.rate_limit_status()),
    )


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    manager: ServiceManager = Depends(get_service_manager),
) -> HealthResponse:
    shortener = manager.shortener
    rate_limit = shortener.rate_limit_status()
    cache_ok = await manager.cache.ping()
    cache_stats = await shortener.cache_stats()

    warnings = []
    if not shortener.is_configured:
        warnings.append("Shortener API key not configured")
    if not rate_limit.can_make_request:
        warnings.append("Rate limit exceeded")
    if rate_limit.requests_in_window >= rate_limit.max_requests * APPROACHING_LIMIT_RATIO:
        warnings.append("Approaching rate limit")
    if not cache_ok:
        warnings.append("Cache backend unreachable")

    healthy = shortener.is_configured and rate_limit.can_make_request and cache_ok
    status = HealthStatus.HEALTHY if healthy else HealthStatus.DEGRADED
    if status is HealthStatus.DEGRADED:
        response.status_code = 503
        ctx.logger.warning(f"Health check degraded: {'; '.join(warnings)}")

    return HealthResponse(
        status=status,
        timestamp=datetime.datetime.now(datetime.timezone.utc),
        service=ctx.settings.APP_NAME,
        configuration={
            "apiKeyConfigured": bool(ctx.settings.SHORTENER_API_KEY),
            "serviceConfigured": shortener.is_configured,
            "cacheBackend": ctx.settings.CACHE_BACKEND,
        },
        rate_limit=RateLimitStatusSchema.from_status(rate_limit),
        cache={**cache_stats, "enabled": True, "reachable": cache_ok},
        warnings=warnings,
    )


@router.post("/webhook", response_model=WebhookResponse, response_model_exclude_none=True, tags=["webhook"])
async def webhook(
    request: Request,
    response: Response,
    secret: str | None = None,
    manager: ServiceManager = Depends(get_service_manager),
) -> WebhookResponse:
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    outcome = await manager.webhook.handle(secret, payload)
    response.status_code = outcome.status_code
    return outcome.body


@router.post("/eligibility", response_model=EligibilitySchema, tags=["eligibility"])
async def check_eligibility(
    payload: EligibilityRequest,
    manager: ServiceManager = Depends(get_service_manager),
) -> EligibilitySchema:
    result = manager.validator.validate(payload.item.to_item(), force=payload.force)
    return EligibilitySchema.from_result(result)


@router.post("/eligibility/report", response_model=ValidationReportResponse, tags=["eligibility"])
async def eligibility_report(
    payload: ValidationReportRequest,
    manager: ServiceManager = Depends(get_service_manager),
) -> ValidationReportResponse:
    report = manager.validator.build_report(item.to_item() for item in payload.items)
    return ValidationReportResponse.from_report(report)


@router.post("/bulk", response_model=BulkJobResponse, response_model_exclude_none=True, tags=["bulk"])
async def start_bulk(
    payload: BulkRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_request_context),
    manager: ServiceManager = Depends(get_service_manager),
) -> BulkJobResponse:
    ctx.add_tag("bulk")
    items = [item.to_item() for item in payload.items]

    if payload.wait:
        job = await manager.bulk.run_batch(items, include_ineligible=payload.include_ineligible, force=payload.force)
        return BulkJobResponse.from_job(job)

    job = manager.jobs.create(items)
    background_tasks.add_task(
        manager.bulk.run_batch,
        items,
        include_ineligible=payload.include_ineligible,
        force=payload.force,
        job=job,
    )
    ctx.logger.info(f"Bulk job {job.job_id} queued with {len(items)} items")
    response.status_code = 202
    return BulkJobResponse.from_job(job)


@router.get("/bulk/{job_id}", response_model=BulkJobResponse, response_model_exclude_none=True, tags=["bulk"])
async def get_bulk_job(
    job_id: str,
    manager: ServiceManager = Depends(get_service_manager),
) -> BulkJobResponse:
    job = manager.jobs.consume(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Bulk job not found")
    return BulkJobResponse.from_job(job)


@router.get("/analytics/{alias}", tags=["analytics"])
async def get_analytics(
    alias: str,
    ctx: RequestContext = Depends(get_request_context),
    manager: ServiceManager = Depends(get_service_manager),
) -> dict[str, Any]:
    analytics = await manager.shortener.fetch_analytics(alias)
    if analytics is None:
        ctx.logger.warning(f"Analytics not found for alias: {alias}")
        raise HTTPException(status_code=404, detail="Analytics not found for the provided alias")
    return {"success": True, "alias": alias, "analytics": analytics}


@router.get("/cache", tags=["cache"])
async def cache_stats(manager: ServiceManager = Depends(get_service_manager)) -> dict[str, Any]:
    return await manager.shortener.cache_stats()


@router.delete("/cache", tags=["cache"])
async def clear_cache(
    ctx: RequestContext = Depends(get_request_context),
    manager: ServiceManager = Depends(get_service_manager),
) -> dict[str, Any]:
    removed = await manager.shortener.clear_cache()
    ctx.logger.info(f"Cache cleared by {ctx.client_ip}: {removed} entries")
    return {"success": True, "removed": removed}
