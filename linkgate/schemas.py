"""Pydantic schemas for request/response validation in the shortening gateway.

This module defines Pydantic models for API input validation and output serialization,
ensuring type safety and automatic OpenAPI documentation generation. Wire
format is camelCase (the share UI and the CMS speak JS); Python attributes stay
snake_case.

Schema Hierarchy
=================
::
    ShortenRequest (Input)
    ├─ longUrl: str | None        (validated URL)
    ├─ item: ContentItemSchema | None
    ├─ options: ShortenOptionsSchema
    └─ force: bool

    ShortenResponse (Output)
    ├─ success / isShortened / fromCache
    ├─ shortUrl / longUrl / alias
    ├─ errorReason
    ├─ eligibility: EligibilitySchema | None
    └─ rateLimitStatus: RateLimitStatusSchema

    WebhookEvent (Input)
    ├─ operation: str
    └─ data: WebhookData (__typename, slug, title, stage, ...)

    BulkRequest (Input) / BulkJobResponse (Output)

    HealthResponse (Output)
    ├─ status: healthy | degraded
    ├─ rateLimit: RateLimitStatusSchema
    └─ warnings: list[str]

Key Behaviours
===============
- URL validation uses the validators library for RFC compliance.
- Exactly one of longUrl / item is accepted on /shorten.
- Item timestamps are kept as raw strings so malformed dates reach the
  eligibility validator (which fails closed) instead of a 422.
- CachedShortenPayload is the Redis serialization of a ShortenResult.
"""

import datetime
from typing import Any

import validators
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from linkgate.eligibility import ValidationReport
from linkgate.enums import ErrorReason, HealthStatus, RecommendationType, ServiceStatus
from linkgate.models import (
    BulkJob,
    ContentItem,
    EligibilityResult,
    RateLimitStatus,
    ShortenOptions,
    ShortenResult,
)

__all__ = [
    "ShortenOptionsSchema",
    "ContentItemSchema",
    "ShortenRequest",
    "ShortenResponse",
    "ShortenResultSchema",
    "RateLimitStatusSchema",
    "EligibilitySchema",
    "EligibilityRequest",
    "ValidationReportRequest",
    "HealthResponse",
    "WebhookData",
    "WebhookEvent",
    "WebhookResponse",
    "BulkRequest",
    "BulkJobResponse",
    "CachedShortenPayload",
    "RecommendationSchema",
    "ValidationReportResponse",
]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ShortenOptionsSchema(CamelModel):
    alias: str | None = None
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    domain: str | None = None

    @field_validator("alias")
    @classmethod
    def validate_alias(cls, v: str | None) -> str | None:
        if v is not None:
            if len(v) < 3 or len(v) > 30:
                raise ValueError("Alias must be between 3 and 30 characters")
            if not v.replace("-", "").isalnum():
                raise ValueError("Alias must be alphanumeric (dashes allowed)")
        return v

    def to_options(self) -> ShortenOptions:
        return ShortenOptions(
            alias=self.alias,
            description=self.description,
            tags=tuple(self.tags),
            domain=self.domain,
        )


class ContentItemSchema(CamelModel):
    id: str | None = None
    slug: str | None = None
    title: str | None = None
    published_at: str | int | float | None = None
    created_at: str | int | float | None = None
    stage: str | None = None
    views: int = 0
    shares: int = 0
    featured: bool = False
    categories: list[str] = Field(default_factory=list)

    def to_item(self) -> ContentItem:
        return ContentItem(
            identifier=self.slug,
            title=self.title,
            id=self.id,
            published_at=self.published_at,
            created_at=self.created_at,
            stage=self.stage,
            views=self.views,
            shares=self.shares,
            featured=self.featured,
            categories=list(self.categories),
        )


class ShortenRequest(CamelModel):
    long_url: str | None = None
    item: ContentItemSchema | None = None
    options: ShortenOptionsSchema = Field(default_factory=ShortenOptionsSchema)
    force: bool = False

    @field_validator("long_url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        if v is not None and not validators.url(v):
            raise ValueError("Invalid URL provided")
        return v

    @model_validator(mode="after")
    def require_one_target(self) -> "ShortenRequest":
        if (self.long_url is None) == (self.item is None):
            raise ValueError("Provide exactly one of longUrl or item")
        return self


class RateLimitStatusSchema(CamelModel):
    requests_in_window: int
    max_requests: int
    window_ms: int
    can_make_request: bool
    next_reset_in_ms: int
    utilization_percent: int

    @classmethod
    def from_status(cls, status: RateLimitStatus) -> "RateLimitStatusSchema":
        return cls(
            requests_in_window=status.requests_in_window,
            max_requests=status.max_requests,
            window_ms=status.window_ms,
            can_make_request=status.can_make_request,
            next_reset_in_ms=status.next_reset_in_ms,
            utilization_percent=status.utilization_percent,
        )


class EligibilitySchema(CamelModel):
    is_eligible: bool
    is_new_item: bool
    has_valid_data: bool
    publish_date: datetime.datetime | None
    cutoff: datetime.datetime
    reasons: list[str]
    forced: bool = False

    @classmethod
    def from_result(cls, result: EligibilityResult) -> "EligibilitySchema":
        return cls(
            is_eligible=result.is_eligible,
            is_new_item=result.is_new_item,
            has_valid_data=result.has_valid_data,
            publish_date=result.publish_date,
            cutoff=result.cutoff,
            reasons=list(result.reasons),
            forced=result.forced,
        )


class EligibilityRequest(CamelModel):
    item: ContentItemSchema
    force: bool = False


class ValidationReportRequest(CamelModel):
    items: list[ContentItemSchema]


class ShortenResultSchema(CamelModel):
    long_url: str
    short_url: str
    alias: str | None = None
    from_cache: bool = False
    succeeded: bool = False
    is_shortened: bool = False
    error_reason: str | None = None

    @classmethod
    def from_result(cls, result: ShortenResult) -> "ShortenResultSchema":
        return cls(
            long_url=result.long_url,
            short_url=result.short_url,
            alias=result.alias,
            from_cache=result.from_cache,
            succeeded=result.succeeded,
            is_shortened=result.is_shortened,
            error_reason=result.error_reason,
        )


class ShortenResponse(CamelModel):
    success: bool
    short_url: str
    long_url: str
    is_shortened: bool
    from_cache: bool = False
    alias: str | None = None
    error_reason: str | None = None
    is_new_item: bool | None = None
    eligibility: EligibilitySchema | None = None
    rate_limit_status: RateLimitStatusSchema


class HealthResponse(CamelModel):
    status: HealthStatus
    timestamp: datetime.datetime
    service: str
    configuration: dict[str, Any]
    rate_limit: RateLimitStatusSchema
    cache: dict[str, Any]
    warnings: list[str]


class WebhookData(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    typename: str | None = Field(default=None, alias="__typename")
    model: str | None = None
    id: str | None = None
    slug: str | None = None
    title: str | None = None
    stage: str | None = None
    published_at: str | int | float | None = None
    created_at: str | int | float | None = None

    @property
    def model_type(self) -> str | None:
        return self.typename or self.model

    def to_item(self) -> ContentItem:
        return ContentItem(
            identifier=self.slug,
            title=self.title,
            id=self.id,
            published_at=self.published_at,
            created_at=self.created_at,
            stage=self.stage,
        )


class WebhookEvent(CamelModel):
    operation: str | None = None
    data: WebhookData = Field(default_factory=WebhookData)

    @field_validator("data", mode="before")
    @classmethod
    def default_missing_data(cls, v: Any) -> Any:
        return {} if v is None else v


class WebhookResponse(CamelModel):
    success: bool
    message: str
    data: dict[str, Any] | None = None
    skipped: bool | None = None


class BulkRequest(CamelModel):
    items: list[ContentItemSchema]
    include_ineligible: bool = False
    force: bool = False
    wait: bool = False


class BulkProgressSchema(CamelModel):
    completed: int
    total: int


class BulkJobResponse(CamelModel):
    job_id: str
    status: ServiceStatus
    progress: BulkProgressSchema
    started_at: datetime.datetime | None = None
    finished_at: datetime.datetime | None = None
    results: dict[str, ShortenResultSchema] | None = None
    errors: dict[str, str] | None = None
    skipped: dict[str, list[str]] | None = None

    @classmethod
    def from_job(cls, job: BulkJob, include_report: bool | None = None) -> "BulkJobResponse":
        progress = job.progress
        report = job.is_finished if include_report is None else include_report
        response = cls(
            job_id=job.job_id,
            status=job.status,
            progress=BulkProgressSchema(completed=progress.completed, total=progress.total),
            started_at=job.started_at,
            finished_at=job.finished_at,
        )
        if report:
            response.results = {key: ShortenResultSchema.from_result(value) for key, value in job.results.items()}
            response.errors = dict(job.errors)
            response.skipped = {key: list(value) for key, value in job.skipped.items()}
        return response


class CachedShortenPayload(BaseModel):
    """Redis cache payload for a ShortenResult."""

    long_url: str
    short_url: str
    alias: str | None = None
    succeeded: bool
    error_reason: str | None = None

    @classmethod
    def from_result(cls, result: ShortenResult) -> "CachedShortenPayload":
        return cls(
            long_url=result.long_url,
            short_url=result.short_url,
            alias=result.alias,
            succeeded=result.succeeded,
            error_reason=result.error_reason,
        )

    def to_result(self) -> ShortenResult:
        return ShortenResult(
            long_url=self.long_url,
            short_url=self.short_url,
            alias=self.alias,
            succeeded=self.succeeded,
            error_reason=ErrorReason.from_str(self.error_reason) if self.error_reason else None,
        )


class RecommendationSchema(CamelModel):
    type: RecommendationType
    title: str
    description: str
    action: str
    priority: str


class InvalidItemSchema(CamelModel):
    id: str | None = None
    slug: str | None = None
    reasons: list[str]


class ValidationReportResponse(CamelModel):
    summary: dict[str, Any]
    new_items: list[str]
    legacy_items: list[str]
    invalid_items: list[InvalidItemSchema]
    recommendations: list[RecommendationSchema]

    @classmethod
    def from_report(cls, report: ValidationReport) -> "ValidationReportResponse":
        categorization = report.categorization
        return cls(
            summary={to_camel(key): value for key, value in report.summary.items()},
            new_items=[entry.item.identifier or entry.item.id or "" for entry in categorization.new],
            legacy_items=[entry.item.identifier or entry.item.id or "" for entry in categorization.legacy],
            invalid_items=[
                InvalidItemSchema(id=entry.item.id, slug=entry.item.identifier, reasons=list(entry.validation.reasons))
                for entry in categorization.invalid
            ],
            recommendations=[
                RecommendationSchema(
                    type=rec.type,
                    title=rec.title,
                    description=rec.description,
                    action=rec.action,
                    priority=rec.priority,
                )
                for rec in report.recommendations
            ],
        )
