"""Configuration management for the link-shortening gateway.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from linkgate.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    api_key = settings.SHORTENER_API_KEY

**Step 3 — Override per environment**::
    SHORTENER_API_KEY=... RATE_LIMIT_MAX_REQUESTS=10 uvicorn linkgate.main:app

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- An empty SHORTENER_API_KEY puts the gateway in pass-through mode
  (every shorten returns the long URL).
- The eligibility cutoff is parsed as an aware UTC datetime.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

import datetime
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "linkgate"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Content site
    BASE_URL: str = "https://blog.example.com"
    CONTENT_PATH_PREFIX: str = "post"

    # Upstream shortening provider
    SHORTENER_API_KEY: str | None = None
    SHORTENER_API_BASE: str = "https://api.tinyurl.com"
    SHORTENER_DOMAIN: str = "tinyurl.com"
    SHORTENER_TIMEOUT_SECONDS: float = 10.0
    SHORTENER_ALIAS_CONFLICT_CODE: int = 5

    # Alias policy
    ALIAS_NAMESPACE: str = "blog"
    ALIAS_DIRECT_MAX_LENGTH: int = 50
    ALIAS_MAX_LENGTH: int = 30

    # Cache
    CACHE_BACKEND: str = "memory"
    REDIS_URL: str = "redis://redis:6379/0"
    CACHE_KEY_PREFIX: str = "shorten"
    CACHE_TTL_SECONDS: int = 24 * 60 * 60
    FALLBACK_CACHE_TTL_SECONDS: int = 24 * 60 * 60

    # Upstream quota (free tier: 2 requests per minute)
    RATE_LIMIT_MAX_REQUESTS: int = 2
    RATE_LIMIT_WINDOW_MS: int = 60_000

    # Items published before this instant are legacy and never auto-shortened
    ELIGIBILITY_CUTOFF: datetime.datetime = datetime.datetime(2025, 9, 29, tzinfo=datetime.timezone.utc)

    # Bulk runs
    BULK_DELAY_MS: int = 200
    BULK_MAX_SIZE: int = 50
    BULK_JOB_HISTORY: int = 100

    # Webhooks
    WEBHOOK_SECRET: str | None = None
    WEBHOOK_CONTENT_TYPES: list[str] = ["Post"]

    METRICS_ENABLED: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    @field_validator("ELIGIBILITY_CUTOFF")
    @classmethod
    def ensure_aware_cutoff(cls, v: datetime.datetime) -> datetime.datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=datetime.timezone.utc)
        return v

    @field_validator("CACHE_BACKEND")
    @classmethod
    def validate_cache_backend(cls, v: str) -> str:
        backend = v.lower()
        if backend not in ("memory", "redis"):
            raise ValueError("CACHE_BACKEND must be 'memory' or 'redis'")
        return backend

    @property
    def is_shortener_configured(self) -> bool:
        return bool(self.SHORTENER_API_KEY)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
