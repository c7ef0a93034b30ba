"""FastAPI application entry point for the shortening gateway.

Application Lifecycle Diagram
=============================
::
    ┌──────────────┐
    │ create_app() │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ Build        │
    │ ServiceMgr   │──▶ app.state.services
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ CORS, routes │
    │ /metrics     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ Serve HTTP   │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ shutdown:    │
    │ cleanup()    │
    └──────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    SHORTENER_API_KEY=... WEBHOOK_SECRET=... uvicorn linkgate.main:app --port 8000

**Step 2 — Shorten a URL**::
    curl -X POST http://localhost:8000/shorten \
         -H "Content-Type: application/json" \
         -d '{"longUrl": "https://blog.example.com/post/hello-world"}'

**Step 3 — Point the CMS webhook at**::
    POST http://localhost:8000/webhook?secret=<WEBHOOK_SECRET>

Key Behaviours
===============
- Every app gets its own ServiceManager; tests build apps with their own
  settings and fake upstream transport.
- ``/metrics`` is exposed only when METRICS_ENABLED is true.
- Shutdown closes the provider HTTP client and the Redis connection.
"""

__all__ = ["app", "create_app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from linkgate.config import Settings, get_settings
from linkgate.dependencies import ServiceManager
from linkgate.routes import router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    yield
    # Shutdown
    await app.state.services.cleanup()


def create_app(settings: Settings | None = None, services: ServiceManager | None = None) -> FastAPI:
    settings = settings or (services.settings if services else get_settings())
    services = services or ServiceManager(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Rate-limited, cache-aside gateway in front of a URL shortening provider",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if settings.METRICS_ENABLED:
        Instrumentator(
            should_group_status_codes=True,
            should_ignore_untemplated=False,
            should_respect_env_var=False,
        ).instrument(app).expose(app)

    app.include_router(router)
    return app


app = create_app()
