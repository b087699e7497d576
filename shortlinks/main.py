"""FastAPI application entry point for the short-link service.

Application Lifecycle Diagram
=============================
::
    ┌──────────────┐
    │ create_app() │
    │ manager on   │
    │ app.state    │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ CORS, metrics│
    │ error mapping│
    │ routes       │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ startup:     │
    │ initialize() │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ Serve HTTP   │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ shutdown:    │
    │ drain clicks │
    │ close Redis  │
    │ close DB     │
    └──────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn shortlinks.main:app --host 0.0.0.0 --port 8080

**Step 2 — Make API calls**::
    curl -X POST http://localhost:8080/api/links \
         -H "Content-Type: application/json" -H "X-Owner-ID: u-1" \
         -d '{"url": "https://example.com"}'

Key Behaviours
===============
- Tables are created on startup.
- Queued clicks are drained (bounded by ``CLICK_DRAIN_TIMEOUT_SECONDS``)
  before connections are closed.
- Prometheus metrics are exposed at ``/metrics``.
"""

__all__ = ["app", "create_app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from shortlinks.dependencies import ServiceManager
from shortlinks.routes import register_exception_handlers, router


def create_app(manager: ServiceManager | None = None) -> FastAPI:
    manager = manager or ServiceManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        await manager.initialize()
        yield
        await manager.cleanup()

    app = FastAPI(
        title=manager.settings.APP_NAME,
        version="1.0.0",
        description="Short-link creation and resolution API",
        lifespan=lifespan,
    )
    app.state.service_manager = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=False,
        should_respect_env_var=False,
    ).instrument(app).expose(app)

    register_exception_handlers(app)
    app.include_router(router)
    return app


app = create_app()
