"""Dependency injection for the HTTP adapter.

A ``ServiceManager`` owns the shared resources (engine, Redis client, cache,
store, click accountant) and the ``LinkService`` built on top of them. It is
created by the application factory and kept on ``app.state``; there is no
module-level instance, so tests and embedders can build as many as they like.

Wiring Diagram
==============
::
    Settings ──► ServiceManager.initialize()
                  ├─ logger "shortlinks"
                  ├─ AsyncEngine ──► session factory ──► SQLAlchemyLinkStore
                  ├─ Redis client ──► RedisCache(prefix)
                  └─ bind(cache, store)
                       ├─ CodeGenerator(cache, store)
                       ├─ ClickAccountant(cache, store)
                       └─ LinkService(store, cache, generator, clicks)

    request ──► RequestContext(request_id, client_ip, ...)
                  └─ service.with_logger(LoggerAdapter)
"""

import logging
import time
import uuid
from dataclasses import dataclass, field

import redis.asyncio as redis
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from shortlinks.cache import CacheBackend, RedisCache
from shortlinks.clicks import ClickAccountant
from shortlinks.codes import CodeGenerator
from shortlinks.config import Settings, get_settings
from shortlinks.database import close_db, create_engine, create_session_factory, init_db
from shortlinks.redis import close_redis_client, create_redis_client
from shortlinks.service import LinkService
from shortlinks.store import LinkStore, SQLAlchemyLinkStore

__all__ = [
    "ServiceManager",
    "RequestContext",
    "get_service_manager",
    "get_request_context",
    "get_link_service",
    "get_owner_id",
]


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Owns shared resources for one application instance."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.logger = self._setup_logger()
        self.engine: AsyncEngine | None = None
        self.redis: redis.Redis | None = None
        self.cache: CacheBackend | None = None
        self.store: LinkStore | None = None
        self.generator: CodeGenerator | None = None
        self.clicks: ClickAccountant | None = None
        self.service: LinkService | None = None

    @property
    def initialized(self) -> bool:
        return self.service is not None

    async def initialize(self, create_schema: bool = True) -> None:
        """Connect to PostgreSQL and Redis and build the service once."""
        if self.initialized:
            return
        self.engine = create_engine(self.settings)
        if create_schema:
            await init_db(self.engine)
        self.redis = create_redis_client(self.settings)

        store = SQLAlchemyLinkStore(create_session_factory(self.engine), timeout=self.settings.STORE_TIMEOUT_SECONDS)
        cache = RedisCache(self.redis, prefix=self.settings.CACHE_KEY_PREFIX, timeout=self.settings.CACHE_TIMEOUT_SECONDS)
        self.bind(cache, store)
        self.clicks.start()
        self.logger.info(f"{self.settings.APP_NAME} initialized ({self.settings.APP_ENV})")

    def bind(self, cache: CacheBackend, store: LinkStore) -> LinkService:
        """Build the generator, click accountant and service on the given backends."""
        self.cache = cache
        self.store = store
        self.generator = CodeGenerator(cache, store, self.settings, logger=self.logger.getChild("codes"))
        self.clicks = ClickAccountant(cache, store, self.settings, logger=self.logger.getChild("clicks"))
        self.service = LinkService(store, cache, self.generator, self.clicks, self.settings, logger=self.logger)
        return self.service

    def _setup_logger(self) -> logging.Logger:
        logger = logging.getLogger("shortlinks")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger

    async def cleanup(self) -> None:
        """Drain pending clicks, then close Redis and the engine."""
        if self.clicks is not None:
            await self.clicks.aclose()
        if self.redis is not None:
            await close_redis_client(self.redis)
            self.redis = None
        if self.engine is not None:
            await close_db(self.engine)
            self.engine = None
        self.service = None


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request tracking data on top of the shared service manager.

    Attributes:
        service_manager: Application's service manager
        request_id: Taken from ``X-Request-ID`` or freshly generated
        client_ip: Client IP address
        user_agent: Client user agent string
        start_time: Request start timestamp
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    client_ip: str | None = None
    user_agent: str | None = None
    start_time: float = field(default_factory=time.perf_counter)

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
            },
        )

    @property
    def service(self) -> LinkService:
        return self.service_manager.service.with_logger(self.logger)

    def get_duration(self) -> float:
        """Request duration so far, in milliseconds."""
        return (time.perf_counter() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def get_service_manager(request: Request) -> ServiceManager:
    manager: ServiceManager | None = getattr(request.app.state, "service_manager", None)
    if manager is None or not manager.initialized:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return manager


def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        service_manager=manager,
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        client_ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def get_link_service(ctx: RequestContext = Depends(get_request_context)) -> LinkService:
    return ctx.service


def get_owner_id(x_owner_id: str | None = Header(default=None, alias="X-Owner-ID")) -> str:
    """Caller identity for owner-scoped operations. Authentication happens upstream."""
    if not x_owner_id or not x_owner_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-Owner-ID header")
    return x_owner_id.strip()
