"""Short-link resolution service - core business logic.

``LinkService`` coordinates the durable store, the cache, the code
generator and the click accountant. Every collaborator is injected through
the constructor; the service holds no process-wide state of its own.

Request Flow Diagrams
=====================

Link Creation Flow
------------------
::
    ┌─────────────┐
    │  create()   │
    └──────┬──────┘
           ▼
    ┌─────────────┐   INVALID   ┌──────────────────┐
    │ custom code?├────────────►│ InvalidCodeError │  (before any I/O)
    │ validate    │             └──────────────────┘
    └──────┬──────┘
           ▼
    ┌─────────────┐   COLLISION ┌──────────────────┐
    │ claim() or  ├────────────►│ CodeTakenError / │
    │ generate()  │             │ ...ExhaustedError│
    └──────┬──────┘             └──────────────────┘
           ▼
    ┌─────────────┐   FAILURE   ┌──────────────────┐
    │ store       ├────────────►│ release + raise  │
    │ create()    │             └──────────────────┘
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ cache SET   │  (failure logged, swallowed)
    │ url:<code>  │
    └──────┬──────┘
           ▼
      ShortLink

Resolve Flow
------------
::
    ┌─────────────┐
    │ resolve()   │
    │ normalize   │
    └──────┬──────┘
           ▼
    ┌─────────────┐   HIT    ┌─────────────┐
    │ cache GET   ├─────────►│ schedule    │
    │ url:<code>  │          │ click       │
    └──────┬──────┘          └──────┬──────┘
    MISS/ERROR                      ▼
           ▼                   destination
    ┌─────────────┐  ABSENT  ┌──────────────────┐
    │ store       ├─────────►│ LinkNotFoundError│
    │ find_by_code│          └──────────────────┘
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ cache SET   │  (best effort)
    │ + schedule  │
    └──────┬──────┘
           ▼
      destination

Key Behaviours
===============
- The durable store is the source of truth; the cache only accelerates.
- Cache reads that fail fall back to the store; cache writes that fail are
  logged and counted, never raised.
- Store failures on the authoritative path propagate to the caller.
- ``delete`` raises ``CacheCleanupError`` when the durable delete succeeded
  but the cached mapping, counter or reservation could not be removed.
- ``update`` evicts the cached mapping when it cannot be refreshed.
- Clicks are accounted in the background and never fail a resolve.
"""

import logging
import time

from prometheus_client import Counter, Histogram

from shortlinks.cache import CacheBackend
from shortlinks.clicks import ClickAccountant
from shortlinks.codes import CodeGenerator, normalize_code, validate_code
from shortlinks.config import Settings
from shortlinks.enums import CacheStatus, ClickSource, RequestStatus
from shortlinks.exceptions import (
    CacheCleanupError,
    CacheUnavailableError,
    LinkNotFoundError,
    OperationTimeoutError,
    ShortLinkError,
    UnauthorizedError,
)
from shortlinks.keys import clicks_key, link_key, reservation_key
from shortlinks.schemas import LinkPage, LinkStats, ShortLink
from shortlinks.store import LinkStore

__all__ = ["LinkService"]


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

LINK_CREATION_REQUESTS_TOTAL = Counter(
    "shortlinks_creation_requests_total",
    "Total link creation requests",
    ["status"],
)
LINK_RESOLVE_REQUESTS_TOTAL = Counter(
    "shortlinks_resolve_requests_total",
    "Total link resolve requests",
    ["status", "cache"],
)
LINK_CREATION_DURATION = Histogram(
    "shortlinks_creation_duration_seconds",
    "Time taken to create short links",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
LINK_RESOLVE_DURATION = Histogram(
    "shortlinks_resolve_duration_seconds",
    "Time taken to resolve short codes",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)
CACHE_ERRORS_SWALLOWED_TOTAL = Counter(
    "shortlinks_cache_errors_swallowed_total",
    "Cache failures that were logged and not surfaced",
    ["operation"],
)

CACHE_FAILURES = (CacheUnavailableError, OperationTimeoutError)


# ============================================================================
# CORE SERVICE CLASS
# ============================================================================


class LinkService:
    """Create, resolve, update and delete short links.

    Args:
        store: Durable store (source of truth)
        cache: Cache backend for mappings and click counters
        generator: Collision-checked code generator
        clicks: Background click accountant
        settings: Code policy, cache TTLs and pagination limits
        logger: Optional logger (defaults to ``shortlinks.service``)

    Example:
        >>> link = await service.create("u-1", "https://example.com")
        >>> await service.resolve(link.code)
        'https://example.com'
    """

    def __init__(
        self,
        store: LinkStore,
        cache: CacheBackend,
        generator: CodeGenerator,
        clicks: ClickAccountant,
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self._store = store
        self._cache = cache
        self._generator = generator
        self._clicks = clicks
        self._settings = settings
        self._logger = logger or logging.getLogger(__name__)

    @property
    def settings(self) -> Settings:
        return self._settings

    def with_logger(self, logger: logging.Logger | logging.LoggerAdapter) -> "LinkService":
        """Return a view of this service that logs through ``logger``."""
        return LinkService(self._store, self._cache, self._generator, self._clicks, self._settings, logger)

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def create(self, owner_id: str, destination: str, custom_code: str | None = None) -> ShortLink:
        """Create a short link, generating a code unless a non-empty ``custom_code`` is given.

        Raises:
            InvalidCodeError: Custom code violates the charset or length policy
            CodeTakenError: Custom code exists, or a concurrent creator won it
            CodeGenerationExhaustedError: Every generated code collided
            StoreUnavailableError / OperationTimeoutError: Durable store failure
        """
        start_time = time.perf_counter()
        try:
            if custom_code:
                code = await self._generator.claim(
                    custom_code,
                    self._settings.CUSTOM_CODE_MIN_LENGTH,
                    self._settings.CUSTOM_CODE_MAX_LENGTH,
                )
            else:
                code = await self._generator.generate()

            try:
                link = await self._store.create(code, owner_id, destination)
            except Exception:
                await self._generator.release(code)
                raise

            await self._cache_mapping(link.code, link.destination)
        except ShortLinkError as exc:
            LINK_CREATION_DURATION.observe(time.perf_counter() - start_time)
            LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.REJECTED).inc()
            self._logger.warning(f"Link creation failed: {exc}")
            raise

        duration = time.perf_counter() - start_time
        LINK_CREATION_DURATION.observe(duration)
        LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        self._logger.info(f"Link created: {link.code} in {duration:.3f}s", extra={"code": link.code})
        return link

    async def resolve(self, code: str) -> str:
        """Return the destination for ``code`` and schedule one click.

        Raises:
            InvalidCodeError: The code fails the charset check
            LinkNotFoundError: No link exists for the code
            StoreUnavailableError / OperationTimeoutError: Cache missed and the store failed
        """
        start_time = time.perf_counter()
        code = normalize_code(code)
        validate_code(code)

        cache_status = CacheStatus.MISS
        try:
            destination = await self._cache.get(link_key(code))
        except CACHE_FAILURES as exc:
            destination = None
            cache_status = CacheStatus.ERROR
            self._logger.warning(f"Cache read failed for {code}, falling back to store: {exc}")

        if destination is not None:
            self._clicks.schedule(code)
            LINK_RESOLVE_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache=CacheStatus.HIT).inc()
            LINK_RESOLVE_DURATION.observe(time.perf_counter() - start_time)
            self._logger.debug(f"Cache hit for {code}")
            return destination

        try:
            link = await self._store.find_by_code(code)
        except LinkNotFoundError:
            LINK_RESOLVE_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND, cache=cache_status).inc()
            raise
        except ShortLinkError:
            LINK_RESOLVE_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR, cache=cache_status).inc()
            raise

        await self._cache_mapping(code, link.destination)
        self._clicks.schedule(code)
        LINK_RESOLVE_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache=cache_status).inc()
        LINK_RESOLVE_DURATION.observe(time.perf_counter() - start_time)
        self._logger.debug(f"Store hit for {code}, mapping re-cached")
        return link.destination

    async def update(self, owner_id: str, code: str, destination: str) -> ShortLink:
        """Point an owned link at a new destination.

        Raises:
            LinkNotFoundError: No link exists for the code
            UnauthorizedError: The link belongs to another owner
        """
        code = normalize_code(code)
        await self._load_owned(owner_id, code)
        link = await self._store.update_destination(code, destination)
        if not await self._cache_mapping(code, link.destination):
            await self._evict_mapping(code)
        self._logger.info(f"Link updated: {code}", extra={"code": code})
        return link

    async def get(self, owner_id: str, code: str) -> ShortLink:
        """Fetch one owned link from the durable store.

        Raises:
            LinkNotFoundError: No link exists for the code
            UnauthorizedError: The link belongs to another owner
        """
        return await self._load_owned(owner_id, normalize_code(code))

    async def delete(self, owner_id: str, code: str) -> None:
        """Delete an owned link and its cached mapping, counter and reservation.

        Raises:
            LinkNotFoundError: No link exists for the code
            UnauthorizedError: The link belongs to another owner
            CacheCleanupError: Deleted durably, but the cache entries remain
        """
        code = normalize_code(code)
        await self._load_owned(owner_id, code)
        await self._store.delete(code, owner_id)
        self._logger.info(f"Link deleted: {code}", extra={"code": code})

        keys = [link_key(code), clicks_key(code), reservation_key(code)]
        try:
            await self._cache.delete_many(keys)
        except CACHE_FAILURES as exc:
            self._logger.error(f"Cache cleanup failed for deleted link {code}: {exc}")
            raise CacheCleanupError(code, keys) from exc

    async def list_links(self, owner_id: str, page: int = 1, page_size: int | None = None) -> LinkPage:
        page = max(page, 1)
        if page_size is None or not 1 <= page_size <= self._settings.MAX_PAGE_SIZE:
            page_size = self._settings.DEFAULT_PAGE_SIZE
        items, total = await self._store.find_by_owner_paginated(owner_id, page, page_size)
        return LinkPage(items=items, page=page, page_size=page_size, total=total)

    async def get_stats(self, code: str) -> LinkStats:
        """Click statistics, preferring the cache counter over the durable one."""
        code = normalize_code(code)
        link = await self._store.find_by_code(code)
        try:
            cached = await self._cache.get(clicks_key(code))
        except CACHE_FAILURES as exc:
            cached = None
            self._logger.warning(f"Cache counter read failed for {code}, using store count: {exc}")

        if cached is not None:
            return LinkStats(code=code, clicks=int(cached), source=ClickSource.CACHE, updated_at=link.updated_at)
        return LinkStats(code=code, clicks=link.clicks, source=ClickSource.STORE, updated_at=link.updated_at)

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    async def _load_owned(self, owner_id: str, code: str) -> ShortLink:
        link = await self._store.find_by_code(code)
        if link.owner_id != owner_id:
            self._logger.warning(f"Owner mismatch on {code}")
            raise UnauthorizedError(code)
        return link

    async def _cache_mapping(self, code: str, destination: str) -> bool:
        try:
            await self._cache.set(link_key(code), destination, self._settings.LINK_CACHE_TTL_SECONDS)
        except CACHE_FAILURES as exc:
            CACHE_ERRORS_SWALLOWED_TOTAL.labels(operation="set").inc()
            self._logger.warning(f"Failed to cache mapping for {code}: {exc}")
            return False
        return True

    async def _evict_mapping(self, code: str) -> None:
        # A stale mapping would keep serving the old destination until its TTL expires.
        try:
            await self._cache.delete(link_key(code))
        except CACHE_FAILURES as exc:
            CACHE_ERRORS_SWALLOWED_TOTAL.labels(operation="delete").inc()
            self._logger.error(f"Failed to evict stale mapping for {code}: {exc}")
