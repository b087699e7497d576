"""FastAPI route definitions for the short-link REST API.

API Endpoint Overview
=====================
::
    GET    /health
        └─ HealthResponse (200)

    POST   /api/links                 (X-Owner-ID)
        ├─ LinkCreate (request body)
        └─ LinkResponse (201) or 409/422/503

    GET    /api/links?page=&page_size= (X-Owner-ID)
        └─ LinkPageResponse (200)

    GET    /api/links/:code           (X-Owner-ID)
        └─ LinkResponse (200) or 403/404

    PATCH  /api/links/:code           (X-Owner-ID)
        ├─ LinkUpdate (request body)
        └─ LinkResponse (200) or 403/404

    DELETE /api/links/:code           (X-Owner-ID)
        └─ 204 or 403/404/502

    GET    /api/links/:code/stats
        └─ LinkStatsResponse (200) or 404

    GET    /:code
        └─ 307 Redirect or 404/422

Error Mapping
=============
::
    InvalidCodeError               422
    LinkNotFoundError              404
    UnauthorizedError              403
    CodeTakenError                 409
    CodeGenerationExhaustedError   503
    StoreUnavailableError          503
    CacheUnavailableError          502  (includes CacheCleanupError)
    OperationTimeoutError          504
    missing X-Owner-ID             401

Key Behaviours
===============
- Route handlers never catch core errors themselves; the handler installed
  by ``register_exception_handlers`` maps them onto HTTP statuses.
- ``/{code}`` is registered last so it never shadows the API routes.
- 307 redirects preserve the HTTP method.
"""

from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from shortlinks.dependencies import (
    RequestContext,
    ServiceManager,
    get_link_service,
    get_owner_id,
    get_request_context,
    get_service_manager,
)
from shortlinks.enums import HealthStatus
from shortlinks.exceptions import (
    CacheUnavailableError,
    CodeGenerationExhaustedError,
    CodeTakenError,
    InvalidCodeError,
    LinkNotFoundError,
    OperationTimeoutError,
    ShortLinkError,
    StoreUnavailableError,
    UnauthorizedError,
)
from shortlinks.schemas import (
    HealthResponse,
    LinkCreate,
    LinkPageResponse,
    LinkResponse,
    LinkStatsResponse,
    LinkUpdate,
)
from shortlinks.service import LinkService

__all__ = ["router", "register_exception_handlers", "ERROR_STATUS_CODES"]

router = APIRouter()

ERROR_STATUS_CODES: dict[type[ShortLinkError], int] = {
    InvalidCodeError: 422,
    LinkNotFoundError: 404,
    UnauthorizedError: 403,
    CodeTakenError: 409,
    CodeGenerationExhaustedError: 503,
    StoreUnavailableError: 503,
    CacheUnavailableError: 502,
    OperationTimeoutError: 504,
}


def status_code_for(exc: ShortLinkError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


async def short_link_error_handler(request: Request, exc: ShortLinkError) -> JSONResponse:
    status_code = status_code_for(exc)
    log = request.app.state.service_manager.logger
    if status_code >= 500:
        log.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        log.info(f"{request.method} {request.url.path} rejected ({status_code}): {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ShortLinkError, short_link_error_handler)


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(manager: ServiceManager = Depends(get_service_manager)) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        await manager.store.ping()
    except ShortLinkError as e:
        manager.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    try:
        cache_status = HealthStatus.from_bool(await manager.cache.ping())
    except ShortLinkError as e:
        manager.logger.error(f"Cache health check failed: {e}")
        cache_status = HealthStatus.UNHEALTHY

    status = HealthStatus.from_bool(db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY)
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post("/api/links", response_model=LinkResponse, status_code=201, tags=["links"])
async def create_link(
    payload: LinkCreate,
    owner_id: str = Depends(get_owner_id),
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkResponse:
    ctx.logger.info(
        f"Link creation requested: {payload.url}",
        extra={"operation": "create", "custom_code": payload.custom_code},
    )
    link = await service.create(owner_id, payload.url, payload.custom_code)
    return LinkResponse.from_link(link, ctx.settings.BASE_URL)


@router.get("/api/links", response_model=LinkPageResponse, tags=["links"])
async def list_links(
    page: int = 1,
    page_size: int | None = None,
    owner_id: str = Depends(get_owner_id),
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkPageResponse:
    result = await service.list_links(owner_id, page, page_size)
    return LinkPageResponse(
        items=[LinkResponse.from_link(link, ctx.settings.BASE_URL) for link in result.items],
        page=result.page,
        page_size=result.page_size,
        total=result.total,
        total_pages=result.total_pages,
    )


@router.get("/api/links/{code}", response_model=LinkResponse, tags=["links"])
async def get_link(
    code: str,
    owner_id: str = Depends(get_owner_id),
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkResponse:
    link = await service.get(owner_id, code)
    return LinkResponse.from_link(link, ctx.settings.BASE_URL)


@router.patch("/api/links/{code}", response_model=LinkResponse, tags=["links"])
async def update_link(
    code: str,
    payload: LinkUpdate,
    owner_id: str = Depends(get_owner_id),
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkResponse:
    link = await service.update(owner_id, code, payload.url)
    return LinkResponse.from_link(link, ctx.settings.BASE_URL)


@router.delete("/api/links/{code}", status_code=204, tags=["links"])
async def delete_link(
    code: str,
    owner_id: str = Depends(get_owner_id),
    service: LinkService = Depends(get_link_service),
) -> Response:
    await service.delete(owner_id, code)
    return Response(status_code=204)


@router.get("/api/links/{code}/stats", response_model=LinkStatsResponse, tags=["links"])
async def get_stats(code: str, service: LinkService = Depends(get_link_service)) -> LinkStatsResponse:
    stats = await service.get_stats(code)
    return LinkStatsResponse(
        code=stats.code,
        total_clicks=stats.clicks,
        source=stats.source,
        updated_at=stats.updated_at,
    )


@router.get("/{code}", tags=["redirect"])
async def redirect_to_destination(
    code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> RedirectResponse:
    destination = await service.resolve(code)
    ctx.logger.debug(
        f"Redirect: {code} -> {destination}",
        extra={"operation": "redirect", "duration_ms": ctx.get_duration()},
    )
    return RedirectResponse(url=destination, status_code=307)
