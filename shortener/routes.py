"""FastAPI route definitions for the URL shortener REST API.

API Endpoint Overview
=====================
::
    GET    /health
        └─ HealthResponse (200) or (503)

    POST   /api/shorten              (optional bearer token)
        ├─ ShortenRequest (request body)
        └─ ShortenResponse (201) or 400

    GET    /api/urls                 (bearer token)
        └─ UrlListResponse (200) or 401

    DELETE /api/urls/:slug           (bearer token)
        └─ MessageResponse (200) or 401/403/404

    GET    /api/stats/:slug
        └─ UrlStats (200) or 404

    GET    /:slug
        └─ 307 Redirect or 404

Key Behaviours
===============
- Routes only translate HTTP into service calls; errors raised by the service
  are ShortenerError subclasses rendered by the handler in main.py.
- Redirects record a click with ip, user agent, referrer and language.
- 307 redirects preserve the HTTP method.
"""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import RedirectResponse

from shortener.auth import optional_owner_id, require_owner_id
from shortener.clicks import ClickMetadata
from shortener.dependencies import RequestContext, get_click_metadata, get_request_context, get_url_service
from shortener.enums import HealthStatus
from shortener.schemas import (
    HealthResponse,
    MessageResponse,
    ShortenRequest,
    ShortenResponse,
    UrlListResponse,
    UrlResponse,
    UrlStats,
)
from shortener.url_service import URLShorteningService

__all__ = ["router"]

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(
    response: Response,
    service: URLShorteningService = Depends(get_url_service),
) -> HealthResponse:
    store_ok, cache_ok = await service.health()
    status = HealthStatus.from_bool(store_ok and cache_ok)
    if status is HealthStatus.UNHEALTHY:
        response.status_code = 503
    return HealthResponse(
        status=status,
        database=HealthStatus.from_bool(store_ok),
        cache=HealthStatus.from_bool(cache_ok),
    )


@router.post("/api/shorten", response_model=ShortenResponse, status_code=201, tags=["urls"])
async def shorten_url(
    payload: ShortenRequest,
    owner_id: int | None = Depends(optional_owner_id),
    ctx: RequestContext = Depends(get_request_context),
    service: URLShorteningService = Depends(get_url_service),
) -> ShortenResponse:
    ctx.add_tag("url_creation")
    result = await service.shorten(payload.url, owner_id, payload.title, payload.description)
    ctx.logger.info(f"Shorten served {result.slug} in {ctx.get_duration():.1f}ms")
    return ShortenResponse(
        slug=result.slug,
        short_url=service.short_url(result.slug),
        original_url=result.original_url,
        title=result.title,
        description=result.description,
    )


@router.get("/api/urls", response_model=UrlListResponse, tags=["urls"])
async def list_urls(
    owner_id: int = Depends(require_owner_id),
    service: URLShorteningService = Depends(get_url_service),
) -> UrlListResponse:
    records = await service.list_urls(owner_id)
    urls = [
        UrlResponse(
            id=record.id,
            slug=record.slug,
            short_url=service.short_url(record.slug),
            original_url=record.original_url,
            title=record.title,
            description=record.description,
            hit_count=record.hit_count,
            created_at=record.created_at,
            last_accessed_at=record.last_accessed_at,
        )
        for record in records
    ]
    return UrlListResponse(urls=urls, count=len(urls))


@router.delete("/api/urls/{slug}", response_model=MessageResponse, tags=["urls"])
async def delete_url(
    slug: str,
    owner_id: int = Depends(require_owner_id),
    service: URLShorteningService = Depends(get_url_service),
) -> MessageResponse:
    await service.delete(slug, owner_id)
    return MessageResponse(message="URL deleted successfully")


@router.get("/api/stats/{slug}", response_model=UrlStats, tags=["urls"])
async def get_stats(
    slug: str,
    service: URLShorteningService = Depends(get_url_service),
) -> UrlStats:
    record = await service.get_stats(slug)
    return UrlStats(
        slug=record.slug,
        short_url=service.short_url(record.slug),
        original_url=record.original_url,
        hit_count=record.hit_count,
        created_at=record.created_at,
        last_accessed_at=record.last_accessed_at,
    )


@router.get("/{slug}", tags=["redirect"])
async def redirect_to_url(
    slug: str,
    click: ClickMetadata = Depends(get_click_metadata),
    ctx: RequestContext = Depends(get_request_context),
    service: URLShorteningService = Depends(get_url_service),
) -> RedirectResponse:
    ctx.add_tag("redirect")
    original_url = await service.resolve(slug, click)
    ctx.logger.info(f"Redirect {slug} -> {original_url} in {ctx.get_duration():.1f}ms")
    return RedirectResponse(url=original_url, status_code=307)
