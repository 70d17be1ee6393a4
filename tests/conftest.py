"""Shared pytest fixtures: in-memory store and cache, and an ASGI test client."""

import logging
from types import SimpleNamespace
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fakes import InMemoryUrlStore
from shortener.allocator import SequentialSlugAllocator
from shortener.cache import InMemoryUrlCache
from shortener.clicks import ClickTracker
from shortener.config import Settings, get_settings
from shortener.dependencies import RequestContext, get_request_context, get_url_service
from shortener.main import app
from shortener.url_service import URLShorteningService


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def logger(settings: Settings) -> logging.Logger:
    return logging.getLogger(settings.APP_NAME)


@pytest.fixture
def store() -> InMemoryUrlStore:
    return InMemoryUrlStore()


@pytest.fixture
def cache(settings: Settings, logger: logging.Logger) -> InMemoryUrlCache:
    return InMemoryUrlCache(settings.CACHE_TTL_SECONDS, logger)


@pytest.fixture
def clicks() -> AsyncMock:
    return AsyncMock(spec=ClickTracker)


@pytest.fixture
def url_service(store, cache, clicks, settings, logger) -> URLShorteningService:
    return URLShorteningService(
        store=store,
        cache=cache,
        allocator=SequentialSlugAllocator(store, settings.SLUG_LENGTH, logger),
        clicks=clicks,
        settings=settings,
        logger=logger,
    )


@pytest_asyncio.fixture(scope="function")
async def client(url_service, cache, settings, logger) -> AsyncGenerator[AsyncClient, None]:
    manager = SimpleNamespace(settings=settings, logger=logger, redis=None, cache=cache)

    async def override_get_request_context() -> RequestContext:
        return RequestContext(database=AsyncMock(), service_manager=manager)

    def override_get_url_service() -> URLShorteningService:
        return url_service

    app.dependency_overrides[get_request_context] = override_get_request_context
    app.dependency_overrides[get_url_service] = override_get_url_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
