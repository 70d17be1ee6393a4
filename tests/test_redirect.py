"""Redirect endpoint behavior tests."""

import pytest
from httpx import AsyncClient

from shortener.cache import short_key


@pytest.mark.asyncio
async def test_redirect_valid_code(client: AsyncClient) -> None:
    create_resp = await client.post("/api/shorten", json={"url": "https://www.example.com"})
    slug = create_resp.json()["slug"]

    response = await client.get(f"/{slug}", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "https://www.example.com"


@pytest.mark.asyncio
async def test_redirect_nonexistent_code(client: AsyncClient) -> None:
    response = await client.get("/zzzzzz", follow_redirects=False)
    assert response.status_code == 404
    assert response.json() == {"error": "No active URL for slug 'zzzzzz'"}


@pytest.mark.asyncio
async def test_redirect_malformed_code(client: AsyncClient, store) -> None:
    response = await client.get("/bad-slug", follow_redirects=False)
    assert response.status_code == 404
    assert sum(store.calls.values()) == 0


@pytest.mark.asyncio
async def test_redirect_increments_hits_on_store_path(client: AsyncClient, store, cache) -> None:
    create_resp = await client.post("/api/shorten", json={"url": "https://www.example.com"})
    slug = create_resp.json()["slug"]
    await cache.delete(short_key(slug))

    await client.get(f"/{slug}", follow_redirects=False)

    stats = await client.get(f"/api/stats/{slug}")
    assert stats.json()["hit_count"] == 1


@pytest.mark.asyncio
async def test_redirect_records_click_metadata(client: AsyncClient, clicks) -> None:
    create_resp = await client.post("/api/shorten", json={"url": "https://www.example.com"})
    slug = create_resp.json()["slug"]

    await client.get(
        f"/{slug}",
        headers={
            "User-Agent": "pytest-agent",
            "Referer": "https://news.example",
            "Accept-Language": "en-US",
            "X-Forwarded-For": "203.0.113.9, 10.0.0.1",
        },
        follow_redirects=False,
    )

    clicks.record.assert_awaited_once()
    recorded_slug, metadata, _ = clicks.record.await_args.args
    assert recorded_slug == slug
    assert metadata.ip_address == "203.0.113.9"
    assert metadata.user_agent == "pytest-agent"
    assert metadata.referrer == "https://news.example"
    assert metadata.accept_language == "en-US"


@pytest.mark.asyncio
async def test_redirect_survives_click_tracking_failure(client: AsyncClient, url_service, store) -> None:
    from shortener.clicks import ClickTracker

    class ExplodingStream:
        async def xadd(self, *args, **kwargs):
            raise ConnectionError("stream down")

    url_service._clicks = ClickTracker(ExplodingStream(), "click_events", url_service._logger)
    create_resp = await client.post("/api/shorten", json={"url": "https://www.example.com"})
    slug = create_resp.json()["slug"]

    response = await client.get(f"/{slug}", follow_redirects=False)
    assert response.status_code == 307
