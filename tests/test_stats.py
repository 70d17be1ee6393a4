"""Stats endpoint tests."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_stats_valid_code(client: AsyncClient) -> None:
    create_resp = await client.post("/api/shorten", json={"url": "https://www.example.com"})
    slug = create_resp.json()["slug"]

    response = await client.get(f"/api/stats/{slug}")
    assert response.status_code == 200
    data = response.json()
    assert data["slug"] == slug
    assert data["original_url"] == "https://www.example.com"
    assert data["hit_count"] == 0
    assert data["last_accessed_at"] is None


@pytest.mark.asyncio
async def test_stats_nonexistent_code(client: AsyncClient) -> None:
    response = await client.get("/api/stats/zzzzzz")
    assert response.status_code == 404
