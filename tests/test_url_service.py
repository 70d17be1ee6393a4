"""Resolution engine tests over the in-memory store and cache."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from fakes import UnavailableStore
from shortener.allocator import RandomSlugAllocator, SequentialSlugAllocator
from shortener.cache import InMemoryUrlCache, long_key, short_key
from shortener.clicks import ClickMetadata
from shortener.exceptions import (
    AccessDenied,
    CacheUnavailable,
    DuplicateOriginalUrl,
    InvalidUrlFormat,
    SlugAllocationExhausted,
    SlugNotFound,
    StoreUnavailable,
)
from shortener.url_service import URLShorteningService

# ============================================================================
# SHORTEN
# ============================================================================


@pytest.mark.asyncio
async def test_example_scenario(url_service, store):
    first = await url_service.shorten("https://example.com/a")
    assert len(first.slug) == 6
    assert first.created is True

    assert await url_service.resolve(first.slug) == "https://example.com/a"
    assert store.records[1].hit_count == 1

    again = await url_service.shorten("https://example.com/a")
    assert again.slug == first.slug
    assert again.created is False
    assert len(store.records) == 1


@pytest.mark.asyncio
async def test_anonymous_shorten_is_idempotent_without_cache(store, settings):
    service = URLShorteningService(store, InMemoryUrlCache(60), SequentialSlugAllocator(store), settings=settings)
    first = await service.shorten("https://example.com/a", title="A", description="first")

    service._cache = InMemoryUrlCache(60)
    second = await service.shorten("https://example.com/a")

    assert second.slug == first.slug
    assert second.title == "A"
    assert store.calls["create_url"] == 1
    assert store.calls["find_by_original_url"] == 2


@pytest.mark.asyncio
async def test_anonymous_cache_hit_skips_store(url_service, store, cache):
    await cache.set(long_key("https://example.com/cached"), "0000zz")

    result = await url_service.shorten("https://example.com/cached")

    assert result.slug == "0000zz"
    assert sum(store.calls.values()) == 0


@pytest.mark.asyncio
async def test_anonymous_shorten_populates_both_namespaces(url_service, cache):
    result = await url_service.shorten("https://example.com/a")

    assert await cache.get(short_key(result.slug)) == "https://example.com/a"
    assert await cache.get(long_key("https://example.com/a")) == result.slug


@pytest.mark.asyncio
async def test_owned_shorten_never_touches_long_namespace(url_service, store, cache):
    anonymous = await url_service.shorten("https://example.com/a")
    owned = await url_service.shorten("https://example.com/a", owner_id=7)
    other = await url_service.shorten("https://example.com/b", owner_id=8)

    assert owned.slug != anonymous.slug
    assert await cache.get(long_key("https://example.com/b")) is None
    assert await cache.get(long_key("https://example.com/a")) == anonymous.slug
    assert store.records[2].owner_id == 7
    assert other.created is True


@pytest.mark.asyncio
async def test_owned_reshorten_creates_new_record(url_service, store):
    first = await url_service.shorten("https://example.com/a", owner_id=7)
    second = await url_service.shorten("https://example.com/a", owner_id=7)

    assert first.slug != second.slug
    assert len(store.records) == 2
    assert store.calls["find_by_original_url"] == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["", "not-a-url", "ftp://example.com/file", "javascript:alert(1)", "example.com"])
async def test_invalid_url_rejected_before_store(url_service, store, url):
    with pytest.raises(InvalidUrlFormat):
        await url_service.shorten(url)
    assert sum(store.calls.values()) == 0


@pytest.mark.asyncio
async def test_concurrent_anonymous_loser_returns_winner(url_service, store, cache):
    winner = await url_service.shorten("https://example.com/race")
    await cache.delete(long_key("https://example.com/race"))

    # Loser missed both lookups and then lost on the unique index
    with patch.object(url_service, "_reuse_anonymous", AsyncMock(return_value=None)):
        result = await url_service.shorten("https://example.com/race")

    assert result.slug == winner.slug
    assert len(store.records) == 1
    assert await cache.get(long_key("https://example.com/race")) == winner.slug


@pytest.mark.asyncio
async def test_concurrent_anonymous_loser_gives_up_when_winner_never_settles(url_service, store, settings):
    store.create_url = AsyncMock(side_effect=DuplicateOriginalUrl("conflict"))
    store.find_by_original_url = AsyncMock(return_value=None)

    with patch("shortener.url_service.asyncio.sleep", AsyncMock()) as sleep:
        with pytest.raises(StoreUnavailable):
            await url_service.shorten("https://example.com/race")

    assert sleep.await_count == settings.CREATE_CONFLICT_RETRY_COUNT


@pytest.mark.asyncio
async def test_allocation_failure_removes_slugless_record(store, cache, settings):
    allocator = RandomSlugAllocator(store, max_attempts=1)
    service = URLShorteningService(store, cache, allocator, settings=settings)
    taken = await store.create_url("https://example.com/taken", owner_id=1)
    await store.update_slug(taken.id, "aaaaaa")

    with patch.object(allocator, "_candidate", return_value="aaaaaa"):
        with pytest.raises(SlugAllocationExhausted):
            await service.shorten("https://example.com/new")

    assert list(store.records) == [taken.id]
    assert await cache.get(long_key("https://example.com/new")) is None


@pytest.mark.asyncio
async def test_store_failure_propagates(cache, settings):
    store = UnavailableStore()
    service = URLShorteningService(store, cache, SequentialSlugAllocator(store), settings=settings)

    with pytest.raises(StoreUnavailable):
        await service.shorten("https://example.com/a")
    with pytest.raises(StoreUnavailable):
        await service.resolve("000001")


# ============================================================================
# RESOLVE
# ============================================================================


@pytest.mark.asyncio
async def test_cache_fall_through_consults_store_once_and_populates(url_service, store, cache):
    result = await url_service.shorten("https://example.com/a", owner_id=3)
    assert await cache.get(short_key(result.slug)) is None

    assert await url_service.resolve(result.slug) == "https://example.com/a"

    assert store.calls["find_by_slug"] == 1
    assert await cache.get(short_key(result.slug)) == "https://example.com/a"


@pytest.mark.asyncio
async def test_cache_short_circuit_skips_store(url_service, store, cache):
    await cache.set(short_key("00000A"), "https://example.com/cached")

    assert await url_service.resolve("00000A") == "https://example.com/cached"
    assert store.calls["find_by_slug"] == 0
    assert store.calls["increment_hit_count"] == 1


@pytest.mark.asyncio
async def test_cache_hit_resolutions_count_hits(url_service, store):
    result = await url_service.shorten("https://example.com/a")

    await url_service.resolve(result.slug)
    await url_service.resolve(result.slug)

    assert store.calls["find_by_slug"] == 0
    assert store.records[1].hit_count == 2
    assert store.records[1].last_accessed_at is not None


@pytest.mark.asyncio
async def test_resolve_records_click_on_both_paths(url_service, cache, clicks):
    result = await url_service.shorten("https://example.com/a", owner_id=3)
    click = ClickMetadata(ip_address="10.0.0.1", user_agent="pytest")

    await url_service.resolve(result.slug, click)
    await url_service.resolve(result.slug, click)

    assert clicks.record.await_count == 2
    clicks.record.assert_any_await(result.slug, click, 1)
    clicks.record.assert_any_await(result.slug, click, None)


@pytest.mark.asyncio
async def test_resolve_without_click_metadata_records_nothing(url_service, clicks):
    result = await url_service.shorten("https://example.com/a")
    await url_service.resolve(result.slug)
    clicks.record.assert_not_awaited()


@pytest.mark.asyncio
async def test_resolve_sets_last_accessed(url_service, store):
    result = await url_service.shorten("https://example.com/a", owner_id=3)
    await url_service.resolve(result.slug)
    assert store.records[1].last_accessed_at is not None


@pytest.mark.asyncio
async def test_resolve_unknown_slug(url_service, store):
    with pytest.raises(SlugNotFound):
        await url_service.resolve("zzzzzz")
    assert store.calls["find_by_slug"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("slug", ["abc", "abcdefg", "abc-12", "ab cd1"])
async def test_malformed_slug_is_not_found_without_store(url_service, store, slug):
    with pytest.raises(SlugNotFound):
        await url_service.resolve(slug)
    assert sum(store.calls.values()) == 0


@pytest.mark.asyncio
async def test_resolve_survives_broken_cache(store, settings):
    cache = InMemoryUrlCache(60)
    service = URLShorteningService(store, cache, SequentialSlugAllocator(store), settings=settings)
    result = await service.shorten("https://example.com/a")

    cache._get = AsyncMock(side_effect=CacheUnavailable("down"))
    cache._set = AsyncMock(side_effect=CacheUnavailable("down"))

    assert await service.resolve(result.slug) == "https://example.com/a"
    assert store.records[1].hit_count == 1


# ============================================================================
# DELETE / READS
# ============================================================================


@pytest.mark.asyncio
async def test_delete_by_owner_evicts_both_namespaces(url_service, store, cache):
    result = await url_service.shorten("https://example.com/a", owner_id=5)
    await url_service.resolve(result.slug)
    await cache.set(long_key("https://example.com/a"), result.slug)

    await url_service.delete(result.slug, owner_id=5)

    assert store.records == {}
    assert await cache.get(short_key(result.slug)) is None
    assert await cache.get(long_key("https://example.com/a")) is None
    with pytest.raises(SlugNotFound):
        await url_service.resolve(result.slug)


@pytest.mark.asyncio
async def test_delete_by_other_owner_is_denied_and_untouched(url_service, store, cache):
    result = await url_service.shorten("https://example.com/a", owner_id=5)
    await url_service.resolve(result.slug)
    await cache.set(long_key("https://example.com/a"), result.slug)

    with pytest.raises(AccessDenied):
        await url_service.delete(result.slug, owner_id=6)

    assert result.slug in {r.slug for r in store.records.values()}
    assert await cache.get(short_key(result.slug)) == "https://example.com/a"
    assert await cache.get(long_key("https://example.com/a")) == result.slug


@pytest.mark.asyncio
async def test_delete_of_anonymous_record_is_denied(url_service, store):
    result = await url_service.shorten("https://example.com/a")
    with pytest.raises(AccessDenied):
        await url_service.delete(result.slug, owner_id=1)
    assert len(store.records) == 1


@pytest.mark.asyncio
async def test_delete_unknown_slug(url_service):
    with pytest.raises(SlugNotFound):
        await url_service.delete("zzzzzz", owner_id=1)


@pytest.mark.asyncio
async def test_list_urls_only_returns_owner_records(url_service):
    await url_service.shorten("https://example.com/a", owner_id=1)
    await url_service.shorten("https://example.com/b", owner_id=1)
    await url_service.shorten("https://example.com/c", owner_id=2)
    await url_service.shorten("https://example.com/d")

    records = await url_service.list_urls(1)

    assert [r.original_url for r in records] == ["https://example.com/b", "https://example.com/a"]


@pytest.mark.asyncio
async def test_get_stats_does_not_count_a_hit(url_service, store):
    result = await url_service.shorten("https://example.com/a")
    record = await url_service.get_stats(result.slug)
    assert record.hit_count == 0
    assert store.calls["increment_hit_count"] == 0


@pytest.mark.asyncio
async def test_concurrent_resolves_count_every_store_hit(url_service, store):
    result = await url_service.shorten("https://example.com/a", owner_id=1)
    url_service._cache = InMemoryUrlCache(60)
    url_service._cache._set = AsyncMock()

    await asyncio.gather(*(url_service.resolve(result.slug) for _ in range(5)))

    assert store.records[1].hit_count == 5


# ============================================================================
# CACHE OUTAGES
# ============================================================================


def break_cache(cache: InMemoryUrlCache) -> None:
    cache._get = AsyncMock(side_effect=CacheUnavailable("down"))
    cache._set = AsyncMock(side_effect=CacheUnavailable("down"))
    cache._delete = AsyncMock(side_effect=CacheUnavailable("down"))


@pytest.mark.asyncio
async def test_shorten_survives_broken_cache(url_service, store, cache):
    break_cache(cache)

    first = await url_service.shorten("https://example.com/a")
    second = await url_service.shorten("https://example.com/a")

    assert first.slug == second.slug
    assert len(store.records) == 1
    assert store.calls["find_by_original_url"] == 2


@pytest.mark.asyncio
async def test_delete_survives_broken_cache(url_service, store, cache):
    result = await url_service.shorten("https://example.com/a", owner_id=5)
    break_cache(cache)

    await url_service.delete(result.slug, owner_id=5)

    assert store.records == {}
    assert cache._delete.await_count == 2


@pytest.mark.asyncio
async def test_record_vanishing_before_slug_attach_is_a_server_error(url_service, store):
    original_create = store.create_url

    async def create_then_vanish(*args, **kwargs):
        record = await original_create(*args, **kwargs)
        store.records.pop(record.id)
        return record

    store.create_url = create_then_vanish

    with pytest.raises(StoreUnavailable):
        await url_service.shorten("https://example.com/a")
    assert store.calls["delete_url"] == 1
