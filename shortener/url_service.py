"""URL Shortener Service Layer - Resolution Engine

Orchestrates shortening, resolution and deletion across the advisory cache
and the durable store.

Architecture Overview
=====================
::
    ┌─────────────────────────────────────────────────────────────┐
    │                  URLShorteningService                       │
    │  ┌─────────────────┐  ┌─────────────────┐  ┌──────────────┐ │
    │  │    UrlCache     │  │  SlugAllocator  │  │ ClickTracker │ │
    │  │ short:/long:    │  │ base62 / random │  │ Kafka/stream │ │
    │  └─────────────────┘  └────────┬────────┘  └──────────────┘ │
    │                                ▼                            │
    │                        ┌─────────────────┐                  │
    │                        │    UrlStore     │                  │
    │                        └─────────────────┘                  │
    └─────────────────────────────────────────────────────────────┘

Shorten Flow
------------
::
    ┌─────────────┐
    │  shorten()  │
    └──────┬──────┘
    OWNED?  │
    ┌─────┴──────────────┐
    │ NO                  │ YES
    ▼                     │
┌──────────────┐          │
│ long:<url>   │─HIT─► return cached slug
│ cache lookup │          │
└──────┬───────┘          │
       ▼ MISS             │
┌──────────────┐          │
│ store lookup │─FOUND─► cache both, return slug
└──────┬───────┘          │
       ▼ ABSENT           ▼
    ┌───────────────────────┐
    │ create record         │──DuplicateOriginalUrl──► re-read winner
    │ allocate + attach slug│
    └──────────┬────────────┘
               ▼
    cache both namespaces (anonymous only)

Resolve Flow
------------
::
    slug format check ──INVALID──► SlugNotFound
           ▼
    short:<slug> ──HIT──► increment hit count, record click, return URL
           ▼ MISS
    store.find_by_slug ──ABSENT──► SlugNotFound
           ▼
    increment hit count, record click, cache short:<slug>, return URL

Key Behaviours
==============
- Anonymous shortening is idempotent: one active record per original URL.
- Owned shortening always creates a new record and never touches ``long:``.
- Cache failures degrade to store-only operation; store failures propagate.
- A cache-hit resolution skips the store read but still increments ``hit_count``.
- Click recording never fails a request.
- A record is visible to readers only once its slug is attached. If slug
  allocation fails the half-created record is removed again.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from prometheus_client import Counter, Histogram

from shortener import base62
from shortener.allocator import SlugAllocator, build_allocator
from shortener.cache import UrlCache, long_key, short_key
from shortener.clicks import ClickMetadata, ClickTracker
from shortener.config import Settings, get_settings
from shortener.enums import CacheStatus, RequestStatus
from shortener.exceptions import (
    AccessDenied,
    DuplicateOriginalUrl,
    InvalidUrlFormat,
    ShortenerError,
    SlugNotFound,
    StoreUnavailable,
)
from shortener.models import Url
from shortener.schemas import is_http_url
from shortener.store import SqlAlchemyUrlStore, UrlStore

if TYPE_CHECKING:
    from shortener.dependencies import RequestContext

__all__ = ["ShortenResult", "URLShorteningService"]


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

URL_CREATION_REQUESTS_TOTAL = Counter(
    "url_shortener_creation_requests_total",
    "Total URL shorten requests",
    ["status"],
)
URL_LOOKUP_REQUESTS_TOTAL = Counter(
    "url_shortener_lookup_requests_total",
    "Total slug resolution requests",
    ["status", "cache_hit"],
)
URL_CREATION_DURATION = Histogram(
    "url_shortener_creation_duration_seconds",
    "Time taken to shorten URLs",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
URL_LOOKUP_DURATION = Histogram(
    "url_shortener_lookup_duration_seconds",
    "Time taken to resolve slugs",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)
CACHE_HITS_TOTAL = Counter(
    "url_shortener_cache_hits_total",
    "Total cache hits",
    ["namespace"],
)
CACHE_MISSES_TOTAL = Counter(
    "url_shortener_cache_misses_total",
    "Total cache misses",
    ["namespace"],
)


@dataclass
class ShortenResult:
    """Outcome of a shorten call.

    ``title`` and ``description`` are those of the stored record; they are
    None when an existing anonymous slug was served from the cache.
    """

    slug: str
    original_url: str
    title: Optional[str] = None
    description: Optional[str] = None
    created: bool = False


class URLShorteningService:
    """Resolution engine over a store, a cache and a slug allocator.

    Example:
        >>> service = URLShorteningService(store, cache, SequentialSlugAllocator(store))
        >>> result = await service.shorten("https://example.com/a")
        >>> await service.resolve(result.slug)
        'https://example.com/a'
    """

    def __init__(
        self,
        store: UrlStore,
        cache: UrlCache,
        allocator: SlugAllocator,
        clicks: Optional[ClickTracker] = None,
        settings: Optional[Settings] = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self._store = store
        self._cache = cache
        self._allocator = allocator
        self._clicks = clicks
        self._settings = settings or get_settings()
        self._logger = logger or logging.getLogger(self._settings.APP_NAME)

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "URLShorteningService":
        """Wire the engine from the per-request context."""
        store = SqlAlchemyUrlStore(ctx.database, ctx.logger)
        return cls(
            store=store,
            cache=ctx.cache,
            allocator=build_allocator(ctx.settings, store, ctx.logger),
            clicks=ClickTracker(ctx.cache_writer, ctx.settings.CLICK_STREAM_KEY, ctx.logger),
            settings=ctx.settings,
            logger=ctx.logger,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    def short_url(self, slug: str) -> str:
        return f"{self._settings.BASE_URL.rstrip('/')}/{slug}"

    # ========================================================================
    # SHORTEN
    # ========================================================================

    async def shorten(
        self,
        original_url: str,
        owner_id: Optional[int] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ShortenResult:
        """Return a slug for ``original_url``, creating a record when needed.

        Raises:
            InvalidUrlFormat: ``original_url`` is not an absolute http/https URL.
            SlugAllocationExhausted: The random strategy ran out of attempts.
            StoreUnavailable: The store failed.
        """
        start_time = time.perf_counter()
        try:
            if not isinstance(original_url, str) or not is_http_url(original_url):
                raise InvalidUrlFormat("Invalid URL format. URL must start with http:// or https://")

            if owner_id is None:
                result = await self._reuse_anonymous(original_url)
                if result is None:
                    result = await self._create_anonymous(original_url, title, description)
            else:
                record = await self._create_and_allocate(original_url, owner_id, title, description)
                result = self._result(record, created=True)

            URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
            self._logger.info(
                f"Shortened {original_url} -> {result.slug} "
                f"(created={result.created}, owner={owner_id}) in {time.perf_counter() - start_time:.3f}s"
            )
            return result

        except InvalidUrlFormat as exc:
            URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.VALIDATION_ERROR).inc()
            self._logger.warning(f"URL shortening rejected: {exc}")
            raise
        except ShortenerError as exc:
            URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            self._logger.error(f"URL shortening failed for {original_url}: {exc}")
            raise
        finally:
            URL_CREATION_DURATION.observe(time.perf_counter() - start_time)

    async def _reuse_anonymous(self, original_url: str) -> Optional[ShortenResult]:
        cached_slug = await self._cache.get(long_key(original_url))
        if cached_slug:
            CACHE_HITS_TOTAL.labels(namespace="long").inc()
            return ShortenResult(slug=cached_slug, original_url=original_url)
        CACHE_MISSES_TOTAL.labels(namespace="long").inc()

        existing = await self._store.find_by_original_url(original_url)
        if existing is None:
            return None
        await self._populate_anonymous(existing.slug, original_url)
        return self._result(existing)

    async def _create_anonymous(
        self,
        original_url: str,
        title: Optional[str],
        description: Optional[str],
    ) -> ShortenResult:
        try:
            record = await self._create_and_allocate(original_url, None, title, description)
        except DuplicateOriginalUrl:
            self._logger.info(f"Concurrent shorten of {original_url}, reading the winning record")
            return await self._read_winner(original_url)

        await self._populate_anonymous(record.slug, original_url)
        return self._result(record, created=True)

    async def _read_winner(self, original_url: str) -> ShortenResult:
        # The winner may still be between create and slug attach
        for attempt in range(self._settings.CREATE_CONFLICT_RETRY_COUNT):
            winner = await self._store.find_by_original_url(original_url)
            if winner is not None:
                await self._populate_anonymous(winner.slug, original_url)
                return self._result(winner)
            await asyncio.sleep(self._settings.CREATE_CONFLICT_RETRY_DELAY_SECONDS * (attempt + 1))
        raise StoreUnavailable(f"Concurrent shorten of {original_url} did not settle")

    async def _create_and_allocate(
        self,
        original_url: str,
        owner_id: Optional[int],
        title: Optional[str],
        description: Optional[str],
    ) -> Url:
        record = await self._store.create_url(original_url, owner_id, title, description)
        try:
            record.slug = await self._allocator.allocate(record)
        except (ShortenerError, asyncio.CancelledError):
            await self._discard(record)
            raise
        return record

    async def _discard(self, record: Url) -> None:
        try:
            await self._store.delete_url(record.id)
        except StoreUnavailable as exc:
            self._logger.error(f"Could not remove slugless record {record.id}: {exc}")

    async def _populate_anonymous(self, slug: str, original_url: str) -> None:
        await self._cache.set(short_key(slug), original_url)
        await self._cache.set(long_key(original_url), slug)

    @staticmethod
    def _result(record: Url, created: bool = False) -> ShortenResult:
        return ShortenResult(
            slug=record.slug,
            original_url=record.original_url,
            title=record.title,
            description=record.description,
            created=created,
        )

    # ========================================================================
    # RESOLVE
    # ========================================================================

    async def resolve(self, slug: str, click: Optional[ClickMetadata] = None) -> str:
        """Return the original URL for ``slug``.

        Raises:
            SlugNotFound: Malformed slug or no active record.
            StoreUnavailable: The store failed.
        """
        start_time = time.perf_counter()
        try:
            self._require_well_formed(slug)

            cached_url = await self._cache.get(short_key(slug))
            if cached_url:
                CACHE_HITS_TOTAL.labels(namespace="short").inc()
                await self._store.increment_hit_count(slug)
                URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=CacheStatus.HIT).inc()
                await self._record_click(slug, click, None)
                self._logger.debug(f"Cache hit for {slug}")
                return cached_url

            CACHE_MISSES_TOTAL.labels(namespace="short").inc()
            record = await self._store.find_by_slug(slug)
            if record is None:
                raise SlugNotFound(f"No active URL for slug {slug!r}")

            await self._store.increment_hit_count(slug)
            await self._record_click(slug, click, record.id)
            await self._cache.set(short_key(slug), record.original_url)

            URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=CacheStatus.MISS).inc()
            self._logger.debug(f"Store hit and cached for {slug}")
            return record.original_url

        except SlugNotFound:
            URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND, cache_hit=CacheStatus.MISS).inc()
            self._logger.warning(f"Slug not found: {slug!r}")
            raise
        except ShortenerError as exc:
            URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR, cache_hit=CacheStatus.MISS).inc()
            self._logger.error(f"Resolution of {slug!r} failed: {exc}")
            raise
        finally:
            URL_LOOKUP_DURATION.observe(time.perf_counter() - start_time)

    async def _record_click(self, slug: str, click: Optional[ClickMetadata], url_id: Optional[int]) -> None:
        if click is None or self._clicks is None:
            return
        await self._clicks.record(slug, click, url_id)

    def _require_well_formed(self, slug: str) -> None:
        if not isinstance(slug, str) or not base62.is_valid_slug(slug, self._settings.SLUG_LENGTH):
            raise SlugNotFound(f"Malformed slug {slug!r}")

    # ========================================================================
    # DELETE / READS
    # ========================================================================

    async def delete(self, slug: str, owner_id: int) -> None:
        """Remove ``slug`` on behalf of ``owner_id`` and evict both cache keys.

        Raises:
            SlugNotFound: No active record for ``slug``.
            AccessDenied: The record belongs to someone else or to nobody.
        """
        self._require_well_formed(slug)
        record = await self._store.find_by_slug(slug)
        if record is None:
            self._logger.warning(f"Delete of unknown slug {slug!r} by owner {owner_id}")
            raise SlugNotFound(f"No active URL for slug {slug!r}")
        if record.owner_id is None or record.owner_id != owner_id:
            self._logger.warning(f"Owner {owner_id} denied delete of {slug!r}")
            raise AccessDenied("You can only delete your own URLs")

        await self._store.delete_url(record.id)
        await self._cache.delete(short_key(slug))
        await self._cache.delete(long_key(record.original_url))
        self._logger.info(f"Deleted {slug} for owner {owner_id}")

    async def list_urls(self, owner_id: int) -> list[Url]:
        return await self._store.list_by_owner(owner_id)

    async def get_stats(self, slug: str) -> Url:
        self._require_well_formed(slug)
        record = await self._store.find_by_slug(slug)
        if record is None:
            self._logger.warning(f"Stats not found for slug {slug!r}")
            raise SlugNotFound(f"No active URL for slug {slug!r}")
        return record

    async def health(self) -> tuple[bool, bool]:
        """Return (store healthy, cache healthy)."""
        try:
            await self._store.ping()
            store_ok = True
        except StoreUnavailable as exc:
            self._logger.error(f"Database health check failed: {exc}")
            store_ok = False
        cache_ok = await self._cache.ping()
        if not cache_ok:
            self._logger.error("Cache health check failed")
        return store_ok, cache_ok
