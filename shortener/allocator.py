"""Slug allocation for freshly created URL records.

A record is created first (so the store assigns its identifier) and the slug
is attached afterwards. Until the slug is attached the record is invisible to
every read path.

Allocation Flow
===============
::
    SequentialSlugAllocator            RandomSlugAllocator
    ───────────────────────            ───────────────────
    slug = base62(record.id)           for attempt in 1..max_attempts:
    store.update_slug(id, slug)            slug = nanoid(ALPHABET, length)
                                           if store.slug_exists(slug): continue
                                           try store.update_slug(id, slug)
                                           except SlugConflict: continue
                                           return slug
                                       raise SlugAllocationExhausted

Key Behaviours
===============
- The sequential strategy is collision-free because identifiers come from a
  monotonic sequence; it never reads from the store.
- The random strategy checks the store on every attempt. The cache is not a
  complete view of used slugs and is never consulted.
- A ``SlugConflict`` on attach (a concurrent writer took the slug between the
  check and the update) counts as a failed attempt.
"""

import logging

from nanoid import generate
from prometheus_client import Counter

from shortener import base62
from shortener.config import Settings, get_settings
from shortener.enums import SlugStrategy
from shortener.exceptions import SlugAllocationExhausted, SlugConflict
from shortener.models import Url
from shortener.store import UrlStore

__all__ = ["SlugAllocator", "SequentialSlugAllocator", "RandomSlugAllocator", "build_allocator"]

SLUG_COLLISIONS_TOTAL = Counter(
    "url_shortener_slug_collisions_total",
    "Random slug candidates rejected because they were already taken",
)


class SlugAllocator:
    """Derives a slug for a stored record and attaches it."""

    def __init__(
        self,
        store: UrlStore,
        length: int = base62.DEFAULT_WIDTH,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self._store = store
        self._length = length
        self._logger = logger or logging.getLogger(get_settings().APP_NAME)

    async def allocate(self, record: Url) -> str:
        raise NotImplementedError


class SequentialSlugAllocator(SlugAllocator):
    async def allocate(self, record: Url) -> str:
        slug = base62.encode(record.id, self._length)
        await self._store.update_slug(record.id, slug)
        return slug


class RandomSlugAllocator(SlugAllocator):
    def __init__(
        self,
        store: UrlStore,
        length: int = base62.DEFAULT_WIDTH,
        max_attempts: int = 10,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        super().__init__(store, length, logger)
        assert max_attempts > 0, f"max_attempts must be positive, got {max_attempts!r}"
        self._max_attempts = max_attempts

    def _candidate(self) -> str:
        return generate(base62.ALPHABET, self._length)

    async def allocate(self, record: Url) -> str:
        for attempt in range(1, self._max_attempts + 1):
            slug = self._candidate()
            if await self._store.slug_exists(slug):
                SLUG_COLLISIONS_TOTAL.inc()
                self._logger.debug(f"Slug candidate {slug} taken (attempt {attempt})")
                continue
            try:
                await self._store.update_slug(record.id, slug)
            except SlugConflict:
                SLUG_COLLISIONS_TOTAL.inc()
                self._logger.debug(f"Slug candidate {slug} lost a race (attempt {attempt})")
                continue
            return slug

        self._logger.error(f"Slug allocation exhausted after {self._max_attempts} attempts for id {record.id}")
        raise SlugAllocationExhausted(f"No free slug after {self._max_attempts} attempts")


def build_allocator(
    settings: Settings,
    store: UrlStore,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
) -> SlugAllocator:
    if settings.SLUG_STRATEGY is SlugStrategy.RANDOM:
        return RandomSlugAllocator(store, settings.SLUG_LENGTH, settings.SLUG_MAX_ATTEMPTS, logger)
    return SequentialSlugAllocator(store, settings.SLUG_LENGTH, logger)
