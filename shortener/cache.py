"""Advisory key-value cache in front of the URL store.

Flow Diagram: Cache Access
===========================
::
    ┌─────────────┐
    │ Resolution  │
    │ engine      │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ UrlCache    │
    │ get/set/del │
    └──────┬──────┘
    ERROR?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌──────────────┐
│ Return  │  │ Log warning, │
│ value   │  │ count error, │
└─────────┘  │ act as miss  │
             └──────────────┘

Key Namespaces
==============
::
    short:<slug>          → original URL   (every record)
    long:<original_url>   → slug           (anonymous records only)

Key Behaviours
===============
- The cache is never authoritative. Backend failures are logged at WARNING
  and absorbed: ``get`` returns None, ``set`` and ``delete`` do nothing.
- Every entry carries the configured TTL; expiry is enforced by the backend.
- Deleting a missing key is a no-op.

Classes:
    UrlCache:          Interface used by the resolution engine.
    RedisUrlCache:     redis.asyncio implementation.
    InMemoryUrlCache:  Process-local implementation for development and tests.

Functions:
    short_key():  Key of the slug → URL namespace.
    long_key():   Key of the URL → slug namespace.
    build_cache(): Pick an implementation from settings.
"""

import abc
import logging
import time
from collections.abc import Callable

import redis.asyncio as redis
from prometheus_client import Counter
from redis.exceptions import RedisError

from shortener.config import Settings, get_settings
from shortener.enums import CacheBackend
from shortener.exceptions import CacheUnavailable

__all__ = [
    "SHORT_PREFIX",
    "LONG_PREFIX",
    "short_key",
    "long_key",
    "UrlCache",
    "RedisUrlCache",
    "InMemoryUrlCache",
    "build_cache",
]

SHORT_PREFIX = "short"
LONG_PREFIX = "long"

CACHE_ERRORS_TOTAL = Counter(
    "url_shortener_cache_errors_total",
    "Cache operations that failed and were treated as a miss",
    ["operation"],
)
REDIS_OPERATIONS_TOTAL = Counter(
    "url_shortener_redis_operations_total",
    "Total Redis operations",
)


def short_key(slug: str) -> str:
    return f"{SHORT_PREFIX}:{slug}"


def long_key(original_url: str) -> str:
    return f"{LONG_PREFIX}:{original_url}"


class UrlCache(abc.ABC):
    """Advisory cache. Implementations never raise from get/set/delete."""

    def __init__(self, ttl_seconds: int, logger: logging.Logger | logging.LoggerAdapter | None = None):
        assert ttl_seconds > 0, f"ttl_seconds must be positive, got {ttl_seconds!r}"
        self.ttl_seconds = ttl_seconds
        self._logger = logger or logging.getLogger(get_settings().APP_NAME)

    async def get(self, key: str) -> str | None:
        try:
            return await self._get(key)
        except CacheUnavailable as exc:
            self._absorb("get", key, exc)
            return None

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        try:
            await self._set(key, value, ttl_seconds or self.ttl_seconds)
        except CacheUnavailable as exc:
            self._absorb("set", key, exc)

    async def delete(self, key: str) -> None:
        try:
            await self._delete(key)
        except CacheUnavailable as exc:
            self._absorb("delete", key, exc)

    async def ping(self) -> bool:
        try:
            await self._ping()
        except CacheUnavailable as exc:
            self._absorb("ping", "-", exc)
            return False
        return True

    def _absorb(self, operation: str, key: str, exc: Exception) -> None:
        CACHE_ERRORS_TOTAL.labels(operation=operation).inc()
        self._logger.warning(f"Cache {operation} failed for {key}: {exc}")

    @abc.abstractmethod
    async def _get(self, key: str) -> str | None: ...

    @abc.abstractmethod
    async def _set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    @abc.abstractmethod
    async def _delete(self, key: str) -> None: ...

    @abc.abstractmethod
    async def _ping(self) -> None: ...


class RedisUrlCache(UrlCache):
    """Cache backed by a shared ``redis.asyncio`` client."""

    def __init__(
        self,
        client: redis.Redis,
        ttl_seconds: int,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        super().__init__(ttl_seconds, logger)
        self._client = client

    async def _get(self, key: str) -> str | None:
        try:
            value = await self._client.get(key)
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(str(exc)) from exc
        REDIS_OPERATIONS_TOTAL.inc()
        return value

    async def _set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._client.setex(key, ttl_seconds, value)
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(str(exc)) from exc
        REDIS_OPERATIONS_TOTAL.inc()

    async def _delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(str(exc)) from exc
        REDIS_OPERATIONS_TOTAL.inc()

    async def _ping(self) -> None:
        try:
            await self._client.ping()
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(str(exc)) from exc


class InMemoryUrlCache(UrlCache):
    """Dictionary cache local to one process. Expired entries are dropped on read and swept on every write."""

    def __init__(
        self,
        ttl_seconds: int,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(ttl_seconds, logger)
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    async def _get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def _set(self, key: str, value: str, ttl_seconds: int) -> None:
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for k in expired:
            del self._entries[k]
        self._entries[key] = (value, now + ttl_seconds)

    async def _delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def _ping(self) -> None:
        return None

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() < entry[1]

    def __len__(self) -> int:
        return len(self._entries)


def build_cache(
    settings: Settings,
    client: redis.Redis | None,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
) -> UrlCache:
    if settings.CACHE_BACKEND is CacheBackend.MEMORY or client is None:
        return InMemoryUrlCache(settings.CACHE_TTL_SECONDS, logger)
    return RedisUrlCache(client, settings.CACHE_TTL_SECONDS, logger)
