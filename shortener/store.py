"""Durable store adapter for URL records.

The store is the single source of truth for slug → URL mappings. The
resolution engine talks to it only through the ``UrlStore`` interface;
``SqlAlchemyUrlStore`` implements it over an async SQLAlchemy session.

Error Translation
=================
::
    IntegrityError (unique violation)
        ├─ anonymous original_url index → DuplicateOriginalUrl
        └─ slug unique constraint      → SlugConflict
    any other SQLAlchemyError / OSError → StoreUnavailable

Every failed write rolls the session back before the translated error is
raised, so the session stays usable for the retry paths of the engine.

Key Behaviours
===============
- Reads only return active records. Records whose slug is still NULL are
  never returned by ``find_by_slug`` or ``find_by_original_url``.
- ``increment_hit_count`` is a single ``UPDATE ... SET hit_count = hit_count + 1``
  so concurrent resolutions never lose increments.
- ``delete_url`` removes the row.
"""

import abc
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from prometheus_client import Counter
from sqlalchemy import delete, func, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shortener.config import get_settings
from shortener.exceptions import DuplicateOriginalUrl, SlugConflict, StoreConflict, StoreUnavailable
from shortener.models import Url

__all__ = ["UrlStore", "SqlAlchemyUrlStore"]

DATABASE_READS_TOTAL = Counter(
    "url_shortener_database_reads_total",
    "Total database read operations",
)
DATABASE_WRITES_TOTAL = Counter(
    "url_shortener_database_writes_total",
    "Total database write operations",
)
DATABASE_ERRORS_TOTAL = Counter(
    "url_shortener_database_errors_total",
    "Total database operations that failed",
    ["operation"],
)


class UrlStore(abc.ABC):
    """Operations the resolution engine needs from the durable store."""

    @abc.abstractmethod
    async def create_url(
        self,
        original_url: str,
        owner_id: int | None = None,
        title: str | None = None,
        description: str | None = None,
    ) -> Url: ...

    @abc.abstractmethod
    async def update_slug(self, url_id: int, slug: str) -> Url: ...

    @abc.abstractmethod
    async def find_by_slug(self, slug: str) -> Url | None: ...

    @abc.abstractmethod
    async def find_by_id(self, url_id: int) -> Url | None: ...

    @abc.abstractmethod
    async def find_by_original_url(self, original_url: str) -> Url | None:
        """Return the active anonymous record for ``original_url``, if any."""

    @abc.abstractmethod
    async def slug_exists(self, slug: str) -> bool: ...

    @abc.abstractmethod
    async def increment_hit_count(self, slug: str) -> None: ...

    @abc.abstractmethod
    async def delete_url(self, url_id: int) -> None: ...

    @abc.abstractmethod
    async def list_by_owner(self, owner_id: int) -> list[Url]: ...

    @abc.abstractmethod
    async def ping(self) -> None:
        """Raise StoreUnavailable when the backend cannot be reached."""


class SqlAlchemyUrlStore(UrlStore):
    def __init__(self, session: AsyncSession, logger: logging.Logger | logging.LoggerAdapter | None = None):
        self._session = session
        self._logger = logger or logging.getLogger(get_settings().APP_NAME)

    @asynccontextmanager
    async def _guard(self, operation: str, conflict: type[StoreConflict] = StoreConflict) -> AsyncIterator[None]:
        try:
            yield
        except IntegrityError as exc:
            await self._session.rollback()
            DATABASE_ERRORS_TOTAL.labels(operation=operation).inc()
            raise conflict(f"{operation}: unique constraint violated") from exc
        except (SQLAlchemyError, OSError) as exc:
            await self._session.rollback()
            DATABASE_ERRORS_TOTAL.labels(operation=operation).inc()
            self._logger.error(f"Store operation {operation} failed: {exc}")
            raise StoreUnavailable(f"{operation} failed") from exc

    async def create_url(
        self,
        original_url: str,
        owner_id: int | None = None,
        title: str | None = None,
        description: str | None = None,
    ) -> Url:
        conflict = DuplicateOriginalUrl if owner_id is None else StoreConflict
        async with self._guard("create_url", conflict):
            url = Url(
                original_url=original_url,
                owner_id=owner_id,
                title=title,
                description=description,
                is_active=True,
                hit_count=0,
            )
            self._session.add(url)
            await self._session.commit()
            await self._session.refresh(url)
        DATABASE_WRITES_TOTAL.inc()
        return url

    async def update_slug(self, url_id: int, slug: str) -> Url:
        async with self._guard("update_slug", SlugConflict):
            url = await self._session.get(Url, url_id)
            if url is None:
                raise StoreUnavailable(f"Record {url_id} disappeared before its slug was attached")
            url.slug = slug
            await self._session.commit()
        DATABASE_WRITES_TOTAL.inc()
        return url

    async def find_by_slug(self, slug: str) -> Url | None:
        async with self._guard("find_by_slug"):
            result = await self._session.execute(select(Url).where(Url.slug == slug, Url.is_active.is_(True)))
        DATABASE_READS_TOTAL.inc()
        return result.scalar_one_or_none()

    async def find_by_id(self, url_id: int) -> Url | None:
        async with self._guard("find_by_id"):
            result = await self._session.execute(select(Url).where(Url.id == url_id, Url.is_active.is_(True)))
        DATABASE_READS_TOTAL.inc()
        return result.scalar_one_or_none()

    async def find_by_original_url(self, original_url: str) -> Url | None:
        async with self._guard("find_by_original_url"):
            result = await self._session.execute(
                select(Url)
                .where(
                    Url.original_url == original_url,
                    Url.owner_id.is_(None),
                    Url.is_active.is_(True),
                    Url.slug.is_not(None),
                )
                .limit(1)
            )
        DATABASE_READS_TOTAL.inc()
        return result.scalar_one_or_none()

    async def slug_exists(self, slug: str) -> bool:
        async with self._guard("slug_exists"):
            result = await self._session.execute(select(Url.id).where(Url.slug == slug).limit(1))
        DATABASE_READS_TOTAL.inc()
        return result.scalar_one_or_none() is not None

    async def increment_hit_count(self, slug: str) -> None:
        async with self._guard("increment_hit_count"):
            await self._session.execute(
                update(Url)
                .where(Url.slug == slug, Url.is_active.is_(True))
                .values(hit_count=Url.hit_count + 1, last_accessed_at=func.now())
            )
            await self._session.commit()
        DATABASE_WRITES_TOTAL.inc()

    async def delete_url(self, url_id: int) -> None:
        async with self._guard("delete_url"):
            await self._session.execute(delete(Url).where(Url.id == url_id))
            await self._session.commit()
        DATABASE_WRITES_TOTAL.inc()

    async def list_by_owner(self, owner_id: int) -> list[Url]:
        async with self._guard("list_by_owner"):
            result = await self._session.execute(
                select(Url)
                .where(Url.owner_id == owner_id, Url.is_active.is_(True), Url.slug.is_not(None))
                .order_by(Url.created_at.desc(), Url.id.desc())
            )
        DATABASE_READS_TOTAL.inc()
        return list(result.scalars().all())

    async def ping(self) -> None:
        async with self._guard("ping"):
            await self._session.execute(text("SELECT 1"))
