"""Async SQLAlchemy engine and session lifecycle for the URL store.

Flow Diagram: Session Lifecycle
================================
::
    ┌─────────────┐
    │  Request    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ get_db()    │
    │ dependency  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ async_session│
    │ opened      │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ SqlAlchemy- │
    │ UrlStore    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ closed in   │
    │ finally     │
    └─────────────┘

How to Use
===========
**Startup**::
    await init_db()  # creates the urls table and its indexes

**Per request**::
    async def handler(db: AsyncSession = Depends(get_db)): ...

**Shutdown**::
    await close_db()

Key Behaviours
===============
- One engine per process with a pre-pinged connection pool.
- SQL statements are echoed when APP_ENV is ``development``.
- Sessions never expire loaded rows on commit, so records stay readable
  after the write that produced them.

Classes:
    Base:  Declarative base for ORM models.

Functions:
    get_db():    FastAPI dependency yielding an AsyncSession.
    init_db():   Creates all tables.
    close_db():  Disposes the engine.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from shortener.config import get_settings

__all__ = ["Base", "async_session", "engine", "get_db", "init_db", "close_db"]

settings = get_settings()

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=(settings.APP_ENV == "development"),
    pool_size=20,
    max_overflow=10,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    # Importing registers the models on Base.metadata
    from shortener import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
