"""SQLAlchemy ORM model for shortened URL records.

Data Model Layout
=================
::
    urls table
    ├─ id               (SERIAL PRIMARY KEY)
    ├─ slug             (VARCHAR(32) UNIQUE, NULL until attached)
    ├─ original_url     (TEXT NOT NULL)
    ├─ title            (VARCHAR(100))
    ├─ description      (VARCHAR(300))
    ├─ owner_id         (INTEGER, NULL = anonymous)
    ├─ is_active        (BOOLEAN DEFAULT TRUE)
    ├─ hit_count        (INTEGER DEFAULT 0)
    ├─ created_at       (TIMESTAMPTZ DEFAULT NOW())
    ├─ updated_at       (TIMESTAMPTZ DEFAULT NOW(), ON UPDATE)
    └─ last_accessed_at (TIMESTAMPTZ NULL)

    uq_urls_anonymous_original_url
        UNIQUE (original_url) WHERE owner_id IS NULL AND is_active

Key Behaviours
===============
- ``slug`` is NULL only between record creation and slug attachment; readers
  filter on ``slug IS NOT NULL`` implicitly by querying on the slug value.
- At most one active anonymous record exists per ``original_url``; owned
  records are never constrained on ``original_url``.
- ``hit_count`` and ``last_accessed_at`` move together on every successful
  resolution.

Classes:
    Url:  A slug → original URL mapping with ownership and hit tracking.
"""

import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from shortener.database import Base

__all__ = ["Url"]


class Url(Base):
    __tablename__ = "urls"
    __table_args__ = (
        Index(
            "uq_urls_anonymous_original_url",
            "original_url",
            unique=True,
            postgresql_where=text("owner_id IS NULL AND is_active"),
        ),
        Index("ix_urls_owner_id_created_at", "owner_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    slug: Mapped[str | None] = mapped_column(String(32), unique=True, index=True, nullable=True)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(String(300), nullable=True)
    owner_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("true"), nullable=False)
    hit_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"), nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
    last_accessed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_anonymous(self) -> bool:
        return self.owner_id is None

    def __repr__(self) -> str:
        return f"<Url(id={self.id}, slug='{self.slug}', owner_id={self.owner_id}, hit_count={self.hit_count})>"
