"""Pydantic schemas for request validation and response serialization.

Schema Hierarchy
=================
::
    ShortenRequest (Input)
    ├─ url: str            (absolute http/https URL)
    ├─ title: str | None   (≤ 100 chars)
    └─ description: str | None (≤ 300 chars)

    ShortenResponse (Output)
    ├─ slug, short_url, original_url
    └─ title, description

    UrlResponse (Output) ── UrlListResponse {urls, count}
    UrlStats (Output)
    HealthResponse (Output)
    MessageResponse (Output)
    ClickEvent (Kafka / Redis stream payload)

Key Behaviours
===============
- URL validation uses the validators library, then rejects any scheme other
  than http and https.
- Datetime fields are timezone-aware and serialized as ISO 8601.
- Output models read ORM attributes directly (``from_attributes``).
"""

import datetime
from urllib.parse import urlsplit

import validators
from pydantic import BaseModel, Field, field_validator

from shortener.enums import HealthStatus

__all__ = [
    "ALLOWED_SCHEMES",
    "is_http_url",
    "ShortenRequest",
    "ShortenResponse",
    "UrlResponse",
    "UrlListResponse",
    "UrlStats",
    "HealthResponse",
    "MessageResponse",
    "ClickEvent",
]

ALLOWED_SCHEMES = ("http", "https")


def is_http_url(value: str) -> bool:
    if not value or not validators.url(value):
        return False
    return urlsplit(value).scheme.lower() in ALLOWED_SCHEMES


class ShortenRequest(BaseModel):
    url: str
    title: str | None = Field(None, max_length=100)
    description: str | None = Field(None, max_length=300)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not is_http_url(v):
            raise ValueError("Invalid URL format. URL must start with http:// or https://")
        return v


class ShortenResponse(BaseModel):
    slug: str
    short_url: str
    original_url: str
    title: str | None = None
    description: str | None = None


class UrlResponse(BaseModel):
    id: int
    slug: str
    short_url: str
    original_url: str
    title: str | None = None
    description: str | None = None
    hit_count: int
    created_at: datetime.datetime
    last_accessed_at: datetime.datetime | None = None

    model_config = {"from_attributes": True}


class UrlListResponse(BaseModel):
    urls: list[UrlResponse]
    count: int


class UrlStats(BaseModel):
    slug: str
    short_url: str
    original_url: str
    hit_count: int
    created_at: datetime.datetime
    last_accessed_at: datetime.datetime | None = None

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus


class MessageResponse(BaseModel):
    message: str


class ClickEvent(BaseModel):
    """Click event payload, keyed by slug for partition affinity."""

    slug: str = Field(..., description="Slug that was resolved, e.g. '00000a'")
    url_id: int | None = Field(None, description="Record id when the resolution was served by the store")
    ip_address: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    accept_language: str | None = None
    clicked_at: datetime.datetime = Field(default_factory=lambda: datetime.datetime.now(datetime.timezone.utc))
