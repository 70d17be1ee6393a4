"""Configuration management for the URL shortener service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram: get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1: Import**::
    from shortener.config import get_settings

**Step 2: Read values**::
    settings = get_settings()
    ttl = settings.CACHE_TTL_SECONDS

Key Behaviours
===============
- Settings are cached after first access.
- Environment variables (and an optional .env file) override defaults.
- No other module reads environment variables directly.

Classes:
    Settings:  Pydantic model for all configuration values.
"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shortener.enums import CacheBackend, SlugStrategy


class Settings(BaseSettings):
    APP_NAME: str = "url-shortener"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8000"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://urlshortener:urlshortener@db:5432/urlshortener"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    CACHE_BACKEND: CacheBackend = CacheBackend.REDIS
    CACHE_TTL_SECONDS: int = Field(86400, ge=1)

    # Slug generation
    SLUG_LENGTH: int = Field(6, ge=1, le=32)
    SLUG_STRATEGY: SlugStrategy = SlugStrategy.SEQUENTIAL
    SLUG_MAX_ATTEMPTS: int = Field(10, ge=1)

    # Losing writer of a concurrent anonymous shorten re-reads the winner
    CREATE_CONFLICT_RETRY_COUNT: int = Field(3, ge=1)
    CREATE_CONFLICT_RETRY_DELAY_SECONDS: float = 0.05

    # Bearer token verification
    JWT_SECRET: str = "change-me-to-a-long-random-secret-value"
    JWT_ALGORITHM: str = "HS256"

    # Click event stream
    KAFKA_ENABLED: bool = True
    KAFKA_BOOTSTRAP_SERVERS: str = "kafka:9092"
    KAFKA_CLICK_TOPIC: str = "click_events"
    CLICK_STREAM_KEY: str = "click_events"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
