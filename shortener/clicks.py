"""Best-effort click recording.

Flow Diagram: Click Event
==========================
::
    ┌─────────────┐
    │ Successful  │
    │ resolution  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Publish to  │
    │ Kafka topic │
    └──────┬──────┘
    SUCCESS?     │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Redis   │  │ Success │
│ stream  │  │ metric  │
│ XADD    │  └─────────┘
└────┬────┘
     ▼
  failure → WARNING log, dropped

Key Behaviours
===============
- ``ClickTracker.record`` never raises. A click that cannot be delivered is
  logged and dropped; the redirect proceeds regardless.
- Without a Redis client the fallback step is skipped.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis
from prometheus_client import Counter

from shortener.kafka import publish_click_event
from shortener.schemas import ClickEvent

__all__ = ["ClickMetadata", "ClickTracker"]

KAFKA_EVENTS_PUBLISHED_TOTAL = Counter(
    "url_shortener_kafka_events_published_total",
    "Total Kafka click events published successfully",
)
KAFKA_EVENTS_FAILED_TOTAL = Counter(
    "url_shortener_kafka_events_failed_total",
    "Total Kafka click events that failed to publish",
)
CLICK_EVENTS_DROPPED_TOTAL = Counter(
    "url_shortener_click_events_dropped_total",
    "Click events lost after both Kafka and the Redis stream failed",
)


@dataclass(frozen=True)
class ClickMetadata:
    """Request attributes captured for a click."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    accept_language: Optional[str] = None


class ClickTracker:
    def __init__(
        self,
        stream_client: redis.Redis | None,
        stream_key: str,
        logger: logging.Logger | logging.LoggerAdapter,
    ):
        self._stream_client = stream_client
        self._stream_key = stream_key
        self._logger = logger

    async def record(self, slug: str, metadata: ClickMetadata, url_id: int | None = None) -> None:
        try:
            event = ClickEvent(
                slug=slug,
                url_id=url_id,
                ip_address=metadata.ip_address,
                user_agent=metadata.user_agent,
                referrer=metadata.referrer,
                accept_language=metadata.accept_language,
            )
        except ValueError as exc:
            self._logger.warning(f"Click event for {slug} rejected: {exc}")
            CLICK_EVENTS_DROPPED_TOTAL.inc()
            return

        try:
            if await publish_click_event(event):
                KAFKA_EVENTS_PUBLISHED_TOTAL.inc()
                return
        except Exception as exc:
            self._logger.warning(f"Kafka publish error for {slug}: {exc}")
        KAFKA_EVENTS_FAILED_TOTAL.inc()
        await self._fallback(event)

    async def _fallback(self, event: ClickEvent) -> None:
        if self._stream_client is None:
            CLICK_EVENTS_DROPPED_TOTAL.inc()
            return
        fields = {key: str(value) for key, value in event.model_dump(mode="json").items() if value is not None}
        try:
            await self._stream_client.xadd(self._stream_key, fields)
            self._logger.debug(f"Click event stored in Redis stream for {event.slug}")
        except Exception as exc:
            CLICK_EVENTS_DROPPED_TOTAL.inc()
            self._logger.warning(f"Redis stream fallback failed for {event.slug}: {exc}")
