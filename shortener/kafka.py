"""Kafka producer management for click events."""

import json
import logging

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from shortener.config import get_settings
from shortener.schemas import ClickEvent

__all__ = ["close_kafka", "init_kafka", "publish_click_event"]

settings = get_settings()

_producer: AIOKafkaProducer | None = None


async def init_kafka() -> None:
    global _producer
    if _producer is not None or not settings.KAFKA_ENABLED:
        return

    producer = AIOKafkaProducer(
        bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
        value_serializer=lambda payload: json.dumps(payload).encode("utf-8"),
    )
    try:
        await producer.start()
        _producer = producer
    except (KafkaError, OSError) as exc:
        logging.getLogger(settings.APP_NAME).warning(f"Kafka unavailable, click events go to Redis stream: {exc}")
        await producer.stop()
        _producer = None


async def close_kafka() -> None:
    global _producer
    if _producer is None:
        return
    await _producer.stop()
    _producer = None


async def publish_click_event(event: ClickEvent) -> bool:
    """Send ``event`` to the click topic. Returns False when no producer is running."""
    assert isinstance(event, ClickEvent), f"event must be ClickEvent, got {type(event)!r}"

    if _producer is None:
        return False

    await _producer.send_and_wait(
        settings.KAFKA_CLICK_TOPIC,
        event.model_dump(mode="json"),
        key=event.slug.encode("utf-8"),
    )
    return True
