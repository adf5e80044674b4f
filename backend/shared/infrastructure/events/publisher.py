"""
Publishing notifications to Redis pub/sub.

A publish is retried with jittered exponential backoff. A publish that
failed on every attempt counts against the `redis_events` circuit breaker;
while that circuit is open, publishes are skipped so background tasks do not
stall on an unreachable Redis.
"""

from __future__ import annotations

import asyncio
import random

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.config.logging import events_logger as logger
from shared.config.settings import settings
from shared.infrastructure.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
)
from .event_schema import Event
from .event_types import MAX_EVENT_SIZE

events_breaker = CircuitBreaker(
    CircuitBreakerConfig(
        name="redis_events",
        failure_threshold=settings.redis_publish_max_retries + 2,
        success_threshold=1,
        timeout_seconds=30.0,
        half_open_max_calls=3,
    )
)


def retry_delay(attempt: int, base_delay: float) -> float:
    """Backoff before retry number `attempt` (0-based), capped at 10 s."""
    return random.uniform(base_delay, min(base_delay * (2 ** attempt), 10.0))


def encode_event(event: Event) -> str:
    """
    Serialize an event for the wire.

    Raises:
        ValueError: If the JSON is larger than MAX_EVENT_SIZE bytes.
    """
    data = event.to_json()
    size = len(data.encode("utf-8"))
    if size > MAX_EVENT_SIZE:
        raise ValueError(f"Event {event.type} exceeds max size: {size} > {MAX_EVENT_SIZE} bytes")
    return data


async def _publish_with_retry(redis_client: redis.Redis, channel: str, event_type: str, data: str) -> int:
    attempts = max(settings.redis_publish_max_retries, 1)
    attempt = 0
    while True:
        try:
            return await redis_client.publish(channel, data)
        except (RedisError, OSError) as e:
            attempt += 1
            if attempt >= attempts:
                logger.error(
                    "Redis publish failed after all retries",
                    channel=channel,
                    event_type=event_type,
                    attempts=attempts,
                    error=str(e),
                )
                raise
            delay = retry_delay(attempt - 1, settings.redis_publish_retry_delay)
            logger.warning(
                "Redis publish failed, retrying",
                channel=channel,
                event_type=event_type,
                attempt=attempt,
                delay_seconds=round(delay, 2),
                error=str(e),
            )
            await asyncio.sleep(delay)


async def publish_event(redis_client: redis.Redis, channel: str, event: Event) -> int:
    """
    Publish one event to a channel.

    Returns:
        Number of subscribers that received it, 0 when skipped because the
        circuit is open.

    Raises:
        ValueError: If the event is too large.
        RedisError | OSError: The last error once all retries failed.
    """
    data = encode_event(event)
    try:
        async with events_breaker.call():
            return await _publish_with_retry(redis_client, channel, event.type, data)
    except CircuitBreakerError as e:
        logger.warning(
            "Event publish skipped - circuit breaker open",
            channel=channel,
            event_type=event.type,
            retry_after=round(e.retry_after, 1),
        )
        return 0
