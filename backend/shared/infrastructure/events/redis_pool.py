"""
Process-wide async Redis client for notification publishing.

The client owns a connection pool and is created on first use, inside the
running event loop.
"""

from __future__ import annotations

import redis.asyncio as redis

from shared.config.logging import events_logger as logger
from shared.config.settings import settings, REDIS_URL

_client: redis.Redis | None = None


async def get_redis_client() -> redis.Redis:
    """Return the shared client, creating it on the first call."""
    global _client
    # No await between the check and the assignment: one client per loop
    if _client is None:
        _client = redis.from_url(
            REDIS_URL,
            max_connections=settings.redis_pool_max_connections,
            decode_responses=True,
            socket_connect_timeout=settings.redis_socket_timeout,
            socket_timeout=settings.redis_socket_timeout,
            health_check_interval=30,
        )
        logger.info(
            "Redis client created",
            max_connections=settings.redis_pool_max_connections,
            timeout=settings.redis_socket_timeout,
        )
    return _client


async def close_redis_pool() -> None:
    """Close the client and its connections on shutdown."""
    global _client
    if _client is not None:
        client, _client = _client, None
        await client.aclose()
        logger.info("Redis client closed")
