"""
Event System for real-time notifications via Redis pub/sub.

Modules:
- event_types.py: Event type constants
- event_schema.py: Event dataclass with validation
- channels.py: Channel naming functions
- redis_pool.py: Shared async client
- publisher.py: publish_event with retry and the redis_events circuit breaker
"""

from .event_types import (
    ORDER_NEW,
    ORDER_ACCEPTED,
    ORDER_REJECTED,
    ORDER_ITEMS_REJECTED,
    ORDER_STATUS_UPDATE,
    PAYMENT_CASH_REQUESTED,
    PAYMENT_CONFIRMED,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    PAYMENT_REFUNDED,
    ALL_EVENT_TYPES,
    MAX_EVENT_SIZE,
)
from .event_schema import Event
from .channels import (
    channel_restaurant_waiters,
    channel_restaurant_kitchen,
    channel_table,
    channel_order,
)
from .redis_pool import get_redis_client, close_redis_pool
from .publisher import encode_event, events_breaker, publish_event

__all__ = [
    # Event types
    "ORDER_NEW",
    "ORDER_ACCEPTED",
    "ORDER_REJECTED",
    "ORDER_ITEMS_REJECTED",
    "ORDER_STATUS_UPDATE",
    "PAYMENT_CASH_REQUESTED",
    "PAYMENT_CONFIRMED",
    "PAYMENT_COMPLETED",
    "PAYMENT_FAILED",
    "PAYMENT_REFUNDED",
    "ALL_EVENT_TYPES",
    "MAX_EVENT_SIZE",
    # Schema
    "Event",
    # Channels
    "channel_restaurant_waiters",
    "channel_restaurant_kitchen",
    "channel_table",
    "channel_order",
    # Client
    "get_redis_client",
    "close_redis_pool",
    # Publishing
    "encode_event",
    "events_breaker",
    "publish_event",
]
