"""
Redis Channel Naming.

Staff dashboards subscribe per restaurant and role; customers subscribe to
their table and to the order they are tracking.
"""

from __future__ import annotations


def _validate_positive_id(id_value: int, name: str) -> None:
    if not isinstance(id_value, int) or id_value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {id_value}")


def channel_restaurant_waiters(restaurant_id: int) -> str:
    """Channel for waiter notifications in a restaurant."""
    _validate_positive_id(restaurant_id, "restaurant_id")
    return f"restaurant:{restaurant_id}:waiter"


def channel_restaurant_kitchen(restaurant_id: int) -> str:
    """Channel for kitchen notifications in a restaurant."""
    _validate_positive_id(restaurant_id, "restaurant_id")
    return f"restaurant:{restaurant_id}:kitchen"


def channel_table(table_id: int) -> str:
    """Channel for customers seated at a table."""
    _validate_positive_id(table_id, "table_id")
    return f"table:{table_id}"


def channel_order(order_id: int) -> str:
    """Channel for customers tracking a single order."""
    _validate_positive_id(order_id, "order_id")
    return f"order:{order_id}"
