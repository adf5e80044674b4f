"""
Event Services - order notifications published after commit.
"""

from .order_events import (
    CUSTOMER_ACTOR,
    OrderNotifier,
    PendingNotification,
    dispatch_notifications,
    item_summary,
    order_summary,
    staff_actor,
)

__all__ = [
    "CUSTOMER_ACTOR",
    "OrderNotifier",
    "PendingNotification",
    "dispatch_notifications",
    "item_summary",
    "order_summary",
    "staff_actor",
]
