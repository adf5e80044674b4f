"""
Order lifecycle rules.

Two independent state machines exist: the order status, moved by staff,
and the per-item kitchen status, which follows some order transitions.
"""

from datetime import datetime

from qrdine_api.models import Order, OrderItem
from shared.config.constants import ItemStatus, OrderStatus

# Allowed staff transitions (rejection has its own operation)
ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACCEPTED, OrderStatus.CANCELLED}),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.SERVED, OrderStatus.CANCELLED}),
    OrderStatus.SERVED: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Order status -> lifecycle timestamp it stamps
STATUS_TIMESTAMPS: dict[str, str] = {
    OrderStatus.ACCEPTED: "accepted_at",
    OrderStatus.PREPARING: "preparing_at",
    OrderStatus.READY: "ready_at",
    OrderStatus.SERVED: "served_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.REJECTED: "rejected_at",
}

# Order status -> item status its in-progress items are moved to
ITEM_CASCADE: dict[str, str] = {
    OrderStatus.READY: ItemStatus.READY,
    OrderStatus.SERVED: ItemStatus.SERVED,
    OrderStatus.COMPLETED: ItemStatus.SERVED,
}

_ITEM_RANK = {
    ItemStatus.PENDING: 0,
    ItemStatus.PREPARING: 1,
    ItemStatus.READY: 2,
    ItemStatus.SERVED: 3,
}


def can_transition(current: str, target: str) -> bool:
    return target in ORDER_TRANSITIONS.get(current, frozenset())


def allowed_targets(current: str) -> list[str]:
    return sorted(ORDER_TRANSITIONS.get(current, frozenset()))


def stamp_once(order: Order, status: str, now: datetime) -> None:
    """Write the lifecycle timestamp of `status` unless it was already set."""
    field = STATUS_TIMESTAMPS.get(status)
    if field and getattr(order, field) is None:
        setattr(order, field, now)


def cascade_items(order: Order, status: str) -> list[OrderItem]:
    """
    Move in-progress items forward to match the order status.

    Served and rejected items are never touched and no item moves backwards.
    Returns the items that changed.
    """
    target = ITEM_CASCADE.get(status)
    if target is None:
        return []

    changed = []
    for item in order.items:
        if item.status not in ItemStatus.IN_PROGRESS:
            continue
        if _ITEM_RANK[item.status] < _ITEM_RANK[target]:
            item.status = target
            changed.append(item)
    return changed


def partition_for_rejection(order: Order) -> tuple[list[OrderItem], list[OrderItem]]:
    """Split items into (pending, working); rejected items belong to neither."""
    pending = [item for item in order.items if item.status == ItemStatus.PENDING]
    working = [item for item in order.items if item.status in ItemStatus.WORKING]
    return pending, working
