"""
Order notifications.

Domain services record what happened on an OrderNotifier while they work;
routers hand the collected notifications to FastAPI background tasks after
the transaction committed. Publishing is best-effort: a failure is logged
and never affects the order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from shared.config.logging import events_logger as logger
from shared.infrastructure.events import (
    Event,
    channel_order,
    channel_restaurant_kitchen,
    channel_restaurant_waiters,
    channel_table,
    get_redis_client,
    publish_event,
)

if TYPE_CHECKING:
    from fastapi import BackgroundTasks
    from qrdine_api.models import Order, OrderItem, Table


CUSTOMER_ACTOR: dict[str, Any] = {"role": "CUSTOMER"}


def staff_actor(user_id: int | str | None, role: str | None = None) -> dict[str, Any]:
    return {"user_id": int(user_id) if user_id is not None else None, "role": role}


@dataclass(frozen=True)
class PendingNotification:
    """A notification waiting for the commit."""

    channel: str
    event: Event


def order_summary(order: "Order", table: "Table | None" = None) -> dict[str, Any]:
    """Common payload fields for order events."""
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "table_id": order.table_id,
        "table_number": table.number if table is not None else None,
        "status": order.status,
        "payment_status": order.payment_status,
        "total_cents": order.total_cents,
    }


def item_summary(item: "OrderItem") -> dict[str, Any]:
    return {
        "id": item.id,
        "name": item.name,
        "quantity": item.quantity,
        "status": item.status,
        "rejection_reason": item.rejection_reason,
    }


class OrderNotifier:
    """
    Collects notifications for one unit of work.

    Usage:
        notifier = OrderNotifier()
        notifier.notify(channel_table(3), ORDER_STATUS_UPDATE, {...}, restaurant_id=1)
        ...commit...
        notifier.schedule(background_tasks)
    """

    def __init__(self) -> None:
        self._pending: list[PendingNotification] = []

    @property
    def pending(self) -> list[PendingNotification]:
        return list(self._pending)

    def clear(self) -> None:
        self._pending.clear()

    def notify(
        self,
        channel: str,
        event_type: str,
        payload: dict[str, Any],
        *,
        restaurant_id: int,
        table_id: int | None = None,
        order_id: int | None = None,
        actor: dict[str, Any] | None = None,
    ) -> None:
        """Queue one event; an event that fails validation is logged and dropped."""
        try:
            event = Event(
                type=event_type,
                restaurant_id=restaurant_id,
                table_id=table_id,
                order_id=order_id,
                entity=payload,
                actor=actor or {},
            )
        except ValueError as e:
            logger.warning("Notification dropped", channel=channel, event_type=event_type, error=str(e))
            return
        self._pending.append(PendingNotification(channel=channel, event=event))

    def notify_order(
        self,
        order: "Order",
        event_type: str,
        *,
        waiters: bool = False,
        kitchen: bool = False,
        table: bool = False,
        order_channel: bool = False,
        payload: dict[str, Any] | None = None,
        actor: dict[str, Any] | None = None,
    ) -> None:
        """Queue the same order event on each selected channel."""
        try:
            channels = []
            if waiters:
                channels.append(channel_restaurant_waiters(order.restaurant_id))
            if kitchen:
                channels.append(channel_restaurant_kitchen(order.restaurant_id))
            if table:
                channels.append(channel_table(order.table_id))
            if order_channel:
                channels.append(channel_order(order.id))
        except ValueError as e:
            logger.warning("Notification dropped", order_id=order.id, event_type=event_type, error=str(e))
            return

        for channel in channels:
            self.notify(
                channel,
                event_type,
                payload or {},
                restaurant_id=order.restaurant_id,
                table_id=order.table_id,
                order_id=order.id,
                actor=actor,
            )

    def schedule(self, background_tasks: "BackgroundTasks") -> None:
        """Hand the queued notifications to FastAPI to publish after the response."""
        if self._pending:
            background_tasks.add_task(dispatch_notifications, list(self._pending))
        self._pending.clear()


async def dispatch_notifications(notifications: list[PendingNotification]) -> int:
    """
    Publish queued notifications to Redis.

    Returns the number of events published. Each failure is logged on its
    own so one bad channel does not hide the others.
    """
    if not notifications:
        return 0

    try:
        redis = await get_redis_client()
    except Exception as e:
        logger.error("Failed to get Redis client (bg)", pending=len(notifications), error=str(e))
        return 0

    published = 0
    for notification in notifications:
        try:
            await publish_event(redis, notification.channel, notification.event)
            published += 1
        except Exception as e:
            logger.error(
                "Failed to publish order notification (bg)",
                channel=notification.channel,
                event_type=notification.event.type,
                error=str(e),
            )

    logger.info("Order notifications published (bg)", published=published, total=len(notifications))
    return published
