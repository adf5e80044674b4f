"""
Order Domain Service.

The order engine: creates orders and merges later submissions of the same
table into its open tab, accepts and rejects (fully or item by item), and
moves orders through the kitchen/waiter pipeline.

Every operation commits once at its end. Notifications are collected on
`self.notifier` and published by the router after the commit.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.config.constants import ItemStatus, OrderStatus, TableStatus
from shared.config.logging import orders_logger as logger
from shared.infrastructure.db import safe_commit
from shared.infrastructure.events import (
    ORDER_ACCEPTED,
    ORDER_ITEMS_REJECTED,
    ORDER_NEW,
    ORDER_REJECTED,
    ORDER_STATUS_UPDATE,
)
from shared.utils.exceptions import (
    DependencyError,
    InvalidOperationError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    OrderNotFoundError,
    ValidationError,
)
from shared.utils.schemas import CreateOrderRequest, OrderItemInput
from qrdine_api.models import Order, OrderItem, Table
from qrdine_api.models.base import utcnow
from qrdine_api.repositories import (
    CartRepository,
    MenuRepository,
    OrderFilters,
    OrderRepository,
    TableRepository,
)
from qrdine_api.services.events import (
    CUSTOMER_ACTOR,
    OrderNotifier,
    item_summary,
    order_summary,
)
from . import order_state
from .pricing import LinePrice, price_line, recalculate_totals
from .transaction import write_transaction


@dataclass
class CreateOrderResult:
    order: Order
    merged: bool


@dataclass
class RejectOrderResult:
    order: Order
    partial: bool
    rejected_items: list[OrderItem] = field(default_factory=list)


class OrderService:
    """
    Domain service for the order lifecycle.

    Usage:
        service = OrderService(db)
        result = service.create_order(body)
        service.notifier.schedule(background_tasks)
    """

    def __init__(self, db: Session, notifier: OrderNotifier | None = None):
        self._db = db
        self._orders = OrderRepository(db)
        self._tables = TableRepository(db)
        self._menu = MenuRepository(db)
        self._carts = CartRepository(db)
        self.notifier = notifier or OrderNotifier()

    def _get_for_update(self, order_id: int) -> Order:
        order = self._orders.get(order_id, lock=True)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    # =========================================================================
    # Queries
    # =========================================================================

    def get_order(self, order_id: int) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def list_orders(self, restaurant_id: int, filters: OrderFilters) -> tuple[Sequence[Order], int]:
        """Return (page, total count) of a restaurant's orders."""
        orders = self._orders.find_all(restaurant_id, filters)
        total = self._orders.count(restaurant_id, filters)
        return orders, total

    # =========================================================================
    # Create / merge
    # =========================================================================

    def _price_items(self, restaurant_id: int, items: Sequence[OrderItemInput]) -> list[tuple[OrderItemInput, LinePrice]]:
        """Resolve every line against the catalog before anything is written."""
        priced = []
        for item in items:
            menu_item = self._menu.find_orderable(item.menu_item_id, restaurant_id)
            if menu_item is None:
                raise NotFoundError("Menu item", item.menu_item_id, restaurant_id=restaurant_id)
            priced.append((item, price_line(menu_item, item.quantity, item.modifiers)))
        return priced

    @staticmethod
    def _append_items(order: Order, priced: list[tuple[OrderItemInput, LinePrice]]) -> None:
        position = max((item.position for item in order.items), default=-1) + 1
        for item_input, line in priced:
            order.items.append(
                OrderItem(
                    position=position,
                    menu_item_id=line.menu_item_id,
                    name=line.name,
                    price_cents=line.price_cents,
                    quantity=line.quantity,
                    modifiers=line.modifiers,
                    special_instructions=item_input.special_instructions,
                    subtotal_cents=line.subtotal_cents,
                    status=ItemStatus.PENDING,
                )
            )
            position += 1

    def create_order(self, request: CreateOrderRequest) -> CreateOrderResult:
        """
        Place an order for a table, merging into its open tab when there is one.

        Merge: new items are appended as pending, existing items keep their
        status, totals are recomputed and the order goes back to pending so
        staff see the new items. New: the order is created and the table
        becomes occupied. Either way the table's cart is deleted.

        Raises:
            ValidationError: Empty item list or unknown modifier option.
            NotFoundError: Unknown table, or menu item missing or not available.
            ConcurrencyError: Another request changed the table's order first.
        """
        if not request.items:
            raise ValidationError("Order must contain at least one item", table_id=request.table_id)

        merged = False
        with write_transaction(self._db, self.notifier):
            table = self._tables.find(request.table_id, lock=True)
            if table is None or table.restaurant_id != request.restaurant_id:
                raise NotFoundError("Table", request.table_id, restaurant_id=request.restaurant_id)

            priced = self._price_items(request.restaurant_id, request.items)

            order = self._orders.find_mergeable(table.id)
            if order is not None:
                merged = True
                self._append_items(order, priced)
                recalculate_totals(order)
                order.status = OrderStatus.PENDING
                self._db.flush()
            else:
                order = Order(
                    order_number=self._orders.next_order_number(),
                    restaurant_id=request.restaurant_id,
                    table_id=table.id,
                    customer_id=request.customer_id,
                    guest_name=request.guest_name or "Guest",
                    order_notes=request.order_notes,
                    status=OrderStatus.PENDING,
                    tax_cents=0,
                    discount_cents=0,
                )
                self._append_items(order, priced)
                recalculate_totals(order)
                self._orders.save(order)
                self._tables.set_status(table, TableStatus.OCCUPIED, order)

            removed_carts = self._carts.delete_by_table(table.id)
            self._queue_new_order(order, table, merged)

        logger.info(
            "Order items merged" if merged else "Order created",
            order_id=order.id,
            order_number=order.order_number,
            table_id=order.table_id,
            items=len(priced),
            total_cents=order.total_cents,
            carts_removed=removed_carts,
        )
        return CreateOrderResult(order=order, merged=merged)

    def _queue_new_order(self, order: Order, table: Table, merged: bool) -> None:
        payload = order_summary(order, table)
        payload["merged"] = merged
        payload["guest_name"] = order.guest_name
        payload["items"] = [item_summary(item) for item in order.items]
        self.notifier.notify_order(order, ORDER_NEW, waiters=True, payload=payload, actor=CUSTOMER_ACTOR)

    # =========================================================================
    # Accept / reject
    # =========================================================================

    def accept_order(self, order_id: int, waiter_id: int, actor: dict[str, Any] | None = None) -> Order:
        """
        Accept a pending order.

        Raises:
            NotFoundError: Unknown order.
            InvalidStateError: Order is not pending.
        """
        with write_transaction(self._db, self.notifier, entity_id=order_id):
            order = self._get_for_update(order_id)
            if order.status != OrderStatus.PENDING:
                raise InvalidStateError("Order", order.status, [OrderStatus.PENDING], order_id=order_id)

            order.status = OrderStatus.ACCEPTED
            order.waiter_id = waiter_id
            order_state.stamp_once(order, OrderStatus.ACCEPTED, utcnow())
            self._db.flush()

            payload = order_summary(order, order.table)
            kitchen_payload = {**payload, "items": [item_summary(i) for i in order.active_items]}
            self.notifier.notify_order(order, ORDER_ACCEPTED, kitchen=True, payload=kitchen_payload, actor=actor)
            self.notifier.notify_order(order, ORDER_STATUS_UPDATE, waiters=True, table=True, payload=payload, actor=actor)

        logger.info("Order accepted", order_id=order.id, waiter_id=waiter_id)
        return order

    def reject_order(
        self,
        order_id: int,
        waiter_id: int,
        reason: str,
        actor: dict[str, Any] | None = None,
    ) -> RejectOrderResult:
        """
        Reject the items still waiting for the kitchen.

        With nothing in production the whole order is rejected and totals are
        kept as they were. Otherwise only pending items are rejected, totals
        are recomputed from the remaining items and the order is marked served.

        Raises:
            NotFoundError: Unknown order.
            InvalidStateError: Order already rejected, cancelled or completed.
            InvalidOperationError: No pending items to reject.
        """
        now = utcnow()
        with write_transaction(self._db, self.notifier, entity_id=order_id):
            order = self._get_for_update(order_id)
            if order.status in OrderStatus.TERMINAL:
                raise InvalidStateError("Order", order.status, order_id=order_id)

            pending, working = order_state.partition_for_rejection(order)
            if not pending:
                raise InvalidOperationError("Order has no pending items to reject", order_id=order_id)

            order.waiter_id = waiter_id
            if not working:
                order.status = OrderStatus.REJECTED
                order.rejection_reason = reason
                order_state.stamp_once(order, OrderStatus.REJECTED, now)
                self._db.flush()

                payload = {**order_summary(order, order.table), "reason": reason}
                self.notifier.notify_order(order, ORDER_REJECTED, table=True, waiters=True, payload=payload, actor=actor)
                result = RejectOrderResult(order=order, partial=False, rejected_items=[])
            else:
                for item in pending:
                    item.status = ItemStatus.REJECTED
                    item.rejection_reason = reason
                    item.rejected_at = now
                recalculate_totals(order)
                order.status = OrderStatus.SERVED
                order_state.stamp_once(order, OrderStatus.SERVED, now)
                self._db.flush()

                summary = order_summary(order, order.table)
                rejected_payload = {
                    **summary,
                    "reason": reason,
                    "rejected_items": [item_summary(item) for item in pending],
                }
                self.notifier.notify_order(
                    order, ORDER_ITEMS_REJECTED, table=True, order_channel=True,
                    payload=rejected_payload, actor=actor,
                )
                self.notifier.notify_order(order, ORDER_STATUS_UPDATE, waiters=True, payload=summary, actor=actor)
                result = RejectOrderResult(order=order, partial=True, rejected_items=pending)

        logger.info(
            "Order partially rejected" if result.partial else "Order rejected",
            order_id=order.id,
            waiter_id=waiter_id,
            rejected_items=len(result.rejected_items),
            total_cents=order.total_cents,
        )
        return result

    # =========================================================================
    # Status pipeline
    # =========================================================================

    def update_order_status(
        self,
        order_id: int,
        new_status: str,
        actor: dict[str, Any] | None = None,
    ) -> Order:
        """
        Move an order along the lifecycle.

        Stamps the lifecycle timestamp once, cascades ready/served to the
        in-progress items and, on completion, bumps menu popularity after
        the commit.

        Raises:
            ValidationError: Unknown target status.
            NotFoundError: Unknown order.
            InvalidTransitionError: Edge not allowed from the current status.
        """
        if new_status not in OrderStatus.UPDATABLE:
            raise ValidationError(f"Invalid status '{new_status}'", order_id=order_id)

        with write_transaction(self._db, self.notifier, entity_id=order_id):
            order = self._get_for_update(order_id)
            previous = order.status
            if not order_state.can_transition(previous, new_status):
                raise InvalidTransitionError(
                    "Order", previous, new_status,
                    allowed=order_state.allowed_targets(previous),
                    order_id=order_id,
                )

            order.status = new_status
            order_state.stamp_once(order, new_status, utcnow())
            cascaded = order_state.cascade_items(order, new_status)
            self._db.flush()

            payload = {**order_summary(order, order.table), "previous_status": previous}
            kitchen = new_status in (OrderStatus.PREPARING, OrderStatus.READY)
            self.notifier.notify_order(
                order, ORDER_STATUS_UPDATE, waiters=True, table=True, kitchen=kitchen,
                payload=payload, actor=actor,
            )

        logger.info(
            "Order status updated",
            order_id=order.id,
            from_status=previous,
            to_status=new_status,
            items_cascaded=len(cascaded),
        )

        if new_status == OrderStatus.COMPLETED:
            try:
                self._record_popularity(order)
            except DependencyError as e:
                logger.warning(
                    "Popularity counter not updated",
                    order_id=order_id,
                    dependency=e.dependency,
                    error=e.error,
                )
        return order

    def _record_popularity(self, order: Order) -> None:
        """Add the order's sold quantities to menu popularity, in its own commit."""
        quantities: dict[int, int] = defaultdict(int)
        for item in order.active_items:
            quantities[item.menu_item_id] += item.quantity

        try:
            self._menu.increment_total_orders(dict(quantities))
            safe_commit(self._db)
        except SQLAlchemyError as e:
            self._db.rollback()
            raise DependencyError("menu popularity counter", str(e)) from e

    # =========================================================================
    # Admin
    # =========================================================================

    def delete_order(self, order_id: int) -> None:
        """
        Hard delete an order and its items.

        A table still pointing at the order moves on to the table's next
        unsettled order, or is released when there is none.
        """
        with write_transaction(self._db, self.notifier, entity_id=order_id):
            order = self._get_for_update(order_id)
            table = self._tables.find(order.table_id, lock=True)
            if table is not None and table.current_order_id == order.id:
                others = self._orders.find_unsettled(table.id, exclude_order_id=order.id)
                if others:
                    self._tables.set_status(table, TableStatus.OCCUPIED, others[0])
                else:
                    self._tables.set_status(table, TableStatus.ACTIVE)
            self._orders.delete(order)

        logger.info("Order deleted", order_id=order_id)
