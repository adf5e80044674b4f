"""
Tests for the order engine: create/merge, accept, reject and the status pipeline.
"""

import pytest
from sqlalchemy import func, select

from qrdine_api.models import Cart, CartItem, MenuItem, Order, Table
from qrdine_api.services.domain import OrderService
from shared.config.constants import ItemStatus, OrderStatus, PaymentStatus, TableStatus
from shared.infrastructure.events import (
    ORDER_ACCEPTED,
    ORDER_ITEMS_REJECTED,
    ORDER_NEW,
    ORDER_REJECTED,
    ORDER_STATUS_UPDATE,
)
from shared.utils.exceptions import (
    InvalidOperationError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from shared.utils.schemas import CreateOrderRequest


def _request(table_id=1, items=None, **extra):
    return CreateOrderRequest(
        restaurant_id=1,
        table_id=table_id,
        items=items or [{"menu_item_id": 2, "quantity": 1}],
        **extra,
    )


def _set_item_statuses(db_session, order, *statuses):
    for item, status in zip(order.items, statuses):
        item.status = status
    db_session.commit()


def _event_types(service):
    return [(n.channel, n.event.type) for n in service.notifier.pending]


class TestCreateOrder:
    def test_scenario_a_totals(self, db_session, seed_tables, seed_restaurant):
        db_session.add_all([
            MenuItem(
                id=10, restaurant_id=1, name="Salmon", price_cents=1800,
                modifiers=[
                    {"name": "Side", "options": [{"name": "Asparagus", "price_adjustment_cents": 500}]},
                    {"name": "Sauce", "options": [{"name": "Hollandaise", "price_adjustment_cents": 200}]},
                ],
            ),
            MenuItem(
                id=11, restaurant_id=1, name="Salad", price_cents=1200,
                modifiers=[{"name": "Protein", "options": [{"name": "Chicken", "price_adjustment_cents": 600}]}],
            ),
        ])
        db_session.commit()

        result = OrderService(db_session).create_order(_request(items=[
            {
                "menu_item_id": 10,
                "quantity": 2,
                "modifiers": [
                    {"name": "Side", "options": ["Asparagus"]},
                    {"name": "Sauce", "options": ["Hollandaise"]},
                ],
            },
            {"menu_item_id": 11, "quantity": 1, "modifiers": [{"name": "Protein", "options": ["Chicken"]}]},
        ]))

        order = result.order
        assert result.merged is False
        assert [item.subtotal_cents for item in order.items] == [5000, 1800]
        assert order.subtotal_cents == 6800
        assert order.tax_cents == 0
        assert order.discount_cents == 0
        assert order.total_cents == 6800

    def test_new_order_defaults(self, db_session, seeded):
        result = OrderService(db_session).create_order(_request())
        order = result.order

        assert order.order_number == "ORD00001"
        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.guest_name == "Guest"
        assert [item.status for item in order.items] == [ItemStatus.PENDING]

        table = db_session.get(Table, 1)
        assert table.status == TableStatus.OCCUPIED
        assert table.current_order_id == order.id

    def test_order_numbers_increase(self, db_session, seeded):
        service = OrderService(db_session)
        first = service.create_order(_request(table_id=1)).order
        second = service.create_order(_request(table_id=2)).order
        assert first.order_number == "ORD00001"
        assert second.order_number == "ORD00002"

    def test_scenario_b_merge(self, db_session, seeded):
        service = OrderService(db_session)
        first = service.create_order(_request(items=[{"menu_item_id": 2, "quantity": 1}])).order
        result = service.create_order(_request(items=[{"menu_item_id": 3, "quantity": 2}]))

        assert result.merged is True
        assert result.order.id == first.id
        assert [item.name for item in result.order.items] == ["Fries", "Soda"]
        assert [item.position for item in result.order.items] == [0, 1]
        assert result.order.subtotal_cents == 450 + 600
        assert result.order.total_cents == 1050
        assert result.order.status == OrderStatus.PENDING
        assert db_session.scalar(select(func.count()).select_from(Order)) == 1

    def test_merge_resets_status_keeps_item_statuses(self, db_session, seeded, place_order):
        order = place_order()
        order.status = OrderStatus.SERVED
        _set_item_statuses(db_session, order, ItemStatus.SERVED)

        result = OrderService(db_session).create_order(_request(items=[{"menu_item_id": 3, "quantity": 1}]))

        assert result.merged is True
        assert result.order.status == OrderStatus.PENDING
        assert [item.status for item in result.order.items] == [ItemStatus.SERVED, ItemStatus.PENDING]

    def test_paid_order_not_merged(self, db_session, seeded, place_order):
        order = place_order()
        order.status = OrderStatus.COMPLETED
        order.payment_status = PaymentStatus.PAID
        db_session.commit()

        result = OrderService(db_session).create_order(_request())
        assert result.merged is False
        assert result.order.id != order.id

    def test_cart_of_table_deleted(self, db_session, seeded):
        from datetime import timedelta
        from qrdine_api.models.base import utcnow

        cart = Cart(restaurant_id=1, table_id=1, session_id="sess-1", expires_at=utcnow() + timedelta(hours=1))
        cart.items.append(CartItem(menu_item_id=2, name="Fries", price_cents=450, quantity=1, subtotal_cents=450))
        db_session.add(cart)
        db_session.commit()

        OrderService(db_session).create_order(_request())
        assert db_session.scalar(select(func.count()).select_from(Cart)) == 0
        assert db_session.scalar(select(func.count()).select_from(CartItem)) == 0

    def test_empty_items_rejected(self, db_session, seeded):
        request = CreateOrderRequest(restaurant_id=1, table_id=1, items=[])
        with pytest.raises(ValidationError):
            OrderService(db_session).create_order(request)

    def test_unavailable_menu_item(self, db_session, seeded):
        with pytest.raises(NotFoundError):
            OrderService(db_session).create_order(_request(items=[{"menu_item_id": 4, "quantity": 1}]))
        assert db_session.scalar(select(func.count()).select_from(Order)) == 0

    def test_unknown_table(self, db_session, seeded):
        with pytest.raises(NotFoundError):
            OrderService(db_session).create_order(_request(table_id=99))

    def test_table_of_other_restaurant(self, db_session, seeded, other_restaurant):
        with pytest.raises(NotFoundError):
            OrderService(db_session).create_order(_request(table_id=9))

    def test_notifies_waiters(self, db_session, seeded):
        service = OrderService(db_session)
        service.create_order(_request())
        assert _event_types(service) == [("restaurant:1:waiter", ORDER_NEW)]
        event = service.notifier.pending[0].event
        assert event.entity["merged"] is False
        assert event.actor == {"role": "CUSTOMER"}


class TestAcceptOrder:
    def test_accept(self, db_session, seeded, place_order):
        order = place_order()
        service = OrderService(db_session)
        accepted = service.accept_order(order.id, waiter_id=2)

        assert accepted.status == OrderStatus.ACCEPTED
        assert accepted.waiter_id == 2
        assert accepted.accepted_at is not None
        assert ("restaurant:1:kitchen", ORDER_ACCEPTED) in _event_types(service)
        assert ("table:1", ORDER_STATUS_UPDATE) in _event_types(service)

    def test_accept_requires_pending(self, db_session, seeded, place_order):
        order = place_order()
        service = OrderService(db_session)
        service.accept_order(order.id, waiter_id=2)
        with pytest.raises(InvalidStateError):
            service.accept_order(order.id, waiter_id=2)

    def test_accept_unknown_order(self, db_session, seeded):
        with pytest.raises(NotFoundError):
            OrderService(db_session).accept_order(999, waiter_id=2)


class TestRejectOrder:
    def test_full_rejection_keeps_total(self, db_session, seeded, place_order):
        order = place_order(items=[{"menu_item_id": 2, "quantity": 2}, {"menu_item_id": 3, "quantity": 1}])
        total = order.total_cents

        service = OrderService(db_session)
        result = service.reject_order(order.id, waiter_id=2, reason="Kitchen closed")

        assert result.partial is False
        assert result.order.status == OrderStatus.REJECTED
        assert result.order.rejection_reason == "Kitchen closed"
        assert result.order.rejected_at is not None
        assert result.order.total_cents == total
        assert ("table:1", ORDER_REJECTED) in _event_types(service)

    def test_scenario_c_partial_rejection(self, db_session, seeded, place_order):
        order = place_order(items=[{"menu_item_id": 2, "quantity": 1}, {"menu_item_id": 3, "quantity": 1}])
        _set_item_statuses(db_session, order, ItemStatus.SERVED, ItemStatus.PENDING)

        service = OrderService(db_session)
        result = service.reject_order(order.id, waiter_id=2, reason="Out of soda")

        served, rejected = result.order.items
        assert result.partial is True
        assert served.status == ItemStatus.SERVED
        assert rejected.status == ItemStatus.REJECTED
        assert rejected.rejection_reason == "Out of soda"
        assert rejected.rejected_at is not None
        assert [item.id for item in result.rejected_items] == [rejected.id]
        assert result.order.status == OrderStatus.SERVED
        assert result.order.subtotal_cents == 450
        assert result.order.total_cents == 450
        assert ("order:%d" % order.id, ORDER_ITEMS_REJECTED) in _event_types(service)

    def test_nothing_pending(self, db_session, seeded, place_order):
        order = place_order()
        _set_item_statuses(db_session, order, ItemStatus.PREPARING)
        with pytest.raises(InvalidOperationError):
            OrderService(db_session).reject_order(order.id, waiter_id=2, reason="x")

    @pytest.mark.parametrize("status", [OrderStatus.REJECTED, OrderStatus.CANCELLED, OrderStatus.COMPLETED])
    def test_terminal_order(self, db_session, seeded, place_order, status):
        order = place_order()
        order.status = status
        db_session.commit()
        with pytest.raises(InvalidStateError):
            OrderService(db_session).reject_order(order.id, waiter_id=2, reason="x")


class TestStatusPipeline:
    def test_happy_path_stamps_each_timestamp(self, db_session, seeded, place_order):
        order = place_order()
        service = OrderService(db_session)
        service.accept_order(order.id, waiter_id=2)
        for status in (OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.SERVED, OrderStatus.COMPLETED):
            order = service.update_order_status(order.id, status)
            assert order.status == status

        assert order.preparing_at is not None
        assert order.ready_at is not None
        assert order.served_at is not None
        assert order.completed_at is not None

    def test_accepted_can_skip_to_ready(self, db_session, seeded, place_order):
        order = place_order()
        service = OrderService(db_session)
        service.accept_order(order.id, waiter_id=2)
        assert service.update_order_status(order.id, OrderStatus.READY).status == OrderStatus.READY

    @pytest.mark.parametrize("target", [OrderStatus.PREPARING, OrderStatus.SERVED, OrderStatus.COMPLETED])
    def test_invalid_transitions_from_pending(self, db_session, seeded, place_order, target):
        order = place_order()
        with pytest.raises(InvalidTransitionError):
            OrderService(db_session).update_order_status(order.id, target)

    def test_no_transition_out_of_terminal(self, db_session, seeded, place_order):
        order = place_order()
        service = OrderService(db_session)
        service.update_order_status(order.id, OrderStatus.CANCELLED)
        with pytest.raises(InvalidTransitionError):
            service.update_order_status(order.id, OrderStatus.ACCEPTED)

    def test_rejection_lists_allowed_targets(self, db_session, seeded, place_order):
        order = place_order()
        service = OrderService(db_session)
        with pytest.raises(InvalidTransitionError) as exc_info:
            service.update_order_status(order.id, OrderStatus.SERVED)
        assert exc_info.value.status_code == 409
        assert exc_info.value.detail.endswith("(allowed: accepted, cancelled)")

        service.update_order_status(order.id, OrderStatus.CANCELLED)
        with pytest.raises(InvalidTransitionError) as exc_info:
            service.update_order_status(order.id, OrderStatus.ACCEPTED)
        assert exc_info.value.detail.endswith("(allowed: none)")

    def test_unknown_status(self, db_session, seeded, place_order):
        order = place_order()
        with pytest.raises(ValidationError):
            OrderService(db_session).update_order_status(order.id, "rejected")

    def test_failed_transition_leaves_order_untouched(self, db_session, seeded, place_order):
        order = place_order()
        service = OrderService(db_session)
        with pytest.raises(InvalidTransitionError):
            service.update_order_status(order.id, OrderStatus.SERVED)
        assert service.notifier.pending == []
        assert service.get_order(order.id).status == OrderStatus.PENDING

    def test_ready_cascades_to_items(self, db_session, seeded, place_order):
        order = place_order(items=[
            {"menu_item_id": 2, "quantity": 1},
            {"menu_item_id": 3, "quantity": 1},
            {"menu_item_id": 1, "quantity": 1},
        ])
        service = OrderService(db_session)
        service.accept_order(order.id, waiter_id=2)
        _set_item_statuses(db_session, order, ItemStatus.PENDING, ItemStatus.PREPARING, ItemStatus.SERVED)

        order = service.update_order_status(order.id, OrderStatus.READY)
        assert [item.status for item in order.items] == [ItemStatus.READY, ItemStatus.READY, ItemStatus.SERVED]

    def test_served_cascade_skips_rejected(self, db_session, seeded, place_order):
        order = place_order(items=[{"menu_item_id": 2, "quantity": 1}, {"menu_item_id": 3, "quantity": 1}])
        service = OrderService(db_session)
        service.accept_order(order.id, waiter_id=2)
        service.update_order_status(order.id, OrderStatus.READY)
        _set_item_statuses(db_session, order, ItemStatus.READY, ItemStatus.REJECTED)

        order = service.update_order_status(order.id, OrderStatus.SERVED)
        assert [item.status for item in order.items] == [ItemStatus.SERVED, ItemStatus.REJECTED]

    def test_kitchen_notified_for_preparing(self, db_session, seeded, place_order):
        order = place_order()
        service = OrderService(db_session)
        service.accept_order(order.id, waiter_id=2)
        service.notifier.clear()

        service.update_order_status(order.id, OrderStatus.PREPARING)
        channels = [channel for channel, _ in _event_types(service)]
        assert "restaurant:1:kitchen" in channels
        assert "restaurant:1:waiter" in channels
        assert "table:1" in channels

    def test_completion_bumps_popularity(self, db_session, seeded, place_order):
        order = place_order(items=[{"menu_item_id": 2, "quantity": 3}, {"menu_item_id": 3, "quantity": 1}])
        _set_item_statuses(db_session, order, ItemStatus.PENDING, ItemStatus.REJECTED)
        service = OrderService(db_session)
        service.accept_order(order.id, waiter_id=2)
        for status in (OrderStatus.READY, OrderStatus.SERVED, OrderStatus.COMPLETED):
            service.update_order_status(order.id, status)

        db_session.expire_all()
        assert db_session.get(MenuItem, 2).total_orders == 3
        assert db_session.get(MenuItem, 3).total_orders == 0

    def test_popularity_failure_does_not_fail_completion(self, db_session, seeded, place_order, monkeypatch):
        from sqlalchemy.exc import OperationalError

        order = place_order()
        service = OrderService(db_session)
        service.accept_order(order.id, waiter_id=2)
        for status in (OrderStatus.READY, OrderStatus.SERVED):
            service.update_order_status(order.id, status)

        def broken(quantities):
            raise OperationalError("UPDATE menu_item", {}, Exception("database is locked"))

        monkeypatch.setattr(service._menu, "increment_total_orders", broken)
        completed = service.update_order_status(order.id, OrderStatus.COMPLETED)

        assert completed.status == OrderStatus.COMPLETED
        db_session.expire_all()
        assert db_session.get(Order, order.id).status == OrderStatus.COMPLETED


class TestQueriesAndDelete:
    def test_list_orders_filters(self, db_session, seeded, place_order):
        from qrdine_api.repositories import OrderFilters

        first = place_order(table_id=1)
        place_order(table_id=2)
        OrderService(db_session).accept_order(first.id, waiter_id=2)

        service = OrderService(db_session)
        orders, total = service.list_orders(1, OrderFilters(status=OrderStatus.ACCEPTED))
        assert total == 1
        assert [o.id for o in orders] == [first.id]

        orders, total = service.list_orders(1, OrderFilters())
        assert total == 2

    def test_delete_releases_table(self, db_session, seeded, place_order):
        order = place_order()
        OrderService(db_session).delete_order(order.id)

        assert db_session.get(Order, order.id) is None
        table = db_session.get(Table, 1)
        assert table.status == TableStatus.ACTIVE
        assert table.current_order_id is None

    def test_delete_moves_table_to_remaining_order(self, db_session, seeded, place_order, gateway):
        from qrdine_api.services.domain import PaymentService

        first = place_order()
        PaymentService(db_session, gateway=gateway).request_cash_payment(first.id)
        second = place_order(items=[{"menu_item_id": 3, "quantity": 1}])
        table = db_session.get(Table, 1)
        table.current_order_id = first.id
        db_session.commit()

        OrderService(db_session).delete_order(first.id)

        table = db_session.get(Table, 1)
        assert table.status == TableStatus.OCCUPIED
        assert table.current_order_id == second.id
