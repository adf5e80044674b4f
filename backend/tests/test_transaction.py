"""
Tests for write transactions: lost races become 409, other integrity errors do not.
"""

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from qrdine_api.models import Order
from qrdine_api.services.domain.transaction import is_unique_violation, write_transaction
from qrdine_api.services.events import OrderNotifier
from shared.config.constants import OrderStatus, PaymentStatus
from shared.infrastructure.events.event_types import ORDER_STATUS_UPDATE
from shared.utils.exceptions import ConcurrencyError


def _bump_version(db_session, order_id: int) -> None:
    """Simulate another request committing a change to the same order."""
    db_session.execute(
        update(Order)
        .where(Order.id == order_id)
        .values(version=Order.version + 1)
        .execution_options(synchronize_session=False)
    )


class TestWriteTransaction:
    def test_commits_block(self, db_session, seeded, place_order):
        order = place_order()
        with write_transaction(db_session, OrderNotifier(), entity_id=order.id):
            order.guest_name = "Ana"

        db_session.expire_all()
        assert db_session.get(Order, order.id).guest_name == "Ana"

    def test_stale_version_is_conflict(self, db_session, seeded, place_order):
        order = place_order()
        stored = db_session.get(Order, order.id)
        assert stored.guest_name == "Guest"
        _bump_version(db_session, order.id)

        notifier = OrderNotifier()
        with pytest.raises(ConcurrencyError) as exc_info:
            with write_transaction(db_session, notifier, entity_id=order.id):
                stored.guest_name = "Changed"
                notifier.notify_order(stored, ORDER_STATUS_UPDATE, waiters=True)

        assert exc_info.value.status_code == 409
        assert "please retry" in exc_info.value.detail
        assert notifier.pending == []
        db_session.expire_all()
        assert db_session.get(Order, order.id).guest_name == "Guest"

    def test_second_open_order_on_table_is_conflict(self, db_session, seeded, place_order):
        place_order()

        with pytest.raises(ConcurrencyError) as exc_info:
            with write_transaction(db_session, OrderNotifier()):
                db_session.add(Order(
                    order_number="ORD99999",
                    restaurant_id=1,
                    table_id=1,
                    status=OrderStatus.PENDING,
                    payment_status=PaymentStatus.PENDING,
                    subtotal_cents=0,
                    tax_cents=0,
                    discount_cents=0,
                    total_cents=0,
                ))

        assert exc_info.value.status_code == 409
        assert db_session.query(Order).count() == 1

    def test_check_constraint_is_not_a_conflict(self, db_session, seeded, place_order):
        order = place_order()

        with pytest.raises(IntegrityError) as exc_info:
            with write_transaction(db_session, OrderNotifier(), entity_id=order.id):
                order.total_cents = order.subtotal_cents + 1

        assert not isinstance(exc_info.value, ConcurrencyError)
        assert not is_unique_violation(exc_info.value)

    def test_other_errors_roll_back(self, db_session, seeded, place_order):
        order = place_order()
        notifier = OrderNotifier()

        with pytest.raises(RuntimeError):
            with write_transaction(db_session, notifier, entity_id=order.id):
                order.guest_name = "Lost"
                notifier.notify_order(order, ORDER_STATUS_UPDATE, waiters=True)
                raise RuntimeError("boom")

        assert notifier.pending == []
        assert db_session.get(Order, order.id).guest_name == "Guest"


class _Orig(Exception):
    def __init__(self, **attrs):
        super().__init__("constraint failed")
        self.__dict__.update(attrs)


class TestIsUniqueViolation:
    @pytest.mark.parametrize("attrs, expected", [
        ({"sqlstate": "23505"}, True),
        ({"sqlstate": "23514"}, False),
        ({"pgcode": "23505"}, True),
        ({"sqlite_errorname": "SQLITE_CONSTRAINT_UNIQUE"}, True),
        ({"sqlite_errorname": "SQLITE_CONSTRAINT_CHECK"}, False),
        ({}, False),
    ])
    def test_classification(self, attrs, expected):
        error = IntegrityError("INSERT ...", {}, _Orig(**attrs))
        assert is_unique_violation(error) is expected
