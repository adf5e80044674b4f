"""
Order Repository - Data access for orders and order numbers.
"""

from dataclasses import dataclass
from typing import Sequence
from sqlalchemy.orm import selectinload
from sqlalchemy import Select, select

from qrdine_api.models import Order, OrderSequence
from shared.config.constants import OrderStatus, PaymentStatus
from shared.config.settings import settings
from .base import FilteredRepository, RepositoryFilters

ORDER_SEQUENCE_NAME = "order_number"


@dataclass
class OrderFilters(RepositoryFilters):
    """Filters specific to orders."""

    table_id: int | None = None
    status: str | None = None
    statuses: list[str] | None = None
    payment_status: str | None = None


class OrderRepository(FilteredRepository[Order]):
    """
    Repository for Order aggregates.

    Items are always loaded with the order (selectinload) because every
    engine operation reads or recomputes them.
    """

    @property
    def model(self) -> type[Order]:
        return Order

    def _base_query(self, restaurant_id: int) -> Select:
        return (
            select(Order)
            .where(Order.restaurant_id == restaurant_id)
            .options(selectinload(Order.items))
            .order_by(Order.created_at.desc(), Order.id.desc())
        )

    def _apply_filters(self, query: Select, filters: RepositoryFilters) -> Select:
        if not isinstance(filters, OrderFilters):
            filters = OrderFilters(limit=filters.limit, offset=filters.offset)

        if filters.table_id:
            query = query.where(Order.table_id == filters.table_id)

        if filters.status:
            query = query.where(Order.status == filters.status)
        elif filters.statuses:
            query = query.where(Order.status.in_(filters.statuses))

        if filters.payment_status:
            query = query.where(Order.payment_status == filters.payment_status)

        return query

    def get(self, order_id: int, lock: bool = False) -> Order | None:
        """Load an order with its items, optionally locking the order row."""
        query = select(Order).where(Order.id == order_id).options(selectinload(Order.items))
        if lock:
            # Refresh an instance already in the session with the locked row
            query = query.with_for_update(of=Order).execution_options(populate_existing=True)
        return self._db.scalar(query)

    def find_mergeable(self, table_id: int) -> Order | None:
        """The open, unpaid order of a table, if any."""
        query = (
            select(Order)
            .where(
                Order.table_id == table_id,
                Order.payment_status == PaymentStatus.PENDING,
                Order.status.in_(OrderStatus.MERGEABLE),
            )
            .options(selectinload(Order.items))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(1)
        )
        return self._db.scalar(query)

    def find_by_payment_intent(self, payment_intent_id: str) -> Order | None:
        query = (
            select(Order)
            .where(Order.payment_intent_id == payment_intent_id)
            .options(selectinload(Order.items))
        )
        return self._db.scalar(query)

    def find_unsettled(self, table_id: int, exclude_order_id: int | None = None) -> Sequence[Order]:
        """
        Open orders of a table that are still owed, newest first.

        Wider than find_mergeable: an order waiting for cash or after a
        declined card no longer takes new items but still holds the table.
        """
        query = (
            select(Order)
            .where(
                Order.table_id == table_id,
                Order.payment_status.in_(PaymentStatus.UNSETTLED),
                Order.status.in_(OrderStatus.MERGEABLE),
            )
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        if exclude_order_id is not None:
            query = query.where(Order.id != exclude_order_id)
        return self._db.execute(query).scalars().all()

    def next_order_number(self) -> str:
        """
        Allocate the next order number from the locked counter row.

        The counter row is created on first use; the lock is held until the
        surrounding transaction commits.
        """
        sequence = self._db.scalar(
            select(OrderSequence)
            .where(OrderSequence.name == ORDER_SEQUENCE_NAME)
            .with_for_update()
        )
        if sequence is None:
            sequence = OrderSequence(name=ORDER_SEQUENCE_NAME, last_value=0)
            self._db.add(sequence)

        sequence.last_value += 1
        self._db.flush()
        return f"{settings.order_number_prefix}{sequence.last_value:0{settings.order_number_width}d}"

