"""
Order Models: Order, OrderItem, OrderSequence.

One Order is the running tab of a table visit: later submissions from the
same table are merged into it while it is unpaid and still open.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import ItemStatus, OrderStatus, PaymentStatus
from .base import Base, BigIntPK, TimestampMixin

if TYPE_CHECKING:
    from .table import Table

# At most one open, unpaid order per table
_MERGEABLE_PREDICATE = text(
    "payment_status = 'pending' AND status IN ("
    + ", ".join(f"'{s}'" for s in OrderStatus.MERGEABLE)
    + ")"
)


class Order(TimestampMixin, Base):
    """
    A dine-in order (the table's tab).

    Invariants kept by the order engine:
    - total_cents == subtotal_cents + tax_cents - discount_cents
    - subtotal_cents == sum of subtotal_cents of the non-rejected items

    `version` is the optimistic revision counter: an UPDATE issued from a
    stale copy matches no row and raises StaleDataError.
    """

    __tablename__ = "order"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant.id"), nullable=False, index=True
    )
    table_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant_table.id"), nullable=False, index=True
    )
    customer_id: Mapped[Optional[int]] = mapped_column(BigInteger, index=True)
    guest_name: Mapped[str] = mapped_column(Text, nullable=False, default="Guest")
    order_notes: Mapped[Optional[str]] = mapped_column(Text)

    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=OrderStatus.PENDING, index=True
    )
    payment_status: Mapped[str] = mapped_column(
        Text, nullable=False, default=PaymentStatus.PENDING, index=True
    )
    payment_method: Mapped[Optional[str]] = mapped_column(Text)  # cash, card
    payment_intent_id: Mapped[Optional[str]] = mapped_column(Text, unique=True)

    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    amount_received_cents: Mapped[Optional[int]] = mapped_column(Integer)
    tip_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    waiter_id: Mapped[Optional[int]] = mapped_column(BigInteger, index=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)

    # Lifecycle timestamps, each written the first time its transition fires
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    preparing_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    ready_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    served_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    table: Mapped["Table"] = relationship(back_populates="orders")
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "uq_order_table_mergeable",
            "table_id",
            unique=True,
            postgresql_where=_MERGEABLE_PREDICATE,
            sqlite_where=_MERGEABLE_PREDICATE,
        ),
        Index("ix_order_restaurant_status", "restaurant_id", "status"),
        Index("ix_order_restaurant_created", "restaurant_id", "created_at"),
        CheckConstraint("subtotal_cents >= 0", name="ck_order_subtotal_non_negative"),
        CheckConstraint(
            "total_cents = subtotal_cents + tax_cents - discount_cents",
            name="ck_order_total",
        ),
    )

    @property
    def active_items(self) -> list["OrderItem"]:
        return [item for item in self.items if item.status != ItemStatus.REJECTED]

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, order_number='{self.order_number}', status='{self.status}', "
            f"payment_status='{self.payment_status}', total_cents={self.total_cents})>"
        )


class OrderItem(Base):
    """
    A line of an order with snapshot pricing.

    name, price_cents and the option adjustments inside `modifiers` are copied
    from the catalog when the line is submitted and never change afterwards.
    Rejected lines stay on the order and are excluded from totals.
    """

    __tablename__ = "order_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("order.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    menu_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("menu_item.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    # [{"name": "Size", "options": [{"name": "Large", "price_adjustment_cents": 200}]}]
    modifiers: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text)
    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=ItemStatus.PENDING)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    order: Mapped["Order"] = relationship(back_populates="items")

    __table_args__ = (
        Index("ix_order_item_order_position", "order_id", "position"),
        CheckConstraint("quantity >= 1", name="ck_order_item_quantity"),
    )

    def __repr__(self) -> str:
        return f"<OrderItem(id={self.id}, order_id={self.order_id}, name='{self.name}', qty={self.quantity}, status='{self.status}')>"


class OrderSequence(Base):
    """
    Counter row backing order numbers.

    Read with SELECT ... FOR UPDATE so concurrent creations get distinct
    numbers (ORD00001, ORD00002, ...).
    """

    __tablename__ = "order_sequence"

    name: Mapped[str] = mapped_column(Text, primary_key=True)
    last_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<OrderSequence(name='{self.name}', last_value={self.last_value})>"
