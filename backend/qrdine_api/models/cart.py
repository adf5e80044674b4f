"""
Cart Models: Cart, CartItem.

The cart is the customer's staging area before an order is placed. It is
keyed by the anonymous browser session or by a logged-in customer, and
expires two hours after its last change.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import JSON, BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BigIntPK, TimestampMixin, as_utc

if TYPE_CHECKING:
    from .catalog import MenuItem


class Cart(TimestampMixin, Base):
    """A customer's cart for one table."""

    __tablename__ = "cart"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant.id"), nullable=False, index=True
    )
    table_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("restaurant_table.id"), nullable=True, index=True
    )
    session_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, unique=True)
    customer_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    items: Mapped[list["CartItem"]] = relationship(
        back_populates="cart",
        order_by="CartItem.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "session_id IS NOT NULL OR customer_id IS NOT NULL",
            name="ck_cart_owner",
        ),
    )

    @property
    def subtotal_cents(self) -> int:
        return sum(item.subtotal_cents for item in self.items)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def is_expired(self, now: datetime) -> bool:
        return as_utc(self.expires_at) <= now

    def __repr__(self) -> str:
        return f"<Cart(id={self.id}, session_id={self.session_id}, table_id={self.table_id}, items={len(self.items)})>"


class CartItem(Base):
    """
    A line in a cart, priced the same way an order line is.

    subtotal_cents = (price_cents + sum of option adjustments) * quantity
    """

    __tablename__ = "cart_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    cart_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("cart.id", ondelete="CASCADE"), nullable=False, index=True
    )
    menu_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("menu_item.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    modifiers: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text)
    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    cart: Mapped["Cart"] = relationship(back_populates="items")
    menu_item: Mapped["MenuItem"] = relationship()

    __table_args__ = (
        Index("ix_cart_item_cart_menu_item", "cart_id", "menu_item_id"),
        CheckConstraint("quantity > 0 AND quantity <= 99", name="ck_cart_item_quantity"),
    )

    def __repr__(self) -> str:
        return f"<CartItem(id={self.id}, cart_id={self.cart_id}, menu_item_id={self.menu_item_id}, qty={self.quantity})>"
