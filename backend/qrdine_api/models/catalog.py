"""
Catalog Model: MenuItem.

The menu is managed elsewhere; the order engine reads price, availability
and modifier options, and bumps the popularity counter on completed orders.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, BigInteger, CheckConstraint, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import MenuItemStatus
from .base import Base, BigIntPK, TimestampMixin

if TYPE_CHECKING:
    from .restaurant import Restaurant


class MenuItem(TimestampMixin, Base):
    """
    A dish or drink on the menu.

    modifiers holds the option groups offered for the item:
        [{"name": "Size", "options": [{"name": "Large", "price_adjustment_cents": 200}]}]
    """

    __tablename__ = "menu_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=MenuItemStatus.AVAILABLE
    )  # available, unavailable, sold_out
    modifiers: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    # Popularity: total units sold in completed orders
    total_orders: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    restaurant: Mapped["Restaurant"] = relationship(back_populates="menu_items")

    __table_args__ = (
        Index("ix_menu_item_restaurant_status", "restaurant_id", "status"),
        CheckConstraint("price_cents >= 0", name="ck_menu_item_price_non_negative"),
    )

    @property
    def is_orderable(self) -> bool:
        return self.status == MenuItemStatus.AVAILABLE

    def find_option(self, group_name: str, option_name: str) -> dict[str, Any] | None:
        """Return the catalog option dict for a modifier group/option pair."""
        for group in self.modifiers or []:
            if group.get("name") != group_name:
                continue
            for option in group.get("options", []):
                if option.get("name") == option_name:
                    return option
        return None

    def __repr__(self) -> str:
        return f"<MenuItem(id={self.id}, name='{self.name}', price_cents={self.price_cents}, status='{self.status}')>"
