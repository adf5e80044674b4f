"""
Restaurant Model.

Owned by the restaurant admin service; the order engine only reads it
for currency and notification routing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BigIntPK, TimestampMixin

if TYPE_CHECKING:
    from .table import Table
    from .catalog import MenuItem


class Restaurant(TimestampMixin, Base):
    """A restaurant using QR dine-in ordering."""

    __tablename__ = "restaurant"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    # ISO 4217, lower case as expected by the card provider
    currency: Mapped[str] = mapped_column(Text, nullable=False, default="usd")

    tables: Mapped[list["Table"]] = relationship(back_populates="restaurant")
    menu_items: Mapped[list["MenuItem"]] = relationship(back_populates="restaurant")

    def __repr__(self) -> str:
        return f"<Restaurant(id={self.id}, name='{self.name}')>"
