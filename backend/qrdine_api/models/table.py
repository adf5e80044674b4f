"""
Table Model.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import TableStatus
from .base import Base, BigIntPK, TimestampMixin

if TYPE_CHECKING:
    from .restaurant import Restaurant
    from .order import Order


class Table(TimestampMixin, Base):
    """
    Physical table in a restaurant, reached through its QR code.

    The order engine owns `status` and `current_order_id`: a table becomes
    occupied when its first order opens and active again once that order
    is settled.
    """

    # "table" is a reserved SQL keyword
    __tablename__ = "restaurant_table"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant.id"), nullable=False, index=True
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=4)
    location: Mapped[Optional[str]] = mapped_column(Text)  # "Terrace", "Main hall"
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=TableStatus.ACTIVE, index=True
    )  # active, inactive, occupied, reserved
    # No FK: the order table references this one and a cycle complicates create_all/drop_all
    current_order_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    restaurant: Mapped["Restaurant"] = relationship(back_populates="tables")
    orders: Mapped[list["Order"]] = relationship(back_populates="table")

    __table_args__ = (
        UniqueConstraint("restaurant_id", "number", name="uq_table_restaurant_number"),
        Index("ix_table_restaurant_status", "restaurant_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Table(id={self.id}, number={self.number}, status='{self.status}', current_order_id={self.current_order_id})>"
