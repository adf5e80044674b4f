"""
Cart Repository - Cart lookup by owner and by table.
"""

from datetime import datetime
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from qrdine_api.models import Cart
from .base import BaseRepository


class CartRepository(BaseRepository[Cart]):
    """Repository for Cart aggregates (items loaded eagerly)."""

    @property
    def model(self) -> type[Cart]:
        return Cart

    def find_by_session(self, session_id: str) -> Cart | None:
        return self._db.scalar(
            select(Cart)
            .where(Cart.session_id == session_id)
            .options(selectinload(Cart.items))
        )

    def find_by_customer(self, customer_id: int) -> Cart | None:
        return self._db.scalar(
            select(Cart)
            .where(Cart.customer_id == customer_id)
            .options(selectinload(Cart.items))
            .order_by(Cart.id.desc())
            .limit(1)
        )

    def delete_by_table(self, table_id: int) -> int:
        """
        Delete every cart bound to a table.

        Goes through the ORM so items cascade on databases without
        ON DELETE CASCADE enforcement. Returns the number of carts removed.
        """
        carts = self._db.execute(
            select(Cart).where(Cart.table_id == table_id)
        ).scalars().all()
        for cart in carts:
            self._db.delete(cart)
        self._db.flush()
        return len(carts)

    def delete_expired(self, now: datetime) -> int:
        """Purge expired carts. Returns the number of carts removed."""
        carts = self._db.execute(
            select(Cart).where(Cart.expires_at <= now)
        ).scalars().all()
        for cart in carts:
            self._db.delete(cart)
        self._db.flush()
        return len(carts)

