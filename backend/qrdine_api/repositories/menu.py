"""
Menu Repository - Read-only catalog access plus the popularity counter.
"""

from sqlalchemy import select, update

from qrdine_api.models import MenuItem
from shared.config.constants import MenuItemStatus
from .base import BaseRepository


class MenuRepository(BaseRepository[MenuItem]):
    """Repository for MenuItem entities."""

    @property
    def model(self) -> type[MenuItem]:
        return MenuItem

    def find_orderable(self, menu_item_id: int, restaurant_id: int) -> MenuItem | None:
        """A menu item of the restaurant that can currently be ordered."""
        return self._db.scalar(
            select(MenuItem).where(
                MenuItem.id == menu_item_id,
                MenuItem.restaurant_id == restaurant_id,
                MenuItem.status == MenuItemStatus.AVAILABLE,
            )
        )

    def increment_total_orders(self, quantities: dict[int, int]) -> None:
        """Add sold quantities to the popularity counters (atomic UPDATE per item)."""
        for menu_item_id, quantity in quantities.items():
            self._db.execute(
                update(MenuItem)
                .where(MenuItem.id == menu_item_id)
                .values(total_orders=MenuItem.total_orders + quantity)
            )
        self._db.flush()
