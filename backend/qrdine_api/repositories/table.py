"""
Table Repository - Table lookup and occupancy.
"""

from sqlalchemy import select

from qrdine_api.models import Order, Table
from shared.config.constants import TableStatus
from .base import BaseRepository


class TableRepository(BaseRepository[Table]):
    """Repository for Table entities."""

    @property
    def model(self) -> type[Table]:
        return Table

    def find(self, table_id: int, lock: bool = False) -> Table | None:
        """
        Load a table.

        With lock=True the row is held (SELECT ... FOR UPDATE) until commit,
        which serializes order creation and merging per table.
        """
        query = select(Table).where(Table.id == table_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self._db.scalar(query)

    def set_status(self, table: Table, status: str, order: Order | None = None) -> Table:
        """Set occupancy; the current order is set for occupied and cleared otherwise."""
        table.status = status
        table.current_order_id = order.id if order is not None and status == TableStatus.OCCUPIED else None
        self._db.flush()
        return table
