"""
Repository Pattern implementation.
Centralizes data access with guaranteed eager loading.

Usage:
    from qrdine_api.repositories import OrderRepository, OrderFilters

    repo = OrderRepository(db)
    orders = repo.find_all(restaurant_id=1, filters=OrderFilters(status="pending"))
"""

from .base import BaseRepository, FilteredRepository, RepositoryFilters
from .order import OrderRepository, OrderFilters
from .table import TableRepository
from .menu import MenuRepository
from .cart import CartRepository

__all__ = [
    # Base
    "BaseRepository",
    "FilteredRepository",
    "RepositoryFilters",
    # Order
    "OrderRepository",
    "OrderFilters",
    # Table
    "TableRepository",
    # Menu
    "MenuRepository",
    # Cart
    "CartRepository",
]
