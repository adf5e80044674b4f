"""
SQLAlchemy ORM Models Package.

- base: Base class and TimestampMixin
- restaurant: Restaurant
- catalog: MenuItem
- table: Table
- cart: Cart, CartItem
- order: Order, OrderItem, OrderSequence
"""

from .base import Base, TimestampMixin
from .restaurant import Restaurant
from .catalog import MenuItem
from .table import Table
from .cart import Cart, CartItem
from .order import Order, OrderItem, OrderSequence

__all__ = [
    "Base",
    "TimestampMixin",
    "Restaurant",
    "MenuItem",
    "Table",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "OrderSequence",
]
