"""
HTTP routers of the order API.
"""

from .cart import router as cart_router
from .health import router as health_router
from .orders import router as orders_router
from .payments import router as payments_router

__all__ = [
    "cart_router",
    "health_router",
    "orders_router",
    "payments_router",
]
