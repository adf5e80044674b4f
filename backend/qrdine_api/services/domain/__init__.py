"""
Domain Services - application layer of the order engine.

Structure:
    Router (thin controller)
        ↓
    Service (business logic)  ← YOU ARE HERE
        ↓
    Repository (data access)
        ↓
    Model (entity)

Usage:
    from qrdine_api.services.domain import OrderService

    # In router
    service = OrderService(db)
    result = service.create_order(body)
    service.notifier.schedule(background_tasks)
"""

from .order_service import OrderService, CreateOrderResult, RejectOrderResult
from .cart_service import CartService, CartSummary
from .payment_service import (
    PaymentService,
    PaymentIntentResult,
    CardConfirmation,
    RefundResult,
)

__all__ = [
    "OrderService",
    "CreateOrderResult",
    "RejectOrderResult",
    "CartService",
    "CartSummary",
    "PaymentService",
    "PaymentIntentResult",
    "CardConfirmation",
    "RefundResult",
]
