"""
Services module for business logic.

- domain/: Application services (order engine, cart, payments) - USE THESE
- payments/: Card provider client and its circuit breaker
- events/: Order notifications published after commit

Usage:
    from qrdine_api.services.domain import OrderService
    service = OrderService(db)
    result = service.create_order(body)
"""
