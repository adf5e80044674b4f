"""
Centralized constants for the backend application.
Avoids magic strings for roles and the order/payment/table state machines.

Usage:
    from shared.config.constants import Roles, OrderStatus, PaymentStatus

    if order.status == OrderStatus.PENDING:
        ...
"""

from typing import Final


# =============================================================================
# User Roles
# =============================================================================


class Roles:
    """Staff role constants (carried in the JWT "roles" claim)."""

    ADMIN: Final[str] = "ADMIN"
    WAITER: Final[str] = "WAITER"
    KITCHEN: Final[str] = "KITCHEN"

    ALL: Final[list[str]] = [ADMIN, WAITER, KITCHEN]


FLOOR_ROLES: Final[list[str]] = [Roles.ADMIN, Roles.WAITER]
ALL_STAFF_ROLES: Final[list[str]] = [Roles.ADMIN, Roles.WAITER, Roles.KITCHEN]


# =============================================================================
# Order state machines
# =============================================================================


class OrderStatus:
    """Order-level lifecycle status."""

    PENDING: Final[str] = "pending"
    ACCEPTED: Final[str] = "accepted"
    REJECTED: Final[str] = "rejected"
    PREPARING: Final[str] = "preparing"
    READY: Final[str] = "ready"
    SERVED: Final[str] = "served"
    COMPLETED: Final[str] = "completed"
    CANCELLED: Final[str] = "cancelled"

    ALL: Final[list[str]] = [
        PENDING, ACCEPTED, REJECTED, PREPARING, READY, SERVED, COMPLETED, CANCELLED,
    ]
    # An unpaid order in one of these states receives new items for its table
    MERGEABLE: Final[list[str]] = [PENDING, ACCEPTED, PREPARING, READY, SERVED]
    TERMINAL: Final[list[str]] = [REJECTED, COMPLETED, CANCELLED]
    # Targets accepted by the status endpoint
    UPDATABLE: Final[list[str]] = [ACCEPTED, PREPARING, READY, SERVED, COMPLETED, CANCELLED]


class ItemStatus:
    """Per-item kitchen status, independent from the order status."""

    PENDING: Final[str] = "pending"
    PREPARING: Final[str] = "preparing"
    READY: Final[str] = "ready"
    SERVED: Final[str] = "served"
    REJECTED: Final[str] = "rejected"

    ALL: Final[list[str]] = [PENDING, PREPARING, READY, SERVED, REJECTED]
    WORKING: Final[list[str]] = [PREPARING, READY, SERVED]
    # Items still moving forward in the kitchen
    IN_PROGRESS: Final[list[str]] = [PENDING, PREPARING, READY]


class PaymentStatus:
    """Order payment status."""

    PENDING: Final[str] = "pending"
    PENDING_CASH: Final[str] = "pending_cash"
    PAID: Final[str] = "paid"
    FAILED: Final[str] = "failed"
    REFUNDED: Final[str] = "refunded"

    ALL: Final[list[str]] = [PENDING, PENDING_CASH, PAID, FAILED, REFUNDED]
    # Still owed: the order keeps its table until it leaves these states
    UNSETTLED: Final[list[str]] = [PENDING, PENDING_CASH, FAILED]


class PaymentMethod:
    """How an order is settled."""

    CASH: Final[str] = "cash"
    CARD: Final[str] = "card"

    ALL: Final[list[str]] = [CASH, CARD]


class TableStatus:
    """Table occupancy status. ACTIVE is the "available" state."""

    ACTIVE: Final[str] = "active"
    INACTIVE: Final[str] = "inactive"
    OCCUPIED: Final[str] = "occupied"
    RESERVED: Final[str] = "reserved"

    ALL: Final[list[str]] = [ACTIVE, INACTIVE, OCCUPIED, RESERVED]


class MenuItemStatus:
    """Catalog availability."""

    AVAILABLE: Final[str] = "available"
    UNAVAILABLE: Final[str] = "unavailable"
    SOLD_OUT: Final[str] = "sold_out"

    ALL: Final[list[str]] = [AVAILABLE, UNAVAILABLE, SOLD_OUT]


# =============================================================================
# Limits
# =============================================================================


class Limits:
    """Pagination and input limits."""

    DEFAULT_PAGE_SIZE: Final[int] = 20
    MAX_PAGE_SIZE: Final[int] = 100
    MAX_ITEM_QUANTITY: Final[int] = 99
    MAX_ITEMS_PER_ORDER: Final[int] = 50
    MAX_INSTRUCTIONS_LENGTH: Final[int] = 500
    MAX_REASON_LENGTH: Final[int] = 500
