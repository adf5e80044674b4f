"""
Event Type Constants.

Event names published on Redis for the order lifecycle and payments.
Flow: order:new → order:accepted → order:statusUpdate ... → payment:*
"""

from shared.config.settings import settings

# =============================================================================
# Order lifecycle
# =============================================================================

ORDER_NEW = "order:new"                    # Order created or items merged into the table's tab
ORDER_ACCEPTED = "order:accepted"          # Waiter accepted, kitchen may start
ORDER_REJECTED = "order:rejected"          # Whole order rejected
ORDER_ITEMS_REJECTED = "order:itemsRejected"  # Only the pending items were rejected
ORDER_STATUS_UPDATE = "order:statusUpdate"

# =============================================================================
# Payments
# =============================================================================

PAYMENT_CASH_REQUESTED = "payment:cashRequested"
PAYMENT_CONFIRMED = "payment:confirmed"    # Sent to the table
PAYMENT_COMPLETED = "payment:completed"    # Sent to staff
PAYMENT_FAILED = "payment:failed"
PAYMENT_REFUNDED = "payment:refunded"

ALL_EVENT_TYPES = frozenset({
    ORDER_NEW,
    ORDER_ACCEPTED,
    ORDER_REJECTED,
    ORDER_ITEMS_REJECTED,
    ORDER_STATUS_UPDATE,
    PAYMENT_CASH_REQUESTED,
    PAYMENT_CONFIRMED,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    PAYMENT_REFUNDED,
})

# =============================================================================
# Size limits
# =============================================================================

MAX_EVENT_SIZE = settings.max_event_size
