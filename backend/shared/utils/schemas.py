"""
Shared Pydantic schemas used across the application.

All money fields are integer cents.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from shared.config.constants import Limits


# =============================================================================
# Common Types
# =============================================================================

OrderStatusLiteral = Literal[
    "pending", "accepted", "rejected", "preparing", "ready", "served", "completed", "cancelled"
]
ItemStatusLiteral = Literal["pending", "preparing", "ready", "served", "rejected"]
PaymentStatusLiteral = Literal["pending", "pending_cash", "paid", "failed", "refunded"]
PaymentMethodLiteral = Literal["cash", "card"]
UpdatableOrderStatus = Literal["accepted", "preparing", "ready", "served", "completed", "cancelled"]
RefundReason = Literal["duplicate", "fraudulent", "requested_by_customer"]


class ErrorResponse(BaseModel):
    """Standard error body."""

    detail: str


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    environment: str
    database: str
    redis: str
    circuit_breakers: dict[str, dict[str, Any]] = Field(default_factory=dict)


# =============================================================================
# Line item inputs (orders and cart)
# =============================================================================


class ModifierSelection(BaseModel):
    """
    Options chosen in one modifier group, by name.

    Prices are looked up in the catalog; the client never sends amounts.
    """

    name: str = Field(min_length=1, max_length=100)
    options: list[str] = Field(min_length=1, max_length=20)


class OrderItemInput(BaseModel):
    """A line submitted by the customer."""

    menu_item_id: int = Field(gt=0)
    quantity: int = Field(ge=1, le=Limits.MAX_ITEM_QUANTITY)
    modifiers: list[ModifierSelection] = Field(default_factory=list, max_length=20)
    special_instructions: str | None = Field(default=None, max_length=Limits.MAX_INSTRUCTIONS_LENGTH)


# =============================================================================
# Order Schemas
# =============================================================================


class CreateOrderRequest(BaseModel):
    """Order submission from the table's QR menu."""

    restaurant_id: int = Field(gt=0)
    table_id: int = Field(gt=0)
    customer_id: int | None = Field(default=None, gt=0)
    guest_name: str | None = Field(default=None, max_length=100)
    order_notes: str | None = Field(default=None, max_length=Limits.MAX_INSTRUCTIONS_LENGTH)
    # Emptiness is checked by the order engine (400) so that direct service callers get the same error
    items: list[OrderItemInput] = Field(max_length=Limits.MAX_ITEMS_PER_ORDER)


class ModifierOptionOutput(BaseModel):
    name: str
    price_adjustment_cents: int


class ModifierOutput(BaseModel):
    name: str
    options: list[ModifierOptionOutput]


class OrderItemOutput(BaseModel):
    """A line of an order as stored (snapshot prices)."""

    id: int
    position: int
    menu_item_id: int
    name: str
    price_cents: int
    quantity: int
    modifiers: list[ModifierOutput]
    special_instructions: str | None = None
    subtotal_cents: int
    status: ItemStatusLiteral
    rejection_reason: str | None = None
    rejected_at: datetime | None = None

    class Config:
        from_attributes = True


class OrderOutput(BaseModel):
    """Full order with its items."""

    id: int
    order_number: str
    restaurant_id: int
    table_id: int
    customer_id: int | None = None
    guest_name: str
    order_notes: str | None = None
    status: OrderStatusLiteral
    payment_status: PaymentStatusLiteral
    payment_method: PaymentMethodLiteral | None = None
    subtotal_cents: int
    tax_cents: int
    discount_cents: int
    total_cents: int
    amount_received_cents: int | None = None
    tip_cents: int
    waiter_id: int | None = None
    rejection_reason: str | None = None
    created_at: datetime
    accepted_at: datetime | None = None
    preparing_at: datetime | None = None
    ready_at: datetime | None = None
    served_at: datetime | None = None
    completed_at: datetime | None = None
    rejected_at: datetime | None = None
    paid_at: datetime | None = None
    version: int
    items: list[OrderItemOutput]

    class Config:
        from_attributes = True


class CreateOrderResponse(BaseModel):
    """Result of create_order; merged=True when items joined the table's open order."""

    order: OrderOutput
    merged: bool


class OrderListResponse(BaseModel):
    items: list[OrderOutput]
    total: int
    limit: int
    offset: int


class RejectOrderRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=Limits.MAX_REASON_LENGTH)


class RejectOrderResponse(BaseModel):
    """partial=True when only the pending items were rejected."""

    order: OrderOutput
    partial: bool
    rejected_items: list[OrderItemOutput]


class UpdateOrderStatusRequest(BaseModel):
    status: UpdatableOrderStatus


# =============================================================================
# Payment Schemas
# =============================================================================


class ConfirmCashPaymentRequest(BaseModel):
    """Waiter confirmation of a cash payment. Amount received defaults to the total."""

    amount_received_cents: int | None = Field(default=None, ge=0)
    tip_cents: int | None = Field(default=None, ge=0)


class CreatePaymentIntentRequest(BaseModel):
    order_id: int = Field(gt=0)


class PaymentIntentResponse(BaseModel):
    client_secret: str
    payment_intent_id: str
    amount_cents: int
    currency: str


class ConfirmCardPaymentRequest(BaseModel):
    payment_intent_id: str = Field(min_length=1, max_length=255)


class ConfirmCardPaymentResponse(BaseModel):
    """status is "succeeded" or "processing"; failures are returned as errors."""

    status: Literal["succeeded", "processing"]
    order: OrderOutput


class PaymentStatusResponse(BaseModel):
    order_id: int
    order_number: str
    status: OrderStatusLiteral
    payment_status: PaymentStatusLiteral
    payment_method: PaymentMethodLiteral | None = None
    total_cents: int
    tip_cents: int
    paid_at: datetime | None = None
    payment_intent_id: str | None = None
    # Status of the PaymentIntent at the provider, when it could be read
    provider_status: str | None = None


class RefundRequest(BaseModel):
    order_id: int = Field(gt=0)
    # None refunds the full amount
    amount_cents: int | None = Field(default=None, gt=0)
    reason: RefundReason | None = None


class RefundResponse(BaseModel):
    refund_id: str
    order_id: int
    amount_cents: int
    status: str
    payment_status: PaymentStatusLiteral


class WebhookResponse(BaseModel):
    received: bool = True
    handled: bool


# =============================================================================
# Cart Schemas
# =============================================================================


class AddCartItemRequest(OrderItemInput):
    """Add a line to the session's cart, creating the cart if needed."""

    restaurant_id: int = Field(gt=0)
    table_id: int | None = Field(default=None, gt=0)
    customer_id: int | None = Field(default=None, gt=0)


class UpdateCartItemRequest(BaseModel):
    quantity: int | None = Field(default=None, ge=1, le=Limits.MAX_ITEM_QUANTITY)
    special_instructions: str | None = Field(default=None, max_length=Limits.MAX_INSTRUCTIONS_LENGTH)


class CartItemOutput(BaseModel):
    id: int
    menu_item_id: int
    name: str
    price_cents: int
    quantity: int
    modifiers: list[ModifierOutput]
    special_instructions: str | None = None
    subtotal_cents: int

    class Config:
        from_attributes = True


class CartOutput(BaseModel):
    """An absent or expired cart is returned empty with id=None."""

    id: int | None = None
    restaurant_id: int | None = None
    table_id: int | None = None
    session_id: str | None = None
    customer_id: int | None = None
    items: list[CartItemOutput] = Field(default_factory=list)
    subtotal_cents: int = 0
    item_count: int = 0
    expires_at: datetime | None = None

    class Config:
        from_attributes = True


class CartSummaryOutput(BaseModel):
    item_count: int = 0
    subtotal_cents: int = 0

    class Config:
        from_attributes = True


class MergeCartRequest(BaseModel):
    """Move a guest session cart onto the customer who just signed in."""

    session_id: str = Field(min_length=1)
    customer_id: int = Field(gt=0)
