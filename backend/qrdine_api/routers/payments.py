"""
Payments router.

Card payments through Stripe PaymentIntents: the customer's browser
confirms the card with the client secret, then calls /confirm; Stripe also
reports the outcome through the webhook. Refunds are ADMIN only.
"""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from sqlalchemy.orm import Session

from shared.config.constants import Roles
from shared.config.logging import payments_logger as logger
from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.security.auth import current_user_context, require_restaurant, require_roles
from shared.security.rate_limit import limiter
from shared.utils.exceptions import PaymentProviderError
from shared.utils.schemas import (
    ConfirmCardPaymentRequest,
    ConfirmCardPaymentResponse,
    CreatePaymentIntentRequest,
    OrderOutput,
    PaymentIntentResponse,
    PaymentStatusResponse,
    RefundRequest,
    RefundResponse,
    WebhookResponse,
)
from qrdine_api.services.domain import OrderService, PaymentService
from qrdine_api.services.events import dispatch_notifications
from qrdine_api.services.payments import StripeGateway
from ._common import unexpected_errors


router = APIRouter(prefix="/api/payments", tags=["payments"])


def get_payment_gateway() -> StripeGateway:
    """Provider client dependency (overridden in tests)."""
    return StripeGateway()


@router.post("/create-intent", response_model=PaymentIntentResponse)
@limiter.limit(settings.payment_rate_limit)
async def create_payment_intent(
    request: Request,
    body: CreatePaymentIntentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
) -> PaymentIntentResponse:
    """Open a PaymentIntent for the order total and return its client secret."""
    service = PaymentService(db, gateway=gateway)
    try:
        with unexpected_errors("create payment intent", order_id=body.order_id):
            result = await service.create_card_payment_intent(body.order_id)
    except PaymentProviderError:
        # Error responses skip background tasks; announce the failed attempt now
        await dispatch_notifications(service.notifier.pending)
        raise

    service.notifier.schedule(background_tasks)

    return PaymentIntentResponse(
        client_secret=result.client_secret,
        payment_intent_id=result.payment_intent_id,
        amount_cents=result.amount_cents,
        currency=result.currency,
    )


@router.post("/confirm", response_model=ConfirmCardPaymentResponse)
@limiter.limit(settings.payment_rate_limit)
async def confirm_payment(
    request: Request,
    body: ConfirmCardPaymentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
) -> ConfirmCardPaymentResponse:
    """
    Reconcile the order with its PaymentIntent.

    succeeded: the order is paid and completed and the table is freed.
    processing: nothing changes yet. Any other status is a 402 with the
    decline reason.
    """
    service = PaymentService(db, gateway=gateway)
    try:
        with unexpected_errors("confirm payment", payment_intent_id=body.payment_intent_id):
            confirmation = await service.confirm_card_payment(body.payment_intent_id)
    except PaymentProviderError:
        await dispatch_notifications(service.notifier.pending)
        raise

    service.notifier.schedule(background_tasks)

    return ConfirmCardPaymentResponse(
        status=confirmation.status,
        order=OrderOutput.model_validate(confirmation.order),
    )


@router.get("/status/{order_id}", response_model=PaymentStatusResponse)
async def get_payment_status(
    order_id: int,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
) -> PaymentStatusResponse:
    service = PaymentService(db, gateway=gateway)
    return PaymentStatusResponse(**await service.get_payment_status(order_id))


@router.post("/webhook", response_model=WebhookResponse)
async def payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
) -> WebhookResponse:
    """
    Stripe event endpoint.

    The signature is checked against the raw body. Unknown events and
    intents are acknowledged so Stripe stops retrying them.
    """
    payload = await request.body()
    service = PaymentService(db)
    with unexpected_errors("process payment webhook"):
        handled = service.handle_webhook(payload, stripe_signature)

    service.notifier.schedule(background_tasks)
    return WebhookResponse(received=True, handled=handled)


@router.post("/refund", response_model=RefundResponse)
async def refund_payment(
    body: RefundRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
    gateway: StripeGateway = Depends(get_payment_gateway),
) -> RefundResponse:
    """
    Refund a card payment, fully or partially.

    Requires ADMIN role.
    """
    require_roles(ctx, [Roles.ADMIN])
    order = OrderService(db).get_order(body.order_id)
    require_restaurant(ctx, order.restaurant_id)

    service = PaymentService(db, gateway=gateway)
    with unexpected_errors("refund payment", order_id=body.order_id):
        result = await service.refund_payment(body.order_id, body.amount_cents, body.reason)

    service.notifier.schedule(background_tasks)
    logger.info("Refund issued by staff", order_id=body.order_id, user_id=ctx.get("sub"))
    return RefundResponse(
        refund_id=result.refund_id,
        order_id=result.order.id,
        amount_cents=result.amount_cents,
        status=result.status,
        payment_status=result.order.payment_status,
    )
