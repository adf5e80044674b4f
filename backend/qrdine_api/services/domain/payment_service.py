"""
Payment Domain Service.

Settles orders by cash or card and releases the table afterwards.

The two paths differ on purpose:
- Card: a succeeded PaymentIntent is a full settlement. The order becomes
  paid and completed whatever its kitchen status was.
- Cash: the customer asks, a waiter confirms. Payment is recorded at
  confirmation, but the order is completed only if it was already served;
  otherwise it stays open for the kitchen to finish.

Both paths free the table and delete its cart once the order is paid.
Card methods are async because they call the provider; the database work
stays on the request's sync session.
"""

from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from shared.config.constants import OrderStatus, PaymentMethod, PaymentStatus, TableStatus
from shared.config.logging import payments_logger as logger
from shared.config.settings import settings
from shared.infrastructure.events import (
    ORDER_STATUS_UPDATE,
    PAYMENT_CASH_REQUESTED,
    PAYMENT_COMPLETED,
    PAYMENT_CONFIRMED,
    PAYMENT_FAILED,
    PAYMENT_REFUNDED,
)
from shared.utils.exceptions import (
    AlreadyPaidError,
    InvalidOperationError,
    InvalidStateError,
    NotFoundError,
    OrderNotFoundError,
    PaymentProviderError,
    ValidationError,
)
from qrdine_api.models import Order
from qrdine_api.models.base import utcnow
from qrdine_api.repositories import CartRepository, OrderRepository, TableRepository
from qrdine_api.services.events import CUSTOMER_ACTOR, OrderNotifier, order_summary
from qrdine_api.services.payments import StripeGateway, verify_webhook
from . import order_state
from .transaction import write_transaction

# Orders that can no longer be paid
UNPAYABLE_STATUSES = (OrderStatus.CANCELLED, OrderStatus.REJECTED)

INTENT_SUCCEEDED = "succeeded"
INTENT_PROCESSING = "processing"


@dataclass
class PaymentIntentResult:
    client_secret: str
    payment_intent_id: str
    amount_cents: int
    currency: str


@dataclass
class CardConfirmation:
    status: str  # succeeded | processing
    order: Order


@dataclass
class RefundResult:
    refund_id: str
    order: Order
    amount_cents: int
    status: str


class PaymentService:
    """
    Cash and card settlement of orders.

    Usage:
        service = PaymentService(db)
        order = service.confirm_cash_payment(order_id, amount_received_cents=3000)
        service.notifier.schedule(background_tasks)
    """

    def __init__(
        self,
        db: Session,
        gateway: StripeGateway | None = None,
        notifier: OrderNotifier | None = None,
    ):
        self._db = db
        self._orders = OrderRepository(db)
        self._tables = TableRepository(db)
        self._carts = CartRepository(db)
        self._gateway = gateway or StripeGateway()
        self.notifier = notifier or OrderNotifier()

    def _get(self, order_id: int, lock: bool = False) -> Order:
        order = self._orders.get(order_id, lock=lock)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    @staticmethod
    def _check_payable(order: Order) -> None:
        if order.payment_status == PaymentStatus.PAID:
            raise AlreadyPaidError(order.id)
        if order.status in UNPAYABLE_STATUSES:
            raise InvalidStateError(
                "Order", order.status,
                detail=f"Cannot pay for a {order.status} order",
                order_id=order.id,
            )

    # =========================================================================
    # Settlement
    # =========================================================================

    def _release_table(self, order: Order) -> None:
        """
        Free the table of a settled order and delete its cart.

        A table that still has another unsettled order stays occupied and
        points at the newest one; a table already pointing at a different
        order is left alone.
        """
        table = self._tables.find(order.table_id, lock=True)
        if table is None:
            logger.warning("Table missing at settlement", order_id=order.id, table_id=order.table_id)
        elif table.current_order_id not in (None, order.id):
            logger.info(
                "Table kept occupied by another order",
                order_id=order.id,
                table_id=table.id,
                current_order_id=table.current_order_id,
            )
        else:
            others = self._orders.find_unsettled(table.id, exclude_order_id=order.id)
            if others:
                self._tables.set_status(table, TableStatus.OCCUPIED, others[0])
                logger.info(
                    "Table kept occupied by another order",
                    order_id=order.id,
                    table_id=table.id,
                    current_order_id=others[0].id,
                )
            else:
                self._tables.set_status(table, TableStatus.ACTIVE)
        self._carts.delete_by_table(order.table_id)

    def _settle_card(self, order: Order) -> None:
        now = utcnow()
        order.payment_method = PaymentMethod.CARD
        order.payment_status = PaymentStatus.PAID
        order.paid_at = now
        order.status = OrderStatus.COMPLETED
        order_state.stamp_once(order, OrderStatus.COMPLETED, now)
        self._release_table(order)
        self._db.flush()
        self._queue_paid(order)

    def _queue_paid(self, order: Order, status_changed: bool = True) -> None:
        table = order.table
        if table is None:
            logger.warning("Payment notification skipped - table missing", order_id=order.id)
            return

        payload = {
            **order_summary(order, table),
            "payment_method": order.payment_method,
            "tip_cents": order.tip_cents,
        }
        self.notifier.notify_order(order, PAYMENT_CONFIRMED, table=True, payload=payload)
        waiter_payload = {**payload, "message": f"Table {table.number} payment completed"}
        self.notifier.notify_order(order, PAYMENT_COMPLETED, waiters=True, payload=waiter_payload)
        if status_changed:
            self.notifier.notify_order(order, ORDER_STATUS_UPDATE, waiters=True, kitchen=True, payload=payload)

    # =========================================================================
    # Cash
    # =========================================================================

    def request_cash_payment(self, order_id: int) -> Order:
        """
        Customer asks to pay cash; the waiters are told which table.

        Raises:
            NotFoundError: Unknown order.
            InvalidStateError: Order paid, cancelled or rejected.
        """
        with write_transaction(self._db, self.notifier, entity_id=order_id):
            order = self._get(order_id, lock=True)
            self._check_payable(order)

            order.payment_method = PaymentMethod.CASH
            order.payment_status = PaymentStatus.PENDING_CASH
            self._db.flush()

            table = order.table
            if table is None:
                logger.warning("Cash request notification skipped - table missing", order_id=order.id)
            else:
                payload = {
                    **order_summary(order, table),
                    "message": f"Table {table.number} requests cash payment",
                }
                self.notifier.notify_order(
                    order, PAYMENT_CASH_REQUESTED, waiters=True, payload=payload, actor=CUSTOMER_ACTOR,
                )

        logger.info("Cash payment requested", order_id=order.id, order_number=order.order_number)
        return order

    def confirm_cash_payment(
        self,
        order_id: int,
        amount_received_cents: int | None = None,
        tip_cents: int | None = None,
        waiter_id: int | None = None,
    ) -> Order:
        """
        Waiter records the cash.

        Always marks the order paid and frees the table; completes it only
        when it was already served.

        Raises:
            NotFoundError: Unknown order.
            InvalidStateError: Order already paid.
        """
        with write_transaction(self._db, self.notifier, entity_id=order_id):
            order = self._get(order_id, lock=True)
            if order.payment_status == PaymentStatus.PAID:
                raise AlreadyPaidError(order.id)

            now = utcnow()
            order.payment_method = PaymentMethod.CASH
            order.payment_status = PaymentStatus.PAID
            order.paid_at = now
            order.amount_received_cents = (
                amount_received_cents if amount_received_cents is not None else order.total_cents
            )
            order.tip_cents = tip_cents or 0
            if waiter_id is not None and order.waiter_id is None:
                order.waiter_id = waiter_id

            completed = order.status == OrderStatus.SERVED
            if completed:
                order.status = OrderStatus.COMPLETED
                order_state.stamp_once(order, OrderStatus.COMPLETED, now)

            self._release_table(order)
            self._db.flush()
            self._queue_paid(order, status_changed=completed)

        logger.info(
            "Cash payment confirmed",
            order_id=order.id,
            amount_received_cents=order.amount_received_cents,
            tip_cents=order.tip_cents,
            completed=completed,
        )
        return order

    # =========================================================================
    # Card
    # =========================================================================

    async def create_card_payment_intent(self, order_id: int) -> PaymentIntentResult:
        """
        Open a provider PaymentIntent for the order total.

        Raises:
            NotFoundError: Unknown order.
            InvalidStateError: Order paid, cancelled or rejected.
            InvalidOperationError: Nothing to charge.
            PaymentProviderError: Provider refused or is unreachable; the
                order is left with payment_status failed.
        """
        order = self._get(order_id)
        self._check_payable(order)
        if order.total_cents <= 0:
            raise InvalidOperationError("Order total is zero, nothing to charge", order_id=order_id)

        amount = order.total_cents
        metadata = {
            "order_id": str(order.id),
            "order_number": order.order_number,
            "table_number": str(order.table.number) if order.table is not None else "N/A",
        }
        # No transaction stays open while waiting on the provider
        self._db.rollback()

        try:
            intent = await self._gateway.create_payment_intent(
                amount,
                settings.payment_currency,
                metadata,
                idempotency_key=f"order-{order_id}-{amount}",
            )
        except PaymentProviderError as e:
            self._mark_failed(order_id, e.detail)
            raise

        with write_transaction(self._db, self.notifier, entity_id=order_id):
            order = self._get(order_id, lock=True)
            order.payment_intent_id = intent["id"]
            # payment_status stays failed or pending_cash until the intent settles
            order.payment_method = PaymentMethod.CARD

        return PaymentIntentResult(
            client_secret=intent.get("client_secret", ""),
            payment_intent_id=intent["id"],
            amount_cents=amount,
            currency=intent.get("currency", settings.payment_currency),
        )

    def _mark_failed(self, order_id: int, reason: str | None = None) -> Order | None:
        """Record a failed card attempt unless the order got paid meanwhile."""
        with write_transaction(self._db, self.notifier, entity_id=order_id):
            order = self._orders.get(order_id, lock=True)
            if order is None or order.payment_status == PaymentStatus.PAID:
                return order
            order.payment_status = PaymentStatus.FAILED
            self._db.flush()
            payload = {**order_summary(order, order.table), "reason": reason}
            self.notifier.notify_order(order, PAYMENT_FAILED, table=True, waiters=True, payload=payload)

        logger.warning("Card payment failed", order_id=order_id, reason=reason)
        return order

    async def confirm_card_payment(self, payment_intent_id: str) -> CardConfirmation:
        """
        Reconcile the order with the provider's view of its PaymentIntent.

        Already-paid orders are returned as succeeded without calling the
        provider again.

        Raises:
            NotFoundError: No order carries this PaymentIntent.
            PaymentProviderError: The intent failed (402 with the decline
                reason) or the provider could not be reached.
        """
        order = self._orders.find_by_payment_intent(payment_intent_id)
        if order is None:
            raise NotFoundError("Order for payment intent", payment_intent_id)
        if order.payment_status == PaymentStatus.PAID:
            return CardConfirmation(status=INTENT_SUCCEEDED, order=order)

        order_id = order.id
        self._db.rollback()
        intent = await self._gateway.retrieve_payment_intent(payment_intent_id)
        intent_status = intent.get("status")

        if intent_status == INTENT_SUCCEEDED:
            order = self._apply_card_success(order_id, intent)
            return CardConfirmation(status=INTENT_SUCCEEDED, order=order)

        if intent_status == INTENT_PROCESSING:
            return CardConfirmation(status=INTENT_PROCESSING, order=self._get(order_id))

        reason = (intent.get("last_payment_error") or {}).get("message") or f"Payment {intent_status}"
        order = self._mark_failed(order_id, reason)
        if order is not None and order.payment_status == PaymentStatus.PAID:
            return CardConfirmation(status=INTENT_SUCCEEDED, order=order)
        raise PaymentProviderError(
            reason,
            declined=True,
            order_id=order_id,
            payment_intent_id=payment_intent_id,
            intent_status=intent_status,
        )

    def _apply_card_success(self, order_id: int, intent: dict[str, Any]) -> Order:
        with write_transaction(self._db, self.notifier, entity_id=order_id):
            order = self._get(order_id, lock=True)
            if order.payment_status == PaymentStatus.PAID:
                return order

            amount = intent.get("amount_received") or intent.get("amount")
            if amount is not None and amount != order.total_cents:
                logger.warning(
                    "Captured amount differs from order total",
                    order_id=order_id,
                    captured_cents=amount,
                    total_cents=order.total_cents,
                )
            self._settle_card(order)

        logger.info("Card payment succeeded", order_id=order.id, payment_intent_id=intent.get("id"))
        return order

    async def get_payment_status(self, order_id: int) -> dict[str, Any]:
        """Order payment fields plus the provider status of its PaymentIntent, when reachable."""
        order = self._get(order_id)
        provider_status = None
        if order.payment_intent_id:
            try:
                intent = await self._gateway.retrieve_payment_intent(order.payment_intent_id)
                provider_status = intent.get("status")
            except PaymentProviderError:
                provider_status = None

        return {
            "order_id": order.id,
            "order_number": order.order_number,
            "status": order.status,
            "payment_status": order.payment_status,
            "payment_method": order.payment_method,
            "total_cents": order.total_cents,
            "tip_cents": order.tip_cents,
            "paid_at": order.paid_at,
            "payment_intent_id": order.payment_intent_id,
            "provider_status": provider_status,
        }

    def handle_webhook(self, payload: bytes, signature: str | None) -> bool:
        """
        Apply a provider event. Returns True when it changed or matched an order.

        Raises:
            ValidationError: Bad signature or payload.
        """
        event = verify_webhook(payload, signature)
        event_type = event.get("type")
        intent = (event.get("data") or {}).get("object") or {}
        intent_id = intent.get("id")

        logger.info("Payment webhook received", event_type=event_type, payment_intent_id=intent_id)
        if event_type not in ("payment_intent.succeeded", "payment_intent.payment_failed") or not intent_id:
            return False

        order = self._orders.find_by_payment_intent(intent_id)
        if order is None:
            logger.warning("Webhook for unknown payment intent", payment_intent_id=intent_id)
            return False

        if event_type == "payment_intent.succeeded":
            self._apply_card_success(order.id, intent)
        else:
            reason = (intent.get("last_payment_error") or {}).get("message")
            self._mark_failed(order.id, reason)
        return True

    async def refund_payment(
        self,
        order_id: int,
        amount_cents: int | None = None,
        reason: str | None = None,
    ) -> RefundResult:
        """
        Refund a card payment, fully or partially.

        Raises:
            NotFoundError: Unknown order.
            InvalidStateError: Order is not paid.
            InvalidOperationError: Order was not paid by card.
            ValidationError: Amount above what was charged.
        """
        order = self._get(order_id)
        if order.payment_status != PaymentStatus.PAID:
            raise InvalidStateError("Order", order.payment_status, [PaymentStatus.PAID], order_id=order_id)
        if not order.payment_intent_id:
            raise InvalidOperationError("Order was not paid by card", order_id=order_id)
        if amount_cents is not None and amount_cents > order.total_cents:
            raise ValidationError(
                "Refund amount exceeds the order total",
                order_id=order_id,
                amount_cents=amount_cents,
                total_cents=order.total_cents,
            )

        payment_intent_id = order.payment_intent_id
        self._db.rollback()
        refund = await self._gateway.create_refund(
            payment_intent_id,
            amount_cents,
            reason or "requested_by_customer",
        )

        with write_transaction(self._db, self.notifier, entity_id=order_id):
            order = self._get(order_id, lock=True)
            order.payment_status = PaymentStatus.REFUNDED
            self._db.flush()
            payload = {
                **order_summary(order, order.table),
                "refund_id": refund.get("id"),
                "amount_cents": refund.get("amount", amount_cents),
            }
            self.notifier.notify_order(order, PAYMENT_REFUNDED, waiters=True, payload=payload)

        logger.info("Payment refunded", order_id=order_id, refund_id=refund.get("id"))
        return RefundResult(
            refund_id=refund.get("id", ""),
            order=order,
            amount_cents=refund.get("amount", amount_cents if amount_cents is not None else order.total_cents),
            status=refund.get("status", "pending"),
        )
