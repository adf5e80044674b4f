"""
Orders router.

Customers place orders and ask to pay cash from the table's QR menu
(no authentication, rate limited). Staff accept, reject and progress orders
and confirm cash with a bearer JWT.
"""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from shared.config.constants import ALL_STAFF_ROLES, FLOOR_ROLES, OrderStatus, Roles
from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.security.auth import current_user_context, require_restaurant, require_roles
from shared.security.rate_limit import limiter
from shared.utils.exceptions import InsufficientRoleError
from shared.utils.schemas import (
    ConfirmCashPaymentRequest,
    CreateOrderRequest,
    CreateOrderResponse,
    OrderItemOutput,
    OrderListResponse,
    OrderOutput,
    OrderStatusLiteral,
    PaymentStatusLiteral,
    RejectOrderRequest,
    RejectOrderResponse,
    UpdateOrderStatusRequest,
)
from qrdine_api.models import Order
from qrdine_api.repositories import OrderFilters
from qrdine_api.services.domain import OrderService, PaymentService
from qrdine_api.services.events import staff_actor
from ._common import Pagination, get_pagination, get_user_id, unexpected_errors


router = APIRouter(prefix="/api/orders", tags=["orders"])


def _actor(ctx: dict[str, Any]) -> dict[str, Any]:
    roles = ctx.get("roles") or []
    return staff_actor(ctx.get("sub"), roles[0] if roles else None)


def _check_access(service: OrderService, order_id: int, ctx: dict[str, Any]) -> Order:
    """404 for unknown orders, 403 for another restaurant's order."""
    order = service.get_order(order_id)
    require_restaurant(ctx, order.restaurant_id)
    return order


# =============================================================================
# Customer endpoints
# =============================================================================


@router.post("", response_model=CreateOrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.order_create_rate_limit)
def create_order(
    request: Request,
    body: CreateOrderRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> CreateOrderResponse:
    """
    Place an order for a table.

    When the table already has an open, unpaid order the items are merged
    into it and the response is 200 with merged=true; a new order is 201.
    """
    service = OrderService(db)
    with unexpected_errors("create order", table_id=body.table_id):
        result = service.create_order(body)

    service.notifier.schedule(background_tasks)
    if result.merged:
        response.status_code = status.HTTP_200_OK
    return CreateOrderResponse(order=OrderOutput.model_validate(result.order), merged=result.merged)


@router.get("/{order_id}", response_model=OrderOutput)
def get_order(order_id: int, db: Session = Depends(get_db)) -> OrderOutput:
    """Order with its items (the customer's order tracking page)."""
    return OrderOutput.model_validate(OrderService(db).get_order(order_id))


@router.post("/{order_id}/request-cash-payment", response_model=OrderOutput)
@limiter.limit(settings.payment_rate_limit)
def request_cash_payment(
    request: Request,
    order_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> OrderOutput:
    """Customer asks to pay cash; waiters of the restaurant are notified."""
    service = PaymentService(db)
    with unexpected_errors("request cash payment", order_id=order_id):
        order = service.request_cash_payment(order_id)

    service.notifier.schedule(background_tasks)
    return OrderOutput.model_validate(order)


# =============================================================================
# Staff endpoints
# =============================================================================


@router.get("", response_model=OrderListResponse)
def list_orders(
    restaurant_id: int | None = Query(default=None, gt=0),
    table_id: int | None = Query(default=None, gt=0),
    order_status: OrderStatusLiteral | None = Query(default=None, alias="status"),
    payment_status: PaymentStatusLiteral | None = Query(default=None),
    pagination: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> OrderListResponse:
    """
    Orders of the staff member's restaurant, newest first.

    Requires ADMIN, WAITER or KITCHEN role.
    """
    require_roles(ctx, ALL_STAFF_ROLES)
    restaurant_id = restaurant_id or ctx["restaurant_id"]
    require_restaurant(ctx, restaurant_id)

    filters = OrderFilters(
        limit=pagination.limit,
        offset=pagination.offset,
        table_id=table_id,
        status=order_status,
        payment_status=payment_status,
    )
    orders, total = OrderService(db).list_orders(restaurant_id, filters)
    return OrderListResponse(
        items=[OrderOutput.model_validate(order) for order in orders],
        total=total,
        limit=filters.limit,
        offset=filters.offset,
    )


@router.patch("/{order_id}/accept", response_model=OrderOutput)
def accept_order(
    order_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> OrderOutput:
    """
    Accept a pending order and send it to the kitchen.

    Requires ADMIN or WAITER role.
    """
    require_roles(ctx, FLOOR_ROLES)
    service = OrderService(db)
    _check_access(service, order_id, ctx)

    with unexpected_errors("accept order", order_id=order_id):
        order = service.accept_order(order_id, get_user_id(ctx), actor=_actor(ctx))

    service.notifier.schedule(background_tasks)
    return OrderOutput.model_validate(order)


@router.patch("/{order_id}/reject", response_model=RejectOrderResponse)
def reject_order(
    order_id: int,
    body: RejectOrderRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> RejectOrderResponse:
    """
    Reject the items the kitchen has not started.

    The whole order is rejected when nothing is in production; otherwise
    only the pending items are (partial=true) and the order is marked served.

    Requires ADMIN or WAITER role.
    """
    require_roles(ctx, FLOOR_ROLES)
    service = OrderService(db)
    _check_access(service, order_id, ctx)

    with unexpected_errors("reject order", order_id=order_id):
        result = service.reject_order(order_id, get_user_id(ctx), body.reason, actor=_actor(ctx))

    service.notifier.schedule(background_tasks)
    return RejectOrderResponse(
        order=OrderOutput.model_validate(result.order),
        partial=result.partial,
        rejected_items=[OrderItemOutput.model_validate(item) for item in result.rejected_items],
    )


@router.patch("/{order_id}/status", response_model=OrderOutput)
def update_order_status(
    order_id: int,
    body: UpdateOrderStatusRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> OrderOutput:
    """
    Move an order along its lifecycle.

    Requires ADMIN, WAITER or KITCHEN role; only ADMIN may cancel.
    """
    require_roles(ctx, ALL_STAFF_ROLES)
    if body.status == OrderStatus.CANCELLED and Roles.ADMIN not in ctx.get("roles", []):
        raise InsufficientRoleError([Roles.ADMIN], user_id=ctx.get("sub"), order_id=order_id)

    service = OrderService(db)
    _check_access(service, order_id, ctx)

    with unexpected_errors("update order status", order_id=order_id, new_status=body.status):
        order = service.update_order_status(order_id, body.status, actor=_actor(ctx))

    service.notifier.schedule(background_tasks)
    return OrderOutput.model_validate(order)


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_order(
    order_id: int,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> None:
    """
    Hard delete an order.

    Requires ADMIN role.
    """
    require_roles(ctx, [Roles.ADMIN])
    service = OrderService(db)
    _check_access(service, order_id, ctx)

    with unexpected_errors("delete order", order_id=order_id):
        service.delete_order(order_id)


@router.post("/{order_id}/confirm-cash-payment", response_model=OrderOutput)
def confirm_cash_payment(
    order_id: int,
    body: ConfirmCashPaymentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> OrderOutput:
    """
    Record a cash payment and free the table.

    The order is completed only if it was already served.

    Requires ADMIN or WAITER role.
    """
    require_roles(ctx, FLOOR_ROLES)
    _check_access(OrderService(db), order_id, ctx)

    service = PaymentService(db)
    with unexpected_errors("confirm cash payment", order_id=order_id):
        order = service.confirm_cash_payment(
            order_id,
            amount_received_cents=body.amount_received_cents,
            tip_cents=body.tip_cents,
            waiter_id=get_user_id(ctx),
        )

    service.notifier.schedule(background_tasks)
    return OrderOutput.model_validate(order)
