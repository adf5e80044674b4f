"""
Cart router.

The customer's draft order, keyed by the browser's session id (or by
customer id once the diner identified). No authentication: the session id
is the capability.
"""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.security.rate_limit import limiter
from shared.utils.exceptions import NotFoundError
from shared.utils.schemas import (
    AddCartItemRequest,
    CartOutput,
    CartSummaryOutput,
    MergeCartRequest,
    UpdateCartItemRequest,
)
from qrdine_api.services.domain import CartService
from ._common import unexpected_errors


router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.post("/merge", response_model=CartOutput)
def merge_cart(body: MergeCartRequest, db: Session = Depends(get_db)) -> CartOutput:
    """Fold the guest cart of a session into the customer's cart after sign-in."""
    with unexpected_errors("merge cart", session_id=body.session_id, customer_id=body.customer_id):
        cart = CartService(db).merge_cart(body.session_id, body.customer_id)
    if cart is None:
        return CartOutput(customer_id=body.customer_id)
    return CartOutput.model_validate(cart)


@router.get("/{session_id}", response_model=CartOutput)
def get_cart(
    session_id: str,
    customer_id: int | None = Query(default=None, gt=0),
    db: Session = Depends(get_db),
) -> CartOutput:
    """Current cart; an absent or expired cart comes back empty."""
    cart = CartService(db).get_cart(session_id, customer_id)
    if cart is None:
        return CartOutput(session_id=session_id, customer_id=customer_id)
    return CartOutput.model_validate(cart)


@router.get("/{session_id}/summary", response_model=CartSummaryOutput)
def get_cart_summary(
    session_id: str,
    customer_id: int | None = Query(default=None, gt=0),
    db: Session = Depends(get_db),
) -> CartSummaryOutput:
    summary = CartService(db).get_summary(session_id, customer_id)
    return CartSummaryOutput.model_validate(summary)


@router.post("/{session_id}/items", response_model=CartOutput, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.order_create_rate_limit)
def add_cart_item(
    request: Request,
    session_id: str,
    body: AddCartItemRequest,
    db: Session = Depends(get_db),
) -> CartOutput:
    with unexpected_errors("add cart item", session_id=session_id, menu_item_id=body.menu_item_id):
        cart = CartService(db).add_item(session_id, body)
    return CartOutput.model_validate(cart)


@router.put("/{session_id}/items/{item_id}", response_model=CartOutput)
def update_cart_item(
    session_id: str,
    item_id: int,
    body: UpdateCartItemRequest,
    customer_id: int | None = Query(default=None, gt=0),
    db: Session = Depends(get_db),
) -> CartOutput:
    with unexpected_errors("update cart item", session_id=session_id, item_id=item_id):
        cart = CartService(db).update_item(session_id, item_id, body, customer_id)
    return CartOutput.model_validate(cart)


@router.delete("/{session_id}/items/{item_id}", response_model=CartOutput)
def remove_cart_item(
    session_id: str,
    item_id: int,
    customer_id: int | None = Query(default=None, gt=0),
    db: Session = Depends(get_db),
) -> CartOutput:
    with unexpected_errors("remove cart item", session_id=session_id, item_id=item_id):
        cart = CartService(db).remove_item(session_id, item_id, customer_id)
    return CartOutput.model_validate(cart)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def clear_cart(
    session_id: str,
    customer_id: int | None = Query(default=None, gt=0),
    db: Session = Depends(get_db),
) -> None:
    """Drop the whole cart. 404 when there is none."""
    with unexpected_errors("clear cart", session_id=session_id):
        cleared = CartService(db).clear_cart(session_id, customer_id)
    if not cleared:
        raise NotFoundError("Cart", session_id=session_id)
