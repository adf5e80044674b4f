"""
Cart Domain Service.

The customer's staging area before an order is placed. A cart belongs to
an anonymous browser session or to a logged-in customer and lives for two
hours after its last change; an expired cart behaves as if it did not exist.
"""

from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.orm import Session

from shared.config.constants import Limits
from shared.config.logging import cart_logger as logger
from shared.config.settings import settings
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import NotFoundError, ValidationError
from shared.utils.schemas import AddCartItemRequest, UpdateCartItemRequest
from qrdine_api.models import Cart, CartItem
from qrdine_api.models.base import utcnow
from qrdine_api.repositories import CartRepository, MenuRepository
from .pricing import line_subtotal, price_line


@dataclass(frozen=True)
class CartSummary:
    item_count: int = 0
    subtotal_cents: int = 0


class CartService:
    """
    Cart operations keyed by session id or customer id.

    The customer id wins when both are given.
    """

    def __init__(self, db: Session):
        self._db = db
        self._carts = CartRepository(db)
        self._menu = MenuRepository(db)

    @staticmethod
    def _check_owner(session_id: str | None, customer_id: int | None) -> None:
        if not session_id and customer_id is None:
            raise ValidationError("A session id or a customer id is required")

    def _touch(self, cart: Cart) -> None:
        cart.expires_at = utcnow() + timedelta(minutes=settings.cart_ttl_minutes)

    def _find(self, session_id: str | None, customer_id: int | None) -> Cart | None:
        """The owner's cart, or None when there is none or it has expired."""
        self._check_owner(session_id, customer_id)
        if customer_id is not None:
            cart = self._carts.find_by_customer(customer_id)
        else:
            cart = self._carts.find_by_session(session_id)

        if cart is not None and cart.is_expired(utcnow()):
            return None
        return cart

    @staticmethod
    def _matching_line(cart: Cart, menu_item_id: int, modifiers: list) -> CartItem | None:
        """Line with the same menu item and modifier selection."""
        return next(
            (item for item in cart.items if item.menu_item_id == menu_item_id and item.modifiers == modifiers),
            None,
        )

    def _require(self, session_id: str | None, customer_id: int | None) -> Cart:
        cart = self._find(session_id, customer_id)
        if cart is None:
            raise NotFoundError("Cart")
        return cart

    def get_cart(self, session_id: str | None = None, customer_id: int | None = None) -> Cart | None:
        """Return the live cart and extend its expiry, or None."""
        cart = self._find(session_id, customer_id)
        if cart is None:
            return None
        self._touch(cart)
        safe_commit(self._db)
        return cart

    def add_item(self, session_id: str | None, request: AddCartItemRequest) -> Cart:
        """
        Add a line, creating the cart (or replacing an expired one) as needed.

        A line with the same menu item and modifiers is merged into the
        existing one by adding quantities.

        Raises:
            ValidationError: No owner, unknown modifier option or quantity above the limit.
            NotFoundError: Menu item missing or not available.
        """
        customer_id = request.customer_id
        self._check_owner(session_id, customer_id)

        menu_item = self._menu.find_orderable(request.menu_item_id, request.restaurant_id)
        if menu_item is None:
            raise NotFoundError("Menu item", request.menu_item_id, restaurant_id=request.restaurant_id)
        line = price_line(menu_item, request.quantity, request.modifiers)

        if customer_id is not None:
            cart = self._carts.find_by_customer(customer_id)
        else:
            cart = self._carts.find_by_session(session_id)

        if cart is not None and cart.is_expired(utcnow()):
            logger.info("Expired cart replaced", cart_id=cart.id)
            self._carts.delete(cart)
            cart = None

        if cart is None:
            cart = Cart(
                restaurant_id=request.restaurant_id,
                table_id=request.table_id,
                session_id=None if customer_id is not None else session_id,
                customer_id=customer_id,
            )
            self._touch(cart)
            self._carts.save(cart)
        elif request.table_id is not None:
            cart.table_id = request.table_id

        existing = self._matching_line(cart, line.menu_item_id, line.modifiers)
        if existing is not None:
            quantity = existing.quantity + line.quantity
            if quantity > Limits.MAX_ITEM_QUANTITY:
                raise ValidationError(
                    f"Quantity cannot exceed {Limits.MAX_ITEM_QUANTITY}",
                    cart_id=cart.id,
                    menu_item_id=line.menu_item_id,
                )
            existing.quantity = quantity
            existing.subtotal_cents = line_subtotal(existing.price_cents, existing.modifiers, quantity)
            if request.special_instructions is not None:
                existing.special_instructions = request.special_instructions
        else:
            cart.items.append(
                CartItem(
                    menu_item_id=line.menu_item_id,
                    name=line.name,
                    price_cents=line.price_cents,
                    quantity=line.quantity,
                    modifiers=line.modifiers,
                    special_instructions=request.special_instructions,
                    subtotal_cents=line.subtotal_cents,
                )
            )

        self._touch(cart)
        safe_commit(self._db)
        self._db.refresh(cart)

        logger.info(
            "Cart item added",
            cart_id=cart.id,
            menu_item_id=line.menu_item_id,
            quantity=line.quantity,
            item_count=cart.item_count,
        )
        return cart

    def update_item(
        self,
        session_id: str | None,
        item_id: int,
        request: UpdateCartItemRequest,
        customer_id: int | None = None,
    ) -> Cart:
        """Change quantity or instructions of a line; the subtotal follows the snapshot price."""
        cart = self._require(session_id, customer_id)
        item = next((i for i in cart.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError("Cart item", item_id, cart_id=cart.id)

        if request.quantity is not None:
            item.quantity = request.quantity
            item.subtotal_cents = line_subtotal(item.price_cents, item.modifiers, item.quantity)
        if request.special_instructions is not None:
            item.special_instructions = request.special_instructions

        self._touch(cart)
        safe_commit(self._db)
        logger.info("Cart item updated", cart_id=cart.id, item_id=item_id, quantity=item.quantity)
        return cart

    def remove_item(self, session_id: str | None, item_id: int, customer_id: int | None = None) -> Cart:
        cart = self._require(session_id, customer_id)
        item = next((i for i in cart.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError("Cart item", item_id, cart_id=cart.id)

        cart.items.remove(item)
        self._touch(cart)
        safe_commit(self._db)
        logger.info("Cart item removed", cart_id=cart.id, item_id=item_id)
        return cart

    def get_summary(self, session_id: str | None = None, customer_id: int | None = None) -> CartSummary:
        """Line count and subtotal for the cart badge. Reading it does not extend the expiry."""
        cart = self._find(session_id, customer_id)
        if cart is None:
            return CartSummary()
        return CartSummary(item_count=cart.item_count, subtotal_cents=cart.subtotal_cents)

    def merge_cart(self, session_id: str, customer_id: int) -> Cart | None:
        """
        Fold the guest cart of a session into the customer's cart after sign-in.

        Without a live customer cart the guest cart just changes owner.
        Otherwise matching lines add their quantities, capped at
        Limits.MAX_ITEM_QUANTITY, the other lines are copied over and the
        guest cart is deleted. A guest cart from another restaurant replaces
        the customer's cart.

        Returns:
            The customer's cart, or None when neither cart exists.

        Raises:
            ValidationError: Empty session id.
        """
        if not session_id:
            raise ValidationError("A session id is required")

        now = utcnow()
        guest = self._carts.find_by_session(session_id)
        if guest is None or guest.is_expired(now) or not guest.items:
            logger.info("No guest cart to merge", customer_id=customer_id)
            return self.get_cart(customer_id=customer_id)

        cart = self._carts.find_by_customer(customer_id)
        if cart is not None and cart.is_expired(now):
            self._carts.delete(cart)
            cart = None
        elif cart is not None and cart.restaurant_id != guest.restaurant_id:
            logger.info(
                "Customer cart replaced by guest cart",
                cart_id=cart.id,
                guest_cart_id=guest.id,
                restaurant_id=guest.restaurant_id,
            )
            self._carts.delete(cart)
            cart = None

        if cart is None:
            guest.session_id = None
            guest.customer_id = customer_id
            cart = guest
            logger.info("Guest cart converted", cart_id=cart.id, customer_id=customer_id)
        else:
            for guest_item in guest.items:
                existing = self._matching_line(cart, guest_item.menu_item_id, guest_item.modifiers)
                if existing is not None:
                    existing.quantity = min(existing.quantity + guest_item.quantity, Limits.MAX_ITEM_QUANTITY)
                    existing.subtotal_cents = line_subtotal(
                        existing.price_cents, existing.modifiers, existing.quantity
                    )
                else:
                    cart.items.append(
                        CartItem(
                            menu_item_id=guest_item.menu_item_id,
                            name=guest_item.name,
                            price_cents=guest_item.price_cents,
                            quantity=guest_item.quantity,
                            modifiers=list(guest_item.modifiers),
                            special_instructions=guest_item.special_instructions,
                            subtotal_cents=guest_item.subtotal_cents,
                        )
                    )
            if cart.table_id is None:
                cart.table_id = guest.table_id
            guest_cart_id = guest.id
            self._carts.delete(guest)
            logger.info("Guest cart merged", cart_id=cart.id, guest_cart_id=guest_cart_id)

        self._touch(cart)
        safe_commit(self._db)
        self._db.refresh(cart)
        return cart

    def clear_cart(self, session_id: str | None, customer_id: int | None = None) -> bool:
        """Delete the owner's cart. Returns False when there was none."""
        cart = self._find(session_id, customer_id)
        if cart is None:
            return False

        cart_id = cart.id
        self._carts.delete(cart)
        safe_commit(self._db)
        logger.info("Cart cleared", cart_id=cart_id)
        return True

    def purge_expired(self) -> int:
        """Delete every expired cart. Returns how many were removed."""
        removed = self._carts.delete_expired(utcnow())
        safe_commit(self._db)
        if removed:
            logger.info("Expired carts purged", removed=removed)
        return removed
