"""
Snapshot pricing for order and cart lines.

A line is priced when it is submitted: name, unit price and the price
adjustment of every chosen option are copied from the catalog, so later menu
edits never change what the customer was charged.

    line subtotal = (unit price + sum of option adjustments) * quantity
    order subtotal = sum of line subtotals, rejected lines excluded
    order total = subtotal + tax - discount
"""

from dataclasses import dataclass
from typing import Any, Iterable, Protocol, Sequence

from qrdine_api.models import MenuItem, Order
from shared.config.constants import ItemStatus
from shared.utils.exceptions import ValidationError
from shared.utils.schemas import ModifierSelection


class PricedLine(Protocol):
    subtotal_cents: int
    status: str


@dataclass(frozen=True)
class LinePrice:
    """Catalog snapshot for one submitted line."""

    menu_item_id: int
    name: str
    price_cents: int
    quantity: int
    modifiers: list[dict[str, Any]]
    subtotal_cents: int


def resolve_modifiers(
    menu_item: MenuItem,
    selections: Sequence[ModifierSelection],
) -> list[dict[str, Any]]:
    """
    Turn option names chosen by the customer into a priced snapshot.

    Raises:
        ValidationError: If a group or option does not exist on the menu item.
    """
    snapshot: list[dict[str, Any]] = []
    for selection in selections:
        options = []
        for option_name in selection.options:
            option = menu_item.find_option(selection.name, option_name)
            if option is None:
                raise ValidationError(
                    f"Unknown modifier option '{selection.name}: {option_name}' for {menu_item.name}",
                    menu_item_id=menu_item.id,
                    group=selection.name,
                    option=option_name,
                )
            options.append({
                "name": option_name,
                "price_adjustment_cents": int(option.get("price_adjustment_cents", 0)),
            })
        snapshot.append({"name": selection.name, "options": options})
    return snapshot


def modifiers_adjustment(modifiers: Iterable[dict[str, Any]]) -> int:
    """Sum of option adjustments of a modifier snapshot, per unit."""
    return sum(
        int(option.get("price_adjustment_cents", 0))
        for group in modifiers
        for option in group.get("options", [])
    )


def line_subtotal(price_cents: int, modifiers: Iterable[dict[str, Any]], quantity: int) -> int:
    return (price_cents + modifiers_adjustment(modifiers)) * quantity


def price_line(
    menu_item: MenuItem,
    quantity: int,
    selections: Sequence[ModifierSelection] = (),
) -> LinePrice:
    """Price one line against the catalog."""
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", menu_item_id=menu_item.id)

    modifiers = resolve_modifiers(menu_item, selections)
    return LinePrice(
        menu_item_id=menu_item.id,
        name=menu_item.name,
        price_cents=menu_item.price_cents,
        quantity=quantity,
        modifiers=modifiers,
        subtotal_cents=line_subtotal(menu_item.price_cents, modifiers, quantity),
    )


def active_subtotal(items: Iterable[PricedLine]) -> int:
    """Subtotal of the lines that were not rejected."""
    return sum(item.subtotal_cents for item in items if item.status != ItemStatus.REJECTED)


def recalculate_totals(order: Order) -> None:
    """Recompute subtotal and total from the order's lines."""
    order.subtotal_cents = active_subtotal(order.items)
    order.total_cents = order.subtotal_cents + order.tax_cents - order.discount_cents
