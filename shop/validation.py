"""
Read-only checks of a cart against live inventory and prices.

Every line goes through all three checks (availability, stock, price drift) so
that a single pass reports everything the shopper has to fix. A line whose
product has been deleted only gets the availability error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .models import Cart

ISSUE_UNAVAILABLE = "unavailable"
ISSUE_OUT_OF_STOCK = "out_of_stock"
ISSUE_PRICE_CHANGED = "price_changed"

EMPTY_CART_MESSAGE = "Cart is empty."


@dataclass(frozen=True)
class ItemIssue:
    item_id: int
    product_id: int
    code: str
    message: str


@dataclass(frozen=True)
class ValidationReport:
    errors: tuple = ()
    out_of_stock: tuple = ()
    price_changed: tuple = ()
    unavailable: tuple = ()
    issues: tuple = field(default=())

    @property
    def valid(self) -> bool:
        return not self.errors and not self.out_of_stock

    @property
    def stock_only(self) -> bool:
        """True when stock is the only thing wrong with the cart."""
        return not self.errors and bool(self.out_of_stock)

    def as_dict(self) -> dict:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "out_of_stock": list(self.out_of_stock),
            "price_changed": list(self.price_changed),
            "unavailable": list(self.unavailable),
            "issues": [
                {
                    "item_id": issue.item_id,
                    "product_id": issue.product_id,
                    "code": issue.code,
                    "message": issue.message,
                }
                for issue in self.issues
            ],
        }


def validate(cart: Optional[Cart]) -> ValidationReport:
    """Validate ``cart`` without touching any state."""
    lines = list(cart.items.select_related("product")) if cart is not None else []
    if not lines:
        return ValidationReport(errors=(EMPTY_CART_MESSAGE,))

    errors: list[str] = []
    out_of_stock: list[int] = []
    price_changed: list[int] = []
    unavailable: list[int] = []
    issues: list[ItemIssue] = []

    for line in lines:
        product = line.product

        if product is None:
            message = f"Product #{line.product_id} no longer exists."
            errors.append(message)
            unavailable.append(line.product_id)
            issues.append(ItemIssue(line.id, line.product_id, ISSUE_UNAVAILABLE, message))
            continue

        if not product.is_active:
            message = f"Product '{product.name}' is no longer available."
            errors.append(message)
            unavailable.append(product.id)
            issues.append(ItemIssue(line.id, product.id, ISSUE_UNAVAILABLE, message))

        if line.quantity > product.stock_quantity:
            message = (
                f"Product '{product.name}' has only {product.stock_quantity} items in stock, "
                f"but you have {line.quantity} in your cart."
            )
            out_of_stock.append(product.id)
            issues.append(ItemIssue(line.id, product.id, ISSUE_OUT_OF_STOCK, message))

        # Warning only: a changed price never blocks checkout.
        current = product.effective_price
        if line.price_snapshot != current:
            message = (
                f"The price of '{product.name}' changed from {line.price_snapshot} to {current}."
            )
            price_changed.append(product.id)
            issues.append(ItemIssue(line.id, product.id, ISSUE_PRICE_CHANGED, message))

    return ValidationReport(
        errors=tuple(errors),
        out_of_stock=tuple(out_of_stock),
        price_changed=tuple(price_changed),
        unavailable=tuple(unavailable),
        issues=tuple(issues),
    )
