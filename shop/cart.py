"""
Per-customer cart operations.

Carts are edited optimistically: nothing here checks stock. The validator in
``shop.validation`` is the safety net and runs again inside checkout.

Every operation returns a fresh, immutable ``CartSnapshot`` whose summary is
derived from the current product rows, never from stored totals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F, Sum

from . import discounts
from .exceptions import CartItemNotFound, InvalidQuantity, ProductNotFound
from .inventory import get_product
from .models import Cart, CartItem

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class CartLine:
    item_id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    price_snapshot: Decimal
    line_total: Decimal
    stock_quantity: int
    is_active: bool

    @property
    def price_changed(self) -> bool:
        return self.unit_price != self.price_snapshot


@dataclass(frozen=True)
class CartSummary:
    subtotal: Decimal
    discount_code: str
    discount_amount: Decimal
    total: Decimal
    total_quantity: int
    total_items: int
    discount_message: str = ""


@dataclass(frozen=True)
class CartSnapshot:
    cart_id: Optional[int]
    customer_id: int
    lines: tuple
    summary: CartSummary

    @property
    def is_empty(self) -> bool:
        return not self.lines


# ---- Persistence helpers -----------------------------------------------------

def load_cart(customer) -> Optional[Cart]:
    return Cart.objects.filter(customer=customer).first()


def save_cart(cart: Cart, fields=None) -> Cart:
    """Persist ``cart``; with ``fields`` only those columns (and ``updated_at``) are written."""
    if fields is None:
        cart.save()
    else:
        cart.save(update_fields=[*fields, "updated_at"])
    return cart


def delete_cart(customer) -> bool:
    """Remove the customer's cart row and its lines. Returns False when there was none."""
    deleted, _ = Cart.objects.filter(customer=customer).delete()
    if deleted:
        logger.debug("Deleted cart of customer %s", customer.pk)
    return bool(deleted)


def _get_or_create_cart(customer) -> Cart:
    cart, created = Cart.objects.get_or_create(customer=customer)
    if created:
        logger.debug("Created cart %s for customer %s", cart.pk, customer.pk)
    return cart


def max_item_quantity() -> int:
    return getattr(settings, "SHOP_MAX_ITEM_QUANTITY", 100)


def _check_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantity(quantity)
    return quantity


def _check_line_cap(quantity: int) -> None:
    cap = max_item_quantity()
    if quantity > cap:
        raise InvalidQuantity(quantity, message=f"Quantity cannot exceed {cap} (got {quantity}).")


# ---- Summary -----------------------------------------------------------------

def _lines_for(cart: Optional[Cart]) -> tuple:
    if cart is None:
        return ()
    lines = []
    for item in cart.items.select_related("product"):
        product = item.product
        if product is None:
            # Deleted product: priced at zero, flagged by validation.
            lines.append(
                CartLine(
                    item_id=item.id,
                    product_id=item.product_id,
                    product_name="",
                    quantity=item.quantity,
                    unit_price=ZERO,
                    price_snapshot=item.price_snapshot,
                    line_total=ZERO,
                    stock_quantity=0,
                    is_active=False,
                )
            )
            continue
        unit_price = product.effective_price
        lines.append(
            CartLine(
                item_id=item.id,
                product_id=product.id,
                product_name=product.name,
                quantity=item.quantity,
                unit_price=unit_price,
                price_snapshot=item.price_snapshot,
                line_total=unit_price * item.quantity,
                stock_quantity=product.stock_quantity,
                is_active=product.is_active,
            )
        )
    return tuple(lines)


def compute_summary(lines, discount_code: str = "") -> CartSummary:
    subtotal = discounts.quantize_money(sum((line.line_total for line in lines), ZERO))
    discount_amount = ZERO
    message = ""
    if discount_code:
        result = discounts.resolve(discount_code, subtotal)
        message = result.message
        if result.applied:
            discount_amount = result.discount_amount
    return CartSummary(
        subtotal=subtotal,
        discount_code=discount_code,
        discount_amount=discount_amount,
        total=subtotal - discount_amount,
        total_quantity=sum(line.quantity for line in lines),
        total_items=len(lines),
        discount_message=message,
    )


def snapshot(customer, cart: Optional[Cart] = None) -> CartSnapshot:
    if cart is None:
        cart = load_cart(customer)
    lines = _lines_for(cart)
    code = cart.discount_code if cart is not None else ""
    return CartSnapshot(
        cart_id=cart.pk if cart is not None else None,
        customer_id=customer.pk,
        lines=lines,
        summary=compute_summary(lines, code),
    )


# ---- Operations --------------------------------------------------------------

def get_cart(customer) -> CartSnapshot:
    return snapshot(customer)


def add_item(customer, product_id: int, quantity: int = 1) -> CartSnapshot:
    """
    Add ``quantity`` of a product, merging into an existing line for it.

    Stock is not checked here. The merged line may not exceed
    ``SHOP_MAX_ITEM_QUANTITY``.
    """
    _check_quantity(quantity)
    _check_line_cap(quantity)
    product = get_product(product_id, active_only=True)

    with transaction.atomic():
        cart = _get_or_create_cart(customer)
        item, created = CartItem.objects.select_for_update().get_or_create(
            cart=cart,
            product=product,
            defaults={"quantity": quantity, "price_snapshot": product.effective_price},
        )
        if not created:
            _check_line_cap(item.quantity + quantity)
            CartItem.objects.filter(pk=item.pk).update(
                quantity=F("quantity") + quantity,
                price_snapshot=product.effective_price,
            )

    logger.debug("Customer %s added %s x product %s", customer.pk, quantity, product.pk)
    return snapshot(customer, cart)


def update_quantity(customer, item_id: int, quantity: int) -> CartSnapshot:
    """Set a line's quantity. Use ``remove_item`` to delete a line."""
    _check_quantity(quantity)
    _check_line_cap(quantity)
    cart = load_cart(customer)
    item = None
    if cart is not None:
        item = cart.items.select_related("product").filter(pk=item_id).first()
    if item is None:
        raise CartItemNotFound(item_id)
    if item.product is None:
        raise ProductNotFound(item.product_id)

    item.quantity = quantity
    item.price_snapshot = item.product.effective_price
    item.save(update_fields=["quantity", "price_snapshot"])
    return snapshot(customer, cart)


def remove_item(customer, item_id: int) -> CartSnapshot:
    """Remove a line; removing a missing line is a no-op."""
    cart = load_cart(customer)
    if cart is not None:
        cart.items.filter(pk=item_id).delete()
    return snapshot(customer, cart)


def clear(customer) -> CartSnapshot:
    """Empty the cart and drop its discount code. The cart row itself is kept."""
    cart = load_cart(customer)
    if cart is not None:
        empty_cart(cart)
    return snapshot(customer, cart)


def empty_cart(cart: Cart, item_ids=None) -> None:
    """Delete the cart's lines (only ``item_ids`` when given) and drop its discount code."""
    items = cart.items.all()
    if item_ids is not None:
        items = items.filter(pk__in=item_ids)
    items.delete()
    if cart.discount_code:
        cart.discount_code = ""
        save_cart(cart, ["discount_code"])


def apply_discount_code(customer, code: str) -> tuple[discounts.DiscountResult, CartSnapshot]:
    """
    Try ``code`` against the current cart.

    Only the code string is kept on success; the amount is recomputed on every read.
    """
    current = snapshot(customer)
    code = (code or "").strip()
    if current.is_empty:
        result = discounts.DiscountResult(False, code, ZERO, ZERO, "Your cart is empty.")
        return result, current

    result = discounts.resolve(code, current.summary.subtotal)
    if not result.applied:
        return result, current

    cart = load_cart(customer)
    cart.discount_code = result.code
    save_cart(cart, ["discount_code"])
    logger.info("Customer %s applied discount code %s", customer.pk, result.code)
    return result, snapshot(customer, cart)


def remove_discount_code(customer) -> CartSnapshot:
    cart = load_cart(customer)
    if cart is not None and cart.discount_code:
        cart.discount_code = ""
        save_cart(cart, ["discount_code"])
    return snapshot(customer, cart)


def refresh_prices(customer) -> CartSnapshot:
    """Record that the shopper has seen the current price of every line."""
    cart = load_cart(customer)
    if cart is not None:
        items = [item for item in cart.items.select_related("product") if item.product is not None]
        for item in items:
            item.price_snapshot = item.product.effective_price
        CartItem.objects.bulk_update(items, ["price_snapshot"])
    return snapshot(customer, cart)


def item_count(customer) -> int:
    total = CartItem.objects.filter(cart__customer=customer).aggregate(total=Sum("quantity"))["total"]
    return total or 0
