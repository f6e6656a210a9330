"""
Turn a customer's cart into an order.

``commit`` is all-or-nothing: it re-validates the cart under a lock, takes the
stock, writes the order with frozen prices and empties the cart inside a single
transaction. Any failure leaves the cart and stock exactly as they were.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django.utils.crypto import get_random_string

from . import discounts, inventory
from .cart import empty_cart
from .exceptions import CartInvalid, InsufficientStock, OutOfStock, OrderNumberUnavailable, ShopError
from .lifecycle import record_event
from .models import ActorRole, Cart, Order, OrderItem, OrderStatus, OrderStatusEvent, PaymentMethod
from .signals import order_placed
from .validation import validate

logger = logging.getLogger(__name__)

ORDER_NUMBER_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def generate_order_number() -> str:
    """``ORD-YYYYMMDD-XXXXXX``, retried until it does not collide with an existing order."""
    prefix = getattr(settings, "SHOP_ORDER_NUMBER_PREFIX", "ORD")
    attempts = getattr(settings, "SHOP_ORDER_NUMBER_ATTEMPTS", 5)
    today = timezone.now().strftime("%Y%m%d")
    for _ in range(attempts):
        candidate = f"{prefix}-{today}-{get_random_string(6, ORDER_NUMBER_CHARS)}"
        if not Order.objects.filter(order_number=candidate).exists():
            return candidate
        logger.warning("Order number collision on %s, retrying", candidate)
    raise OrderNumberUnavailable()


def create_order(
    customer,
    lines,
    *,
    shipping_address: dict,
    billing_address: dict,
    payment_method: str,
    notes: str,
    subtotal: Decimal,
    discount_code: str = "",
    discount_amount: Decimal = Decimal("0.00"),
) -> Order:
    """
    Write a pending order and its items from cart ``lines``.

    Unit prices are the products' effective prices right now. Callers must hold
    the transaction that took the stock.
    """
    order = Order.objects.create(
        order_number=generate_order_number(),
        customer=customer,
        shipping_address=shipping_address,
        billing_address=billing_address,
        payment_method=payment_method,
        notes=notes or "",
        status=OrderStatus.PENDING,
        subtotal=subtotal,
        discount_code=discount_code,
        discount_amount=discount_amount,
        total=subtotal - discount_amount,
    )
    OrderItem.objects.bulk_create(
        [
            OrderItem(
                order=order,
                product=line.product,
                product_name=line.product.name,
                quantity=line.quantity,
                unit_price=line.product.effective_price,
            )
            for line in lines
        ]
    )
    return order


def commit(
    customer,
    shipping_address: dict,
    billing_address: Optional[dict] = None,
    payment_method: str = PaymentMethod.CASH_ON_DELIVERY,
    notes: str = "",
) -> Order:
    """Place an order from the customer's cart."""
    if payment_method not in PaymentMethod.values:
        raise ShopError(f"Unsupported payment method '{payment_method}'.")

    with transaction.atomic():
        cart = Cart.objects.select_for_update().filter(customer=customer).first()

        # Re-validate under the cart lock.
        report = validate(cart)
        if not report.valid:
            logger.info("Checkout refused for customer %s: %s", customer.pk, report.as_dict())
            if report.stock_only:
                raise OutOfStock(report)
            raise CartInvalid(report)

        # Stock is taken in ascending product id order.
        lines = list(cart.items.select_related("product").order_by("product_id"))
        for line in lines:
            try:
                inventory.decrement_stock(line.product_id, line.quantity)
            except InsufficientStock as exc:
                raise OutOfStock(product_ids=[exc.product_id]) from exc

        subtotal = discounts.quantize_money(
            sum((line.product.effective_price * line.quantity for line in lines), Decimal("0.00"))
        )
        discount_code = ""
        discount_amount = Decimal("0.00")
        if cart.discount_code:
            result = discounts.resolve(cart.discount_code, subtotal)
            if result.applied:
                discount_code = result.code
                discount_amount = result.discount_amount
            else:
                logger.info(
                    "Dropping discount code %s at checkout for customer %s: %s",
                    cart.discount_code, customer.pk, result.message,
                )

        order = create_order(
            customer,
            lines,
            shipping_address=shipping_address,
            billing_address=billing_address or shipping_address,
            payment_method=payment_method,
            notes=notes,
            subtotal=subtotal,
            discount_code=discount_code,
            discount_amount=discount_amount,
        )

        # Lines added after the re-read stay in the cart.
        empty_cart(cart, item_ids=[line.pk for line in lines])
        record_event(order, OrderStatusEvent.Field.STATUS, "", OrderStatus.PENDING,
                     actor=customer, role=ActorRole.CUSTOMER, note="Order placed")

        transaction.on_commit(lambda: order_placed.send(sender=Order, order=order))

    logger.info("Order %s placed by customer %s, total %s", order.order_number, customer.pk, order.total)
    return order
