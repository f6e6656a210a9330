# shop/inventory.py
"""Stock and price reads/writes for products."""

from __future__ import annotations

import logging

from django.db.models import F

from .exceptions import InsufficientStock, ProductNotFound
from .models import Product

logger = logging.getLogger(__name__)


def get_product(product_id: int, *, active_only: bool = False) -> Product:
    """Return the product or raise ProductNotFound."""
    queryset = Product.objects.all()
    if active_only:
        queryset = queryset.filter(is_active=True)
    try:
        return queryset.get(pk=product_id)
    except (Product.DoesNotExist, ValueError, TypeError):
        raise ProductNotFound(product_id)


def decrement_stock(product_id: int, amount: int) -> None:
    """
    Take ``amount`` units out of stock in one conditional UPDATE.

    The row only changes when enough stock is left, so two concurrent callers
    can never drive the quantity below zero.
    """
    updated = Product.objects.filter(pk=product_id, stock_quantity__gte=amount).update(
        stock_quantity=F("stock_quantity") - amount
    )
    if updated:
        return

    available = Product.objects.filter(pk=product_id).values_list("stock_quantity", flat=True).first()
    if available is None:
        raise ProductNotFound(product_id)
    logger.info(
        "Stock decrement refused for product %s: requested %s, available %s",
        product_id, amount, available,
    )
    raise InsufficientStock(product_id, amount, available)


def increment_stock(product_id: int, amount: int) -> None:
    """Return ``amount`` units to stock (cancellation restock)."""
    updated = Product.objects.filter(pk=product_id).update(
        stock_quantity=F("stock_quantity") + amount
    )
    if not updated:
        raise ProductNotFound(product_id)
