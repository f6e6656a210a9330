"""Discount code lookup and subtotal adjustment."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.utils import timezone

from .exceptions import DiscountExpired, DiscountNotFound
from .models import Discount

CENT = Decimal("0.01")


def quantize_money(value) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class DiscountResult:
    applied: bool
    code: str
    discount_amount: Decimal
    new_subtotal: Decimal
    message: str


def lookup_discount(code: str) -> Discount:
    code = (code or "").strip()
    if not code:
        raise DiscountNotFound(code)
    try:
        return Discount.objects.get(code__iexact=code)
    except Discount.DoesNotExist:
        raise DiscountNotFound(code)


def discount_amount_for(discount: Discount, subtotal: Decimal) -> Decimal:
    if discount.kind == Discount.Kind.PERCENTAGE:
        amount = subtotal * discount.value / Decimal("100")
    else:
        amount = discount.value
    return quantize_money(min(amount, subtotal))


def resolve(code: str, subtotal: Decimal, now=None) -> DiscountResult:
    """
    Work out what ``code`` does to ``subtotal``.

    Never raises for an unusable code: the result carries ``applied=False``
    and a message that can be shown to the shopper as-is.
    """
    subtotal = quantize_money(subtotal)
    now = now or timezone.now()
    code = (code or "").strip()

    try:
        discount = lookup_discount(code)
        discount.check_usable(now)
    except (DiscountNotFound, DiscountExpired) as exc:
        return DiscountResult(False, code, Decimal("0.00"), subtotal, exc.message)

    if subtotal < discount.min_subtotal:
        return DiscountResult(
            False,
            discount.code,
            Decimal("0.00"),
            subtotal,
            f"A minimum subtotal of {discount.min_subtotal} is required for this code.",
        )

    amount = discount_amount_for(discount, subtotal)
    return DiscountResult(
        True,
        discount.code,
        amount,
        subtotal - amount,
        f"Discount code {discount.code} applied.",
    )
