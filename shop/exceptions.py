"""
Errors raised by the cart, checkout and order lifecycle services.

The API layer turns these into HTTP responses; nothing in here knows about HTTP.
"""

from __future__ import annotations


class ShopError(Exception):
    """Base class for every business-rule failure in the shop core."""

    default_message = "Request could not be completed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidQuantity(ShopError):
    default_message = "Quantity must be at least 1."

    def __init__(self, quantity, message: str | None = None):
        self.quantity = quantity
        super().__init__(message or f"Quantity must be at least 1 (got {quantity}).")


class ProductNotFound(ShopError):
    def __init__(self, product_id, message: str | None = None):
        self.product_id = product_id
        super().__init__(message or f"Product {product_id} does not exist or is unavailable.")


class CartItemNotFound(ShopError):
    def __init__(self, item_id, message: str | None = None):
        self.item_id = item_id
        super().__init__(message or f"Cart item {item_id} not found.")


class CartInvalid(ShopError):
    """The cart failed validation; ``report`` says which lines and why."""

    default_message = "Cart validation failed."

    def __init__(self, report=None, message: str | None = None):
        self.report = report
        if message is None and report is not None and report.errors:
            message = "Cart validation failed: " + " ".join(report.errors)
        super().__init__(message)

    @property
    def errors(self) -> list[str]:
        return list(self.report.errors) if self.report is not None else []

    @property
    def out_of_stock(self) -> list[int]:
        return list(self.report.out_of_stock) if self.report is not None else []


class OutOfStock(CartInvalid):
    """Requested quantities exceed what is in stock."""

    default_message = "Some items in your cart are out of stock."

    def __init__(self, report=None, product_ids=None, message: str | None = None):
        self._product_ids = list(product_ids or [])
        super().__init__(report, message or self.default_message)

    @property
    def out_of_stock(self) -> list[int]:
        if self._product_ids:
            return list(self._product_ids)
        return super().out_of_stock


class InsufficientStock(ShopError):
    def __init__(self, product_id, requested: int, available: int | None = None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: requested {requested}, "
            f"available {available if available is not None else 'unknown'}."
        )


class IllegalTransition(ShopError):
    def __init__(self, current: str, target: str, role: str, message: str | None = None):
        self.current = current
        self.target = target
        self.role = role
        super().__init__(message or f"A {role} cannot move an order from '{current}' to '{target}'.")


class StatusConflict(ShopError):
    """The order changed since the caller last read it."""

    def __init__(self, field: str, expected: str, actual: str):
        self.field = field
        self.expected = expected
        self.actual = actual
        super().__init__(f"Order {field} is '{actual}', expected '{expected}'. Reload and try again.")


class OrderNotFound(ShopError):
    def __init__(self, reference, message: str | None = None):
        self.reference = reference
        super().__init__(message or f"Order {reference} not found.")


class DiscountNotFound(ShopError):
    def __init__(self, code: str):
        self.code = code
        super().__init__("This discount code does not exist.")


class DiscountExpired(ShopError):
    def __init__(self, code: str, message: str | None = None):
        self.code = code
        super().__init__(message or "This discount code has expired.")


class OrderNumberUnavailable(ShopError):
    default_message = "Could not allocate a unique order number."
