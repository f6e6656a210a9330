"""
Order status state machine.

Customers may only cancel, and only while the order is pending or confirmed.
Admins may set any status (and any payment status) from any state; this is an
operational override and is audited like every other transition.
"""

from __future__ import annotations

import logging
from typing import Optional

from django.db import transaction

from . import inventory
from .exceptions import IllegalTransition, OrderNotFound, StatusConflict
from .models import ActorRole, Order, OrderStatus, OrderStatusEvent, PaymentStatus
from .signals import order_status_changed

logger = logging.getLogger(__name__)

MANAGE_ORDERS_PERMISSION = "shop.manage_orders"

TERMINAL_STATES = frozenset(
    {
        OrderStatus.CANCELLED,
        OrderStatus.DELIVERED,
        OrderStatus.COMPLETED,
        OrderStatus.REFUNDED,
    }
)

CUSTOMER_TRANSITIONS = {
    OrderStatus.PENDING: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.CANCELLED}),
}

# (status, label) in the order a shipment progresses
TIMELINE_STEPS = [
    (OrderStatus.PENDING, "Order Placed"),
    (OrderStatus.CONFIRMED, "Order Confirmed"),
    (OrderStatus.PROCESSING, "Processing"),
    (OrderStatus.SHIPPED, "Shipped"),
    (OrderStatus.DELIVERED, "Delivered"),
]
_PROGRESS = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
]


# ---- Roles -------------------------------------------------------------------

def is_order_admin(user) -> bool:
    """Staff, superusers and holders of shop.manage_orders may manage any order."""
    if not user or not getattr(user, "is_authenticated", False):
        return False
    if getattr(user, "is_staff", False) or getattr(user, "is_superuser", False):
        return True
    return user.has_perm(MANAGE_ORDERS_PERMISSION)


def can_transition(from_status: str, to_status: str, role: str) -> bool:
    if to_status not in OrderStatus.values:
        return False
    if role in (ActorRole.ADMIN, ActorRole.SYSTEM):
        return True
    if from_status in TERMINAL_STATES:
        return False
    return to_status in CUSTOMER_TRANSITIONS.get(from_status, frozenset())


# ---- Lookups -----------------------------------------------------------------

def get_order(order_id: int) -> Order:
    try:
        return Order.objects.get(pk=order_id)
    except (Order.DoesNotExist, ValueError, TypeError):
        raise OrderNotFound(order_id)


def get_order_by_number(order_number: str, customer=None) -> Order:
    """Fetch by order number; with ``customer`` set, other customers' orders are invisible."""
    queryset = Order.objects.select_related("customer").prefetch_related("items")
    if customer is not None:
        queryset = queryset.filter(customer=customer)
    try:
        return queryset.get(order_number=order_number)
    except Order.DoesNotExist:
        raise OrderNotFound(order_number)


def _lock(order_number: str, customer=None) -> Order:
    queryset = Order.objects.select_for_update()
    if customer is not None:
        queryset = queryset.filter(customer=customer)
    try:
        return queryset.get(order_number=order_number)
    except Order.DoesNotExist:
        raise OrderNotFound(order_number)


# ---- Audit -------------------------------------------------------------------

def record_event(
    order: Order,
    field: str,
    old_value: str,
    new_value: str,
    actor=None,
    role: str = ActorRole.SYSTEM,
    note: str = "",
) -> OrderStatusEvent:
    event = OrderStatusEvent.objects.create(
        order=order,
        field=field,
        old_value=old_value or "",
        new_value=new_value,
        actor=actor if getattr(actor, "pk", None) else None,
        actor_role=role,
        note=note,
    )
    logger.info(
        "Order %s %s: %s -> %s (by %s %s)",
        order.order_number, field, old_value or "-", new_value, role,
        getattr(actor, "pk", None),
    )
    transaction.on_commit(
        lambda: order_status_changed.send(sender=Order, order=order, event=event)
    )
    return event


def _release_inventory(order: Order) -> None:
    if order.inventory_released:
        return
    for item in order.items.all():
        inventory.increment_stock(item.product_id, item.quantity)
    order.inventory_released = True


# ---- Transitions ---------------------------------------------------------------

def cancel_order(customer, order_number: str, reason: str = "") -> Order:
    """
    Customer cancellation; returns the reserved stock in the same transaction.
    """
    with transaction.atomic():
        order = _lock(order_number, customer=customer)
        old = order.status
        if not can_transition(old, OrderStatus.CANCELLED, ActorRole.CUSTOMER):
            raise IllegalTransition(
                old,
                OrderStatus.CANCELLED,
                ActorRole.CUSTOMER,
                message="Order cannot be cancelled in current status.",
            )

        _release_inventory(order)
        order.status = OrderStatus.CANCELLED
        if reason:
            order.notes = f"{order.notes}\nCancellation reason: {reason}".strip()
        order.save(update_fields=["status", "notes", "inventory_released", "updated_at"])
        record_event(order, OrderStatusEvent.Field.STATUS, old, order.status,
                     actor=customer, role=ActorRole.CUSTOMER, note=reason)
    return order


def customer_transition(customer, order_number: str, status: str, reason: str = "") -> Order:
    """Status change requested by the owning customer; only cancellation exists."""
    if status == OrderStatus.CANCELLED:
        return cancel_order(customer, order_number, reason=reason)
    order = get_order_by_number(order_number, customer=customer)
    raise IllegalTransition(order.status, status, ActorRole.CUSTOMER)


def set_status(
    actor,
    order_number: str,
    status: str,
    expected_status: Optional[str] = None,
    note: str = "",
) -> Order:
    """Admin status change. Entering ``cancelled`` returns stock once."""
    if not is_order_admin(actor):
        raise IllegalTransition("", status, ActorRole.CUSTOMER,
                                message="Only administrators can change an order's status.")
    if status not in OrderStatus.values:
        raise IllegalTransition("", status, ActorRole.ADMIN, message=f"Unknown order status '{status}'.")

    with transaction.atomic():
        order = _lock(order_number)
        old = order.status
        if expected_status is not None and expected_status != old:
            raise StatusConflict("status", expected_status, old)
        if old == status:
            return order

        fields = ["status", "updated_at"]
        if status == OrderStatus.CANCELLED:
            _release_inventory(order)
            fields.append("inventory_released")
        order.status = status
        order.save(update_fields=fields)
        record_event(order, OrderStatusEvent.Field.STATUS, old, status,
                     actor=actor, role=ActorRole.ADMIN, note=note)
    return order


def update_order_status(order_id: int, status: str, actor) -> Order:
    """``set_status`` addressed by primary key instead of order number."""
    return set_status(actor, get_order(order_id).order_number, status)


def set_payment_status(
    actor,
    order_number: str,
    payment_status: str,
    expected_payment_status: Optional[str] = None,
    note: str = "",
) -> Order:
    """Admin payment status change, independent of the order status."""
    if not is_order_admin(actor):
        raise IllegalTransition("", payment_status, ActorRole.CUSTOMER,
                                message="Only administrators can change the payment status.")
    if payment_status not in PaymentStatus.values:
        raise IllegalTransition("", payment_status, ActorRole.ADMIN,
                                message=f"Unknown payment status '{payment_status}'.")

    with transaction.atomic():
        order = _lock(order_number)
        old = order.payment_status
        if expected_payment_status is not None and expected_payment_status != old:
            raise StatusConflict("payment_status", expected_payment_status, old)
        if old == payment_status:
            return order

        order.payment_status = payment_status
        order.save(update_fields=["payment_status", "updated_at"])
        record_event(order, OrderStatusEvent.Field.PAYMENT_STATUS, old, payment_status,
                     actor=actor, role=ActorRole.ADMIN, note=note)
    return order


# ---- Tracking ------------------------------------------------------------------

def order_timeline(order: Order) -> list[dict]:
    """Tracking steps for an order, with the time each step was first reached."""
    reached_at = {}
    for event in order.events.filter(field=OrderStatusEvent.Field.STATUS):
        reached_at.setdefault(event.new_value, event.created_at)
    reached_at.setdefault(OrderStatus.PENDING, order.created_at)

    current = order.status
    if current == OrderStatus.COMPLETED:
        current = OrderStatus.DELIVERED
    progress = _PROGRESS.index(current) if current in _PROGRESS else -1

    timeline = []
    for index, (status, label) in enumerate(TIMELINE_STEPS):
        completed = index <= progress or status == OrderStatus.PENDING
        timeline.append(
            {
                "status": status.value,
                "label": label,
                "completed": completed,
                "date": reached_at.get(status) if completed else None,
            }
        )

    if order.status in (OrderStatus.CANCELLED, OrderStatus.REFUNDED):
        timeline.append(
            {
                "status": order.status,
                "label": OrderStatus(order.status).label,
                "completed": True,
                "date": reached_at.get(order.status, order.updated_at),
            }
        )
    return timeline
