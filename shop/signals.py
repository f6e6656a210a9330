# shop/signals.py
import logging

from django.contrib.auth.models import Group, Permission
from django.contrib.contenttypes.models import ContentType
from django.db.models.signals import post_migrate
from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)

GROUP_ORDER_MANAGERS = "Order Managers"

# Sent after the placing transaction commits. kwargs: order
order_placed = Signal()

# Sent after a status or payment-status transition commits. kwargs: order, event
order_status_changed = Signal()


@receiver(post_migrate, dispatch_uid="shop_seed_order_managers_v1")
def create_groups_and_permissions(sender, **kwargs) -> None:
    """
    After the 'shop' app migrates, ensure the 'Order Managers' group exists and
    holds the manage_orders permission used by the admin order endpoints.
    """
    if getattr(sender, "label", None) != "shop":
        return

    from .models import Order

    managers_group, _ = Group.objects.get_or_create(name=GROUP_ORDER_MANAGERS)
    ct: ContentType = ContentType.objects.get_for_model(Order)
    perm, _ = Permission.objects.get_or_create(
        content_type=ct,
        codename="manage_orders",
        defaults={"name": "Can change order and payment status"},
    )
    managers_group.permissions.add(perm)


@receiver(order_placed, dispatch_uid="shop_order_placed_email_v1")
def email_order_confirmation(sender, order, **kwargs) -> None:
    from .notifications import send_order_confirmation

    send_order_confirmation(order)


@receiver(order_placed, dispatch_uid="shop_order_placed_webhook_v1")
def post_order_placed(sender, order, **kwargs) -> None:
    from functions.webhooks import post_order_event

    post_order_event("order.placed", order)


@receiver(order_status_changed, dispatch_uid="shop_order_status_webhook_v1")
def post_order_status_changed(sender, order, event, **kwargs) -> None:
    """Creation events are covered by order.placed."""
    if not event.old_value:
        return
    from functions.webhooks import post_order_event

    post_order_event(
        f"order.{event.field}_changed",
        order,
        extra={
            "old": event.old_value,
            "new": event.new_value,
            "actor_role": event.actor_role,
            "at": event.created_at.isoformat(),
        },
    )
