import logging

from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


def order_invoice_body(order) -> str:
    customer = order.customer
    lines = [
        f"Thank you for your purchase, {customer.get_username()}!",
        "",
        f"Order number: {order.order_number}",
        "",
        "Items:",
    ]
    for item in order.items.all():
        lines.append(f"- {item.product_name} x{item.quantity} @ {item.unit_price} = {item.line_total()}")
    lines.append("")
    lines.append(f"Subtotal: {order.subtotal}")
    if order.discount_amount:
        lines.append(f"Discount ({order.discount_code}): -{order.discount_amount}")
    lines.append(f"Total: {order.total}")
    lines.append("")
    lines.append("Payment: cash on delivery.")
    return "\n".join(lines)


def send_order_confirmation(order) -> bool:
    """E-mail the invoice for a freshly placed order. Never raises."""
    if not getattr(settings, "SHOP_SEND_ORDER_EMAILS", True):
        return False
    email = getattr(order.customer, "email", "")
    if not email:
        logger.debug("No e-mail for customer %s, skipping invoice", order.customer_id)
        return False
    try:
        send_mail(
            f"Invoice for Order {order.order_number}",
            order_invoice_body(order),
            getattr(settings, "DEFAULT_FROM_EMAIL", "no-reply@storefront.test"),
            [email],
        )
    except Exception as exc:
        logger.warning("Invoice e-mail for order %s failed (non-fatal): %s", order.order_number, exc)
        return False
    return True
