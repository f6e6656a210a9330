# api/serializers.py
from __future__ import annotations

from typing import Any, Dict

from rest_framework import serializers

from shop.cart import max_item_quantity
from shop.models import Order, OrderItem, OrderStatus, OrderStatusEvent, PaymentMethod, PaymentStatus


# ---- Cart (read) ----

class CartLineSerializer(serializers.Serializer):
    item_id = serializers.IntegerField()
    product_id = serializers.IntegerField()
    product_name = serializers.CharField()
    quantity = serializers.IntegerField()
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2)
    price_snapshot = serializers.DecimalField(max_digits=12, decimal_places=2)
    line_total = serializers.DecimalField(max_digits=14, decimal_places=2)
    stock_quantity = serializers.IntegerField()
    is_active = serializers.BooleanField()
    price_changed = serializers.BooleanField()


class CartSummarySerializer(serializers.Serializer):
    subtotal = serializers.DecimalField(max_digits=14, decimal_places=2)
    discount_code = serializers.CharField()
    discount_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    total = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_quantity = serializers.IntegerField()
    total_items = serializers.IntegerField()
    discount_message = serializers.CharField()


class CartSerializer(serializers.Serializer):
    """Read-only rendering of a shop.cart.CartSnapshot."""

    cart_id = serializers.IntegerField(allow_null=True)
    items = CartLineSerializer(source="lines", many=True)
    summary = CartSummarySerializer()


# ---- Cart (write) ----

class AddToCartSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    # The lower bound is enforced by the cart service (InvalidQuantity).
    quantity = serializers.IntegerField(default=1)

    def validate_quantity(self, value: int) -> int:
        if value > max_item_quantity():
            raise serializers.ValidationError(f"Quantity cannot exceed {max_item_quantity()}.")
        return value


class UpdateCartItemSerializer(serializers.Serializer):
    quantity = serializers.IntegerField()

    def validate_quantity(self, value: int) -> int:
        if value > max_item_quantity():
            raise serializers.ValidationError(f"Quantity cannot exceed {max_item_quantity()}.")
        return value


class DiscountCodeSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)

    def validate_code(self, value: str) -> str:
        if not value.strip():
            raise serializers.ValidationError("Discount code cannot be blank.")
        return value.strip()


# ---- Checkout ----

class AddressSerializer(serializers.Serializer):
    full_name = serializers.CharField(max_length=255)
    phone = serializers.CharField(max_length=20)
    address_line_1 = serializers.CharField(max_length=255)
    address_line_2 = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    city = serializers.CharField(max_length=100)
    state = serializers.CharField(max_length=100)
    postal_code = serializers.CharField(max_length=20)
    country = serializers.CharField(max_length=100)


class CheckoutSerializer(serializers.Serializer):
    shipping_address = AddressSerializer()
    billing_address = AddressSerializer(required=False, allow_null=True)
    payment_method = serializers.ChoiceField(
        choices=PaymentMethod.choices, default=PaymentMethod.CASH_ON_DELIVERY
    )
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default="")

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        # Billing defaults to the shipping address.
        if not attrs.get("billing_address"):
            attrs["billing_address"] = attrs["shipping_address"]
        return attrs


# ---- Orders ----

class OrderItemSerializer(serializers.ModelSerializer):
    line_total = serializers.SerializerMethodField()

    class Meta:
        model = OrderItem
        fields = ["id", "product", "product_name", "quantity", "unit_price", "line_total"]
        read_only_fields = fields

    def get_line_total(self, obj: OrderItem) -> str:
        return f"{obj.line_total():.2f}"


class OrderStatusEventSerializer(serializers.ModelSerializer):
    actor_username = serializers.ReadOnlyField(source="actor.username", default=None)

    class Meta:
        model = OrderStatusEvent
        fields = ["field", "old_value", "new_value", "actor", "actor_username", "actor_role", "note", "created_at"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    customer_username = serializers.ReadOnlyField(source="customer.username")

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer",
            "customer_username",
            "status",
            "payment_status",
            "payment_method",
            "shipping_address",
            "billing_address",
            "notes",
            "subtotal",
            "discount_code",
            "discount_amount",
            "total",
            "total_quantity",
            "items",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class AdminOrderSerializer(OrderSerializer):
    events = OrderStatusEventSerializer(many=True, read_only=True)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + ["inventory_released", "events"]
        read_only_fields = fields


# ---- Transitions ----

class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class CustomerStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class OrderStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    expected_status = serializers.ChoiceField(choices=OrderStatus.choices, required=False)
    note = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class PaymentStatusUpdateSerializer(serializers.Serializer):
    payment_status = serializers.ChoiceField(choices=PaymentStatus.choices)
    expected_payment_status = serializers.ChoiceField(choices=PaymentStatus.choices, required=False)
    note = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


# ---- Admin order list filters ----

class AdminOrderFilterSerializer(serializers.Serializer):
    """Query parameters accepted by the admin order list."""

    status = serializers.ChoiceField(choices=OrderStatus.choices, required=False)
    payment_status = serializers.ChoiceField(choices=PaymentStatus.choices, required=False)
    customer = serializers.IntegerField(min_value=1, required=False)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)
    search = serializers.CharField(max_length=100, required=False, allow_blank=True)

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        date_from, date_to = attrs.get("date_from"), attrs.get("date_to")
        if date_from and date_to and date_from > date_to:
            raise serializers.ValidationError({"date_to": "Must not be earlier than date_from."})
        return attrs
