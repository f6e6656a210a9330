from django.contrib import admin, messages

from . import lifecycle
from .exceptions import ShopError
from .models import (
    Cart,
    CartItem,
    Discount,
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusEvent,
    PaymentStatus,
    Product,
)


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "sku", "price", "sale_price", "stock_quantity", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name", "sku")
    list_editable = ("price", "sale_price", "stock_quantity", "is_active")
    ordering = ("name",)


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    autocomplete_fields = ("product",)
    readonly_fields = ("price_snapshot", "added_at")
    fields = ("product", "quantity", "price_snapshot", "added_at")


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("id", "customer", "discount_code", "items_count", "updated_at")
    list_select_related = ("customer",)
    search_fields = ("customer__username", "customer__email")
    inlines = [CartItemInline]

    @admin.display(description="Items")
    def items_count(self, obj: Cart) -> int:
        return obj.items.count()


@admin.register(Discount)
class DiscountAdmin(admin.ModelAdmin):
    list_display = ("code", "kind", "value", "min_subtotal", "valid_from", "valid_until", "is_active")
    list_filter = ("kind", "is_active")
    search_fields = ("code",)
    ordering = ("code",)


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = ("product", "product_name", "quantity", "unit_price", "line_total_calc")
    fields = ("product", "product_name", "quantity", "unit_price", "line_total_calc")

    @admin.display(description="Line total")
    def line_total_calc(self, obj: OrderItem):
        if obj.pk:
            return obj.line_total()
        return "-"

    def has_add_permission(self, request, obj=None) -> bool:
        return False


class OrderStatusEventInline(admin.TabularInline):
    model = OrderStatusEvent
    extra = 0
    can_delete = False
    readonly_fields = ("created_at", "field", "old_value", "new_value", "actor", "actor_role", "note")
    fields = readonly_fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


def _status_action(status: str):
    def action(modeladmin, request, queryset):
        _apply(modeladmin, request, queryset, lifecycle.set_status, status)

    action.__name__ = f"mark_{status}"
    action.short_description = f"Mark selected orders as {OrderStatus(status).label.lower()}"
    return action


def _payment_action(payment_status: str):
    def action(modeladmin, request, queryset):
        _apply(modeladmin, request, queryset, lifecycle.set_payment_status, payment_status)

    action.__name__ = f"mark_payment_{payment_status}"
    action.short_description = f"Mark payment of selected orders as {PaymentStatus(payment_status).label.lower()}"
    return action


def _apply(modeladmin, request, queryset, transition, value) -> None:
    changed = 0
    for order in queryset:
        try:
            transition(request.user, order.order_number, value)
            changed += 1
        except ShopError as exc:
            modeladmin.message_user(request, f"{order.order_number}: {exc.message}", messages.ERROR)
    if changed:
        modeladmin.message_user(request, f"Updated {changed} order(s).", messages.SUCCESS)


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "order_number", "customer", "created_at", "status", "payment_status", "total", "items_count",
    )
    list_select_related = ("customer",)
    list_filter = ("status", "payment_status", "created_at")
    search_fields = ("order_number", "customer__username", "customer__email")
    date_hierarchy = "created_at"
    # Status fields only change through the actions below so every change is audited.
    readonly_fields = (
        "order_number", "customer", "status", "payment_status", "payment_method",
        "subtotal", "discount_code", "discount_amount", "total", "inventory_released",
        "created_at", "updated_at",
    )
    inlines = [OrderItemInline, OrderStatusEventInline]
    ordering = ("-created_at",)
    actions = [
        _status_action(OrderStatus.CONFIRMED),
        _status_action(OrderStatus.PROCESSING),
        _status_action(OrderStatus.SHIPPED),
        _status_action(OrderStatus.DELIVERED),
        _status_action(OrderStatus.CANCELLED),
        _payment_action(PaymentStatus.PAID),
        _payment_action(PaymentStatus.FAILED),
    ]

    @admin.display(description="Items")
    def items_count(self, obj: Order) -> int:
        return obj.items.count()

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


admin.site.site_header = "Storefront Admin"
admin.site.site_title = "Storefront Admin"
admin.site.index_title = "Administration"
