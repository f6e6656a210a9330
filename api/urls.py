# api/urls.py
from django.urls import path
from .views import (
    CartAPIView, CartItemListAPIView, CartItemDetailAPIView, CartClearAPIView,
    CartCountAPIView, CartValidateAPIView, CartDiscountAPIView, CartRefreshPricesAPIView,
    OrderListCreateAPIView, OrderDetailAPIView, OrderCancelAPIView, OrderTrackAPIView,
    AdminOrderListAPIView, AdminOrderDetailAPIView, AdminOrderStatusAPIView,
    AdminPaymentStatusAPIView,
)

app_name = "api"

urlpatterns = [
    # Cart
    path("cart/", CartAPIView.as_view(), name="cart"),
    path("cart/items/", CartItemListAPIView.as_view(), name="cart-items"),
    path("cart/items/<int:item_id>/", CartItemDetailAPIView.as_view(), name="cart-item-detail"),
    path("cart/clear/", CartClearAPIView.as_view(), name="cart-clear"),
    path("cart/count/", CartCountAPIView.as_view(), name="cart-count"),
    path("cart/validate/", CartValidateAPIView.as_view(), name="cart-validate"),
    path("cart/discount/", CartDiscountAPIView.as_view(), name="cart-discount"),
    path("cart/refresh-prices/", CartRefreshPricesAPIView.as_view(), name="cart-refresh-prices"),

    # Orders (customer)
    path("orders/", OrderListCreateAPIView.as_view(), name="order-list"),
    path("orders/<str:order_number>/", OrderDetailAPIView.as_view(), name="order-detail"),
    path("orders/<str:order_number>/cancel/", OrderCancelAPIView.as_view(), name="order-cancel"),
    path("orders/<str:order_number>/track/", OrderTrackAPIView.as_view(), name="order-track"),

    # Orders (admin)
    path("admin/orders/", AdminOrderListAPIView.as_view(), name="admin-order-list"),
    path("admin/orders/<str:order_number>/", AdminOrderDetailAPIView.as_view(), name="admin-order-detail"),
    path("admin/orders/<str:order_number>/status/", AdminOrderStatusAPIView.as_view(),
         name="admin-order-status"),
    path("admin/orders/<str:order_number>/payment-status/", AdminPaymentStatusAPIView.as_view(),
         name="admin-order-payment-status"),
]
