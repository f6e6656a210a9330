# api/views.py
from __future__ import annotations

import logging

from django.db.models import Q
from rest_framework import generics, status
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from shop import cart as cart_service
from shop import checkout, lifecycle
from shop.exceptions import (
    CartInvalid,
    CartItemNotFound,
    IllegalTransition,
    InvalidQuantity,
    OrderNotFound,
    OutOfStock,
    ProductNotFound,
    ShopError,
    StatusConflict,
)
from shop.models import Order
from shop.validation import validate
from .permissions import IsOrderAdmin, IsOrderOwner
from .serializers import (
    AddToCartSerializer,
    AdminOrderFilterSerializer,
    AdminOrderSerializer,
    CancelOrderSerializer,
    CartSerializer,
    CheckoutSerializer,
    CustomerStatusSerializer,
    DiscountCodeSerializer,
    OrderSerializer,
    OrderStatusUpdateSerializer,
    PaymentStatusUpdateSerializer,
    UpdateCartItemSerializer,
)

logger = logging.getLogger(__name__)

# ---------- helpers ----------

# Most specific first: OutOfStock is a CartInvalid.
_ERROR_STATUS = (
    (StatusConflict, status.HTTP_409_CONFLICT),
    (OutOfStock, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (CartInvalid, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (IllegalTransition, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidQuantity, status.HTTP_400_BAD_REQUEST),
    (ProductNotFound, status.HTTP_404_NOT_FOUND),
    (CartItemNotFound, status.HTTP_404_NOT_FOUND),
    (OrderNotFound, status.HTTP_404_NOT_FOUND),
)


def shop_error_response(exc: ShopError) -> Response:
    """Render a shop error with enough structure for the client to re-render per line."""
    code = next(
        (http for cls, http in _ERROR_STATUS if isinstance(exc, cls)),
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    body = {"detail": exc.message, "code": type(exc).__name__}
    if isinstance(exc, CartInvalid):
        body["errors"] = exc.errors
        body["out_of_stock"] = exc.out_of_stock
        if exc.report is not None:
            body["report"] = exc.report.as_dict()
    return Response(body, status=code)


class ShopAPIView(APIView):
    """APIView that turns shop errors into structured 4xx responses."""

    permission_classes = [IsAuthenticated]

    def handle_exception(self, exc):
        if isinstance(exc, ShopError):
            logger.info("%s rejected: %s", self.__class__.__name__, exc.message)
            return shop_error_response(exc)
        return super().handle_exception(exc)


class OrderPagination(PageNumberPagination):
    page_size = 10
    page_size_query_param = "per_page"
    max_page_size = 100


class AdminOrderPagination(OrderPagination):
    page_size = 15


def _cart_response(snapshot, code=status.HTTP_200_OK) -> Response:
    return Response(CartSerializer(snapshot).data, status=code)


# ---------- Cart ----------

class CartAPIView(ShopAPIView):
    """GET: the current cart with a live summary."""

    def get(self, request):
        return _cart_response(cart_service.get_cart(request.user))


class CartItemListAPIView(ShopAPIView):
    """POST: add a product (merges into an existing line)."""

    def post(self, request):
        serializer = AddToCartSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        snapshot = cart_service.add_item(
            request.user,
            serializer.validated_data["product_id"],
            serializer.validated_data["quantity"],
        )
        return _cart_response(snapshot, status.HTTP_201_CREATED)


class CartItemDetailAPIView(ShopAPIView):
    """PATCH: set quantity • DELETE: remove the line (no-op if already gone)."""

    def patch(self, request, item_id: int):
        serializer = UpdateCartItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        snapshot = cart_service.update_quantity(
            request.user, item_id, serializer.validated_data["quantity"]
        )
        return _cart_response(snapshot)

    def delete(self, request, item_id: int):
        return _cart_response(cart_service.remove_item(request.user, item_id))


class CartClearAPIView(ShopAPIView):
    def post(self, request):
        return _cart_response(cart_service.clear(request.user))


class CartCountAPIView(ShopAPIView):
    def get(self, request):
        return Response({"count": cart_service.item_count(request.user)})


class CartValidateAPIView(ShopAPIView):
    """GET: validation report; 422 when the cart cannot be checked out as is."""

    def get(self, request):
        report = validate(cart_service.load_cart(request.user))
        code = status.HTTP_200_OK if report.valid else status.HTTP_422_UNPROCESSABLE_ENTITY
        return Response(report.as_dict(), status=code)


class CartDiscountAPIView(ShopAPIView):
    """POST: apply a discount code • DELETE: remove it."""

    def post(self, request):
        serializer = DiscountCodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result, snapshot = cart_service.apply_discount_code(
            request.user, serializer.validated_data["code"]
        )
        body = {
            "applied": result.applied,
            "code": result.code,
            "discount_amount": f"{result.discount_amount:.2f}",
            "new_subtotal": f"{result.new_subtotal:.2f}",
            "message": result.message,
            "cart": CartSerializer(snapshot).data,
        }
        code = status.HTTP_200_OK if result.applied else status.HTTP_422_UNPROCESSABLE_ENTITY
        return Response(body, status=code)

    def delete(self, request):
        return _cart_response(cart_service.remove_discount_code(request.user))


class CartRefreshPricesAPIView(ShopAPIView):
    """POST: acknowledge the current prices of every line."""

    def post(self, request):
        return _cart_response(cart_service.refresh_prices(request.user))


# ---------- Orders (customer) ----------

class OrderListCreateAPIView(ShopAPIView, generics.ListAPIView):
    """GET: the customer's orders, newest first, paginated • POST: place an order from the cart."""
    serializer_class = OrderSerializer
    pagination_class = OrderPagination

    def get_queryset(self):
        return (
            Order.objects.filter(customer=self.request.user)
            .select_related("customer")
            .prefetch_related("items")
        )

    def post(self, request):
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        order = checkout.commit(
            request.user,
            shipping_address=dict(data["shipping_address"]),
            billing_address=dict(data["billing_address"]),
            payment_method=data["payment_method"],
            notes=data["notes"],
        )
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


class OrderDetailAPIView(ShopAPIView, generics.RetrieveAPIView):
    """
    GET: one order (owner, or any order for admins).
    PATCH: customer status change; only {"status": "cancelled"} is accepted.
    """
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated, IsOrderOwner]
    lookup_field = "order_number"

    def get_queryset(self):
        queryset = Order.objects.select_related("customer").prefetch_related("items")
        if lifecycle.is_order_admin(self.request.user):
            return queryset
        return queryset.filter(customer=self.request.user)

    def patch(self, request, order_number: str):
        serializer = CustomerStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = lifecycle.customer_transition(
            request.user,
            order_number,
            serializer.validated_data["status"],
            reason=serializer.validated_data["reason"],
        )
        return Response(OrderSerializer(order).data)


class OrderCancelAPIView(ShopAPIView):
    """POST: cancel an own order while it is pending or confirmed."""

    def post(self, request, order_number: str):
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = lifecycle.cancel_order(
            request.user, order_number, reason=serializer.validated_data["reason"]
        )
        return Response(OrderSerializer(order).data)


class OrderTrackAPIView(ShopAPIView):
    def get(self, request, order_number: str):
        order = lifecycle.get_order_by_number(order_number, customer=request.user)
        return Response(
            {
                "order_number": order.order_number,
                "status": order.status,
                "payment_status": order.payment_status,
                "created_at": order.created_at,
                "timeline": lifecycle.order_timeline(order),
            }
        )


# ---------- Orders (admin) ----------

class AdminOrderListAPIView(generics.ListAPIView):
    """
    GET: all orders, paginated. Filters: ?status=, ?payment_status=, ?customer=<id>,
    ?date_from= and ?date_to= (YYYY-MM-DD, inclusive), ?search=.
    """
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated, IsOrderAdmin]
    pagination_class = AdminOrderPagination

    def get_queryset(self):
        queryset = Order.objects.select_related("customer").prefetch_related("items")
        filters = AdminOrderFilterSerializer(data=self.request.query_params)
        filters.is_valid(raise_exception=True)
        params = filters.validated_data
        if params.get("status"):
            queryset = queryset.filter(status=params["status"])
        if params.get("payment_status"):
            queryset = queryset.filter(payment_status=params["payment_status"])
        if params.get("customer"):
            queryset = queryset.filter(customer_id=params["customer"])
        if params.get("date_from"):
            queryset = queryset.filter(created_at__date__gte=params["date_from"])
        if params.get("date_to"):
            queryset = queryset.filter(created_at__date__lte=params["date_to"])
        search = params.get("search", "").strip()
        if search:
            queryset = queryset.filter(
                Q(order_number__icontains=search)
                | Q(customer__username__icontains=search)
                | Q(customer__email__icontains=search)
            )
        return queryset


class AdminOrderDetailAPIView(generics.RetrieveAPIView):
    serializer_class = AdminOrderSerializer
    permission_classes = [IsAuthenticated, IsOrderAdmin]
    lookup_field = "order_number"

    def get_queryset(self):
        return Order.objects.select_related("customer").prefetch_related("items", "events__actor")


class AdminOrderStatusAPIView(ShopAPIView):
    """POST: set any status; pass expected_status to guard against concurrent edits."""
    permission_classes = [IsAuthenticated, IsOrderAdmin]

    def post(self, request, order_number: str):
        serializer = OrderStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        order = lifecycle.set_status(
            request.user,
            order_number,
            data["status"],
            expected_status=data.get("expected_status"),
            note=data["note"],
        )
        return Response(AdminOrderSerializer(order).data)


class AdminPaymentStatusAPIView(ShopAPIView):
    permission_classes = [IsAuthenticated, IsOrderAdmin]

    def post(self, request, order_number: str):
        serializer = PaymentStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        order = lifecycle.set_payment_status(
            request.user,
            order_number,
            data["payment_status"],
            expected_payment_status=data.get("expected_payment_status"),
            note=data["note"],
        )
        return Response(AdminOrderSerializer(order).data)
