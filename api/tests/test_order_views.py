from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from shop import cart, checkout
from shop.models import Order, OrderStatus, PaymentStatus, Product

User = get_user_model()

ADDRESS = {
    "full_name": "Buyer One",
    "phone": "555-0100",
    "address_line_1": "1 Main Street",
    "address_line_2": "Apt 2",
    "city": "Springfield",
    "state": "IL",
    "postal_code": "62701",
    "country": "US",
}


class OrderViewTests(TestCase):
    def setUp(self):
        self.client = APIClient()

        # Users
        self.buyer = User.objects.create_user("buyer1", password="x", email="b1@example.com")
        self.other_buyer = User.objects.create_user("buyer2", password="x")
        self.staff = User.objects.create_user("staff1", password="x", is_staff=True)

        # Products
        self.prod = Product.objects.create(name="Widget", price=Decimal("10.00"), stock_quantity=3)

        # URL helpers (namespace-aware)
        self.orders_url = reverse("api:order-list")
        self.order_detail = lambda n: reverse("api:order-detail", args=[n])
        self.order_cancel = lambda n: reverse("api:order-cancel", args=[n])
        self.order_track = lambda n: reverse("api:order-track", args=[n])

    def place(self, user, quantity=1):
        cart.add_item(user, self.prod.pk, quantity)
        return checkout.commit(user, shipping_address=ADDRESS)

    # ---- Place ----
    def test_place_order(self):
        self.client.force_authenticate(self.buyer)
        cart.add_item(self.buyer, self.prod.pk, 2)

        resp = self.client.post(
            self.orders_url, {"shipping_address": ADDRESS, "notes": "Ring twice"}, format="json"
        )
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(resp.data["status"], "pending")
        self.assertEqual(resp.data["payment_status"], "pending")
        self.assertEqual(resp.data["total"], "20.00")
        self.assertEqual(resp.data["billing_address"]["city"], "Springfield")
        self.assertEqual(resp.data["items"][0]["unit_price"], "10.00")

        self.prod.refresh_from_db()
        self.assertEqual(self.prod.stock_quantity, 1)
        self.assertEqual(self.client.get(reverse("api:cart")).data["items"], [])

    def test_place_order_out_of_stock(self):
        self.client.force_authenticate(self.buyer)
        cart.add_item(self.buyer, self.prod.pk, 5)

        resp = self.client.post(self.orders_url, {"shipping_address": ADDRESS}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(resp.data["code"], "OutOfStock")
        self.assertEqual(resp.data["out_of_stock"], [self.prod.pk])
        self.assertFalse(resp.data["report"]["valid"])

        self.prod.refresh_from_db()
        self.assertEqual(self.prod.stock_quantity, 3)
        self.assertFalse(Order.objects.exists())

    def test_place_order_empty_cart(self):
        self.client.force_authenticate(self.buyer)
        resp = self.client.post(self.orders_url, {"shipping_address": ADDRESS}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(resp.data["code"], "CartInvalid")
        self.assertEqual(resp.data["errors"], ["Cart is empty."])

    def test_place_order_requires_address(self):
        self.client.force_authenticate(self.buyer)
        cart.add_item(self.buyer, self.prod.pk, 1)
        resp = self.client.post(self.orders_url, {}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("shipping_address", resp.data)

    # ---- Read ----
    def test_list_only_own_orders(self):
        mine = self.place(self.buyer)
        self.place(self.other_buyer)

        self.client.force_authenticate(self.buyer)
        resp = self.client.get(self.orders_url)
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["count"], 1)
        self.assertEqual([o["order_number"] for o in resp.data["results"]], [mine.order_number])
        self.assertEqual(resp.data["results"][0]["total_quantity"], 1)

    def test_detail_visibility(self):
        order = self.place(self.buyer)

        self.client.force_authenticate(self.buyer)
        self.assertEqual(self.client.get(self.order_detail(order.order_number)).status_code, 200)

        self.client.force_authenticate(self.other_buyer)
        self.assertEqual(self.client.get(self.order_detail(order.order_number)).status_code, 404)

        self.client.force_authenticate(self.staff)
        self.assertEqual(self.client.get(self.order_detail(order.order_number)).status_code, 200)

    # ---- Customer transitions ----
    def test_cancel_pending_order(self):
        order = self.place(self.buyer, 2)
        self.client.force_authenticate(self.buyer)

        resp = self.client.post(self.order_cancel(order.order_number), {"reason": "Too slow"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["status"], "cancelled")
        self.assertIn("Cancellation reason: Too slow", resp.data["notes"])

        self.prod.refresh_from_db()
        self.assertEqual(self.prod.stock_quantity, 3)

    def test_cancel_shipped_order_is_refused(self):
        order = self.place(self.buyer)
        Order.objects.filter(pk=order.pk).update(status=OrderStatus.SHIPPED)
        self.client.force_authenticate(self.buyer)

        resp = self.client.post(self.order_cancel(order.order_number), {}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(resp.data["code"], "IllegalTransition")
        self.assertEqual(resp.data["detail"], "Order cannot be cancelled in current status.")

    def test_cancel_someone_elses_order(self):
        order = self.place(self.other_buyer)
        self.client.force_authenticate(self.buyer)
        resp = self.client.post(self.order_cancel(order.order_number), {}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_patch_status(self):
        order = self.place(self.buyer)
        self.client.force_authenticate(self.buyer)

        resp = self.client.patch(self.order_detail(order.order_number), {"status": "shipped"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)

        resp = self.client.patch(self.order_detail(order.order_number), {"status": "cancelled"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["status"], "cancelled")

    def test_track(self):
        order = self.place(self.buyer)
        self.client.force_authenticate(self.buyer)

        resp = self.client.get(self.order_track(order.order_number))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["status"], "pending")
        self.assertEqual(len(resp.data["timeline"]), 5)
        self.assertTrue(resp.data["timeline"][0]["completed"])

        self.client.force_authenticate(self.other_buyer)
        self.assertEqual(self.client.get(self.order_track(order.order_number)).status_code, 404)


class AdminOrderViewTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.buyer = User.objects.create_user("buyer1", password="x")
        self.staff = User.objects.create_user("staff1", password="x", is_staff=True)
        self.prod = Product.objects.create(name="Widget", price=Decimal("10.00"), stock_quantity=5)

        cart.add_item(self.buyer, self.prod.pk, 2)
        self.order = checkout.commit(self.buyer, shipping_address=ADDRESS)

        self.list_url = reverse("api:admin-order-list")
        self.detail_url = reverse("api:admin-order-detail", args=[self.order.order_number])
        self.status_url = reverse("api:admin-order-status", args=[self.order.order_number])
        self.payment_url = reverse("api:admin-order-payment-status", args=[self.order.order_number])

    def test_customers_are_forbidden(self):
        self.client.force_authenticate(self.buyer)
        self.assertEqual(self.client.get(self.list_url).status_code, status.HTTP_403_FORBIDDEN)
        resp = self.client.post(self.status_url, {"status": "shipped"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(Order.objects.get(pk=self.order.pk).status, OrderStatus.PENDING)

    def test_list_and_filter(self):
        self.client.force_authenticate(self.staff)
        resp = self.client.get(self.list_url)
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["count"], 1)

        self.assertEqual(self.client.get(self.list_url, {"status": "shipped"}).data["count"], 0)
        self.assertEqual(self.client.get(self.list_url, {"search": "buyer1"}).data["count"], 1)
        self.assertEqual(self.client.get(self.list_url, {"customer": self.buyer.pk}).data["count"], 1)
        self.assertEqual(self.client.get(self.list_url, {"customer": ""}).data["count"], 1)

    def test_set_status(self):
        self.client.force_authenticate(self.staff)
        resp = self.client.post(
            self.status_url, {"status": "shipped", "note": "Courier picked up"}, format="json"
        )
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["status"], "shipped")
        self.assertEqual(resp.data["events"][-1]["note"], "Courier picked up")
        self.assertEqual(resp.data["events"][-1]["actor_role"], "admin")

    def test_set_status_conflict(self):
        self.client.force_authenticate(self.staff)
        self.client.post(self.status_url, {"status": "confirmed"}, format="json")

        resp = self.client.post(
            self.status_url, {"status": "shipped", "expected_status": "pending"}, format="json"
        )
        self.assertEqual(resp.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(resp.data["code"], "StatusConflict")
        self.assertEqual(Order.objects.get(pk=self.order.pk).status, OrderStatus.CONFIRMED)

    def test_set_unknown_status(self):
        self.client.force_authenticate(self.staff)
        resp = self.client.post(self.status_url, {"status": "lost"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_admin_cancel_restocks(self):
        self.client.force_authenticate(self.staff)
        resp = self.client.post(self.status_url, {"status": "cancelled"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertTrue(resp.data["inventory_released"])
        self.prod.refresh_from_db()
        self.assertEqual(self.prod.stock_quantity, 5)

    def test_set_payment_status(self):
        self.client.force_authenticate(self.staff)
        resp = self.client.post(self.payment_url, {"payment_status": "paid"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["payment_status"], "paid")
        self.assertEqual(resp.data["status"], "pending")
        self.assertEqual(Order.objects.get(pk=self.order.pk).payment_status, PaymentStatus.PAID)

    def test_detail_includes_audit_trail(self):
        self.client.force_authenticate(self.staff)
        resp = self.client.get(self.detail_url)
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["events"][0]["new_value"], "pending")
        self.assertEqual(resp.data["events"][0]["actor_username"], "buyer1")


def bulk_orders(customer, count, prefix="ORD-BULK"):
    return Order.objects.bulk_create(
        Order(
            order_number=f"{prefix}-{i:03d}",
            customer=customer,
            shipping_address=ADDRESS,
            billing_address=ADDRESS,
        )
        for i in range(count)
    )


class OrderListPaginationTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.buyer = User.objects.create_user("buyer1", password="x")
        self.staff = User.objects.create_user("staff1", password="x", is_staff=True)
        bulk_orders(self.buyer, 16)

    def test_customer_list_pages_by_ten(self):
        self.client.force_authenticate(self.buyer)
        url = reverse("api:order-list")

        first = self.client.get(url)
        self.assertEqual(first.status_code, status.HTTP_200_OK)
        self.assertEqual(first.data["count"], 16)
        self.assertEqual(len(first.data["results"]), 10)
        self.assertIsNotNone(first.data["next"])

        second = self.client.get(url, {"page": 2})
        self.assertEqual(len(second.data["results"]), 6)
        self.assertIsNone(second.data["next"])

        self.assertEqual(len(self.client.get(url, {"per_page": 4}).data["results"]), 4)
        self.assertEqual(self.client.get(url, {"page": 9}).status_code, status.HTTP_404_NOT_FOUND)

    def test_admin_list_pages_by_fifteen(self):
        self.client.force_authenticate(self.staff)
        resp = self.client.get(reverse("api:admin-order-list"))
        self.assertEqual(resp.data["count"], 16)
        self.assertEqual(len(resp.data["results"]), 15)


class AdminOrderFilterTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.buyer = User.objects.create_user("buyer1", password="x")
        self.staff = User.objects.create_user("staff1", password="x", is_staff=True)
        self.client.force_authenticate(self.staff)
        self.url = reverse("api:admin-order-list")

        old, recent = bulk_orders(self.buyer, 2)
        self.old, self.recent = old, recent
        Order.objects.filter(order_number=old.order_number).update(
            created_at=timezone.now() - timedelta(days=30)
        )
        self.today = timezone.localdate()

    def numbers(self, params):
        resp = self.client.get(self.url, params)
        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.data)
        return {o["order_number"] for o in resp.data["results"]}

    def test_date_range(self):
        week_ago = (self.today - timedelta(days=7)).isoformat()
        self.assertEqual(self.numbers({"date_from": week_ago}), {self.recent.order_number})
        self.assertEqual(self.numbers({"date_to": week_ago}), {self.old.order_number})
        self.assertEqual(
            self.numbers({"date_from": (self.today - timedelta(days=60)).isoformat(),
                          "date_to": self.today.isoformat()}),
            {self.old.order_number, self.recent.order_number},
        )

    def test_date_bounds_are_inclusive(self):
        day = self.today.isoformat()
        self.assertEqual(self.numbers({"date_from": day, "date_to": day}), {self.recent.order_number})

    def test_bad_parameters_are_rejected(self):
        for params in (
            {"customer": "abc"},
            {"customer": "0"},
            {"date_from": "yesterday"},
            {"status": "lost"},
            {"date_from": "2024-05-02", "date_to": "2024-05-01"},
        ):
            with self.subTest(params=params):
                resp = self.client.get(self.url, params)
                self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertIn(next(reversed(params)), resp.data)
