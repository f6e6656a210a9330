from decimal import Decimal

from shop import cart
from shop.models import CartItem, Product
from shop.validation import (
    EMPTY_CART_MESSAGE,
    ISSUE_OUT_OF_STOCK,
    ISSUE_PRICE_CHANGED,
    ISSUE_UNAVAILABLE,
    validate,
)

from .base import BaseSetup


class ValidateTests(BaseSetup):
    def report(self):
        return validate(cart.load_cart(self.customer))

    def test_valid_cart(self):
        cart.add_item(self.customer, self.widget.pk, 2)
        report = self.report()
        self.assertTrue(report.valid)
        self.assertEqual(report.errors, ())
        self.assertEqual(report.out_of_stock, ())
        self.assertEqual(report.issues, ())

    def test_quantity_above_stock_is_out_of_stock(self):
        self.set_stock(self.widget, 3)
        cart.add_item(self.customer, self.widget.pk, 5)

        report = self.report()
        self.assertFalse(report.valid)
        self.assertTrue(report.stock_only)
        self.assertEqual(report.out_of_stock, (self.widget.pk,))
        self.assertEqual(report.errors, ())
        self.assertEqual(report.issues[0].code, ISSUE_OUT_OF_STOCK)

    def test_quantity_equal_to_stock_is_fine(self):
        self.set_stock(self.widget, 5)
        cart.add_item(self.customer, self.widget.pk, 5)
        self.assertTrue(self.report().valid)

    def test_inactive_product_is_an_error_and_still_stock_checked(self):
        cart.add_item(self.customer, self.widget.pk, 20)
        Product.objects.filter(pk=self.widget.pk).update(is_active=False)

        report = self.report()
        self.assertFalse(report.valid)
        self.assertFalse(report.stock_only)
        self.assertEqual(report.unavailable, (self.widget.pk,))
        self.assertEqual(report.out_of_stock, (self.widget.pk,))
        self.assertEqual(len(report.errors), 1)
        self.assertIn("no longer available", report.errors[0])
        codes = {issue.code for issue in report.issues}
        self.assertEqual(codes, {ISSUE_UNAVAILABLE, ISSUE_OUT_OF_STOCK})

    def test_price_change_in_either_direction_is_only_a_warning(self):
        cart.add_item(self.customer, self.widget.pk, 1)
        cart.add_item(self.customer, self.gadget.pk, 1)
        self.set_price(self.widget, "12.00")
        self.set_price(self.gadget, "30.00", sale_price="20.00")

        report = self.report()
        self.assertTrue(report.valid)
        self.assertEqual(set(report.price_changed), {self.widget.pk, self.gadget.pk})
        self.assertTrue(all(issue.code == ISSUE_PRICE_CHANGED for issue in report.issues))

    def test_validation_does_not_change_the_cart(self):
        cart.add_item(self.customer, self.widget.pk, 1)
        self.set_price(self.widget, "12.00")
        self.report()
        self.assertEqual(CartItem.objects.get().price_snapshot, Decimal("10.00"))

    def test_empty_or_missing_cart_is_invalid(self):
        report = validate(None)
        self.assertFalse(report.valid)
        self.assertEqual(report.errors, (EMPTY_CART_MESSAGE,))

        cart.add_item(self.customer, self.widget.pk, 1)
        cart.clear(self.customer)
        self.assertEqual(self.report().errors, (EMPTY_CART_MESSAGE,))

    def test_as_dict_shape(self):
        self.set_stock(self.widget, 1)
        cart.add_item(self.customer, self.widget.pk, 2)
        data = self.report().as_dict()

        self.assertEqual(
            set(data), {"valid", "errors", "out_of_stock", "price_changed", "unavailable", "issues"}
        )
        self.assertFalse(data["valid"])
        self.assertEqual(data["out_of_stock"], [self.widget.pk])
        self.assertEqual(data["issues"][0]["product_id"], self.widget.pk)


class DeletedProductTests(BaseSetup):
    def test_deleted_product_is_an_error(self):
        doomed = Product.objects.create(name="Doomed", price=Decimal("7.00"), stock_quantity=4)
        cart.add_item(self.customer, self.widget.pk, 1)
        cart.add_item(self.customer, doomed.pk, 2)
        doomed_id = doomed.pk
        doomed.delete()

        report = validate(cart.load_cart(self.customer))
        self.assertFalse(report.valid)
        self.assertFalse(report.stock_only)
        self.assertEqual(report.unavailable, (doomed_id,))
        self.assertEqual(report.out_of_stock, ())
        self.assertEqual(report.errors, (f"Product #{doomed_id} no longer exists.",))
        self.assertEqual(len(report.issues), 1)
        issue = report.issues[0]
        self.assertEqual(issue.code, ISSUE_UNAVAILABLE)
        self.assertEqual(issue.product_id, doomed_id)
