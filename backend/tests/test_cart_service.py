"""
Cart tests.

Verifies:
- Product snapshot at add time
- Quantity rules (positive, weighable-only fractions, 3 decimals)
- Line and cart discounts, customer terms
- Rebuilding a cart from a request payload against the catalog
"""

from decimal import Decimal

import pytest

from branchpos.services.cart_service import Cart, build_cart
from branchpos.services.pricing_service import InvalidDiscount, InvalidQuantity
from branchpos.validation import NotFoundError, ValidationError


class TestCartOperations:

    def test_add_product_snapshots_catalog(self, db_session, product):
        cart = Cart()
        line = cart.add_product(product, 3)

        product.price_cents = 99999
        db_session.commit()

        assert line.unit_price_cents == 10000
        assert line.tax_rate == Decimal("21")
        assert cart.totals().total_cents == 36300

    def test_adding_same_product_merges_quantity(self, db_session, product):
        cart = Cart()
        cart.add_product(product, 1)
        cart.add_product(product, 2)

        assert len(cart.lines) == 1
        assert cart.lines[0].quantity == 3

    def test_line_discount(self, db_session, product):
        cart = Cart()
        line = cart.add_product(product, 3)
        cart.apply_line_discount(line.line_id, "10")

        assert cart.totals().total_cents == 32670

    def test_update_quantity_rejects_zero(self, db_session, product):
        cart = Cart()
        line = cart.add_product(product, 2)

        with pytest.raises(InvalidQuantity):
            cart.update_quantity(line.line_id, 0)
        assert cart.lines[0].quantity == 2

    def test_fraction_only_for_weighable(self, db_session, product, weighable_product):
        cart = Cart()
        with pytest.raises(InvalidQuantity):
            cart.add_product(product, "1.5")

        line = cart.add_product(weighable_product, "0.375")
        assert line.breakdown().total_cents == 750

    def test_quantity_precision_limited(self, db_session, weighable_product):
        with pytest.raises(InvalidQuantity):
            Cart().add_product(weighable_product, "0.3755")

    @pytest.mark.parametrize("quantity", ["1e30", "1000000000"])
    def test_oversized_quantity_rejected(self, db_session, weighable_product, quantity):
        with pytest.raises(InvalidQuantity):
            Cart().add_product(weighable_product, quantity)

    def test_remove_line(self, db_session, product, untaxed_product):
        cart = Cart()
        first = cart.add_product(product, 1)
        cart.add_product(untaxed_product, 1)
        cart.remove_line(first.line_id)

        assert [line.product_id for line in cart.lines] == [untaxed_product.id]
        with pytest.raises(NotFoundError):
            cart.remove_line(first.line_id)

    def test_wholesale_customer_terms(self, db_session, untaxed_product, wholesale_customer):
        cart = Cart()
        cart.add_product(untaxed_product, 1)
        cart.set_customer(wholesale_customer)
        cart.apply_discount("fixed", 1000)

        totals = cart.totals()
        assert totals.cart_discount_cents == 1000
        assert totals.wholesale_discount_cents == 500
        assert totals.total_cents == 8500

        cart.set_customer(None)
        cart.clear_discount()
        assert cart.totals().total_cents == 10000

    def test_invalid_discount_leaves_cart_unchanged(self, db_session, untaxed_product):
        cart = Cart()
        cart.add_product(untaxed_product, 1)
        cart.apply_discount("PERCENT", 10)

        with pytest.raises(InvalidDiscount):
            cart.apply_discount("PERCENT", 101)
        assert cart.discount.value == Decimal("10")

    def test_clear(self, db_session, product):
        cart = Cart()
        cart.add_product(product, 1)
        cart.apply_discount("PERCENT", 5)
        cart.clear()

        assert cart.is_empty
        assert cart.discount is None
        assert cart.totals().total_cents == 0


class TestBuildCart:

    def test_build_from_payload(self, db_session, branch, product, wholesale_customer):
        cart = build_cart(
            [{"product_id": product.id, "quantity": "3", "discount_percent": "10"}],
            branch_id=branch.id,
            customer_id=wholesale_customer.id,
            discount={"type": "PERCENT", "value": "0"},
        )
        totals = cart.totals()

        assert totals.line_discount_cents == 3000
        assert totals.wholesale_discount_cents == 1500
        assert totals.total_cents == 30000 - 3000 - 1500 + 5670

    def test_product_from_other_branch_not_found(self, db_session, other_branch, product):
        with pytest.raises(NotFoundError):
            build_cart([{"product_id": product.id, "quantity": 1}], branch_id=other_branch.id)

    def test_items_must_be_list(self, db_session, branch):
        with pytest.raises(ValidationError):
            build_cart({"product_id": 1}, branch_id=branch.id)

    def test_item_needs_product_id(self, db_session, branch):
        with pytest.raises(ValidationError) as exc:
            build_cart([{"quantity": 1}], branch_id=branch.id)
        assert exc.value.code == "INVALID_ITEMS"
