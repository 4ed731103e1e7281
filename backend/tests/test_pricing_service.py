"""
Pricing engine tests.

Verifies:
- Line breakdown for exclusive and inclusive tax
- Half-up rounding to whole cents
- Cart discounts (PERCENT, FIXED) and the additive wholesale discount
- The total never goes negative
- Floats and out-of-range inputs are rejected, never coerced
"""

from decimal import Decimal

import pytest

from branchpos.money import AmountOutOfRange
from branchpos.services.pricing_service import (
    CartDiscount,
    InvalidDiscount,
    InvalidQuantity,
    InvalidTaxRate,
    compute_cart_totals,
    compute_line_totals,
)


# =============================================================================
# LINE TOTALS
# =============================================================================


class TestLineTotals:

    def test_exclusive_tax_line(self):
        line = compute_line_totals(10000, 3, Decimal("10"), Decimal("21"), False)

        assert line.subtotal_cents == 30000
        assert line.discount_cents == 3000
        assert line.taxable_base_cents == 27000
        assert line.tax_cents == 5670
        assert line.total_cents == 32670

    def test_inclusive_tax_line_keeps_total(self):
        line = compute_line_totals(12100, 1, Decimal("0"), Decimal("21"), True)

        assert line.total_cents == 12100
        assert line.tax_cents == 2100
        assert line.included_tax_cents == 2100
        assert line.added_tax_cents == 0

    def test_tax_mode_comes_only_from_flag(self):
        exclusive = compute_line_totals(12100, 1, tax_rate=Decimal("21"), tax_inclusive=False)
        inclusive = compute_line_totals(12100, 1, tax_rate=Decimal("21"), tax_inclusive=True)

        assert exclusive.total_cents == 14641
        assert inclusive.total_cents == 12100

    def test_fractional_quantity_rounds_half_up(self):
        # 333 x 1.5 = 499.5 cents
        line = compute_line_totals(333, Decimal("1.5"))
        assert line.subtotal_cents == 500

    def test_discount_rounds_half_up(self):
        # 12.5% of 4 cents is half a cent
        line = compute_line_totals(1, 4, Decimal("12.5"))
        assert line.discount_cents == 1
        assert line.total_cents == 3

    def test_decimal_strings_accepted(self):
        line = compute_line_totals(10000, "3", "10", "21")
        assert line.total_cents == 32670

    @pytest.mark.parametrize("quantity", [0, -1, Decimal("-0.5"), "0"])
    def test_non_positive_quantity_rejected(self, quantity):
        with pytest.raises(InvalidQuantity):
            compute_line_totals(10000, quantity)

    def test_float_quantity_rejected(self):
        with pytest.raises(InvalidQuantity):
            compute_line_totals(10000, 1.5)

    @pytest.mark.parametrize("percent", [Decimal("-1"), Decimal("100.01")])
    def test_discount_percent_out_of_range(self, percent):
        with pytest.raises(InvalidDiscount):
            compute_line_totals(10000, 1, percent)

    def test_negative_tax_rate_rejected(self):
        with pytest.raises(InvalidTaxRate):
            compute_line_totals(10000, 1, tax_rate=Decimal("-21"))

    @pytest.mark.parametrize("quantity", ["1e30", Decimal("1e40"), 10 ** 12])
    def test_oversized_quantity_rejected(self, quantity):
        with pytest.raises(InvalidQuantity):
            compute_line_totals(100, quantity)

    def test_oversized_tax_rate_rejected(self):
        with pytest.raises(InvalidTaxRate):
            compute_line_totals(10000, 1, tax_rate="1e30")

    def test_line_amount_must_fit_cents_column(self):
        with pytest.raises(AmountOutOfRange):
            compute_line_totals(2_000_000_000, 2)

    def test_tax_pushing_total_past_limit_rejected(self):
        with pytest.raises(AmountOutOfRange):
            compute_line_totals(2_000_000_000, 1, tax_rate="21")


# =============================================================================
# CART TOTALS
# =============================================================================


class TestCartTotals:

    def test_single_line_cart(self):
        line = compute_line_totals(10000, 3, Decimal("10"), Decimal("21"))
        totals = compute_cart_totals([line])

        assert totals.subtotal_cents == 30000
        assert totals.discount_cents == 3000
        assert totals.tax_cents == 5670
        assert totals.total_cents == 32670

    def test_percent_cart_discount_on_summed_subtotal(self):
        lines = [
            compute_line_totals(10000, 1, Decimal("10")),
            compute_line_totals(5000, 2),
        ]
        totals = compute_cart_totals(lines, CartDiscount("PERCENT", Decimal("10")))

        assert totals.line_discount_cents == 1000
        assert totals.cart_discount_cents == 2000
        assert totals.discount_cents == 3000
        assert totals.total_cents == 17000

    def test_fixed_discount_capped_at_subtotal(self):
        line = compute_line_totals(1000, 1)
        totals = compute_cart_totals([line], CartDiscount("FIXED", 5000))

        assert totals.cart_discount_cents == 1000
        assert totals.total_cents == 0

    def test_wholesale_discount_is_additive_not_compounded(self):
        line = compute_line_totals(10000, 1)
        totals = compute_cart_totals([line], CartDiscount("PERCENT", Decimal("10")), Decimal("5"))

        assert totals.cart_discount_cents == 1000
        assert totals.wholesale_discount_cents == 500
        assert totals.discount_cents == 1500
        assert totals.total_cents == 8500

    def test_total_clamped_at_zero(self):
        line = compute_line_totals(10000, 1)
        totals = compute_cart_totals([line], CartDiscount("PERCENT", Decimal("100")), Decimal("50"))

        assert totals.discount_cents == 15000
        assert totals.total_cents == 0

    def test_inclusive_tax_reported_separately(self):
        lines = [
            compute_line_totals(12100, 1, tax_rate=Decimal("21"), tax_inclusive=True),
            compute_line_totals(10000, 1, tax_rate=Decimal("21")),
        ]
        totals = compute_cart_totals(lines)

        assert totals.tax_cents == 2100
        assert totals.included_tax_cents == 2100
        assert totals.total_cents == 12100 + 12100

    def test_empty_cart(self):
        totals = compute_cart_totals([])
        assert totals.total_cents == 0
        assert totals.subtotal_cents == 0

    def test_identical_inputs_identical_output(self):
        def build():
            lines = [
                compute_line_totals(1999, Decimal("2.375"), Decimal("7.5"), Decimal("10.5")),
                compute_line_totals(12100, 3, Decimal("0"), Decimal("21"), True),
            ]
            return compute_cart_totals(lines, CartDiscount("PERCENT", "3.3"), Decimal("2.5"))

        assert build() == build()
        assert build().to_dict() == build().to_dict()

    def test_cart_subtotal_must_fit_cents_column(self):
        line = compute_line_totals(2_000_000_000, 1)

        with pytest.raises(AmountOutOfRange):
            compute_cart_totals([line, line])


# =============================================================================
# CART DISCOUNT
# =============================================================================


class TestCartDiscount:

    def test_unknown_type_rejected(self):
        with pytest.raises(InvalidDiscount):
            CartDiscount("BOGO", 1)

    def test_fixed_requires_whole_cents(self):
        with pytest.raises(InvalidDiscount):
            CartDiscount("FIXED", "10.5")

    def test_percent_over_100_rejected(self):
        with pytest.raises(InvalidDiscount):
            CartDiscount("PERCENT", 150)

    def test_from_payload(self):
        discount = CartDiscount.from_payload({"type": "percent", "value": "12.5"})
        assert discount.type == "PERCENT"
        assert discount.value == Decimal("12.5")

    def test_from_empty_payload(self):
        assert CartDiscount.from_payload(None) is None
        assert CartDiscount.from_payload({}) is None

    def test_from_payload_without_value(self):
        with pytest.raises(InvalidDiscount):
            CartDiscount.from_payload({"type": "FIXED"})
