# Overview: Pure pricing computations for cart lines and cart totals.

"""
Pricing Engine

WHY: Every amount the register shows, charges and later reconciles comes
from these two functions. They are pure: no database access, no clock, no
shared state. Identical inputs always produce identical integer cents.

ROUNDING:
- Line subtotal (unit price x quantity) is rounded half-up to whole cents once.
- Discount and tax amounts are rounded half-up to whole cents per line.
- Cart-level discounts are rounded half-up once per discount source.

TAX:
- Exclusive lines add tax on top of the discounted base (tax_cents).
- Inclusive lines carry tax inside the base (included_tax_cents); the line
  total equals the discounted base.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable

from ..money import (
    MAX_QUANTITY,
    ONE_HUNDRED,
    ZERO,
    check_cents_range,
    money_context,
    parse_cents,
    parse_percent,
    percent_of,
    round_cents,
    to_decimal,
)
from ..validation import ValidationError

DISCOUNT_PERCENT = "PERCENT"
DISCOUNT_FIXED = "FIXED"

VALID_DISCOUNT_TYPES = (DISCOUNT_PERCENT, DISCOUNT_FIXED)

# tax_rate columns are NUMERIC(7, 4)
MAX_TAX_RATE = Decimal("999.9999")


class InvalidQuantity(ValidationError):
    code = "INVALID_QUANTITY"


class InvalidDiscount(ValidationError):
    code = "INVALID_DISCOUNT"


class InvalidTaxRate(ValidationError):
    code = "INVALID_TAX_RATE"


@dataclass(frozen=True)
class LineBreakdown:
    """Monetary breakdown of one cart line, all amounts in cents."""
    subtotal_cents: int
    discount_cents: int
    taxable_base_cents: int
    tax_cents: int
    total_cents: int
    tax_included: bool

    @property
    def added_tax_cents(self) -> int:
        return 0 if self.tax_included else self.tax_cents

    @property
    def included_tax_cents(self) -> int:
        return self.tax_cents if self.tax_included else 0

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "taxable_base_cents": self.taxable_base_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "tax_included": self.tax_included,
        }


@dataclass(frozen=True)
class CartDiscount:
    """
    Cart-level discount.

    PERCENT: value is a percent (0-100) of the cart subtotal.
    FIXED: value is an amount in cents, capped at the cart subtotal.
    """
    type: str
    value: Decimal

    def __post_init__(self):
        if self.type not in VALID_DISCOUNT_TYPES:
            raise InvalidDiscount(
                f"Discount type must be one of {', '.join(VALID_DISCOUNT_TYPES)}",
                details={"type": self.type},
            )
        if self.type == DISCOUNT_PERCENT:
            value = parse_percent(self.value, "discount value", InvalidDiscount)
        else:
            value = Decimal(parse_cents(self.value, "discount value", error_cls=InvalidDiscount))
        object.__setattr__(self, "value", value)

    @classmethod
    def from_payload(cls, payload: Any) -> "CartDiscount | None":
        """Build from {"type": ..., "value": ...}; a missing or empty payload means no discount."""
        if payload in (None, {}):
            return None
        if not isinstance(payload, dict):
            raise InvalidDiscount("discount must be an object with type and value")
        discount_type = str(payload.get("type") or "").strip().upper()
        if "value" not in payload:
            raise InvalidDiscount("discount value is required")
        return cls(type=discount_type, value=payload["value"])

    def amount_cents(self, base_cents: int) -> int:
        if self.type == DISCOUNT_PERCENT:
            return percent_of(base_cents, self.value)
        # FIXED never takes more than the base
        return min(int(self.value), base_cents)

    def to_dict(self) -> dict:
        return {"type": self.type, "value": self.value}


@dataclass(frozen=True)
class CartBreakdown:
    """
    Cart totals in cents.

    discount_cents = line_discount_cents + cart_discount_cents + wholesale_discount_cents
    total_cents = max(0, subtotal_cents - discount_cents + tax_cents)
    """
    subtotal_cents: int
    line_discount_cents: int
    cart_discount_cents: int
    wholesale_discount_cents: int
    discount_cents: int
    tax_cents: int
    included_tax_cents: int
    total_cents: int
    lines: tuple = ()

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "line_discount_cents": self.line_discount_cents,
            "cart_discount_cents": self.cart_discount_cents,
            "wholesale_discount_cents": self.wholesale_discount_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "included_tax_cents": self.included_tax_cents,
            "total_cents": self.total_cents,
            "lines": [line.to_dict() for line in self.lines],
        }


def compute_line_totals(
    unit_price_cents: int,
    quantity,
    discount_percent=ZERO,
    tax_rate=ZERO,
    tax_inclusive: bool = False,
) -> LineBreakdown:
    """
    Compute the breakdown of one line.

    Raises:
        InvalidQuantity: quantity is not a positive exact number
        InvalidDiscount: discount_percent outside 0-100
        InvalidTaxRate: tax_rate negative or above MAX_TAX_RATE
        AmountOutOfRange: the line amount does not fit in cents columns
    """
    price = parse_cents(unit_price_cents, "unit_price_cents")
    qty = to_decimal(quantity, "quantity", InvalidQuantity, max_value=MAX_QUANTITY)
    if qty <= ZERO:
        raise InvalidQuantity("Quantity must be greater than zero", details={"quantity": str(qty)})
    percent = parse_percent(discount_percent, "discount_percent", InvalidDiscount)
    rate = to_decimal(tax_rate, "tax_rate", InvalidTaxRate, max_value=MAX_TAX_RATE)
    if rate < ZERO:
        raise InvalidTaxRate("Tax rate cannot be negative", details={"tax_rate": str(rate)})

    with money_context():
        subtotal = check_cents_range(round_cents(Decimal(price) * qty), "subtotal_cents")
        discount = percent_of(subtotal, percent)
        taxable_base = subtotal - discount

        if tax_inclusive:
            # Portion of the base that is already tax
            net = Decimal(taxable_base) / (1 + rate / ONE_HUNDRED)
            tax = round_cents(Decimal(taxable_base) - net)
            total = taxable_base
        else:
            tax = percent_of(taxable_base, rate)
            total = taxable_base + tax
        check_cents_range(total, "total_cents")

    return LineBreakdown(
        subtotal_cents=subtotal,
        discount_cents=discount,
        taxable_base_cents=taxable_base,
        tax_cents=tax,
        total_cents=total,
        tax_included=bool(tax_inclusive),
    )


def compute_cart_totals(
    lines: Iterable[LineBreakdown],
    cart_discount: CartDiscount | None = None,
    wholesale_discount_percent=None,
) -> CartBreakdown:
    """
    Aggregate line breakdowns plus cart-level discounts.

    The cart discount and the wholesale discount are computed independently
    against the summed line subtotals and added together; neither compounds
    on the other or on line discounts. The combined discount is not capped,
    the total is clamped at zero instead. Every aggregate must still fit the
    *_cents columns (AmountOutOfRange).
    """
    lines = tuple(lines)

    subtotal = check_cents_range(sum(line.subtotal_cents for line in lines), "subtotal_cents")
    line_discount = sum(line.discount_cents for line in lines)
    tax = check_cents_range(sum(line.added_tax_cents for line in lines), "tax_cents")
    included_tax = sum(line.included_tax_cents for line in lines)

    cart_discount_cents = cart_discount.amount_cents(subtotal) if cart_discount else 0

    wholesale_cents = 0
    if wholesale_discount_percent is not None:
        percent = parse_percent(wholesale_discount_percent, "wholesale_discount_percent", InvalidDiscount)
        wholesale_cents = percent_of(subtotal, percent)

    discount = check_cents_range(line_discount + cart_discount_cents + wholesale_cents, "discount_cents")
    total = check_cents_range(max(0, subtotal - discount + tax), "total_cents")

    return CartBreakdown(
        subtotal_cents=subtotal,
        line_discount_cents=line_discount,
        cart_discount_cents=cart_discount_cents,
        wholesale_discount_cents=wholesale_cents,
        discount_cents=discount,
        tax_cents=tax,
        included_tax_cents=included_tax,
        total_cents=total,
        lines=lines,
    )
