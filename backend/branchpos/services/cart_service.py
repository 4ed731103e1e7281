# Overview: Server-side cart working model; owned by one sale flow, never persisted.

"""
Cart

WHY: The register previews totals locally, but the authoritative numbers
come from rebuilding the cart here from catalog rows and running it through
the pricing engine.

LIFECYCLE: created empty, mutated by add/update/remove/discount operations,
discarded after completion or an explicit clear(). A cart is single-writer;
it is never shared between sale flows.

SNAPSHOT: price, tax rate and the tax-inclusive flag are copied from the
product when it is added. Later catalog edits do not affect existing lines.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from ..money import MAX_QUANTITY, QUANTITY_EXPONENT, ZERO, parse_percent, to_decimal
from ..validation import NotFoundError, ValidationError, parse_id
from .catalog_service import get_customer, get_product
from .pricing_service import (
    CartBreakdown,
    CartDiscount,
    InvalidDiscount,
    InvalidQuantity,
    LineBreakdown,
    compute_cart_totals,
    compute_line_totals,
)


def _validate_quantity(quantity: Any, *, is_weighable: bool) -> Decimal:
    qty = to_decimal(quantity, "quantity", InvalidQuantity, max_value=MAX_QUANTITY)
    if qty <= ZERO:
        raise InvalidQuantity("Quantity must be greater than zero", details={"quantity": str(qty)})
    try:
        rounded = qty.quantize(QUANTITY_EXPONENT)
    except InvalidOperation:
        raise InvalidQuantity("Quantity exceeds the supported precision", details={"quantity": str(qty)})
    if qty != rounded:
        raise InvalidQuantity("Quantity supports at most 3 decimal places", details={"quantity": str(qty)})
    if not is_weighable and qty != qty.to_integral_value():
        raise InvalidQuantity(
            "Fractional quantities are only allowed for weighable products",
            details={"quantity": str(qty)},
        )
    return qty


@dataclass
class CartLine:
    line_id: int
    product_id: int
    product_name: str
    product_sku: str
    unit_price_cents: int
    quantity: Decimal
    tax_rate: Decimal
    tax_included: bool
    is_weighable: bool = False
    discount_percent: Decimal = ZERO

    def breakdown(self) -> LineBreakdown:
        return compute_line_totals(
            self.unit_price_cents,
            self.quantity,
            self.discount_percent,
            self.tax_rate,
            self.tax_included,
        )

    def to_dict(self) -> dict:
        data = {
            "line_id": self.line_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "discount_percent": self.discount_percent,
            "tax_rate": self.tax_rate,
            "tax_included": self.tax_included,
        }
        data.update(self.breakdown().to_dict())
        return data


@dataclass
class Cart:
    lines: list[CartLine] = field(default_factory=list)
    customer_id: int | None = None
    wholesale_discount_percent: Decimal | None = None
    discount: CartDiscount | None = None
    _next_line_id: int = 1

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def _line(self, line_id: int) -> CartLine:
        for line in self.lines:
            if line.line_id == line_id:
                return line
        raise NotFoundError("Cart line not found", details={"line_id": line_id}, code="CART_LINE_NOT_FOUND")

    def add_product(self, product, quantity: Any = 1) -> CartLine:
        """
        Add a product, or increase the quantity of its existing line.

        The merged quantity is validated as a whole before anything changes.
        """
        qty = _validate_quantity(quantity, is_weighable=product.is_weighable)

        for line in self.lines:
            if line.product_id == product.id:
                line.quantity = _validate_quantity(line.quantity + qty, is_weighable=line.is_weighable)
                return line

        line = CartLine(
            line_id=self._next_line_id,
            product_id=product.id,
            product_name=product.name,
            product_sku=product.sku,
            unit_price_cents=product.price_cents,
            quantity=qty,
            tax_rate=Decimal(product.tax_rate or 0),
            tax_included=bool(product.is_tax_included),
            is_weighable=bool(product.is_weighable),
        )
        self._next_line_id += 1
        self.lines.append(line)
        return line

    def update_quantity(self, line_id: int, quantity: Any) -> CartLine:
        """Set a line's quantity. Zero or negative is rejected, never treated as removal."""
        line = self._line(line_id)
        line.quantity = _validate_quantity(quantity, is_weighable=line.is_weighable)
        return line

    def apply_line_discount(self, line_id: int, percent: Any) -> CartLine:
        line = self._line(line_id)
        line.discount_percent = parse_percent(percent, "discount_percent", InvalidDiscount)
        return line

    def remove_line(self, line_id: int) -> None:
        self.lines.remove(self._line(line_id))

    def set_customer(self, customer) -> None:
        """Attach a customer (None detaches). Only wholesale customers carry a discount."""
        if customer is None:
            self.customer_id = None
            self.wholesale_discount_percent = None
            return
        self.customer_id = customer.id
        if customer.is_wholesale and customer.wholesale_discount_percent:
            self.wholesale_discount_percent = Decimal(customer.wholesale_discount_percent)
        else:
            self.wholesale_discount_percent = None

    def apply_discount(self, discount_type: str, value: Any) -> CartDiscount:
        self.discount = CartDiscount(type=str(discount_type or "").strip().upper(), value=value)
        return self.discount

    def clear_discount(self) -> None:
        self.discount = None

    def clear(self) -> None:
        self.lines = []
        self.customer_id = None
        self.wholesale_discount_percent = None
        self.discount = None
        self._next_line_id = 1

    def totals(self) -> CartBreakdown:
        return compute_cart_totals(
            [line.breakdown() for line in self.lines],
            self.discount,
            self.wholesale_discount_percent,
        )

    def to_dict(self) -> dict:
        data = self.totals().to_dict()
        data["lines"] = [line.to_dict() for line in self.lines]
        data["customer_id"] = self.customer_id
        data["wholesale_discount_percent"] = self.wholesale_discount_percent
        data["discount"] = self.discount.to_dict() if self.discount else None
        return data


def build_cart(
    items: Any,
    *,
    branch_id: int,
    customer_id: int | None = None,
    discount: Any = None,
) -> Cart:
    """
    Rebuild a cart from a request payload using current catalog rows.

    items: [{"product_id": 1, "quantity": "2", "discount_percent": "10"}, ...]
    """
    if items is None:
        items = []
    if not isinstance(items, list):
        raise ValidationError("items must be a list", code="INVALID_ITEMS")

    cart = Cart()
    for index, item in enumerate(items):
        if not isinstance(item, dict) or item.get("product_id") in (None, ""):
            raise ValidationError(
                "Each item needs a product_id",
                details={"index": index},
                code="INVALID_ITEMS",
            )
        product = get_product(parse_id(item["product_id"], "product_id"), branch_id=branch_id)
        line = cart.add_product(product, item.get("quantity", 1))
        if item.get("discount_percent") not in (None, ""):
            cart.apply_line_discount(line.line_id, item["discount_percent"])

    if customer_id is not None:
        cart.set_customer(get_customer(parse_id(customer_id, "customer_id")))

    parsed = CartDiscount.from_payload(discount)
    if parsed:
        cart.discount = parsed
    return cart

