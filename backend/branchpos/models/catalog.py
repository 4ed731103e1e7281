from __future__ import annotations

from decimal import Decimal

from ..extensions import db

PAYMENT_TYPE_CASH = "CASH"
PAYMENT_TYPE_CARD = "CARD"
PAYMENT_TYPE_DIGITAL = "DIGITAL"
PAYMENT_TYPE_CREDIT = "CREDIT"
PAYMENT_TYPE_OTHER = "OTHER"

VALID_PAYMENT_TYPES = (
    PAYMENT_TYPE_CASH,
    PAYMENT_TYPE_CARD,
    PAYMENT_TYPE_DIGITAL,
    PAYMENT_TYPE_CREDIT,
    PAYMENT_TYPE_OTHER,
)


class Product(db.Model):
    """
    Catalog product as seen by the register.

    Price, tax rate and the tax-inclusive flag are copied onto the cart line
    when the product is added; later catalog edits never touch open carts or
    completed sales.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "sku", name="uq_products_branch_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    price_cents = db.Column(db.Integer, nullable=False)
    tax_rate = db.Column(db.Numeric(7, 4), nullable=False, default=Decimal("0"))  # percent, e.g. 21.0000
    is_tax_included = db.Column(db.Boolean, nullable=False, default=False)
    is_weighable = db.Column(db.Boolean, nullable=False, default=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    branch = db.relationship("Branch", backref=db.backref("products", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "sku": self.sku,
            "name": self.name,
            "price_cents": self.price_cents,
            "tax_rate": self.tax_rate,
            "is_tax_included": self.is_tax_included,
            "is_weighable": self.is_weighable,
            "is_active": self.is_active,
        }


class Customer(db.Model):
    """Customer profile; only the wholesale terms matter to pricing."""
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_code = db.Column(db.String(32), nullable=False, unique=True)
    display_name = db.Column(db.String(255), nullable=False)

    is_wholesale = db.Column(db.Boolean, nullable=False, default=False)
    wholesale_discount_percent = db.Column(db.Numeric(7, 4), nullable=False, default=Decimal("0"))

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_code": self.customer_code,
            "display_name": self.display_name,
            "is_wholesale": self.is_wholesale,
            "wholesale_discount_percent": self.wholesale_discount_percent,
            "is_active": self.is_active,
        }


class PaymentMethod(db.Model):
    """
    Tender catalog entry (Cash, Debit, Credit card, Transfer, QR, ...).

    TYPES: CASH, CARD, DIGITAL, CREDIT, OTHER.
    Non-cash rails usually require a reference number (auth code, transfer id).
    """
    __tablename__ = "payment_methods"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    code = db.Column(db.String(32), nullable=False, unique=True)
    type = db.Column(db.String(16), nullable=False)
    requires_reference = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "type": self.type,
            "requires_reference": self.requires_reference,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }
