from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

SALE_PENDING = "PENDING"
SALE_COMPLETED = "COMPLETED"
SALE_VOIDED = "VOIDED"


class Sale(db.Model):
    """
    Completed sale: an immutable snapshot of cart totals plus its tenders.

    WHY: The sale ledger is the system of record that session reconciliation
    aggregates. Totals are frozen at completion; voiding is a status
    transition with audit fields, never a content edit.

    All money columns are in cents.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "sale_number", name="uq_sales_branch_number"),
        db.Index("ix_sales_session_status", "session_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    register_id = db.Column(db.Integer, db.ForeignKey("registers.id"), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey("register_sessions.id"), nullable=False, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    # Human-readable number (e.g., "V-000123"), sequential per branch
    sale_number = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=SALE_PENDING, index=True)

    # Cart-level discount inputs (FIXED values are cents)
    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Numeric(14, 4), nullable=True)
    wholesale_discount_percent = db.Column(db.Numeric(7, 4), nullable=True)

    # Snapshotted totals
    subtotal_cents = db.Column(db.Integer, nullable=False)
    line_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    cart_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    wholesale_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    included_tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    paid_cents = db.Column(db.Integer, nullable=False)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Void audit trail
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    session = db.relationship("RegisterSession", backref=db.backref("sales", lazy=True))
    lines = db.relationship(
        "SaleLine", backref="sale", lazy=True, order_by="SaleLine.line_number", cascade="all, delete-orphan"
    )
    payments = db.relationship(
        "Payment", backref="sale", lazy=True, order_by="Payment.sequence", cascade="all, delete-orphan"
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "sale_number": self.sale_number,
            "branch_id": self.branch_id,
            "register_id": self.register_id,
            "session_id": self.session_id,
            "cashier_id": self.cashier_id,
            "customer_id": self.customer_id,
            "status": self.status,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "wholesale_discount_percent": self.wholesale_discount_percent,
            "subtotal_cents": self.subtotal_cents,
            "line_discount_cents": self.line_discount_cents,
            "cart_discount_cents": self.cart_discount_cents,
            "wholesale_discount_cents": self.wholesale_discount_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "included_tax_cents": self.included_tax_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "change_cents": self.change_cents,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "voided_by_user_id": self.voided_by_user_id,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class SaleLine(db.Model):
    """Line snapshot: product identity, pricing inputs and the computed breakdown."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=False)

    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_percent = db.Column(db.Numeric(7, 4), nullable=False)
    tax_rate = db.Column(db.Numeric(7, 4), nullable=False)
    tax_included = db.Column(db.Boolean, nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_percent": self.discount_percent,
            "tax_rate": self.tax_rate,
            "tax_included": self.tax_included,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
        }


class Payment(db.Model):
    """
    Tender recorded on a sale.

    amount_cents is what the customer handed over; change_cents is the part of
    it returned as change. Net settlement (amount - change) is what the
    register's rail actually keeps, and what session reconciliation sums.
    Method type and code are snapshotted so later catalog edits cannot move
    money between reconciliation rails.
    """
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)

    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=False, index=True)
    method_type = db.Column(db.String(16), nullable=False, index=True)
    method_code = db.Column(db.String(32), nullable=False)

    amount_cents = db.Column(db.Integer, nullable=False)
    change_cents = db.Column(db.Integer, nullable=False, default=0)
    reference_number = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    payment_method = db.relationship("PaymentMethod")

    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="payment_amount_positive"),
        db.CheckConstraint("change_cents >= 0 AND change_cents <= amount_cents", name="payment_change_bounds"),
        {"sqlite_autoincrement": True},
    )

    @property
    def net_cents(self) -> int:
        return self.amount_cents - (self.change_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "sequence": self.sequence,
            "payment_method_id": self.payment_method_id,
            "method_type": self.method_type,
            "method_code": self.method_code,
            "amount_cents": self.amount_cents,
            "change_cents": self.change_cents,
            "net_cents": self.net_cents,
            "reference_number": self.reference_number,
            "created_at": to_utc_z(self.created_at),
        }
