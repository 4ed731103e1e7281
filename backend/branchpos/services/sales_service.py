"""
Sale Ledger

WHY: The sale ledger is the system of record that session reconciliation
aggregates. A sale is written once, atomically, as COMPLETED together with
its lines and tenders; afterwards the only legal change is the transition to
VOIDED, which stamps audit fields and leaves the totals untouched.

ORDERING: completion checks session.status == OPEN inside the same
transaction that inserts the sale, and close aggregates inside the
transaction that flips the status. Either the sale is in the close's
totals, or it was rejected with SessionNotOpen.
"""

from __future__ import annotations

import logging
from typing import Any

from ..extensions import db
from ..models import Payment, RegisterSession, Sale, SaleLine
from ..models.sales import SALE_COMPLETED, SALE_VOIDED
from ..money import format_cents
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError, parse_id
from .cart_service import Cart, build_cart
from .catalog_service import get_payment_method
from .concurrency import begin_write_transaction, lock_for_update, run_atomically
from .document_service import next_sale_number
from .ledger_service import append_ledger_event
from .pricing_service import CartBreakdown, CartDiscount, compute_cart_totals, compute_line_totals
from .register_service import SessionNotOpen, SummaryWithheld
from .tender_service import (
    Tender,
    TenderEvaluation,
    add_payment,
    allocate_change,
    evaluate,
    require_settled,
)

logger = logging.getLogger(__name__)


class EmptyCart(ValidationError):
    code = "EMPTY_CART"


class AlreadyVoided(ConflictError):
    code = "ALREADY_VOIDED"


class SaleNotCompleted(ConflictError):
    code = "SALE_NOT_COMPLETED"


def build_tenders(payments_payload: Any) -> list[Tender]:
    """
    Turn [{"payment_method_id", "amount_cents", "reference_number"?}, ...]
    into validated tenders, in the order given.
    """
    if payments_payload is None:
        payments_payload = []
    if not isinstance(payments_payload, list):
        raise ValidationError("payments must be a list", code="INVALID_PAYMENTS")

    tenders: list[Tender] = []
    for index, entry in enumerate(payments_payload):
        if not isinstance(entry, dict) or entry.get("payment_method_id") in (None, ""):
            raise ValidationError(
                "Each payment needs a payment_method_id",
                details={"index": index},
                code="INVALID_PAYMENTS",
            )
        method = get_payment_method(parse_id(entry["payment_method_id"], "payment_method_id"))
        tenders = add_payment(tenders, method, entry.get("amount_cents"), entry.get("reference_number"))
    return tenders


def preview_totals(cart: Cart, tenders: list[Tender] | None = None) -> dict:
    """
    Non-authoritative preview: cart totals plus tender evaluation, nothing written.
    """
    totals = cart.totals()
    evaluation = evaluate(totals.total_cents, tenders or [])
    data = cart.to_dict()
    data["tender"] = evaluation.to_dict()
    return data


def complete_sale(
    cart: Cart,
    tenders: list[Tender],
    session_id: int,
    cashier_id: int,
    notes: str | None = None,
) -> Sale:
    """
    Complete a sale on an OPEN session.

    One transaction: lock the session, verify it is OPEN, allocate the sale
    number and insert the sale, its lines and its tenders.

    Raises:
        EmptyCart: the cart has no lines
        InsufficientPayment: tenders do not cover the total
        SessionNotOpen: the session is closed (checked under the write lock)
    """
    if cart.is_empty:
        raise EmptyCart("Cannot complete a sale with an empty cart")

    totals = cart.totals()
    evaluation = require_settled(totals.total_cents, tenders)
    change_split = allocate_change(tenders, evaluation.change_cents)

    def _op() -> Sale:
        begin_write_transaction()
        session = lock_for_update(db.session.query(RegisterSession).filter_by(id=session_id)).first()
        if not session:
            raise NotFoundError("Session not found", details={"session_id": session_id}, code="SESSION_NOT_FOUND")
        if not session.is_open:
            raise SessionNotOpen(
                "Session is closed; sales can only be recorded on an OPEN session",
                details={"session_id": session_id, "status": session.status},
            )

        now = utcnow()
        sale = Sale(
            branch_id=session.branch_id,
            register_id=session.register_id,
            session_id=session.id,
            cashier_id=cashier_id,
            customer_id=cart.customer_id,
            sale_number=next_sale_number(session.branch_id),
            status=SALE_COMPLETED,
            discount_type=cart.discount.type if cart.discount else None,
            discount_value=cart.discount.value if cart.discount else None,
            wholesale_discount_percent=cart.wholesale_discount_percent,
            notes=notes,
            created_at=now,
            completed_at=now,
        )
        _apply_totals(sale, totals, evaluation)

        for number, (line, breakdown) in enumerate(zip(cart.lines, totals.lines), start=1):
            sale.lines.append(SaleLine(
                line_number=number,
                product_id=line.product_id,
                product_name=line.product_name,
                product_sku=line.product_sku,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                discount_percent=line.discount_percent,
                tax_rate=line.tax_rate,
                tax_included=line.tax_included,
                subtotal_cents=breakdown.subtotal_cents,
                discount_cents=breakdown.discount_cents,
                tax_cents=breakdown.tax_cents,
                total_cents=breakdown.total_cents,
            ))

        for sequence, (tender, change) in enumerate(zip(tenders, change_split), start=1):
            sale.payments.append(Payment(
                sequence=sequence,
                payment_method_id=tender.payment_method_id,
                method_type=tender.method_type,
                method_code=tender.method_code,
                amount_cents=tender.amount_cents,
                change_cents=change,
                reference_number=tender.reference_number,
                created_at=now,
            ))

        db.session.add(sale)
        db.session.flush()

        append_ledger_event(
            branch_id=sale.branch_id,
            event_type="sale.completed",
            entity_type="sale",
            entity_id=sale.id,
            actor_user_id=cashier_id,
            register_id=sale.register_id,
            session_id=sale.session_id,
            sale_id=sale.id,
            occurred_at=now,
            note=f"Sale {sale.sale_number} completed",
            payload={
                "total_cents": sale.total_cents,
                "paid_cents": sale.paid_cents,
                "change_cents": sale.change_cents,
            },
        )
        return sale

    sale = run_atomically(_op)
    logger.info(
        "Sale %s completed on session %s: total %s, change %s",
        sale.sale_number, session_id, format_cents(sale.total_cents), format_cents(sale.change_cents),
    )
    return sale


def complete_sale_from_payload(payload: dict, cashier_id: int) -> Sale:
    """Build cart and tenders from request JSON, then complete."""
    session = _get_session(parse_id(payload.get("session_id"), "session_id"))
    cart = build_cart(
        payload.get("items"),
        branch_id=session.branch_id,
        customer_id=payload.get("customer_id"),
        discount=payload.get("discount"),
    )
    tenders = build_tenders(payload.get("payments"))
    return complete_sale(cart, tenders, session.id, cashier_id, notes=payload.get("notes"))


def _apply_totals(sale: Sale, totals: CartBreakdown, evaluation: TenderEvaluation) -> None:
    sale.subtotal_cents = totals.subtotal_cents
    sale.line_discount_cents = totals.line_discount_cents
    sale.cart_discount_cents = totals.cart_discount_cents
    sale.wholesale_discount_cents = totals.wholesale_discount_cents
    sale.discount_cents = totals.discount_cents
    sale.tax_cents = totals.tax_cents
    sale.included_tax_cents = totals.included_tax_cents
    sale.total_cents = totals.total_cents
    sale.paid_cents = evaluation.total_paid_cents
    sale.change_cents = evaluation.change_cents


def void_sale(sale_id: int, reason: str, actor_id: int) -> Sale:
    """
    Void a COMPLETED sale.

    Only a status transition plus audit fields; totals, lines and tenders are
    kept. The sale's session must still be OPEN, so a reconciled session's
    figures never disagree with its ledger.

    Raises:
        AlreadyVoided: the sale is already VOIDED
        SaleNotCompleted: the sale is in any other non-COMPLETED state
        SessionNotOpen: the session the sale belongs to is closed
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to void a sale", code="MISSING_FIELDS")

    def _op() -> Sale:
        begin_write_transaction()
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError("Sale not found", details={"sale_id": sale_id}, code="SALE_NOT_FOUND")
        if sale.status == SALE_VOIDED:
            raise AlreadyVoided(
                f"Sale {sale.sale_number} is already voided",
                details={"sale_id": sale_id, "voided_at": sale.voided_at.isoformat() if sale.voided_at else None},
            )
        if sale.status != SALE_COMPLETED:
            raise SaleNotCompleted(
                f"Only COMPLETED sales can be voided (status {sale.status})",
                details={"sale_id": sale_id, "status": sale.status},
            )

        session = lock_for_update(db.session.query(RegisterSession).filter_by(id=sale.session_id)).first()
        if not session or not session.is_open:
            raise SessionNotOpen(
                "Cannot void a sale whose session is already closed",
                details={"sale_id": sale_id, "session_id": sale.session_id},
            )

        sale.status = SALE_VOIDED
        sale.voided_at = utcnow()
        sale.voided_by_user_id = actor_id
        sale.void_reason = reason[:255]
        db.session.flush()

        append_ledger_event(
            branch_id=sale.branch_id,
            event_type="sale.voided",
            entity_type="sale",
            entity_id=sale.id,
            actor_user_id=actor_id,
            register_id=sale.register_id,
            session_id=sale.session_id,
            sale_id=sale.id,
            occurred_at=sale.voided_at,
            note=reason,
            payload={"total_cents": sale.total_cents},
        )
        return sale

    sale = run_atomically(_op)
    logger.info("Sale %s voided by user %s: %s", sale.sale_number, actor_id, reason)
    return sale


def verify_sale_totals(sale_id: int) -> dict:
    """
    Re-derive a sale's totals from its snapshotted lines through the pricing
    engine and compare them with the stored totals.

    Returns {"sale_id", "matches", "stored", "recomputed", "drift"} where
    drift lists only the fields that differ.
    """
    sale = get_sale(sale_id)

    breakdowns = [
        compute_line_totals(
            line.unit_price_cents,
            line.quantity,
            line.discount_percent,
            line.tax_rate,
            line.tax_included,
        )
        for line in sale.lines
    ]
    discount = CartDiscount(type=sale.discount_type, value=sale.discount_value) if sale.discount_type else None
    totals = compute_cart_totals(breakdowns, discount, sale.wholesale_discount_percent)

    fields = (
        "subtotal_cents",
        "line_discount_cents",
        "cart_discount_cents",
        "wholesale_discount_cents",
        "discount_cents",
        "tax_cents",
        "included_tax_cents",
        "total_cents",
    )
    stored = {name: getattr(sale, name) for name in fields}
    recomputed = {name: getattr(totals, name) for name in fields}

    for line, breakdown in zip(sale.lines, breakdowns):
        for name in ("subtotal_cents", "discount_cents", "tax_cents", "total_cents"):
            key = f"line_{line.line_number}_{name}"
            stored[key] = getattr(line, name)
            recomputed[key] = getattr(breakdown, name)

    drift = {
        key: {"stored": stored[key], "recomputed": recomputed[key]}
        for key in stored
        if stored[key] != recomputed[key]
    }
    if drift:
        logger.warning("Sale %s totals drift from recomputation: %s", sale.sale_number, sorted(drift))

    return {
        "sale_id": sale.id,
        "sale_number": sale.sale_number,
        "matches": not drift,
        "stored": stored,
        "recomputed": recomputed,
        "drift": drift,
    }


def _get_session(session_id: int) -> RegisterSession:
    session = db.session.get(RegisterSession, session_id)
    if not session:
        raise NotFoundError("Session not found", details={"session_id": session_id}, code="SESSION_NOT_FOUND")
    return session


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id}, code="SALE_NOT_FOUND")
    return sale


def list_session_sales(session_id: int, *, status: str | None = None, allow_open: bool = True) -> list[Sale]:
    """
    Sales recorded on a session, oldest first.

    With allow_open=False the list is withheld for an OPEN session: summing
    it by tender would reveal the expected figures before the blind close.
    """
    session = _get_session(session_id)
    if session.is_open and not allow_open:
        raise SummaryWithheld(
            "Session sales are not listed until the session is closed",
            details={"session_id": session_id},
        )
    query = db.session.query(Sale).filter(Sale.session_id == session_id)
    if status:
        query = query.filter(Sale.status == status.strip().upper())
    return query.order_by(Sale.id).all()
