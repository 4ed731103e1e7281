# Overview: Tender evaluation for sale completion; pure, no database access.

"""
Tender Reconciler

WHY: A sale may be settled with several tenders (cash + card, two cards,
...). This module validates each tender, evaluates sufficiency against the
cart total and decides which tender the change comes out of.

DESIGN PRINCIPLES:
- Overpayment is allowed at add time; it becomes change.
- Completion requires remaining == 0.
- Change is returned from cash first, so the card/QR/transfer rails net
  exactly what the processor settles.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from ..models.catalog import (
    PAYMENT_TYPE_CARD,
    PAYMENT_TYPE_CASH,
    PAYMENT_TYPE_DIGITAL,
)
from ..money import check_cents_range, parse_cents
from ..validation import ValidationError


class InvalidPaymentAmount(ValidationError):
    code = "INVALID_PAYMENT_AMOUNT"


class InsufficientPayment(ValidationError):
    code = "INSUFFICIENT_PAYMENT"


class MissingPaymentReference(ValidationError):
    code = "MISSING_PAYMENT_REFERENCE"


# Method codes that get their own reconciliation rail regardless of type
_BUCKET_BY_CODE = {
    "QR": "qr",
    "TRANSFER": "transfer",
}

_BUCKET_BY_TYPE = {
    PAYMENT_TYPE_CASH: "cash",
    PAYMENT_TYPE_CARD: "card",
    PAYMENT_TYPE_DIGITAL: "qr",
}


def reconciliation_bucket(method_type: str, method_code: str | None = None) -> str | None:
    """
    Map a payment method onto a session reconciliation bucket.

    CREDIT and OTHER tenders belong to no bucket: they are reported in the
    session summary but never declared at close.
    """
    if method_code:
        bucket = _BUCKET_BY_CODE.get(method_code.strip().upper())
        if bucket:
            return bucket
    return _BUCKET_BY_TYPE.get(method_type)


@dataclass(frozen=True)
class Tender:
    """One declared payment, before it is written to the ledger."""
    payment_method_id: int
    method_type: str
    method_code: str
    amount_cents: int
    reference_number: str | None = None

    @property
    def is_cash(self) -> bool:
        return self.method_type == PAYMENT_TYPE_CASH

    @property
    def bucket(self) -> str | None:
        return reconciliation_bucket(self.method_type, self.method_code)

    def to_dict(self) -> dict:
        return {
            "payment_method_id": self.payment_method_id,
            "method_type": self.method_type,
            "method_code": self.method_code,
            "amount_cents": self.amount_cents,
            "reference_number": self.reference_number,
            "bucket": self.bucket,
        }


@dataclass(frozen=True)
class TenderEvaluation:
    total_due_cents: int
    total_paid_cents: int
    remaining_cents: int
    change_cents: int

    @property
    def is_settled(self) -> bool:
        return self.remaining_cents == 0

    def to_dict(self) -> dict:
        return {
            "total_due_cents": self.total_due_cents,
            "total_paid_cents": self.total_paid_cents,
            "remaining_cents": self.remaining_cents,
            "change_cents": self.change_cents,
            "is_settled": self.is_settled,
        }


def add_payment(
    payments: Sequence[Tender],
    method,
    amount_cents,
    reference_number: str | None = None,
) -> list[Tender]:
    """
    Return a new tender list with one more payment appended.

    method is any object exposing id, type, code and requires_reference
    (a PaymentMethod row in practice). The input sequence is not modified.

    Raises:
        InvalidPaymentAmount: amount is not a positive whole number of cents
        MissingPaymentReference: the method requires a reference and none was given
    """
    amount = parse_cents(amount_cents, "amount_cents", allow_zero=False, error_cls=InvalidPaymentAmount)

    reference = (reference_number or "").strip() or None
    if method.requires_reference and not reference:
        raise MissingPaymentReference(
            f"Payment method {method.code} requires a reference number",
            details={"payment_method_id": method.id},
        )

    tender = Tender(
        payment_method_id=method.id,
        method_type=method.type,
        method_code=method.code,
        amount_cents=amount,
        reference_number=reference,
    )
    return [*payments, tender]


def evaluate(total_cents: int, payments: Iterable[Tender]) -> TenderEvaluation:
    total_paid = check_cents_range(sum(p.amount_cents for p in payments), "total_paid_cents")
    return TenderEvaluation(
        total_due_cents=total_cents,
        total_paid_cents=total_paid,
        remaining_cents=max(0, total_cents - total_paid),
        change_cents=max(0, total_paid - total_cents),
    )


def require_settled(total_cents: int, payments: Iterable[Tender]) -> TenderEvaluation:
    """Evaluate and reject with InsufficientPayment while anything remains due."""
    evaluation = evaluate(total_cents, payments)
    if not evaluation.is_settled:
        raise InsufficientPayment(
            "Remaining payment due",
            details={
                "total_due_cents": evaluation.total_due_cents,
                "total_paid_cents": evaluation.total_paid_cents,
                "remaining_cents": evaluation.remaining_cents,
            },
        )
    return evaluation


def allocate_change(payments: Sequence[Tender], change_cents: int) -> list[int]:
    """
    Split the change across tenders; returns change per tender, in order.

    Cash tenders give change first (latest first), then non-cash tenders
    from the last one back. No tender gives back more than it received.
    """
    allocation = [0] * len(payments)
    remaining = change_cents

    cash_first = [i for i in reversed(range(len(payments))) if payments[i].is_cash]
    others = [i for i in reversed(range(len(payments))) if not payments[i].is_cash]

    for index in cash_first + others:
        if remaining <= 0:
            break
        portion = min(payments[index].amount_cents, remaining)
        allocation[index] = portion
        remaining -= portion

    if remaining > 0:
        raise InsufficientPayment(
            "Change exceeds the amount tendered",
            details={"change_cents": change_cents},
        )
    return allocation
