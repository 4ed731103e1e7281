"""
Tender reconciler tests.

Verifies:
- Payment amounts must be positive whole cents
- Reference numbers are required where the method says so
- remaining/change arithmetic and the completion gate
- Change comes out of cash tenders first
- Method type/code mapping onto reconciliation buckets
"""

from types import SimpleNamespace

import pytest

from branchpos.money import AmountOutOfRange
from branchpos.services.tender_service import (
    InsufficientPayment,
    InvalidPaymentAmount,
    MissingPaymentReference,
    add_payment,
    allocate_change,
    evaluate,
    reconciliation_bucket,
    require_settled,
)

CASH = SimpleNamespace(id=1, type="CASH", code="CASH", requires_reference=False)
DEBIT = SimpleNamespace(id=2, type="CARD", code="DEBIT", requires_reference=True)
QR = SimpleNamespace(id=3, type="DIGITAL", code="QR", requires_reference=False)
ACCOUNT = SimpleNamespace(id=4, type="CREDIT", code="ACCOUNT", requires_reference=False)


class TestAddPayment:

    @pytest.mark.parametrize("amount", [0, -100, "12.50", 10.0, None, True, "1e30", 2 ** 31])
    def test_invalid_amount_rejected(self, amount):
        with pytest.raises(InvalidPaymentAmount):
            add_payment([], CASH, amount)

    def test_reference_required(self):
        with pytest.raises(MissingPaymentReference):
            add_payment([], DEBIT, 1000)
        with pytest.raises(MissingPaymentReference):
            add_payment([], DEBIT, 1000, "   ")

    def test_returns_new_list(self):
        first = add_payment([], CASH, 1000)
        second = add_payment(first, DEBIT, 500, "AUTH-1")

        assert len(first) == 1
        assert len(second) == 2
        assert second[1].reference_number == "AUTH-1"
        assert second[1].bucket == "card"

    def test_overpayment_allowed_at_add_time(self):
        payments = add_payment([], CASH, 1_000_000)
        assert payments[0].amount_cents == 1_000_000

    def test_paid_total_must_fit_cents_column(self):
        payments = add_payment([], CASH, 2_000_000_000)
        payments = add_payment(payments, QR, 2_000_000_000)

        with pytest.raises(AmountOutOfRange):
            evaluate(1000, payments)


class TestEvaluate:

    def test_exact_payment(self):
        payments = add_payment(add_payment([], CASH, 20000), DEBIT, 12670, "A1")
        evaluation = evaluate(32670, payments)

        assert evaluation.total_paid_cents == 32670
        assert evaluation.remaining_cents == 0
        assert evaluation.change_cents == 0
        assert evaluation.is_settled

    def test_overpayment_becomes_change(self):
        evaluation = evaluate(32670, add_payment([], CASH, 40000))

        assert evaluation.remaining_cents == 0
        assert evaluation.change_cents == 40000 - 32670

    def test_underpayment_leaves_remaining(self):
        evaluation = evaluate(32670, add_payment([], CASH, 30000))

        assert evaluation.remaining_cents == 2670
        assert evaluation.change_cents == 0
        assert not evaluation.is_settled

    def test_require_settled_names_remaining(self):
        with pytest.raises(InsufficientPayment) as exc:
            require_settled(32670, add_payment([], CASH, 30000))

        assert str(exc.value) == "Remaining payment due"
        assert exc.value.details["remaining_cents"] == 2670

    def test_zero_total_needs_no_payment(self):
        assert require_settled(0, []).is_settled


class TestAllocateChange:

    def test_change_from_cash_even_when_card_is_last(self):
        payments = add_payment(add_payment([], CASH, 5000), DEBIT, 10000, "A1")
        assert allocate_change(payments, 3000) == [3000, 0]

    def test_change_spills_to_non_cash_from_last(self):
        payments = add_payment(add_payment(add_payment([], QR, 4000), CASH, 1000), DEBIT, 4000, "A1")
        assert allocate_change(payments, 2500) == [0, 1000, 1500]

    def test_no_change(self):
        payments = add_payment([], CASH, 5000)
        assert allocate_change(payments, 0) == [0]


class TestReconciliationBucket:

    @pytest.mark.parametrize(
        "method_type,method_code,bucket",
        [
            ("CASH", "CASH", "cash"),
            ("CARD", "DEBIT", "card"),
            ("CARD", "CREDIT_CARD", "card"),
            ("DIGITAL", "QR", "qr"),
            ("DIGITAL", "WALLET", "qr"),
            ("DIGITAL", "TRANSFER", "transfer"),
            ("OTHER", "transfer", "transfer"),
            ("CREDIT", "ACCOUNT", None),
            ("OTHER", "VOUCHER", None),
        ],
    )
    def test_bucket(self, method_type, method_code, bucket):
        assert reconciliation_bucket(method_type, method_code) == bucket

    def test_credit_tender_has_no_bucket(self):
        assert add_payment([], ACCOUNT, 100)[0].bucket is None
