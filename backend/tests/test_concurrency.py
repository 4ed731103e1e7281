"""
Concurrency tests against a file-backed SQLite database.

Verifies:
- Two cashiers racing to open the same register: exactly one session opens
- Concurrent sale completions on one session get distinct sale numbers
- A close racing sale completions counts exactly the sales that committed
"""

import threading
from decimal import Decimal

import pytest

from branchpos import create_app
from branchpos.extensions import db
from branchpos.models import Branch, PaymentMethod, Product, Register, RegisterSession, Sale, User
from branchpos.models.catalog import PAYMENT_TYPE_CASH
from branchpos.models.registers import SESSION_CLOSED
from branchpos.models.sales import SALE_COMPLETED
from branchpos.services import register_service, sales_service
from branchpos.services.cart_service import Cart
from branchpos.services.register_service import RegisterAlreadyOpen, SessionNotOpen
from branchpos.services.tender_service import add_payment
from branchpos.validation import ConsistencyError


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'race.sqlite3'}",
    })
    with app.app_context():
        db.create_all()
        branch = Branch(name="Main Branch", code="MAIN")
        db.session.add(branch)
        db.session.flush()
        db.session.add_all([
            User(branch_id=branch.id, username="alice"),
            User(branch_id=branch.id, username="bob"),
            Register(branch_id=branch.id, register_number="REG-01", name="Front Counter"),
            Product(branch_id=branch.id, sku="SKU-1", name="Item", price_cents=1000, tax_rate=Decimal("0")),
            PaymentMethod(code="CASH", name="Cash", type=PAYMENT_TYPE_CASH),
        ])
        db.session.commit()
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def _run_in_threads(app, count, target):
    barrier = threading.Barrier(count)
    results = [None] * count

    def worker(index):
        with app.app_context():
            barrier.wait()
            try:
                results[index] = target(index)
            except (RegisterAlreadyOpen, SessionNotOpen, ConsistencyError) as exc:
                results[index] = exc
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return results


class TestOpenSessionRace:

    def test_only_one_session_opens(self, file_app):
        with file_app.app_context():
            register_id = db.session.query(Register.id).scalar()
            user_ids = [u.id for u in db.session.query(User).order_by(User.id)]

        def open_for(index):
            return register_service.open_session(register_id, user_ids[index], 0, "MORNING").id

        results = _run_in_threads(file_app, 2, open_for)

        opened = [r for r in results if isinstance(r, int)]
        rejected = [r for r in results if isinstance(r, (RegisterAlreadyOpen, ConsistencyError))]
        assert len(opened) == 1
        assert len(rejected) == 1

        with file_app.app_context():
            assert db.session.query(RegisterSession).filter_by(register_id=register_id).count() == 1


class TestCompletionRace:

    def test_sale_numbers_are_unique(self, file_app):
        with file_app.app_context():
            register_id = db.session.query(Register.id).scalar()
            cashier_id = db.session.query(User.id).filter_by(username="alice").scalar()
            session_id = register_service.open_session(register_id, cashier_id, 0, "FULL_DAY").id

        def complete(index):
            cart = Cart()
            cart.add_product(db.session.query(Product).one(), index + 1)
            tenders = add_payment([], db.session.query(PaymentMethod).one(), (index + 1) * 1000)
            return sales_service.complete_sale(cart, tenders, session_id, cashier_id).sale_number

        results = _run_in_threads(file_app, 4, complete)

        numbers = [r for r in results if isinstance(r, str)]
        assert len(numbers) == 4
        assert len(set(numbers)) == len(numbers)

        with file_app.app_context():
            assert db.session.query(Sale).count() == len(numbers)

    def test_close_counts_only_committed_sales(self, file_app):
        with file_app.app_context():
            register_id = db.session.query(Register.id).scalar()
            cashier_id = db.session.query(User.id).filter_by(username="alice").scalar()
            session_id = register_service.open_session(register_id, cashier_id, 0, "FULL_DAY").id

        def complete_or_close(index):
            if index == 0:
                return register_service.close_session(
                    session_id,
                    declared_cash_cents=0,
                    declared_card_cents=0,
                    declared_qr_cents=0,
                    declared_transfer_cents=0,
                ).id
            cart = Cart()
            cart.add_product(db.session.query(Product).one(), 1)
            tenders = add_payment([], db.session.query(PaymentMethod).one(), 1000)
            return sales_service.complete_sale(cart, tenders, session_id, cashier_id).sale_number

        results = _run_in_threads(file_app, 7, complete_or_close)

        assert results[0] == session_id
        completions = results[1:]
        committed = [r for r in completions if isinstance(r, str)]
        rejected = [r for r in completions if isinstance(r, SessionNotOpen)]
        assert len(committed) + len(rejected) == 6
        assert all(exc.code == "SESSION_NOT_OPEN" for exc in rejected)

        with file_app.app_context():
            session = db.session.get(RegisterSession, session_id)
            assert session.status == SESSION_CLOSED
            assert session.sale_count == len(committed)
            assert session.expected_cash_cents == 1000 * len(committed)
            assert session.discrepancy_cash_cents == -1000 * len(committed)
            assert db.session.query(Sale).filter_by(status=SALE_COMPLETED).count() == len(committed)
