"""
Pytest fixtures for BranchPOS backend tests.

Provides the application on an in-memory database, a wiped session per test,
catalog and register fixtures, and actor headers for the API client.
"""

from decimal import Decimal

import pytest

from branchpos import create_app
from branchpos.extensions import db
from branchpos.models import Branch, Customer, PaymentMethod, Product, Register, User
from branchpos.models.catalog import (
    PAYMENT_TYPE_CARD,
    PAYMENT_TYPE_CASH,
    PAYMENT_TYPE_CREDIT,
    PAYMENT_TYPE_DIGITAL,
)
from branchpos.models.users import ROLE_CASHIER, ROLE_MANAGER
from branchpos.services import register_service, sales_service
from branchpos.services.cart_service import Cart
from branchpos.services.tender_service import add_payment


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'EXPOSE_OPEN_SESSION_SUMMARY': False,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def branch(db_session):
    branch = Branch(name="Main Branch", code="MAIN", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def other_branch(db_session):
    branch = Branch(name="North Branch", code="NORTH", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def cashier(db_session, branch):
    user = User(branch_id=branch.id, username="cashier", full_name="Cashier One", role=ROLE_CASHIER)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def manager(db_session, branch):
    user = User(branch_id=branch.id, username="manager", full_name="Manager One", role=ROLE_MANAGER)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def product(db_session, branch):
    """100.00 with 21% tax added on top."""
    product = Product(
        branch_id=branch.id,
        sku="SKU-100",
        name="Olive Oil 1L",
        price_cents=10000,
        tax_rate=Decimal("21"),
        is_tax_included=False,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def inclusive_product(db_session, branch):
    """121.00 with 21% tax already inside the price."""
    product = Product(
        branch_id=branch.id,
        sku="SKU-121",
        name="Wine 750ml",
        price_cents=12100,
        tax_rate=Decimal("21"),
        is_tax_included=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def untaxed_product(db_session, branch):
    product = Product(branch_id=branch.id, sku="SKU-GC", name="Gift Card", price_cents=10000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def weighable_product(db_session, branch):
    product = Product(
        branch_id=branch.id,
        sku="SKU-KG",
        name="Cheese (per kg)",
        price_cents=2000,
        tax_rate=Decimal("0"),
        is_weighable=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def payment_methods(db_session):
    """Payment methods keyed by code."""
    methods = {
        "CASH": PaymentMethod(code="CASH", name="Cash", type=PAYMENT_TYPE_CASH, sort_order=1),
        "DEBIT": PaymentMethod(code="DEBIT", name="Debit Card", type=PAYMENT_TYPE_CARD, requires_reference=True, sort_order=2),
        "QR": PaymentMethod(code="QR", name="QR Wallet", type=PAYMENT_TYPE_DIGITAL, requires_reference=True, sort_order=3),
        "TRANSFER": PaymentMethod(code="TRANSFER", name="Bank Transfer", type=PAYMENT_TYPE_DIGITAL, requires_reference=True, sort_order=4),
        "ACCOUNT": PaymentMethod(code="ACCOUNT", name="Customer Account", type=PAYMENT_TYPE_CREDIT, sort_order=5),
    }
    db_session.add_all(methods.values())
    db_session.commit()
    return methods


@pytest.fixture(scope='function')
def wholesale_customer(db_session):
    customer = Customer(
        customer_code="WH-01",
        display_name="Corner Store",
        is_wholesale=True,
        wholesale_discount_percent=Decimal("5"),
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def register(db_session, branch):
    register = Register(branch_id=branch.id, register_number="REG-01", name="Front Counter 1")
    db_session.add(register)
    db_session.commit()
    return register


@pytest.fixture(scope='function')
def open_session(register, cashier):
    return register_service.open_session(
        register_id=register.id,
        cashier_id=cashier.id,
        opening_amount_cents=10000,
        shift_type="MORNING",
    )


@pytest.fixture(scope='function')
def make_sale(untaxed_product, payment_methods, cashier):
    """
    Record a sale of `total_cents` on a session, paid with one method.

    The total is built from the 100.00 untaxed product, so it must be a
    multiple of 10000.
    """
    def _make_sale(session, total_cents, method_code="CASH", tendered_cents=None):
        assert total_cents % 10000 == 0
        cart = Cart()
        cart.add_product(untaxed_product, total_cents // 10000)

        method = payment_methods[method_code]
        reference = None if method_code in ("CASH", "ACCOUNT") else "REF-1"
        tenders = add_payment([], method, tendered_cents or total_cents, reference)
        return sales_service.complete_sale(cart, tenders, session.id, cashier.id)

    return _make_sale


def actor_headers(user) -> dict:
    """Helper to create the actor attribution header for a user."""
    return {'X-User-Id': str(user.id)}
