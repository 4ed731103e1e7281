# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/branchpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migration-managed databases).
# - python -m flask system seed-demo
#   Idempotent demo data: branch, users, products, customers, payment methods, register.
#
# Session inspection/maintenance:
# - python -m flask sessions list [--status OPEN] [--limit 20]
#   List recent register sessions (reconciliation columns only for closed ones).
# - python -m flask sessions stale [--hours 18]
#   List OPEN sessions older than the threshold (abandoned drawers).
# - python -m flask sessions force-close 12 --reason "Terminal crashed" --actor-id 2
#   Force close an abandoned session (actor must be MANAGER or ADMIN).
# - python -m flask sessions events 12
#   Show the audit trail of a session.

import sys
from decimal import Decimal

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, Customer, PaymentMethod, Product, Register, User
from .models.catalog import (
    PAYMENT_TYPE_CARD,
    PAYMENT_TYPE_CASH,
    PAYMENT_TYPE_CREDIT,
    PAYMENT_TYPE_DIGITAL,
)
from .models.registers import RECONCILIATION_BUCKETS, SESSION_OPEN
from .models.users import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from .money import format_cents
from .services import ledger_service, register_service
from .time_utils import age_in_hours, to_utc_z
from .validation import DomainError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables for the configured database."""
    db.create_all()
    click.echo(f"PASS Tables created on {db.engine.url.render_as_string(hide_password=True)}")


DEMO_USERS = [
    ("cashier", "Demo Cashier", ROLE_CASHIER),
    ("manager", "Demo Manager", ROLE_MANAGER),
    ("admin", "Demo Admin", ROLE_ADMIN),
]

# (sku, name, price_cents, tax_rate, tax_included, weighable)
DEMO_PRODUCTS = [
    ("7790001", "Yerba Mate 1kg", 4500, Decimal("21"), False, False),
    ("7790002", "Whole Milk 1L", 1250, Decimal("10.5"), False, False),
    ("7790003", "Bread (per kg)", 2800, Decimal("10.5"), False, True),
    ("7790004", "Sparkling Water 2L", 1890, Decimal("21"), True, False),
    ("7790005", "Gift Card", 10000, Decimal("0"), False, False),
]

# (code, name, type, requires_reference, sort_order)
DEMO_PAYMENT_METHODS = [
    ("CASH", "Cash", PAYMENT_TYPE_CASH, False, 1),
    ("DEBIT", "Debit Card", PAYMENT_TYPE_CARD, True, 2),
    ("CREDIT_CARD", "Credit Card", PAYMENT_TYPE_CARD, True, 3),
    ("QR", "QR Wallet", PAYMENT_TYPE_DIGITAL, True, 4),
    ("TRANSFER", "Bank Transfer", PAYMENT_TYPE_DIGITAL, True, 5),
    ("ACCOUNT", "Customer Account", PAYMENT_TYPE_CREDIT, False, 6),
]


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Create demo data for a local register. Safe to run repeatedly.
    """
    click.echo("START Seeding demo data...")

    branch = db.session.query(Branch).filter_by(code="MAIN").first()
    if not branch:
        branch = Branch(name="Main Branch", code="MAIN", is_active=True)
        db.session.add(branch)
        db.session.flush()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")

    for username, full_name, role in DEMO_USERS:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        db.session.add(User(branch_id=branch.id, username=username, full_name=full_name, role=role))
        click.echo(f"PASS Created user: {username} ({role})")

    for sku, name, price_cents, tax_rate, tax_included, weighable in DEMO_PRODUCTS:
        if db.session.query(Product).filter_by(branch_id=branch.id, sku=sku).first():
            continue
        db.session.add(Product(
            branch_id=branch.id,
            sku=sku,
            name=name,
            price_cents=price_cents,
            tax_rate=tax_rate,
            is_tax_included=tax_included,
            is_weighable=weighable,
        ))

    for code, name, method_type, requires_reference, sort_order in DEMO_PAYMENT_METHODS:
        if db.session.query(PaymentMethod).filter_by(code=code).first():
            continue
        db.session.add(PaymentMethod(
            code=code,
            name=name,
            type=method_type,
            requires_reference=requires_reference,
            sort_order=sort_order,
        ))

    if not db.session.query(Customer).filter_by(customer_code="WHOLESALE-01").first():
        db.session.add(Customer(
            customer_code="WHOLESALE-01",
            display_name="Corner Store Ltd",
            is_wholesale=True,
            wholesale_discount_percent=Decimal("5"),
        ))

    if not db.session.query(Register).filter_by(branch_id=branch.id, register_number="REG-01").first():
        db.session.add(Register(branch_id=branch.id, register_number="REG-01", name="Front Counter 1"))

    db.session.commit()
    click.echo("DONE Demo data ready. Send X-User-Id with the id of a seeded user.")


@click.group('sessions')
def sessions_group():
    """Register session inspection and maintenance commands."""


@sessions_group.command('list')
@click.option('--status', type=click.Choice(['OPEN', 'CLOSED', 'FORCE_CLOSED']), help='Filter by status')
@click.option('--register-id', type=int, help='Filter by register ID')
@click.option('--limit', type=int, default=20, help='Max sessions to show')
@with_appcontext
def list_sessions_cli(status, register_id, limit):
    """
    List register sessions, newest first.

    Example:
        flask sessions list
        flask sessions list --status CLOSED
    """
    sessions, total = register_service.list_sessions(status=status, register_id=register_id, limit=limit)

    if not sessions:
        click.echo("No sessions found.")
        return

    click.echo("\n" + "=" * 110)
    click.echo(f"{'ID':<6} {'Register':<10} {'Cashier':<9} {'Shift':<10} {'Status':<13} {'Opened':<22} {'Discrepancy'}")
    click.echo("=" * 110)

    for session in sessions:
        if session.status == SESSION_OPEN:
            discrepancy = "-"
        else:
            discrepancy = ", ".join(
                f"{bucket} {format_cents(values['discrepancy_cents'] or 0)}"
                for bucket, values in session.reconciliation().items()
            )
        click.echo(
            f"{session.id:<6} {session.register_id:<10} {session.cashier_id:<9} {session.shift_type:<10} "
            f"{session.status:<13} {to_utc_z(session.opened_at):<22} {discrepancy}"
        )

    click.echo(f"\n{len(sessions)} of {total} session(s)")


@sessions_group.command('stale')
@click.option('--hours', type=int, default=None, help='Age threshold (defaults to STALE_SESSION_HOURS)')
@with_appcontext
def stale_sessions_cli(hours):
    """
    List OPEN sessions older than the threshold.

    Example:
        flask sessions stale --hours 12
    """
    if hours is None:
        hours = current_app.config["STALE_SESSION_HOURS"]

    sessions = register_service.find_stale_sessions(hours)
    if not sessions:
        click.echo(f"No OPEN sessions older than {hours}h.")
        return

    for session in sessions:
        click.echo(
            f"Session {session.id}: register {session.register_id}, cashier {session.cashier_id}, "
            f"opened {to_utc_z(session.opened_at)} ({age_in_hours(session.opened_at)}h ago)"
        )
    click.echo(f"\n{len(sessions)} stale session(s). Use `flask sessions force-close <id>` to close them.")


@sessions_group.command('force-close')
@click.argument('session_id', type=int)
@click.option('--reason', required=True, help='Why the session is being force-closed')
@click.option('--actor-id', type=int, required=True, help='User ID of the manager/admin')
@with_appcontext
def force_close_cli(session_id, reason, actor_id):
    """
    Force close an abandoned session (declared = expected, zero discrepancy).

    Example:
        flask sessions force-close 12 --reason "Terminal crashed" --actor-id 2
    """
    try:
        session = register_service.force_close(session_id, reason=reason, actor_id=actor_id)
    except DomainError as e:
        click.echo(f"FAIL {e.code}: {e}")
        sys.exit(1)

    click.echo(f"PASS Session {session.id} force-closed")
    for bucket in RECONCILIATION_BUCKETS:
        click.echo(f"   {bucket:<9} expected {format_cents(getattr(session, f'expected_{bucket}_cents'))}")


@sessions_group.command('events')
@click.argument('session_id', type=int)
@click.option('--limit', type=int, default=200, help='Max events to show')
@with_appcontext
def session_events_cli(session_id, limit):
    """
    Show the audit trail of a session (open, sales, voids, close).

    Example:
        flask sessions events 12
    """
    events = ledger_service.list_events(session_id=session_id, limit=limit)
    if not events:
        click.echo(f"No events recorded for session {session_id}.")
        return

    for event in events:
        actor = event.actor_user_id if event.actor_user_id is not None else "-"
        click.echo(f"{to_utc_z(event.occurred_at)}  {event.event_type:<22} actor={actor:<5} {event.note or ''}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sessions_group)
