"""
Register and Session Reconciliation Ledger

WHY: Cash accountability is per drawer and per shift. A session is the
container that accepts sales from one register until it is closed, and the
close is where declared money is compared with what the sale ledger says.

DESIGN PRINCIPLES:
- At most one OPEN session per register (partial unique index + locked check)
- Blind close: expected figures are computed and revealed only by the close
- Each payment rail (cash, card, qr, transfer) is reconciled on its own
- Status, declared, expected, discrepancy and closed_at are written in one commit
- CLOSED and FORCE_CLOSED are terminal
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Branch, Payment, Register, RegisterSession, Sale
from ..models.registers import (
    RECONCILIATION_BUCKETS,
    SESSION_CLOSED,
    SESSION_FORCE_CLOSED,
    SESSION_OPEN,
    VALID_SHIFT_TYPES,
)
from ..models.sales import SALE_COMPLETED, SALE_VOIDED
from ..models.users import ROLE_ADMIN, ROLE_MANAGER
from ..money import format_cents, parse_cents
from ..time_utils import hours_ago, utcnow
from ..validation import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from .catalog_service import get_active_user
from .concurrency import begin_write_transaction, lock_for_update, run_atomically
from .ledger_service import append_ledger_event
from .tender_service import reconciliation_bucket

logger = logging.getLogger(__name__)

VALID_SESSION_STATUSES = (SESSION_OPEN, SESSION_CLOSED, SESSION_FORCE_CLOSED)
FORCE_CLOSE_ROLES = (ROLE_MANAGER, ROLE_ADMIN)


class RegisterAlreadyOpen(ConflictError):
    code = "REGISTER_ALREADY_OPEN"


class SessionNotOpen(ConflictError):
    code = "SESSION_NOT_OPEN"


class RegisterInactive(ConflictError):
    code = "REGISTER_INACTIVE"


class InvalidShiftType(ValidationError):
    code = "INVALID_SHIFT_TYPE"


class SummaryWithheld(ConflictError):
    code = "SUMMARY_WITHHELD"


# =============================================================================
# REGISTER MANAGEMENT
# =============================================================================

def get_register(register_id: int) -> Register:
    register = db.session.get(Register, register_id)
    if not register:
        raise NotFoundError("Register not found", details={"register_id": register_id}, code="REGISTER_NOT_FOUND")
    return register


def create_register(branch_id: int, register_number: str, name: str) -> Register:
    """
    Create a register. register_number is unique within the branch.
    """
    register_number = (register_number or "").strip()
    name = (name or "").strip()
    if not register_number or not name:
        raise ValidationError("register_number and name are required", code="MISSING_FIELDS")

    def _op() -> Register:
        if not db.session.get(Branch, branch_id):
            raise NotFoundError("Branch not found", details={"branch_id": branch_id}, code="BRANCH_NOT_FOUND")

        existing = db.session.query(Register).filter_by(
            branch_id=branch_id,
            register_number=register_number,
        ).first()
        if existing:
            raise ConflictError(
                f"Register '{register_number}' already exists in this branch",
                details={"register_id": existing.id},
                code="REGISTER_EXISTS",
            )

        register = Register(branch_id=branch_id, register_number=register_number, name=name, is_active=True)
        db.session.add(register)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError(
                f"Register '{register_number}' already exists in this branch",
                code="REGISTER_EXISTS",
            ) from exc
        return register

    register = run_atomically(_op)
    logger.info("Register %s (%s) created in branch %s", register.id, register.register_number, branch_id)
    return register


def list_registers(branch_id: int | None = None, *, include_inactive: bool = False) -> list[dict]:
    """
    Registers with a flag telling whether a session is open on them.

    Only the open session's id is reported, never any of its figures.
    """
    query = db.session.query(Register)
    if branch_id is not None:
        query = query.filter(Register.branch_id == branch_id)
    if not include_inactive:
        query = query.filter(Register.is_active.is_(True))
    registers = query.order_by(Register.register_number, Register.id).all()

    open_by_register = dict(
        db.session.query(RegisterSession.register_id, RegisterSession.id)
        .filter(RegisterSession.status == SESSION_OPEN)
        .all()
    )

    rows = []
    for register in registers:
        data = register.to_dict()
        data["has_open_session"] = register.id in open_by_register
        data["current_session_id"] = open_by_register.get(register.id)
        rows.append(data)
    return rows


def deactivate_register(register_id: int) -> Register:
    """
    Deactivate a register (soft delete). Inactive registers cannot open sessions.
    """
    def _op() -> Register:
        begin_write_transaction()
        register = lock_for_update(db.session.query(Register).filter_by(id=register_id)).first()
        if not register:
            raise NotFoundError("Register not found", details={"register_id": register_id}, code="REGISTER_NOT_FOUND")

        open_session = db.session.query(RegisterSession).filter_by(
            register_id=register_id,
            status=SESSION_OPEN,
        ).first()
        if open_session:
            raise ConflictError(
                "Cannot deactivate a register with an open session. Close the session first.",
                details={"register_id": register_id, "session_id": open_session.id},
                code="REGISTER_HAS_OPEN_SESSION",
            )

        register.is_active = False
        return register

    register = run_atomically(_op)
    logger.info("Register %s deactivated", register.id)
    return register


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

def open_session(
    register_id: int,
    cashier_id: int,
    opening_amount_cents,
    shift_type: str,
    notes: str | None = None,
) -> RegisterSession:
    """
    Open a session on a register.

    Raises:
        InvalidShiftType: shift_type is not MORNING, AFTERNOON or FULL_DAY
        InvalidAmount: opening amount is negative or not whole cents
        RegisterInactive: the register has been deactivated
        RegisterAlreadyOpen: the register already has an OPEN session
    """
    shift = str(shift_type or "").strip().upper()
    if shift not in VALID_SHIFT_TYPES:
        raise InvalidShiftType(
            f"shift_type must be one of {', '.join(VALID_SHIFT_TYPES)}",
            details={"shift_type": shift_type},
        )
    opening = parse_cents(opening_amount_cents, "opening_amount_cents")

    def _op() -> RegisterSession:
        begin_write_transaction()
        register = lock_for_update(db.session.query(Register).filter_by(id=register_id)).first()
        if not register:
            raise NotFoundError("Register not found", details={"register_id": register_id}, code="REGISTER_NOT_FOUND")
        if not register.is_active:
            raise RegisterInactive("Cannot open a session on an inactive register", details={"register_id": register_id})

        cashier = get_active_user(cashier_id)
        if cashier.branch_id is not None and cashier.branch_id != register.branch_id:
            raise ConflictError(
                "Cashier does not belong to this register's branch",
                details={"cashier_id": cashier_id, "register_id": register_id},
                code="BRANCH_MISMATCH",
            )

        existing = db.session.query(RegisterSession).filter_by(
            register_id=register_id,
            status=SESSION_OPEN,
        ).first()
        if existing:
            raise RegisterAlreadyOpen(
                "Register already has an open session",
                details={"register_id": register_id, "session_id": existing.id},
            )

        session = RegisterSession(
            register_id=register_id,
            branch_id=register.branch_id,
            cashier_id=cashier_id,
            shift_type=shift,
            status=SESSION_OPEN,
            opening_amount_cents=opening,
            opened_at=utcnow(),
            notes=notes,
        )
        db.session.add(session)
        try:
            db.session.flush()
        except IntegrityError as exc:
            # Lost the race on the one-open-session index
            raise RegisterAlreadyOpen(
                "Register already has an open session",
                details={"register_id": register_id},
            ) from exc

        append_ledger_event(
            branch_id=register.branch_id,
            event_type="session.opened",
            entity_type="register_session",
            entity_id=session.id,
            actor_user_id=cashier_id,
            register_id=register_id,
            session_id=session.id,
            occurred_at=session.opened_at,
            note=f"{shift} session opened",
            payload={"opening_amount_cents": opening},
        )
        return session

    session = run_atomically(_op)
    logger.info(
        "Session %s opened on register %s by user %s (float %s)",
        session.id, register_id, cashier_id, format_cents(session.opening_amount_cents),
    )
    return session


def _expected_by_bucket(session_id: int) -> dict[str, int]:
    """
    Net settlement (amount - change) of COMPLETED sales, per reconciliation bucket.

    VOIDED sales contribute nothing.
    """
    rows = (
        db.session.query(
            Payment.method_type,
            Payment.method_code,
            func.coalesce(func.sum(Payment.amount_cents - Payment.change_cents), 0),
        )
        .join(Sale, Sale.id == Payment.sale_id)
        .filter(Sale.session_id == session_id, Sale.status == SALE_COMPLETED)
        .group_by(Payment.method_type, Payment.method_code)
        .all()
    )

    expected = {bucket: 0 for bucket in RECONCILIATION_BUCKETS}
    for method_type, method_code, net_cents in rows:
        bucket = reconciliation_bucket(method_type, method_code)
        if bucket:
            expected[bucket] += int(net_cents)
    return expected


def _sale_totals(session_id: int, status: str) -> tuple[int, int]:
    count, total = (
        db.session.query(func.count(Sale.id), func.coalesce(func.sum(Sale.total_cents), 0))
        .filter(Sale.session_id == session_id, Sale.status == status)
        .one()
    )
    return int(count), int(total)


def _lock_open_session(session_id: int) -> RegisterSession:
    session = lock_for_update(db.session.query(RegisterSession).filter_by(id=session_id)).first()
    if not session:
        raise NotFoundError("Session not found", details={"session_id": session_id}, code="SESSION_NOT_FOUND")
    if not session.is_open:
        raise SessionNotOpen(
            f"Session is already {session.status.lower().replace('_', ' ')}",
            details={"session_id": session_id, "status": session.status},
        )
    return session


def _log_discrepancies(session: RegisterSession) -> None:
    off = {
        bucket: values["discrepancy_cents"]
        for bucket, values in session.reconciliation().items()
        if values["discrepancy_cents"]
    }
    if off:
        logger.warning(
            "Session %s closed with discrepancies: %s",
            session.id,
            ", ".join(f"{bucket} {format_cents(cents)}" for bucket, cents in off.items()),
        )


def close_session(
    session_id: int,
    *,
    declared_cash_cents,
    declared_card_cents,
    declared_qr_cents,
    declared_transfer_cents,
    notes: str | None = None,
    actor_id: int | None = None,
) -> RegisterSession:
    """
    Blind close.

    The caller declares what it counted per rail without having seen any
    expected figure. Inside one transaction the session row is locked,
    expected amounts are aggregated from the sale ledger and every
    reconciliation field is written together with the status change.

    Raises:
        InvalidAmount: a declared amount is negative or not whole cents
        SessionNotOpen: the session is CLOSED or FORCE_CLOSED
        ForbiddenError: actor_id is neither the session cashier nor a manager or admin
    """
    declared = {
        "cash": parse_cents(declared_cash_cents, "declared_cash_cents"),
        "card": parse_cents(declared_card_cents, "declared_card_cents"),
        "qr": parse_cents(declared_qr_cents, "declared_qr_cents"),
        "transfer": parse_cents(declared_transfer_cents, "declared_transfer_cents"),
    }

    def _op() -> RegisterSession:
        begin_write_transaction()
        session = _lock_open_session(session_id)
        if actor_id is not None and actor_id != session.cashier_id:
            actor = get_active_user(actor_id)
            if actor.role not in FORCE_CLOSE_ROLES:
                raise ForbiddenError(
                    "Only the session cashier or a manager can close this session",
                    details={"actor_id": actor_id, "role": actor.role, "cashier_id": session.cashier_id},
                )

        expected = _expected_by_bucket(session.id)
        sale_count, sale_total = _sale_totals(session.id, SALE_COMPLETED)

        for bucket in RECONCILIATION_BUCKETS:
            setattr(session, f"declared_{bucket}_cents", declared[bucket])
            setattr(session, f"expected_{bucket}_cents", expected[bucket])
            setattr(session, f"discrepancy_{bucket}_cents", declared[bucket] - expected[bucket])

        session.sale_count = sale_count
        session.sale_total_cents = sale_total
        session.status = SESSION_CLOSED
        session.closed_at = utcnow()
        session.closed_by_user_id = actor_id or session.cashier_id
        if notes:
            session.notes = notes
        db.session.flush()

        append_ledger_event(
            branch_id=session.branch_id,
            event_type="session.closed",
            entity_type="register_session",
            entity_id=session.id,
            actor_user_id=session.closed_by_user_id,
            register_id=session.register_id,
            session_id=session.id,
            occurred_at=session.closed_at,
            note="Session closed (blind)",
            payload=session.reconciliation(),
        )
        return session

    session = run_atomically(_op)
    logger.info("Session %s closed by user %s (%s sales)", session.id, session.closed_by_user_id, session.sale_count)
    _log_discrepancies(session)
    return session


def force_close(session_id: int, reason: str, actor_id: int) -> RegisterSession:
    """
    Privileged close of an abandoned session.

    Declared amounts are set equal to expected, so the discrepancy is zero by
    definition. The actor must be a MANAGER or ADMIN.
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to force close a session", code="MISSING_FIELDS")

    def _op() -> RegisterSession:
        begin_write_transaction()
        actor = get_active_user(actor_id)
        if actor.role not in FORCE_CLOSE_ROLES:
            raise ForbiddenError(
                "Force close requires a manager or admin",
                details={"actor_id": actor_id, "role": actor.role},
            )

        session = _lock_open_session(session_id)

        expected = _expected_by_bucket(session.id)
        sale_count, sale_total = _sale_totals(session.id, SALE_COMPLETED)

        for bucket in RECONCILIATION_BUCKETS:
            setattr(session, f"declared_{bucket}_cents", expected[bucket])
            setattr(session, f"expected_{bucket}_cents", expected[bucket])
            setattr(session, f"discrepancy_{bucket}_cents", 0)

        session.sale_count = sale_count
        session.sale_total_cents = sale_total
        session.status = SESSION_FORCE_CLOSED
        session.closed_at = utcnow()
        session.closed_by_user_id = actor.id
        session.force_close_reason = reason[:255]
        db.session.flush()

        append_ledger_event(
            branch_id=session.branch_id,
            event_type="session.force_closed",
            entity_type="register_session",
            entity_id=session.id,
            actor_user_id=actor.id,
            register_id=session.register_id,
            session_id=session.id,
            occurred_at=session.closed_at,
            note=reason,
            payload=session.reconciliation(),
        )
        return session

    session = run_atomically(_op)
    logger.info("Session %s force-closed by user %s: %s", session.id, actor_id, reason)
    return session


# =============================================================================
# QUERIES
# =============================================================================

def get_session(session_id: int) -> RegisterSession:
    session = db.session.get(RegisterSession, session_id)
    if not session:
        raise NotFoundError("Session not found", details={"session_id": session_id}, code="SESSION_NOT_FOUND")
    return session


def get_open_session(register_id: int) -> RegisterSession | None:
    get_register(register_id)
    return db.session.query(RegisterSession).filter_by(
        register_id=register_id,
        status=SESSION_OPEN,
    ).first()


def get_user_open_session(user_id: int) -> RegisterSession | None:
    """Most recently opened OPEN session of a cashier."""
    return (
        db.session.query(RegisterSession)
        .filter_by(cashier_id=user_id, status=SESSION_OPEN)
        .order_by(RegisterSession.opened_at.desc(), RegisterSession.id.desc())
        .first()
    )


def list_sessions(
    *,
    branch_id: int | None = None,
    register_id: int | None = None,
    cashier_id: int | None = None,
    status: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[RegisterSession], int]:
    """
    Session history, newest first. Returns (page of sessions, total count).
    """
    query = db.session.query(RegisterSession)
    if branch_id is not None:
        query = query.filter(RegisterSession.branch_id == branch_id)
    if register_id is not None:
        query = query.filter(RegisterSession.register_id == register_id)
    if cashier_id is not None:
        query = query.filter(RegisterSession.cashier_id == cashier_id)
    if status:
        status = status.strip().upper()
        if status not in VALID_SESSION_STATUSES:
            raise ValidationError(
                f"status must be one of {', '.join(VALID_SESSION_STATUSES)}",
                code="INVALID_STATUS",
            )
        query = query.filter(RegisterSession.status == status)
    if start_date:
        query = query.filter(RegisterSession.opened_at >= start_date)
    if end_date:
        query = query.filter(RegisterSession.opened_at <= end_date)

    page = max(1, page)
    limit = max(1, min(limit, 200))

    total = query.count()
    sessions = (
        query.order_by(RegisterSession.opened_at.desc(), RegisterSession.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return sessions, total


def find_stale_sessions(hours: int) -> list[RegisterSession]:
    """OPEN sessions opened more than `hours` ago (abandoned drawers)."""
    if hours < 0:
        raise ValidationError("hours cannot be negative", code="INVALID_HOURS")
    cutoff = hours_ago(hours)
    return (
        db.session.query(RegisterSession)
        .filter(RegisterSession.status == SESSION_OPEN, RegisterSession.opened_at < cutoff)
        .order_by(RegisterSession.opened_at)
        .all()
    )


def get_session_summary(session_id: int, *, allow_open: bool = True) -> dict:
    """
    Read-only aggregate of a session's sales.

    Not part of the blind-close protocol. With allow_open=False the summary
    of an OPEN session is withheld (SummaryWithheld), so callers facing the
    cashier cannot read expected figures before declaring.
    """
    session = get_session(session_id)
    if session.is_open and not allow_open:
        raise SummaryWithheld(
            "Session summary is not available until the session is closed",
            details={"session_id": session_id},
        )

    sale_count, sale_total = _sale_totals(session.id, SALE_COMPLETED)
    voided_count, voided_total = _sale_totals(session.id, SALE_VOIDED)

    rows = (
        db.session.query(
            Payment.payment_method_id,
            Payment.method_type,
            Payment.method_code,
            func.count(Payment.id),
            func.coalesce(func.sum(Payment.amount_cents - Payment.change_cents), 0),
        )
        .join(Sale, Sale.id == Payment.sale_id)
        .filter(Sale.session_id == session.id, Sale.status == SALE_COMPLETED)
        .group_by(Payment.payment_method_id, Payment.method_type, Payment.method_code)
        .order_by(Payment.payment_method_id)
        .all()
    )
    payments_by_method = [
        {
            "payment_method_id": method_id,
            "type": method_type,
            "code": method_code,
            "bucket": reconciliation_bucket(method_type, method_code),
            "count": int(count),
            "total_cents": int(net_cents),
        }
        for method_id, method_type, method_code, count, net_cents in rows
    ]

    return {
        "session": session.to_dict(),
        "sale_count": sale_count,
        "sale_total_cents": sale_total,
        "average_ticket_cents": (sale_total // sale_count) if sale_count else 0,
        "voided_count": voided_count,
        "voided_total_cents": voided_total,
        "payments_by_method": payments_by_method,
    }
