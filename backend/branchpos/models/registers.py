from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

SESSION_OPEN = "OPEN"
SESSION_CLOSED = "CLOSED"
SESSION_FORCE_CLOSED = "FORCE_CLOSED"

SHIFT_MORNING = "MORNING"
SHIFT_AFTERNOON = "AFTERNOON"
SHIFT_FULL_DAY = "FULL_DAY"

VALID_SHIFT_TYPES = (SHIFT_MORNING, SHIFT_AFTERNOON, SHIFT_FULL_DAY)

RECONCILIATION_BUCKETS = ("cash", "card", "qr", "transfer")


class Register(db.Model):
    """
    Physical POS register/terminal.

    WHY: Cash accountability is per drawer. Each register has at most one
    OPEN session at a time and accumulates sessions (shifts) over its life.

    DESIGN: Registers are persistent (not deleted when inactive).
    """
    __tablename__ = "registers"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "register_number", name="uq_registers_branch_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    # Human-readable identifier (e.g., "REG-01", "FRONT")
    register_number = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(128), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    branch = db.relationship("Branch", backref=db.backref("registers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "register_number": self.register_number,
            "name": self.name,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class RegisterSession(db.Model):
    """
    Register shift/session with blind-close reconciliation.

    LIFECYCLE:
    - OPEN: accepts sales from its register
    - CLOSED: cashier declared per-rail totals; expected and discrepancy fixed
    - FORCE_CLOSED: privileged close; declared == expected, zero discrepancy

    IMMUTABLE: CLOSED and FORCE_CLOSED are terminal. Status, declared,
    expected, discrepancy and closed_at are written together in one commit.

    Money columns are in cents. Expected amounts are never stored while the
    session is OPEN; they are computed from the sale ledger at close time.
    """
    __tablename__ = "register_sessions"
    __table_args__ = (
        # At most one OPEN session per register, enforced by the database.
        db.Index(
            "uq_register_sessions_one_open",
            "register_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        db.Index("ix_register_sessions_register_status", "register_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    register_id = db.Column(db.Integer, db.ForeignKey("registers.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    shift_type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=SESSION_OPEN, index=True)

    opening_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    # Blind close: cashier input
    declared_cash_cents = db.Column(db.Integer, nullable=True)
    declared_card_cents = db.Column(db.Integer, nullable=True)
    declared_qr_cents = db.Column(db.Integer, nullable=True)
    declared_transfer_cents = db.Column(db.Integer, nullable=True)

    # Engine-computed from COMPLETED sales of this session at close time
    expected_cash_cents = db.Column(db.Integer, nullable=True)
    expected_card_cents = db.Column(db.Integer, nullable=True)
    expected_qr_cents = db.Column(db.Integer, nullable=True)
    expected_transfer_cents = db.Column(db.Integer, nullable=True)

    # declared - expected, per rail
    discrepancy_cash_cents = db.Column(db.Integer, nullable=True)
    discrepancy_card_cents = db.Column(db.Integer, nullable=True)
    discrepancy_qr_cents = db.Column(db.Integer, nullable=True)
    discrepancy_transfer_cents = db.Column(db.Integer, nullable=True)

    # Snapshot of the ledger at close
    sale_count = db.Column(db.Integer, nullable=True)
    sale_total_cents = db.Column(db.Integer, nullable=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    force_close_reason = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    register = db.relationship("Register", backref=db.backref("sessions", lazy=True))
    cashier = db.relationship("User", foreign_keys=[cashier_id], backref=db.backref("register_sessions", lazy=True))
    closed_by = db.relationship("User", foreign_keys=[closed_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status == SESSION_OPEN

    def reconciliation(self) -> dict:
        return {
            bucket: {
                "declared_cents": getattr(self, f"declared_{bucket}_cents"),
                "expected_cents": getattr(self, f"expected_{bucket}_cents"),
                "discrepancy_cents": getattr(self, f"discrepancy_{bucket}_cents"),
            }
            for bucket in RECONCILIATION_BUCKETS
        }

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "register_id": self.register_id,
            "branch_id": self.branch_id,
            "cashier_id": self.cashier_id,
            "shift_type": self.shift_type,
            "status": self.status,
            "opening_amount_cents": self.opening_amount_cents,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "closed_by_user_id": self.closed_by_user_id,
            "force_close_reason": self.force_close_reason,
            "notes": self.notes,
            "version_id": self.version_id,
        }
        # Blind close: nothing derived from the ledger leaves an OPEN session.
        if not self.is_open:
            for bucket in RECONCILIATION_BUCKETS:
                for kind in ("declared", "expected", "discrepancy"):
                    key = f"{kind}_{bucket}_cents"
                    data[key] = getattr(self, key)
            data["sale_count"] = self.sale_count
            data["sale_total_cents"] = self.sale_total_cents
        return data
