from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class DocumentSequence(db.Model):
    """
    Atomic per-branch document sequences.

    WHY: Sale numbers must be unique and gap-tolerant under concurrent
    completions on many registers of the same branch.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "document_type", name="uq_doc_sequences_branch_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())


class LedgerEvent(db.Model):
    """
    Append-only audit trail of session and sale transitions.

    Rows are written in the same transaction as the change they record and
    are never updated or deleted. A void shows up as its own event; the
    original completion event stays.
    """
    __tablename__ = "ledger_events"
    __table_args__ = (
        db.Index("ix_ledger_events_branch_occurred", "branch_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g. session.closed, sale.voided
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    register_id = db.Column(db.Integer, db.ForeignKey("registers.id"), nullable=True, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey("register_sessions.id"), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)  # JSON, sorted keys

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "register_id": self.register_id,
            "session_id": self.session_id,
            "sale_id": self.sale_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
            "payload": self.payload,
        }
