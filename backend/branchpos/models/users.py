from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

ROLE_CASHIER = "CASHIER"
ROLE_MANAGER = "MANAGER"
ROLE_ADMIN = "ADMIN"

VALID_ROLES = (ROLE_CASHIER, ROLE_MANAGER, ROLE_ADMIN)


class User(db.Model):
    """
    Staff member acting on registers and sales.

    Identity only: used to attribute sessions, sales, voids and force-closes.
    Credentials and permissions live outside this service.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    username = db.Column(db.String(64), nullable=False, unique=True)
    full_name = db.Column(db.String(128), nullable=True)
    role = db.Column(db.String(16), nullable=False, default=ROLE_CASHIER)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    branch = db.relationship("Branch", backref=db.backref("users", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "username": self.username,
            "full_name": self.full_name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
