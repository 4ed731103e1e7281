# backend/branchpos/routes/system.py
"""
System health endpoint.

Reports database reachability and whether the tender catalog is usable,
for load balancers and deployment debugging.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Branch, PaymentMethod, Register, RegisterSession
from ..models.registers import SESSION_OPEN
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        branch_count = db.session.query(Branch).count()
        register_count = db.session.query(Register).count()
        open_sessions = db.session.query(RegisterSession).filter_by(status=SESSION_OPEN).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "branches": branch_count,
                "registers": register_count,
                "open_sessions": open_sessions,
            },
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_tender_catalog_health() -> dict:
    """Degraded when no active payment method exists: no sale could be settled."""
    try:
        active_methods = db.session.query(PaymentMethod).filter_by(is_active=True).count()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Tender catalog health check failed")
        return {"status": "unhealthy", "error": "Database error"}

    if not active_methods:
        return {"status": "degraded", "warning": "No active payment methods"}
    return {"status": "healthy", "details": {"active_payment_methods": active_methods}}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    tender_health = check_tender_catalog_health()

    checks = [database_health, tender_health]
    if any(check["status"] == "unhealthy" for check in checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "tender_catalog": tender_health,
        },
    }
    return response, http_status
