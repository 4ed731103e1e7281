# Overview: Flask API routes for registers and session reconciliation.

# backend/branchpos/routes/registers.py
"""
Register and Session API Routes

DESIGN:
- Register setup: create, list, deactivate
- Session lifecycle: open -> close (blind) or force-close; terminal once closed
- No route returns expected_* or discrepancy_* for an OPEN session; the
  close response is the first place they appear
- The summary route withholds OPEN sessions unless EXPOSE_OPEN_SESSION_SUMMARY
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..services import register_service
from ..time_utils import parse_iso_datetime
from ..validation import DomainError, ValidationError, optional_str, parse_id, require_fields
from .errors import error_response, json_body

registers_bp = Blueprint("registers", __name__, url_prefix="/api/registers")


# =============================================================================
# REGISTER MANAGEMENT
# =============================================================================

@registers_bp.post("")
@require_actor
def create_register_route():
    """
    Request body:
    {
        "branch_id": 1,
        "register_number": "REG-01",
        "name": "Front Counter 1"
    }
    """
    try:
        data = json_body()
        require_fields(data, "branch_id", "register_number", "name")
        register = register_service.create_register(
            branch_id=parse_id(data["branch_id"], "branch_id"),
            register_number=str(data["register_number"]),
            name=str(data["name"]),
        )
        return jsonify({"register": register.to_dict()}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("")
@require_actor
def list_registers_route():
    """
    Query params:
    - branch_id (optional)
    - include_inactive=true (optional)
    """
    try:
        branch_id = request.args.get("branch_id", type=int)
        include_inactive = request.args.get("include_inactive", "").lower() in {"1", "true", "yes"}
        registers = register_service.list_registers(branch_id, include_inactive=include_inactive)
        return jsonify({"registers": registers}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list registers")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/<int:register_id>/deactivate")
@require_actor
def deactivate_register_route(register_id: int):
    try:
        register = register_service.deactivate_register(register_id)
        return jsonify({"register": register.to_dict()}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/<int:register_id>/active-session")
@require_actor
def active_session_route(register_id: int):
    """The register's OPEN session (blind view), or null."""
    try:
        session = register_service.get_open_session(register_id)
        return jsonify({"session": session.to_dict() if session else None}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get active session")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

@registers_bp.post("/sessions/open")
@require_actor
def open_session_route():
    """
    Open a session for the acting user.

    Request body:
    {
        "register_id": 1,
        "opening_amount_cents": 10000,
        "shift_type": "MORNING",
        "notes": "optional"
    }
    """
    try:
        data = json_body()
        require_fields(data, "register_id", "shift_type")
        session = register_service.open_session(
            register_id=parse_id(data["register_id"], "register_id"),
            cashier_id=g.current_user.id,
            opening_amount_cents=data.get("opening_amount_cents", 0),
            shift_type=data["shift_type"],
            notes=optional_str(data, "notes", max_length=2000),
        )
        return jsonify({"session": session.to_dict()}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to open session")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/sessions/<int:session_id>/close")
@require_actor
def close_session_route(session_id: int):
    """
    Blind close.

    Request body:
    {
        "declared_cash_cents": 98000,
        "declared_card_cents": 50000,
        "declared_qr_cents": 0,
        "declared_transfer_cents": 0,
        "notes": "optional"
    }

    The response is the first payload that carries expected and discrepancy
    figures for this session.
    """
    try:
        data = json_body()
        require_fields(
            data,
            "declared_cash_cents",
            "declared_card_cents",
            "declared_qr_cents",
            "declared_transfer_cents",
        )
        session = register_service.close_session(
            session_id,
            declared_cash_cents=data["declared_cash_cents"],
            declared_card_cents=data["declared_card_cents"],
            declared_qr_cents=data["declared_qr_cents"],
            declared_transfer_cents=data["declared_transfer_cents"],
            notes=optional_str(data, "notes", max_length=2000),
            actor_id=g.current_user.id,
        )
        return jsonify({"session": session.to_dict()}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to close session")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/sessions/<int:session_id>/force-close")
@require_actor
def force_close_route(session_id: int):
    """
    Privileged close of an abandoned session (MANAGER or ADMIN).

    Request body: {"reason": "Register crashed, cashier left"}
    """
    try:
        data = json_body()
        require_fields(data, "reason")
        session = register_service.force_close(
            session_id,
            reason=str(data["reason"]),
            actor_id=g.current_user.id,
        )
        return jsonify({"session": session.to_dict()}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to force close session")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SESSION QUERIES
# =============================================================================

@registers_bp.get("/sessions/my-session")
@require_actor
def my_session_route():
    try:
        session = register_service.get_user_open_session(g.current_user.id)
        return jsonify({"session": session.to_dict() if session else None}), 200
    except Exception:
        current_app.logger.exception("Failed to get current user's session")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/sessions")
@require_actor
def list_sessions_route():
    """
    Session history.

    Query params: branch_id, register_id, cashier_id, status,
    start_date, end_date (ISO-8601), page, limit
    """
    try:
        try:
            start_date = parse_iso_datetime(request.args.get("start_date"))
            end_date = parse_iso_datetime(request.args.get("end_date"))
        except ValueError:
            raise ValidationError("start_date and end_date must be ISO-8601 datetimes", code="INVALID_DATE")

        page = request.args.get("page", 1, type=int)
        limit = request.args.get("limit", 50, type=int)
        sessions, total = register_service.list_sessions(
            branch_id=request.args.get("branch_id", type=int),
            register_id=request.args.get("register_id", type=int),
            cashier_id=request.args.get("cashier_id", type=int),
            status=request.args.get("status"),
            start_date=start_date,
            end_date=end_date,
            page=page,
            limit=limit,
        )
        return jsonify({
            "sessions": [s.to_dict() for s in sessions],
            "total": total,
            "page": page,
            "limit": limit,
        }), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sessions")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/sessions/<int:session_id>")
@require_actor
def get_session_route(session_id: int):
    try:
        session = register_service.get_session(session_id)
        return jsonify({"session": session.to_dict()}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get session")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/sessions/<int:session_id>/summary")
@require_actor
def session_summary_route(session_id: int):
    """
    Read-only sales aggregate for display.

    Not a substitute for the blind close: OPEN sessions get 409
    SUMMARY_WITHHELD unless EXPOSE_OPEN_SESSION_SUMMARY is enabled.
    """
    try:
        summary = register_service.get_session_summary(
            session_id,
            allow_open=current_app.config["EXPOSE_OPEN_SESSION_SUMMARY"],
        )
        return jsonify(summary), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get session summary")
        return jsonify({"error": "Internal server error"}), 500
