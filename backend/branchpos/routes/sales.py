# Overview: Flask API routes for sale preview, completion, voiding and verification.

# backend/branchpos/routes/sales.py
"""
Sales API Routes

The register sends the cart as product ids and quantities. Prices, tax rates
and customer terms are read from the catalog on the server and run through
the pricing engine; client-side totals are never trusted.

Money in requests and responses is integer cents. Quantities and percents
are decimal strings (or JSON numbers, parsed exactly).
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..services import register_service, sales_service
from ..services.cart_service import build_cart
from ..validation import DomainError, parse_id, require_fields
from .errors import error_response, json_body

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/preview")
@require_actor
def preview_sale_route():
    """
    Non-authoritative totals preview; nothing is written.

    Request body:
    {
        "session_id": 1,
        "items": [{"product_id": 1, "quantity": "3", "discount_percent": "10"}],
        "customer_id": 5,                              (optional)
        "discount": {"type": "PERCENT", "value": "5"}, (optional)
        "payments": [{"payment_method_id": 1, "amount_cents": 40000}]  (optional)
    }
    """
    try:
        data = json_body()
        require_fields(data, "session_id")
        session = register_service.get_session(parse_id(data["session_id"], "session_id"))
        cart = build_cart(
            data.get("items"),
            branch_id=session.branch_id,
            customer_id=data.get("customer_id"),
            discount=data.get("discount"),
        )
        tenders = sales_service.build_tenders(data.get("payments"))
        return jsonify(sales_service.preview_totals(cart, tenders)), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to preview sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("")
@require_actor
def complete_sale_route():
    """
    Complete a sale on an OPEN session.

    Same body as /preview plus optional "notes"; "items" and "payments" are
    required. Responds 201 with the immutable sale.
    """
    try:
        data = json_body()
        require_fields(data, "session_id")
        sale = sales_service.complete_sale_from_payload(data, cashier_id=g.current_user.id)
        return jsonify({"sale": sale.to_dict()}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_actor
def list_sales_route():
    """
    Sales of one session.

    Query params: session_id (required), status (optional)
    """
    try:
        session_id = parse_id(request.args.get("session_id"), "session_id")
        sales = sales_service.list_session_sales(
            session_id,
            status=request.args.get("status"),
            allow_open=current_app.config["EXPOSE_OPEN_SESSION_SUMMARY"],
        )
        return jsonify({"sales": [s.to_dict(include_lines=False) for s in sales]}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_actor
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/void")
@require_actor
def void_sale_route(sale_id: int):
    """
    Request body: {"reason": "Customer changed mind"}
    """
    try:
        data = json_body()
        require_fields(data, "reason")
        sale = sales_service.void_sale(sale_id, reason=str(data["reason"]), actor_id=g.current_user.id)
        return jsonify({"sale": sale.to_dict()}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>/verify")
@require_actor
def verify_sale_route(sale_id: int):
    """Recompute the sale from its line snapshots and report any drift."""
    try:
        return jsonify(sales_service.verify_sale_totals(sale_id)), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to verify sale")
        return jsonify({"error": "Internal server error"}), 500
