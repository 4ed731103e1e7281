# Overview: Flask API routes for the read-only catalog the register needs.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..services import catalog_service
from ..validation import DomainError, ValidationError
from .errors import error_response

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.get("/products")
@require_actor
def list_products_route():
    """
    Active products of a branch.

    Query params:
    - branch_id (optional, defaults to the acting user's branch)
    """
    try:
        branch_id = request.args.get("branch_id", type=int) or g.current_user.branch_id
        if not branch_id:
            raise ValidationError("branch_id is required", code="MISSING_FIELDS")
        products = catalog_service.list_products(branch_id)
        return jsonify({"products": [p.to_dict() for p in products]}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/payment-methods")
@require_actor
def list_payment_methods_route():
    try:
        methods = catalog_service.list_payment_methods()
        return jsonify({"payment_methods": [m.to_dict() for m in methods]}), 200
    except Exception:
        current_app.logger.exception("Failed to list payment methods")
        return jsonify({"error": "Internal server error"}), 500
