# Overview: JSON error responses shared by the API blueprints.

from flask import jsonify, request

from ..validation import DomainError


def error_response(exc: DomainError):
    """{"error", "code", "details"} with the status the error class maps to."""
    return jsonify(exc.to_dict()), exc.http_status


def json_body() -> dict:
    """Request JSON as a dict; anything else (missing, list, scalar) becomes {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
