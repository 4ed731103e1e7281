# Overview: Request decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .extensions import db
from .models import User

ACTOR_HEADER = "X-User-Id"


def require_actor(f):
    """
    Resolve the acting user for attribution.

    Sets g.current_user from the X-User-Id header. This is attribution, not
    authentication: the caller (register shell, back office) is trusted to
    send the id of the logged-in user.

    Returns 401 if the header is missing, malformed, or names an unknown or
    inactive user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get(ACTOR_HEADER) or "").strip()
        if not raw:
            return jsonify({"error": f"{ACTOR_HEADER} header required", "code": "ACTOR_REQUIRED"}), 401
        if not raw.isdigit():
            return jsonify({"error": f"{ACTOR_HEADER} must be a user id", "code": "ACTOR_INVALID"}), 401

        user = db.session.get(User, int(raw))
        if not user or not user.is_active:
            return jsonify({"error": "Unknown or inactive user", "code": "ACTOR_INVALID"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function
