"""
Error taxonomy shared by the engine and the API layer.

Every error names the invariant it protects through a stable ``code`` so the
calling layer can present an actionable message. Routes map the base classes
onto HTTP statuses:

- ValidationError   -> 400 (input rejected, nothing changed)
- ForbiddenError    -> 403 (privileged path, actor lacks the role)
- NotFoundError     -> 404
- ConflictError     -> 409 (state conflict, nothing changed)
- ConsistencyError  -> 503 (atomic commit failed, retry the whole operation)
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class for rejected engine operations."""

    code = "DOMAIN_ERROR"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None, *, code: str | None = None):
        super().__init__(message)
        self.details = details or {}
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class ValidationError(DomainError, ValueError):
    """400-level input problem."""

    code = "VALIDATION_ERROR"
    http_status = 400


class ConflictError(DomainError):
    """409-level business rule conflict (e.g., register already open)."""

    code = "CONFLICT"
    http_status = 409


class ForbiddenError(DomainError):
    """The acting user lacks the role a privileged operation requires."""

    code = "FORBIDDEN"
    http_status = 403


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    http_status = 404


class ConsistencyError(DomainError):
    """The transaction could not be committed atomically; nothing was written."""

    code = "CONSISTENCY_ERROR"
    http_status = 503


def require_fields(payload: dict, *fields: str) -> None:
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(
            f"Missing required field(s): {', '.join(missing)}",
            details={"missing": missing},
            code="MISSING_FIELDS",
        )


def optional_str(payload: dict, field: str, max_length: int = 255) -> str | None:
    value: Any = payload.get(field)
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", code="FIELD_TOO_LONG")
    return text


def parse_id(value: Any, field: str) -> int:
    """Positive integer id from a payload; "12" is accepted, 12.5 and True are not."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer", code="INVALID_ID")
    if isinstance(value, int):
        result = value
    else:
        try:
            text = str(value).strip()
            result = int(text)
        except (TypeError, ValueError):
            raise ValidationError(f"{field} must be an integer", code="INVALID_ID")
    if result <= 0:
        raise ValidationError(f"{field} must be a positive integer", code="INVALID_ID")
    return result
