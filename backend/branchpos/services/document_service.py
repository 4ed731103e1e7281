# Overview: Sequential human-readable document numbers per branch.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..validation import ValidationError

DOCUMENT_SALE = "SALE"


def _increment(branch_id: int, document_type: str) -> int | None:
    """Bump the sequence row; returns the number just claimed, or None if the row is missing."""
    result = db.session.execute(
        update(DocumentSequence)
        .where(
            DocumentSequence.branch_id == branch_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )
    if not result.rowcount:
        return None
    following = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(branch_id=branch_id, document_type=document_type)
        .scalar()
    )
    return following - 1


def next_document_number(
    *,
    branch_id: int,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Allocate the next document number for a branch/type.

    Runs inside the caller's transaction: the atomic UPDATE holds the
    sequence row until the caller commits or rolls back, so a rolled-back
    sale gives its number back. The first number of a branch creates the
    row under a savepoint.
    """
    if not branch_id:
        raise ValidationError("branch_id is required", code="MISSING_FIELDS")
    if not document_type:
        raise ValidationError("document_type is required", code="MISSING_FIELDS")

    number = _increment(branch_id, document_type)
    if number is None:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(branch_id=branch_id, document_type=document_type, next_number=2))
            number = 1
        except IntegrityError:
            # Another writer created the row first
            number = _increment(branch_id, document_type)
            if number is None:
                raise

    return f"{prefix}-{number:0{pad}d}"


def next_sale_number(branch_id: int) -> str:
    """V-000001, V-000002, ... (prefix and padding from config)."""
    return next_document_number(
        branch_id=branch_id,
        document_type=DOCUMENT_SALE,
        prefix=current_app.config["SALE_NUMBER_PREFIX"],
        pad=current_app.config["SALE_NUMBER_PAD"],
    )
