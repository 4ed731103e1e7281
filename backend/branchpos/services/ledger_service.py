# Overview: Append-only audit events for session and sale transitions.

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import LedgerEvent
from ..time_utils import utcnow
"""
Ledger invariants

- Append-only: events are never updated or deleted.
- Events are written inside the same DB transaction as the change they record;
  a rolled-back close or completion leaves no event behind.
- occurred_at is business time; it defaults to now when omitted.
"""


def append_ledger_event(
    *,
    branch_id: int,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    register_id: int | None = None,
    session_id: int | None = None,
    sale_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> LedgerEvent:
    ev = LedgerEvent(
        branch_id=branch_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        register_id=register_id,
        session_id=session_id,
        sale_id=sale_id,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else None,
        payload=json.dumps(payload, sort_keys=True, default=str) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()  # assigns ev.id without committing
    return ev


def list_events(
    *,
    branch_id: int | None = None,
    session_id: int | None = None,
    sale_id: int | None = None,
    limit: int = 200,
) -> list[LedgerEvent]:
    query = db.session.query(LedgerEvent)
    if branch_id is not None:
        query = query.filter(LedgerEvent.branch_id == branch_id)
    if session_id is not None:
        query = query.filter(LedgerEvent.session_id == session_id)
    if sale_id is not None:
        query = query.filter(LedgerEvent.sale_id == sale_id)
    return query.order_by(LedgerEvent.id).limit(max(1, min(limit, 1000))).all()
