"""
Timestamps for the sale and session ledgers.

All stored datetimes are naive UTC. The API and the CLI render them as
ISO-8601 with a trailing 'Z'; query filters accept any ISO-8601 offset and
are normalized to naive UTC before they reach the database.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def hours_ago(hours: int) -> datetime:
    """Cut-off for session age checks (stale OPEN sessions)."""
    return utcnow() - timedelta(hours=hours)


def age_in_hours(since: datetime, now: Optional[datetime] = None) -> float:
    elapsed = (now or utcnow()) - _as_naive_utc(since)
    return round(elapsed.total_seconds() / 3600, 1)


def _as_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Session list filters: "2026-03-01T08:00", "...Z" or "...-03:00".

    Empty input means no filter. Raises ValueError on anything else.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    return _as_naive_utc(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    stamp = _as_naive_utc(dt).replace(microsecond=0)
    return f"{stamp.isoformat()}Z"
