# backend/branchpos/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/branchpos.sqlite3 unless overridden
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///branchpos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Human-readable sale numbers: V-000001, V-000002, ...
    SALE_NUMBER_PREFIX = os.environ.get("SALE_NUMBER_PREFIX", "V")
    SALE_NUMBER_PAD = int(os.environ.get("SALE_NUMBER_PAD", "6"))

    # Blind close: never serve per-method totals for a session that is still OPEN
    EXPOSE_OPEN_SESSION_SUMMARY = _env_flag("EXPOSE_OPEN_SESSION_SUMMARY", False)

    # OPEN sessions older than this are reported as abandoned by the CLI
    STALE_SESSION_HOURS = int(os.environ.get("STALE_SESSION_HOURS", "18"))
