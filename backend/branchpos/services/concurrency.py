# Overview: Transaction helpers for the sale and session ledgers.

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConsistencyError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    Rows already in the identity map are refreshed from the locked read.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    takes the database write lock up front instead.
    """
    return query.with_for_update().populate_existing()


def begin_write_transaction() -> None:
    """
    Start the unit of work as a writer.

    On SQLite, BEGIN IMMEDIATE serializes writers before the first read, so a
    status check and the write that depends on it cannot interleave with
    another writer. Other backends rely on lock_for_update().
    """
    if db.engine.dialect.name != "sqlite":
        return
    dbapi_connection = db.session.connection().connection.dbapi_connection
    if not dbapi_connection.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_atomically(func):
    """
    Run func() as one transaction and commit it.

    Any exception rolls the whole unit back. Lock and optimistic-version
    conflicts surface as ConsistencyError; the caller decides whether to
    retry the operation as a whole.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except (OperationalError, StaleDataError) as exc:
        db.session.rollback()
        raise ConsistencyError(
            "Concurrent update conflict; the operation was not applied",
            details={"reason": exc.__class__.__name__},
        ) from exc
    except Exception:
        db.session.rollback()
        raise
