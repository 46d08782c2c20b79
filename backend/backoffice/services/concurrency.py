# Overview: Transaction helpers shared by every multi-step engine operation.

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import text

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the write lock is taken up front by unit_of_work instead.
    """
    return query.with_for_update()


def _begin_write_lock() -> None:
    # SQLite defers the write lock to the first write; take it now so two
    # read-then-write units cannot interleave.
    if db.engine.dialect.name != "sqlite":
        return
    # scoped_session does not proxy in_transaction(); ask the session itself
    if db.session().in_transaction():
        return
    db.session.execute(text("BEGIN IMMEDIATE"))


@contextmanager
def unit_of_work():
    """
    Run the enclosed block as one atomic database transaction.

    Commits on normal exit. On any exception the session is rolled back
    and the exception propagates unchanged; nothing is retried.
    """
    _begin_write_lock()
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
