# Overview: Unit-of-work and row-locking helpers shared by the services.

from __future__ import annotations

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    Concurrent stock debits on one product, or settlements on one ledger
    entry, serialize on this lock and re-read the current balance before
    computing their delta.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_in_transaction(func):
    """
    Execute one business event as a single unit of work.

    Commits when ``func`` returns and rolls back on any exception, so status
    changes, recomputed totals and stock/ledger mutations land together or
    not at all. Nothing is retried here; retry policy belongs to the caller.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except Exception:
        db.session.rollback()
        raise
