# Overview: Row locking and retry helpers for order ledger mutations.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking to an order ledger read.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id
    compare-and-set on Order is what catches a concurrent writer.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 5, backoff_base: float = 0.05):
    """
    Run a read-check-write unit of work, retrying on lost races.

    Retries on OperationalError (deadlocks, "database is locked") and
    StaleDataError (version_id mismatch). The session is rolled back before
    each retry so func() re-reads current state.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.info(
                "Retrying ledger write after %s (attempt %d/%d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
