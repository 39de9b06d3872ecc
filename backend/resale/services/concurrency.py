# Overview: Row locking and retry helpers for write paths.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking to a query.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; PostgreSQL and MySQL honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation, retrying on concurrency failures.

    Retries on OperationalError (deadlocks, lock timeouts) and StaleDataError
    (a version_id_col conflict). The session is rolled back between attempts
    so each retry re-reads current rows. Domain errors propagate immediately.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
