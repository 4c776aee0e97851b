# Overview: Service-layer helpers for concurrency; row locks and retry around one DB transaction.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

DEFAULT_RETRY_ON = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Stock decrements do not rely on it; they use a conditional UPDATE.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1, retry_on=DEFAULT_RETRY_ON):
    """
    Execute one transactional unit of work with retry on concurrency failures.

    func must do all of its writes and commit exactly once. Any exception
    rolls the session back, so a failed or cancelled call leaves no partial
    state. Exceptions listed in retry_on (lock timeouts, deadlocks, optimistic
    version conflicts) are retried with exponential backoff; everything else
    propagates immediately.
    """
    if attempts is None:
        attempts = current_app.config.get("RETRY_ATTEMPTS", 3)
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.info(
                "Retrying after %s (attempt %d of %d)", type(exc).__name__, attempt + 1, attempts
            )
            time.sleep(backoff_base * (2 ** attempt))
        except BaseException:
            db.session.rollback()
            raise
