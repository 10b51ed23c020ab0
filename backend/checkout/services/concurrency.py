# Overview: Service-layer operations for concurrency; encapsulates business logic and database work.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictOnCommitError
from ..extensions import db


RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_unit() takes the
    database write lock up front instead.
    """
    return query.populate_existing().with_for_update()


def begin_write_unit() -> None:
    """
    Open the write transaction for a unit of work.

    SQLite has no row locks, so writers are serialised with BEGIN IMMEDIATE.
    Other databases rely on the row locks taken inside the unit.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run func() as one atomic unit and commit it.

    - Any exception rolls back every mutation made by func().
    - Storage races (lock timeouts, stale versions, unique collisions) are
      retried with exponential backoff; func() must therefore re-read what it
      mutates.
    - Races that outlive the retries surface as ConflictOnCommitError.
    """
    if attempts is None:
        attempts = current_app.config.get("COMMIT_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("COMMIT_RETRY_BACKOFF", 0.1)

    last_exc = None
    for attempt in range(max(attempts, 1)):
        try:
            begin_write_unit()
            result = func()
            db.session.commit()
            return result
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                break
            current_app.logger.warning(
                "Unit of work lost a race (attempt %s/%s): %s", attempt + 1, attempts, exc.__class__.__name__
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

    raise ConflictOnCommitError(
        "Concurrent update prevented the operation from committing",
        details={"attempts": attempts, "cause": last_exc.__class__.__name__ if last_exc else None},
    ) from last_exc
