# Overview: Service-layer operations for concurrency; retry and store-failure translation.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import StoreError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other database failure, or the last
    retryable one, is raised as StoreError. Business errors propagate as-is.
    The session is rolled back on every failure.

    Only pass attempts > 1 when func commits once, at its end.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise StoreError("Record store unavailable", details={"reason": str(exc)}) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError("Record store failure", details={"reason": str(exc)}) from exc
        except Exception:
            db.session.rollback()
            raise
    raise StoreError("Record store unavailable")
