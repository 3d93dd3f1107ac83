# backoffice/ledger/transactions.py

"""
Transaction runner for the payment engine.

Every mutating operation (payment allocation, credit application, balance
backfill) runs its whole read-then-write unit through run_in_transaction:

1. Optionally bound lock waits (PostgreSQL: SET LOCAL lock_timeout)
2. Execute the unit of work
3. Commit
4. On contention (optimistic version mismatch, lock timeout, deadlock,
   serialization failure) roll back and re-run the unit, up to
   max_retries times, then surface ConcurrencyConflictError
5. On any other failure roll back and surface the error; SQLAlchemy
   failures are wrapped in LedgerStoreError
"""

import random
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from backoffice.core.config import settings
from backoffice.ledger.exceptions import (
    ConcurrencyConflictError,
    LedgerError,
    LedgerStoreError,
)
from backoffice.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# lock_not_available, deadlock_detected, serialization_failure
_CONTENTION_SQLSTATES = {"55P03", "40P01", "40001"}


def is_contention_error(exc: BaseException) -> bool:
    """True for errors that mean another transaction got there first."""
    if isinstance(exc, (StaleDataError, ConcurrencyConflictError)):
        return True
    if isinstance(exc, DBAPIError):
        orig = exc.orig
        code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if code in _CONTENTION_SQLSTATES:
            return True
        if isinstance(exc, OperationalError) and "database is locked" in str(orig):
            return True
    return False


def _apply_lock_timeout(db: Session, lock_timeout_ms: int) -> None:
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text(f"SET LOCAL lock_timeout = '{int(lock_timeout_ms)}ms'"))


def _backoff(attempt: int) -> None:
    time.sleep(min(0.05 * (2 ** (attempt - 1)), 0.5) * random.uniform(0.5, 1.0))


def run_in_transaction(
    db: Session,
    operation: str,
    work: Callable[[], T],
    max_retries: Optional[int] = None,
    lock_timeout_ms: Optional[int] = None,
) -> T:
    """
    Runs work() and commits it atomically, retrying the whole unit on
    contention. work() must re-read everything it depends on, since a retry
    starts from a rolled back session.
    """
    retries = settings.conflict_max_retries if max_retries is None else max_retries
    timeout = settings.lock_timeout_ms if lock_timeout_ms is None else lock_timeout_ms

    attempt = 0
    while True:
        attempt += 1
        try:
            _apply_lock_timeout(db, timeout)
            result = work()
            db.commit()
            return result
        except Exception as e:
            db.rollback()

            if is_contention_error(e):
                if attempt > retries:
                    logger.warning(
                        "Giving up after repeated conflicts",
                        operation=operation,
                        attempts=attempt,
                        error=str(e),
                    )
                    raise ConcurrencyConflictError(
                        f"{operation} could not complete after {attempt} attempts"
                    ) from e
                logger.info(
                    "Conflict detected, retrying",
                    operation=operation,
                    attempt=attempt,
                    error=str(e),
                )
                _backoff(attempt)
                continue

            if isinstance(e, LedgerError):
                raise
            if isinstance(e, SQLAlchemyError):
                logger.error(
                    "Store failure", operation=operation, error=str(e), exc_info=True
                )
                raise LedgerStoreError(operation, str(e)) from e
            raise
