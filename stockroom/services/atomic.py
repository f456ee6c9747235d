import logging
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stockroom.core.config import settings
from stockroom.services.errors import ConcurrencyConflict, InternalError, InventoryError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}
UNIQUE_VIOLATION = "23505"


def _is_retryable(exc: DBAPIError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if isinstance(exc, IntegrityError):
        # Only a duplicate-key race is worth a retry: the loser re-reads and merges.
        return sqlstate == UNIQUE_VIOLATION or "UNIQUE constraint failed" in str(orig)
    if sqlstate in RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(orig)


def run_atomic(
    db: Session,
    operation: Callable[[], T],
    *,
    label: str,
    max_attempts: int | None = None,
) -> T:
    """Run ``operation`` and commit it as one unit, retrying write conflicts.

    ``operation`` must re-read everything it needs on each call: a retry
    starts from a rolled-back session. Domain errors abort immediately,
    conflicts are retried up to ``max_attempts`` times and then surface as
    ``ConcurrencyConflict``.
    """
    attempts = max_attempts or settings.ledger_max_retries
    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            db.commit()
            return result
        except InventoryError:
            db.rollback()
            raise
        except StaleDataError:
            db.rollback()
            logger.warning("%s: stale row version on attempt %s/%s", label, attempt, attempts)
        except DBAPIError as exc:
            db.rollback()
            if not _is_retryable(exc):
                logger.exception("%s: database error", label)
                raise InternalError(f"{label} failed") from exc
            logger.warning("%s: write conflict on attempt %s/%s", label, attempt, attempts)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("%s: unexpected persistence failure", label)
            raise InternalError(f"{label} failed") from exc
    raise ConcurrencyConflict(attempts)
