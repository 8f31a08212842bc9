"""
Transaction Helper Service

Transaction boundaries for service operations:
- Commit on success, rollback on failure
- Translation of lock contention and stale optimistic versions into
  ConcurrencyConflictError
- Single retry of conflicting operations at the caller-facing layer
"""

from functools import wraps
from typing import Callable
import logging
from sqlalchemy.exc import OperationalError, DBAPIError
from sqlalchemy.orm.exc import StaleDataError
from app import db
from .exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)

# Driver messages that mean "somebody else holds or changed this row"
CONFLICT_MARKERS = (
    'could not serialize access',
    'deadlock detected',
    'database is locked',
    'lock timeout',
    'could not obtain lock',
)


def is_conflict_error(error: Exception) -> bool:
    """Whether a database error is transient contention rather than a real failure"""
    if isinstance(error, StaleDataError):
        return True
    if isinstance(error, (OperationalError, DBAPIError)):
        message = str(getattr(error, 'orig', error)).lower()
        return any(marker in message for marker in CONFLICT_MARKERS)
    return False


class TransactionHelper:
    """Helper class for managing database transactions safely"""

    @staticmethod
    def with_transaction(func: Callable) -> Callable:
        """
        Decorator that wraps a service method in a database transaction.

        The wrapped function's changes are committed when it returns and
        rolled back when it raises. Contention errors surface as
        ConcurrencyConflictError so callers can decide whether to retry.

        Usage:
            @TransactionHelper.with_transaction
            def apply_payment(self, payable_id, amount, date_paid):
                ...
        """
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                result = func(*args, **kwargs)
                db.session.commit()
                return result
            except Exception as e:
                db.session.rollback()
                if is_conflict_error(e):
                    logger.warning(f"Concurrency conflict in {func.__name__}: {str(e)}")
                    raise ConcurrencyConflictError(
                        "The record was modified by another request, please try again"
                    ) from e
                raise
        return wrapper

    @staticmethod
    def retry_on_conflict(retries: int = 1):
        """
        Decorator for caller-facing handlers: re-run the operation when it
        fails with ConcurrencyConflictError, at most `retries` more times.

        Validation and balance errors are never retried.
        """
        def decorator(func: Callable) -> Callable:
            @wraps(func)
            def wrapper(*args, **kwargs):
                attempt = 0
                while True:
                    try:
                        return func(*args, **kwargs)
                    except ConcurrencyConflictError:
                        db.session.rollback()
                        if attempt >= retries:
                            logger.error(f"{func.__name__} still conflicting after {retries} retry")
                            raise
                        attempt += 1
                        logger.info(f"Retrying {func.__name__} after concurrency conflict (retry {attempt}/{retries})")
            return wrapper
        return decorator
