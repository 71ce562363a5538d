"""
Whole-operation retry for retryable kernel errors.

A ``ConcurrentModificationError`` or ``TransientStorageError`` means the
operation saw stale or unavailable state and left nothing behind.  The
safe response is to run the whole unit of work again in a fresh session,
re-reading current state; re-applying the failed session's data is never
safe.  Non-retryable errors propagate on the first attempt.

Usage:
    def settle(session):
        return PayoutService(session, AuditorService(session)).mark_paid(...)

    info = run_with_retry(get_session_factory(), settle, max_attempts=3)
"""

from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from agency_kernel.exceptions import AgencyKernelError, ConcurrentModificationError
from agency_kernel.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3


def run_with_retry(
    session_factory: Callable[[], Session],
    operation: Callable[[Session], T],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> T:
    """
    Run ``operation`` in a new session and commit, retrying retryable errors.

    Raises:
        ValueError: ``max_attempts`` below 1.
        AgencyKernelError: The first non-retryable error, or the last
            retryable one once attempts are exhausted.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 0
    while True:
        attempt += 1
        session = session_factory()
        try:
            try:
                result = operation(session)
                session.commit()
            except StaleDataError as exc:
                raise ConcurrentModificationError("session", "commit") from exc
            return result
        except AgencyKernelError as exc:
            session.rollback()
            if not exc.retryable or attempt >= max_attempts:
                if exc.retryable:
                    logger.error(
                        "retry_attempts_exhausted",
                        extra={"attempts": attempt, "error_code": exc.code},
                    )
                raise
            logger.warning(
                "retrying_operation",
                extra={"attempt": attempt, "max_attempts": max_attempts, "error_code": exc.code},
            )
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
