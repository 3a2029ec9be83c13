"""
Retry helper for operations that lost a concurrency race.

Only ConcurrencyConflictError is retried.  Validation and integrity errors
propagate on the first attempt: retrying them would either fail the same way
or hide a real fault.  Each attempt re-runs the operation from scratch, so
the operation must re-read whatever state it depends on (every
TransactionalService method does).
"""

import time
from collections.abc import Callable
from typing import TypeVar

from ledger_kernel.exceptions import ConcurrencyConflictError
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")


def retry_on_conflict(
    operation: Callable[[], T],
    *,
    max_attempts: int = 3,
    backoff_seconds: float = 0.05,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``operation`` until it succeeds or ``max_attempts`` conflicts occur.

    The wait before attempt n+1 is ``backoff_seconds * n`` (linear backoff).

    Raises:
        ConcurrencyConflictError: the last conflict, once attempts run out.
        ValueError: max_attempts < 1.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 1
    while True:
        try:
            return operation()
        except ConcurrencyConflictError as exc:
            if attempt >= max_attempts:
                logger.error(
                    "concurrency_retries_exhausted",
                    extra={"attempts": attempt, "conflict_operation": exc.operation},
                )
                raise
            logger.warning(
                "concurrency_conflict_retry",
                extra={
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "conflict_operation": exc.operation,
                },
            )
            sleep(backoff_seconds * attempt)
            attempt += 1
