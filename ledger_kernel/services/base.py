"""
BaseService -- base classes for all kernel services.

Responsibility:
    BaseService holds the session, the injected Clock and IdGenerator, and
    follows the flush-only contract: it never commits or rolls back.

    TransactionalService adds the transaction boundary used by the public
    ledger operations.  Each public call runs inside ``_transaction()``:

        auto_commit=True   one transaction per call; commit on success,
                           rollback on ANY failure (including BaseException
                           such as KeyboardInterrupt or task cancellation).
        auto_commit=False  a SAVEPOINT inside the caller's transaction; the
                           caller owns commit/rollback.

    Storage failures are translated into the kernel's typed errors on the
    way out, so callers never catch SQLAlchemy exceptions:

        StaleDataError, serialization failure, deadlock,
        lock/statement timeout, "database is locked"   -> ConcurrencyConflictError
        any other IntegrityError                       -> LedgerIntegrityError

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
"""

import time
from abc import ABC
from contextlib import contextmanager
from typing import Iterator
from uuid import UUID

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.identifiers import IdGenerator, UUID4Generator
from ledger_kernel.exceptions import (
    ConcurrencyConflictError,
    LedgerError,
    LedgerIntegrityError,
)
from ledger_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.base")

# PostgreSQL SQLSTATEs that mean "lost a race, safe to retry"
RETRYABLE_SQLSTATES = frozenset({
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available (lock_timeout)
    "57014",  # query_canceled (statement_timeout)
})

_RETRYABLE_MESSAGES = ("database is locked", "database table is locked", "database is busy")


def _sqlstate(orig) -> str | None:
    code = getattr(orig, "pgcode", None)
    if code:
        return code
    diag = getattr(orig, "diag", None)
    return getattr(diag, "sqlstate", None)


def is_retryable_db_error(exc: DBAPIError) -> bool:
    """True if the driver error means the transaction lost a concurrency race."""
    if _sqlstate(exc.orig) in RETRYABLE_SQLSTATES:
        return True
    message = str(exc.orig).lower()
    return any(fragment in message for fragment in _RETRYABLE_MESSAGES)


def translate_db_error(operation: str, exc: BaseException) -> BaseException:
    """Map a storage exception to the kernel error a caller should see."""
    if isinstance(exc, LedgerError):
        return exc
    if isinstance(exc, StaleDataError):
        return ConcurrencyConflictError(operation, "row was modified by a concurrent transaction")
    if isinstance(exc, DBAPIError):
        reason = str(exc.orig).strip().splitlines()[0] if exc.orig else str(exc)
        if is_retryable_db_error(exc):
            return ConcurrencyConflictError(operation, reason)
        if isinstance(exc, IntegrityError):
            return LedgerIntegrityError(operation, reason)
    return exc


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Contract:
        Uses ``session.flush()`` to persist changes within the active
        transaction.  Never calls ``session.commit()`` or
        ``session.rollback()``.

    Non-goals:
        - Read-only projections belong in ``ledger_kernel/selectors/``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        id_generator: IdGenerator | None = None,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._ids = id_generator or UUID4Generator()


class TransactionalService(BaseService):
    """
    Service whose public operations each form one atomic unit of work.

    Args:
        auto_commit: If True (default) each operation commits or rolls back
            its own transaction.  If False it runs in a SAVEPOINT and the
            caller decides whether to commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        id_generator: IdGenerator | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session, clock, id_generator)
        self._auto_commit = auto_commit

    @contextmanager
    def _transaction(
        self,
        operation: str,
        organization_id: UUID | None = None,
        actor_id: UUID | None = None,
        entry_id: UUID | None = None,
    ) -> Iterator[None]:
        t0 = time.monotonic()
        with LogContext.bind(
            correlation_id=LogContext.correlation_id(),
            operation=operation,
            organization_id=organization_id,
            actor_id=actor_id,
            entry_id=entry_id,
        ):
            try:
                if self._auto_commit:
                    yield
                    self.session.flush()
                    self.session.commit()
                else:
                    with self.session.begin_nested():
                        yield
            except BaseException as exc:
                if self._auto_commit:
                    self.session.rollback()
                translated = translate_db_error(operation, exc)
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                logger.warning(
                    "transaction_rolled_back",
                    extra={
                        "duration_ms": duration_ms,
                        "error_type": type(translated).__name__,
                        "error_code": getattr(translated, "code", None),
                    },
                )
                if translated is exc:
                    raise
                raise translated from exc
