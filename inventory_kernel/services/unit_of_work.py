"""
Locked unit of work.

Responsibility:
    Wraps one balance-mutating operation: take the in-process balance keys,
    open a fresh session in write mode, run the block, commit, release the
    keys.  On any exception the session is rolled back before the keys are
    released, so no other operation on those balances can observe a partial
    change.

Architecture position:
    Kernel > Services.  The only place in the kernel that commits.  Used by
    TransferExecutor and by the service facade for receipts, adjustments
    and reservations.

Invariants enforced:
    - The in-process keys are acquired before the session issues any SQL.
      A session never reads a balance before it holds the balance's key.
    - The session's connection is opened with WRITE_TRANSACTION_OPTIONS, so
      on SQLite the database write lock is taken before the first read.
    - Commit happens while the keys are still held.

Failure modes:
    - ConcurrencyConflictError (retryable) when the keys or a database lock
      are not obtained in time.  The session has been rolled back.
"""

from contextlib import contextmanager
from typing import Generator, Hashable, Iterable

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from inventory_kernel.db.engine import WRITE_TRANSACTION_OPTIONS, is_lock_unavailable
from inventory_kernel.exceptions import ConcurrencyConflictError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.lock_manager import BalanceLockManager, format_key

logger = get_logger("services.unit_of_work")


@contextmanager
def locked_unit_of_work(
    session_factory: sessionmaker[Session],
    lock_manager: BalanceLockManager,
    keys: Iterable[Hashable],
    timeout: float | None = None,
) -> Generator[Session, None, None]:
    """
    Yield a session that commits on success and rolls back on error.

    Raises:
        ConcurrencyConflictError: If the keys are not acquired in time
            (nothing has touched the database at that point), or if the
            database gave up waiting on a lock.
    """
    with lock_manager.hold(keys, timeout) as ordered:
        session = session_factory()
        try:
            try:
                session.connection(execution_options=WRITE_TRANSACTION_OPTIONS)
                yield session
                session.commit()
            except OperationalError as exc:
                if not is_lock_unavailable(exc):
                    raise
                wait = lock_manager.default_timeout if timeout is None else timeout
                logger.warning(
                    "database_lock_unavailable",
                    extra={"keys": [format_key(k) for k in ordered], "detail": str(exc.orig)},
                )
                raise ConcurrencyConflictError(
                    [format_key(k) for k in ordered], wait
                ) from exc
            logger.debug("unit_of_work_committed")
        except Exception:
            session.rollback()
            logger.debug("unit_of_work_rolled_back")
            raise
        finally:
            session.close()
