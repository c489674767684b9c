"""
BalanceLockManager -- key-addressed exclusive locks for balances.

Responsibility:
    Serializes in-process operations that touch the same
    (location_id, product_id) balance.  Operations on disjoint keys run in
    parallel.

Architecture position:
    Kernel > Services.  Used by the unit of work around every balance
    mutation.  Row-level locks in BalanceStore extend the same
    serialization across processes sharing a PostgreSQL database.

Invariants enforced:
    - Keys are acquired in sorted order, whatever the transfer direction,
      so two transfers over the same pair of balances cannot deadlock.
    - The wait is bounded by one deadline for the whole key set.  On expiry
      every key already taken is released before ConcurrencyConflictError
      is raised.

Failure modes:
    - ConcurrencyConflictError (retryable) on timeout.
"""

import threading
import time
from contextlib import contextmanager
from typing import Callable, Generator, Hashable, Iterable, TypeVar

from inventory_kernel.exceptions import ConcurrencyConflictError
from inventory_kernel.logging_config import get_logger

logger = get_logger("services.lock_manager")

T = TypeVar("T")

DEFAULT_LOCK_TIMEOUT_SECONDS = 5.0


def _sort_key(key: Hashable) -> tuple:
    if isinstance(key, tuple):
        return tuple(str(part) for part in key)
    return (str(key),)


def format_key(key: Hashable) -> str:
    if isinstance(key, tuple):
        return ":".join(str(part) for part in key)
    return str(key)


class _KeyLock:
    """A key's lock plus the number of holders and waiters using it."""

    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class BalanceLockManager:
    """
    Registry of one ``threading.Lock`` per balance key.

    A key stays in the registry only while some caller holds or waits on
    it, so the registry never outgrows the number of keys in flight.

    Usage:
        with lock_manager.hold([(warehouse_a, product), (truck_t, product)]):
            ...
    """

    def __init__(self, default_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS):
        self.default_timeout = default_timeout
        self._registry_lock = threading.Lock()
        self._locks: dict[Hashable, _KeyLock] = {}

    def _checkout(self, key: Hashable) -> threading.Lock:
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyLock()
            entry.users += 1
            return entry.lock

    def _checkin(self, key: Hashable) -> None:
        with self._registry_lock:
            entry = self._locks[key]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def hold(
        self,
        keys: Iterable[Hashable],
        timeout: float | None = None,
    ) -> Generator[list[Hashable], None, None]:
        """
        Hold exclusive access to every key for the duration of the block.

        Yields the keys in the order they were acquired.

        Raises:
            ConcurrencyConflictError: If all keys were not acquired before
                the deadline.
        """
        wait = self.default_timeout if timeout is None else timeout
        ordered = sorted(set(keys), key=_sort_key)
        deadline = time.monotonic() + wait
        acquired: list[tuple[Hashable, threading.Lock]] = []

        try:
            for key in ordered:
                lock = self._checkout(key)
                remaining = max(0.0, deadline - time.monotonic())
                if not lock.acquire(timeout=remaining):
                    self._checkin(key)
                    logger.warning(
                        "lock_timeout",
                        extra={
                            "lock_key": format_key(key),
                            "keys": [format_key(k) for k in ordered],
                            "timeout_seconds": wait,
                        },
                    )
                    raise ConcurrencyConflictError(
                        [format_key(k) for k in ordered], wait
                    )
                acquired.append((key, lock))

            logger.debug(
                "locks_acquired",
                extra={"keys": [format_key(k) for k in ordered]},
            )
            yield ordered
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)

    def with_lock(
        self,
        keys: Iterable[Hashable],
        fn: Callable[[], T],
        timeout: float | None = None,
    ) -> T:
        """Run ``fn`` while holding ``keys``; return its result."""
        with self.hold(keys, timeout):
            return fn()

    def is_locked(self, key: Hashable) -> bool:
        with self._registry_lock:
            entry = self._locks.get(key)
        return entry is not None and entry.lock.locked()

    def tracked_key_count(self) -> int:
        """Number of keys currently held or waited on."""
        with self._registry_lock:
            return len(self._locks)


_default_manager = BalanceLockManager()


def get_lock_manager() -> BalanceLockManager:
    """Process-wide manager shared by every service instance."""
    return _default_manager
