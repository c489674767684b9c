"""
BalanceStore -- locked access and invariant-checked mutation of balances.

Responsibility:
    The write path for inventory_balances.  Locks balance rows
    (``SELECT ... FOR UPDATE``, sorted key order), creates missing rows
    race-safely, and applies receipts, adjustments and reservation changes,
    each recorded as one ledger row.

Architecture position:
    Kernel > Services.  Flush-only; the unit of work commits.  Transfers
    mutate balances through TransferExecutor, which uses lock_rows() and
    get_or_create_locked() from here.

Invariants enforced:
    - qty_full, qty_empty, qty_reserved >= 0 and qty_full >= qty_reserved
      after every operation (BalanceInvariantError otherwise).
    - Every mutation writes exactly one StockMovement row.
    - Row locks are taken in sorted (location_id, product_id) order.

Failure modes:
    - IntegrityError: concurrent first insert of the same balance key
      (handled via savepoint rollback and re-select).
    - ConcurrencyConflictError: the PostgreSQL lock_timeout or the SQLite
      busy timeout expired while waiting for a lock.
    - BalanceInvariantError: the requested change would break an invariant.

Audit relevance:
    Stored quantities always equal the replay of the balance's movements
    (MovementSelector.reconcile()).
"""

from uuid import UUID, uuid4

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from inventory_kernel.db.engine import is_lock_unavailable, is_postgres
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.exceptions import BalanceInvariantError, ConcurrencyConflictError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.inventory import InventoryBalance
from inventory_kernel.models.stock_movement import MovementType, ReferenceType
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.lock_manager import format_key
from inventory_kernel.services.movement_ledger import MovementLedger

logger = get_logger("services.balance_store")

BalanceKey = tuple[UUID, UUID]


def sorted_keys(keys) -> list[BalanceKey]:
    return sorted(set(keys), key=lambda k: (str(k[0]), str(k[1])))


class BalanceStore(BaseService[InventoryBalance]):
    """
    Locked reads and invariant-checked writes on balance rows.

    Contract:
        Callers hold the in-process BalanceLockManager keys for every
        balance they touch; this class adds the database row locks.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        lock_timeout_seconds: float = 5.0,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._lock_timeout_seconds = lock_timeout_seconds
        self._ledger = MovementLedger(session, self._clock)

    @property
    def ledger(self) -> MovementLedger:
        return self._ledger

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def _set_lock_timeout(self) -> None:
        if is_postgres(self.session):
            millis = int(self._lock_timeout_seconds * 1000)
            self.session.execute(text(f"SET LOCAL lock_timeout = '{millis}ms'"))

    def _select_locked(self, location_id: UUID, product_id: UUID) -> InventoryBalance | None:
        return self.session.execute(
            select(InventoryBalance)
            .where(
                InventoryBalance.location_id == location_id,
                InventoryBalance.product_id == product_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def lock_rows(self, keys) -> dict[BalanceKey, InventoryBalance | None]:
        """
        Lock the balance rows for ``keys`` in sorted order.

        Keys without a row map to None.

        Raises:
            ConcurrencyConflictError: If a row lock is not granted within
                the lock timeout, or SQLite gave up on its file lock.
        """
        ordered = sorted_keys(keys)
        self._set_lock_timeout()
        rows: dict[BalanceKey, InventoryBalance | None] = {}
        try:
            for location_id, product_id in ordered:
                rows[(location_id, product_id)] = self._select_locked(
                    location_id, product_id
                )
        except OperationalError as exc:
            if is_lock_unavailable(exc):
                logger.warning(
                    "row_lock_timeout",
                    extra={
                        "keys": [format_key(k) for k in ordered],
                        "timeout_seconds": self._lock_timeout_seconds,
                    },
                )
                raise ConcurrencyConflictError(
                    [format_key(k) for k in ordered], self._lock_timeout_seconds
                ) from exc
            raise
        return rows

    def get_or_create_locked(
        self,
        location_id: UUID,
        product_id: UUID,
        actor_id: UUID,
    ) -> InventoryBalance:
        """
        Return the locked balance row, inserting an all-zero row if missing.

        A concurrent insert of the same key loses on the unique constraint;
        the savepoint is rolled back and the winner's row is locked instead.
        """
        balance = self._select_locked(location_id, product_id)
        if balance is not None:
            return balance

        savepoint = self.session.begin_nested()
        try:
            balance = InventoryBalance(
                location_id=location_id,
                product_id=product_id,
                qty_full=0,
                qty_empty=0,
                qty_reserved=0,
                created_by_id=actor_id,
            )
            self.session.add(balance)
            self.session.flush()
            savepoint.commit()
            logger.info(
                "balance_created",
                extra={
                    "inventory_id": str(balance.id),
                    "location_id": str(location_id),
                    "product_id": str(product_id),
                },
            )
            return balance
        except IntegrityError:
            logger.debug(
                "balance_insert_race_retry",
                extra={"location_id": str(location_id), "product_id": str(product_id)},
            )
            savepoint.rollback()
            balance = self._select_locked(location_id, product_id)
            if balance is None:
                raise
            return balance

    # ------------------------------------------------------------------
    # Single-row operations
    # ------------------------------------------------------------------

    def apply_delta(
        self,
        balance: InventoryBalance,
        actor_id: UUID,
        full_delta: int = 0,
        empty_delta: int = 0,
        reserved_delta: int = 0,
    ) -> None:
        new_full = balance.qty_full + full_delta
        new_empty = balance.qty_empty + empty_delta
        new_reserved = balance.qty_reserved + reserved_delta

        problem = None
        if new_full < 0:
            problem = f"qty_full would become {new_full}"
        elif new_empty < 0:
            problem = f"qty_empty would become {new_empty}"
        elif new_reserved < 0:
            problem = f"qty_reserved would become {new_reserved}"
        elif new_full < new_reserved:
            problem = f"qty_full {new_full} would fall below qty_reserved {new_reserved}"
        if problem is not None:
            raise BalanceInvariantError(
                str(balance.location_id), str(balance.product_id), problem
            )

        balance.qty_full = new_full
        balance.qty_empty = new_empty
        balance.qty_reserved = new_reserved
        balance.updated_by_id = actor_id

    def _single_row_change(
        self,
        location_id: UUID,
        product_id: UUID,
        actor_id: UUID,
        movement_type: MovementType,
        reference_type: ReferenceType,
        reason: str | None,
        full_delta: int = 0,
        empty_delta: int = 0,
        reserved_delta: int = 0,
    ) -> InventoryBalance:
        self.lock_rows([(location_id, product_id)])
        balance = self.get_or_create_locked(location_id, product_id, actor_id)
        self.apply_delta(balance, actor_id, full_delta, empty_delta, reserved_delta)
        self.session.flush()

        reference_id = uuid4()
        self._ledger.append(
            balance,
            movement_type,
            reference_type,
            reference_id,
            actor_id,
            qty_full_delta=full_delta,
            qty_empty_delta=empty_delta,
            qty_reserved_delta=reserved_delta,
            reason=reason,
        )
        logger.info(
            "balance_changed",
            extra={
                "inventory_id": str(balance.id),
                "movement_type": movement_type.value,
                "qty_full": balance.qty_full,
                "qty_empty": balance.qty_empty,
                "qty_reserved": balance.qty_reserved,
            },
        )
        return balance

    def receive_stock(
        self,
        location_id: UUID,
        product_id: UUID,
        qty_full: int,
        qty_empty: int,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> InventoryBalance:
        """Add incoming stock (e.g. a supplier delivery)."""
        if qty_full < 0 or qty_empty < 0:
            raise BalanceInvariantError(
                str(location_id), str(product_id), "receipt quantities cannot be negative"
            )
        if qty_full == 0 and qty_empty == 0:
            raise BalanceInvariantError(
                str(location_id), str(product_id), "receipt quantities cannot both be zero"
            )
        return self._single_row_change(
            location_id,
            product_id,
            actor_id,
            MovementType.RECEIPT,
            ReferenceType.RECEIPT,
            reason,
            full_delta=qty_full,
            empty_delta=qty_empty,
        )

    def adjust_stock(
        self,
        location_id: UUID,
        product_id: UUID,
        qty_full_delta: int,
        qty_empty_delta: int,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> InventoryBalance:
        """Signed correction after a stock count."""
        if qty_full_delta == 0 and qty_empty_delta == 0:
            raise BalanceInvariantError(
                str(location_id), str(product_id), "adjustment deltas cannot both be zero"
            )
        return self._single_row_change(
            location_id,
            product_id,
            actor_id,
            MovementType.ADJUSTMENT,
            ReferenceType.ADJUSTMENT,
            reason,
            full_delta=qty_full_delta,
            empty_delta=qty_empty_delta,
        )

    def reserve_stock(
        self,
        location_id: UUID,
        product_id: UUID,
        quantity: int,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> InventoryBalance:
        """Hold back full units for an order."""
        if quantity <= 0:
            raise BalanceInvariantError(
                str(location_id), str(product_id), "reservation quantity must be positive"
            )
        return self._single_row_change(
            location_id,
            product_id,
            actor_id,
            MovementType.RESERVATION,
            ReferenceType.RESERVATION,
            reason,
            reserved_delta=quantity,
        )

    def release_reservation(
        self,
        location_id: UUID,
        product_id: UUID,
        quantity: int,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> InventoryBalance:
        if quantity <= 0:
            raise BalanceInvariantError(
                str(location_id), str(product_id), "release quantity must be positive"
            )
        return self._single_row_change(
            location_id,
            product_id,
            actor_id,
            MovementType.RESERVATION,
            ReferenceType.RESERVATION,
            reason,
            reserved_delta=-quantity,
        )
