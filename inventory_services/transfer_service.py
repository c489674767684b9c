"""
inventory_services.transfer_service -- public facade for stock transfers.

Responsibility:
    The external surface of the transfer engine: warehouse-to-warehouse,
    warehouse-to-truck and truck-to-warehouse transfers of one product or of
    several products at once, the read-only ``validate_transfer`` and
    ``validate_multi_transfer`` dry runs, transfer reversal, and the
    single-balance operations (receipt, adjustment, reservation, release).

Architecture position:
    Services -- composes kernel services with runtime settings.  Builds
    exactly one TransferExecutor and shares one BalanceLockManager across
    every operation.

Invariants enforced:
    - Every mutating call runs in its own locked unit of work and either
      commits completely or leaves no trace.
    - The dry runs never write and never take locks.

Failure modes:
    - Typed InventoryKernelError subclasses propagate unchanged to the
      caller after the unit of work has rolled back.

Usage:
    service = build_transfer_service()
    result = service.transfer_warehouse_to_truck(
        warehouse_id, truck_id, product_id, 15, 0, actor_id=user_id,
    )
"""

from __future__ import annotations

from typing import Callable, Iterable
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from inventory_config import TransferSettings, get_active_settings
from inventory_kernel.db.engine import get_session_factory, init_engine_from_url
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.transfer import (
    TRUCK,
    WAREHOUSE,
    BalanceSnapshot,
    MultiTransferRequest,
    MultiTransferResult,
    MultiTransferValidation,
    RejectionReason,
    TransferLine,
    TransferRequest,
    TransferResult,
    TransferValidation,
)
from inventory_kernel.domain.validator import (
    evaluate_dry_run,
    evaluate_multi_transfer,
    for_line,
    not_found_failure,
)
from inventory_kernel.exceptions import LocationNotFoundError, ProductNotFoundError
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.inventory import InventoryBalance
from inventory_kernel.models.stock_movement import ReferenceType
from inventory_kernel.selectors.balance_selector import BalanceSelector, snapshot_of
from inventory_kernel.selectors.location_selector import (
    LocationSelector,
    ProductSelector,
)
from inventory_kernel.selectors.movement_selector import MovementRecord, MovementSelector
from inventory_kernel.services.balance_store import BalanceStore
from inventory_kernel.services.lock_manager import BalanceLockManager, get_lock_manager
from inventory_kernel.services.transfer_executor import TransferExecutor
from inventory_kernel.services.unit_of_work import locked_unit_of_work

logger = get_logger("services.transfer_service")


class InventoryTransferService:
    """Facade over the transfer executor and balance store.

    Contract:
        Receives a session factory and owns transaction boundaries: each
        public method opens, commits or rolls back, and closes its own
        session.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: TransferSettings,
        clock: Clock | None = None,
        lock_manager: BalanceLockManager | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings
        self._clock = clock or SystemClock()
        self._lock_manager = lock_manager or get_lock_manager()
        self._executor = TransferExecutor(
            session_factory,
            lock_manager=self._lock_manager,
            clock=self._clock,
            lock_timeout_seconds=settings.lock_timeout_seconds,
            warning_ratio=settings.large_transfer_warning_ratio,
        )

    @property
    def executor(self) -> TransferExecutor:
        return self._executor

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def transfer_between_warehouses(
        self,
        from_warehouse_id: UUID,
        to_warehouse_id: UUID,
        product_id: UUID,
        qty_full: int,
        qty_empty: int,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> TransferResult:
        """Move stock between two warehouses."""
        return self._executor.execute(
            TransferRequest(from_warehouse_id, to_warehouse_id, product_id, qty_full, qty_empty),
            actor_id=actor_id,
            reason=reason,
            source_kind=WAREHOUSE,
            destination_kind=WAREHOUSE,
            reference_type=ReferenceType.TRANSFER,
        )

    def transfer_warehouse_to_truck(
        self,
        from_warehouse_id: UUID,
        to_truck_id: UUID,
        product_id: UUID,
        qty_full: int,
        qty_empty: int,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> TransferResult:
        """Load a truck from a warehouse.  The truck must be active."""
        return self._executor.execute(
            TransferRequest(from_warehouse_id, to_truck_id, product_id, qty_full, qty_empty),
            actor_id=actor_id,
            reason=reason,
            source_kind=WAREHOUSE,
            destination_kind=TRUCK,
            reference_type=ReferenceType.TRUCK_TRANSFER,
        )

    def transfer_truck_to_warehouse(
        self,
        from_truck_id: UUID,
        to_warehouse_id: UUID,
        product_id: UUID,
        qty_full: int,
        qty_empty: int,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> TransferResult:
        """Unload a truck (returns, collected empties) into a warehouse."""
        return self._executor.execute(
            TransferRequest(from_truck_id, to_warehouse_id, product_id, qty_full, qty_empty),
            actor_id=actor_id,
            reason=reason,
            source_kind=TRUCK,
            destination_kind=WAREHOUSE,
            reference_type=ReferenceType.TRUCK_TRANSFER,
        )

    def transfer_lines_between_warehouses(
        self,
        from_warehouse_id: UUID,
        to_warehouse_id: UUID,
        lines: Iterable[TransferLine],
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> MultiTransferResult:
        """Move several products between two warehouses, all or nothing."""
        return self._executor.execute_multi(
            MultiTransferRequest(from_warehouse_id, to_warehouse_id, tuple(lines)),
            actor_id=actor_id,
            reason=reason,
            source_kind=WAREHOUSE,
            destination_kind=WAREHOUSE,
            reference_type=ReferenceType.TRANSFER,
        )

    def transfer_lines_warehouse_to_truck(
        self,
        from_warehouse_id: UUID,
        to_truck_id: UUID,
        lines: Iterable[TransferLine],
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> MultiTransferResult:
        """Load several products onto an active truck, all or nothing."""
        return self._executor.execute_multi(
            MultiTransferRequest(from_warehouse_id, to_truck_id, tuple(lines)),
            actor_id=actor_id,
            reason=reason,
            source_kind=WAREHOUSE,
            destination_kind=TRUCK,
            reference_type=ReferenceType.TRUCK_TRANSFER,
        )

    def transfer_lines_truck_to_warehouse(
        self,
        from_truck_id: UUID,
        to_warehouse_id: UUID,
        lines: Iterable[TransferLine],
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> MultiTransferResult:
        return self._executor.execute_multi(
            MultiTransferRequest(from_truck_id, to_warehouse_id, tuple(lines)),
            actor_id=actor_id,
            reason=reason,
            source_kind=TRUCK,
            destination_kind=WAREHOUSE,
            reference_type=ReferenceType.TRUCK_TRANSFER,
        )

    def reverse_transfer(
        self,
        reference_id: UUID,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> TransferResult | MultiTransferResult:
        """Undo a committed transfer with a compensating transfer."""
        return self._executor.reverse(reference_id, actor_id=actor_id, reason=reason)

    def validate_transfer(
        self,
        from_location_id: UUID,
        to_location_id: UUID,
        product_id: UUID,
        qty_full: int,
        qty_empty: int,
    ) -> TransferValidation:
        """
        Report whether a transfer would currently be accepted.

        Read-only: takes no locks, so the answer may be stale by the time a
        transfer is executed.  Every failing check is listed, with
        large-transfer warnings and the source stock figures.
        """
        request = TransferRequest(
            from_location_id, to_location_id, product_id, qty_full, qty_empty
        )
        with self._session_factory() as session:
            locations = LocationSelector(session)
            source_location = locations.get(from_location_id)
            destination = locations.get(to_location_id)
            product = ProductSelector(session).get_active(product_id)

            lookup_failures = []
            if source_location is None:
                lookup_failures.append(
                    not_found_failure(
                        RejectionReason.LOCATION_NOT_FOUND,
                        from_location_id,
                        label="source location",
                    )
                )
            if destination is None:
                lookup_failures.append(
                    not_found_failure(
                        RejectionReason.LOCATION_NOT_FOUND,
                        to_location_id,
                        label="destination location",
                    )
                )
            if product is None:
                lookup_failures.append(
                    not_found_failure(RejectionReason.PRODUCT_NOT_FOUND, product_id)
                )

            source_stock = None
            if source_location is not None:
                source_stock = BalanceSelector(session).get_or_zero(
                    from_location_id, product_id
                )

        verdict = evaluate_dry_run(
            request,
            destination,
            source_stock,
            lookup_failures,
            self._settings.large_transfer_warning_ratio,
        )
        logger.info(
            "transfer_validated",
            extra={
                "is_valid": verdict.is_valid,
                "error_count": len(verdict.failures),
                "warning_count": len(verdict.warnings),
            },
        )
        return TransferValidation(
            is_valid=verdict.is_valid,
            errors=tuple(verdict.messages),
            warnings=verdict.warnings,
            source_stock=source_stock,
            reasons=tuple(f.reason for f in verdict.failures),
        )

    def validate_multi_transfer(
        self,
        from_location_id: UUID,
        to_location_id: UUID,
        lines: Iterable[TransferLine],
    ) -> MultiTransferValidation:
        """
        Report whether a multi-line transfer would currently be accepted.

        Read-only, like ``validate_transfer``.  Line failures are prefixed
        with the line's product id, and ``blocked_products`` lists every
        product whose own line would be rejected.
        """
        request = MultiTransferRequest(from_location_id, to_location_id, tuple(lines))
        with self._session_factory() as session:
            locations = LocationSelector(session)
            source_location = locations.get(from_location_id)
            destination = locations.get(to_location_id)

            lookup_failures = []
            if source_location is None:
                lookup_failures.append(
                    not_found_failure(
                        RejectionReason.LOCATION_NOT_FOUND,
                        from_location_id,
                        label="source location",
                    )
                )
            if destination is None:
                lookup_failures.append(
                    not_found_failure(
                        RejectionReason.LOCATION_NOT_FOUND,
                        to_location_id,
                        label="destination location",
                    )
                )
            products = ProductSelector(session)
            for line in request.lines:
                if products.get_active(line.product_id) is None:
                    lookup_failures.append(
                        for_line(
                            not_found_failure(
                                RejectionReason.PRODUCT_NOT_FOUND, line.product_id
                            ),
                            line.product_id,
                        )
                    )

            sources = None
            if source_location is not None:
                balances = BalanceSelector(session)
                sources = {
                    product_id: balances.get_or_zero(from_location_id, product_id)
                    for product_id in dict.fromkeys(line.product_id for line in request.lines)
                }

        verdict = evaluate_multi_transfer(
            request,
            destination,
            sources,
            self._settings.large_transfer_warning_ratio,
            lookup_failures,
        )
        logger.info(
            "transfer_validated",
            extra={
                "is_valid": verdict.is_valid,
                "line_count": len(request.lines),
                "error_count": len(verdict.failures),
                "warning_count": len(verdict.warnings),
            },
        )
        return MultiTransferValidation(
            is_valid=verdict.is_valid,
            errors=tuple(verdict.messages),
            warnings=verdict.warnings,
            blocked_products=verdict.blocked_products,
            source_stock=tuple(sources.values()) if sources is not None else (),
            reasons=tuple(f.reason for f in verdict.failures),
        )

    # ------------------------------------------------------------------
    # Single-balance operations
    # ------------------------------------------------------------------

    def receive_stock(
        self,
        location_id: UUID,
        product_id: UUID,
        qty_full: int,
        qty_empty: int,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> BalanceSnapshot:
        """Book incoming stock at a location."""
        return self._balance_operation(
            "receive_stock", location_id, product_id, actor_id,
            lambda store: store.receive_stock(
                location_id, product_id, qty_full, qty_empty,
                actor_id=actor_id, reason=reason,
            ),
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
    ) -> BalanceSnapshot:
        return self._balance_operation(
            "adjust_stock", location_id, product_id, actor_id,
            lambda store: store.adjust_stock(
                location_id, product_id, qty_full_delta, qty_empty_delta,
                actor_id=actor_id, reason=reason,
            ),
        )

    def reserve_stock(
        self,
        location_id: UUID,
        product_id: UUID,
        quantity: int,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> BalanceSnapshot:
        return self._balance_operation(
            "reserve_stock", location_id, product_id, actor_id,
            lambda store: store.reserve_stock(
                location_id, product_id, quantity, actor_id=actor_id, reason=reason,
            ),
        )

    def release_reservation(
        self,
        location_id: UUID,
        product_id: UUID,
        quantity: int,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> BalanceSnapshot:
        return self._balance_operation(
            "release_reservation", location_id, product_id, actor_id,
            lambda store: store.release_reservation(
                location_id, product_id, quantity, actor_id=actor_id, reason=reason,
            ),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_balance(self, location_id: UUID, product_id: UUID) -> BalanceSnapshot:
        with self._session_factory() as session:
            return BalanceSelector(session).get_or_zero(location_id, product_id)

    def get_movements(self, reference_id: UUID) -> list[MovementRecord]:
        with self._session_factory() as session:
            return MovementSelector(session).by_reference(reference_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _balance_operation(
        self,
        operation: str,
        location_id: UUID,
        product_id: UUID,
        actor_id: UUID,
        apply: Callable[[BalanceStore], InventoryBalance],
    ) -> BalanceSnapshot:
        with LogContext.bind(actor_id=str(actor_id), product_id=str(product_id)):
            with locked_unit_of_work(
                self._session_factory,
                self._lock_manager,
                [(location_id, product_id)],
                self._settings.lock_timeout_seconds,
            ) as session:
                if LocationSelector(session).get(location_id) is None:
                    raise LocationNotFoundError(str(location_id))
                if ProductSelector(session).get(product_id) is None:
                    raise ProductNotFoundError(str(product_id))
                store = BalanceStore(
                    session, self._clock, self._settings.lock_timeout_seconds
                )
                snapshot = snapshot_of(apply(store))
            logger.info(
                "balance_operation_committed",
                extra={"operation": operation, "location_id": str(location_id)},
            )
            return snapshot


def build_transfer_service(
    settings: TransferSettings | None = None,
    *,
    session_factory: sessionmaker[Session] | None = None,
    clock: Clock | None = None,
    lock_manager: BalanceLockManager | None = None,
) -> InventoryTransferService:
    """
    Wire an InventoryTransferService from settings.

    Without an explicit session factory the engine is initialized from
    ``settings.database``.
    """
    settings = settings or get_active_settings()
    if session_factory is None:
        db = settings.database
        init_engine_from_url(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
        )
        session_factory = get_session_factory()
    return InventoryTransferService(
        session_factory,
        settings,
        clock=clock,
        lock_manager=lock_manager,
    )
