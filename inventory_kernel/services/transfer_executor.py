"""
TransferExecutor -- one atomic stock transfer per call.

Responsibility:
    Runs a TransferRequest through the full pipeline: shape checks, key
    locks, location/product resolution, row locks, re-validation on the
    locked balances, debit, credit, two ledger rows, commit.  A
    MultiTransferRequest runs the same pipeline over all of its lines in
    one unit of work.  Also reverses a committed transfer by running the
    mirrored request through the same pipeline.

Architecture position:
    Kernel > Services.  Composes the pure validator (domain/validator.py)
    with BalanceStore, MovementLedger and the locked unit of work.  Called
    by the InventoryTransferService facade.

Invariants enforced:
    - Conservation: the source loses exactly what the destination gains.
    - Ledger pairing: exactly two movements per line share the new
      reference_id.
    - Validate under lock: admissibility is decided on balances read after
      both the in-process keys and the row locks are held.
    - Rejection is a no-op: every failure path rolls the session back
      before the keys are released.
    - A transfer is reversed at most once.

Failure modes:
    - TransferRejectedError subclasses for inadmissible requests.
    - LocationNotFoundError / ProductNotFoundError for unknown ids or a
      location of the wrong kind.
    - ConcurrencyConflictError when a lock is not obtained in time.
    - TransferNotFoundError / TransferAlreadyReversedError from reverse().

Audit relevance:
    Every attempt is logged with its reference_id through each state
    change, ending in ``transfer_committed`` or ``transfer_rejected``.
"""

from typing import Callable, Sequence, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.lifecycle import TransferAttempt, TransferState
from inventory_kernel.domain.transfer import (
    LocationInfo,
    MultiTransferRequest,
    MultiTransferResult,
    TransferFailure,
    TransferLine,
    TransferRequest,
    TransferResult,
)
from inventory_kernel.domain.validator import (
    DEFAULT_WARNING_RATIO,
    check_request_shape,
    evaluate_multi_transfer,
    evaluate_transfer,
)
from inventory_kernel.exceptions import (
    InventoryKernelError,
    LocationNotFoundError,
    ProductNotFoundError,
    TransferAlreadyReversedError,
    TransferNotFoundError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.stock_movement import ReferenceType
from inventory_kernel.selectors.balance_selector import snapshot_of
from inventory_kernel.selectors.location_selector import (
    LocationSelector,
    ProductSelector,
)
from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_kernel.services.balance_store import BalanceKey, BalanceStore
from inventory_kernel.services.lock_manager import (
    DEFAULT_LOCK_TIMEOUT_SECONDS,
    BalanceLockManager,
    get_lock_manager,
)
from inventory_kernel.services.unit_of_work import locked_unit_of_work

logger = get_logger("services.transfer_executor")

_R = TypeVar("_R")


class TransferExecutor:
    """
    Executes transfers as single units of work.

    Contract:
        ``execute()`` either commits the whole transfer and returns a
        TransferResult in state COMMITTED, or raises and leaves every
        balance and the ledger untouched.  It never retries internally.
        ``execute_multi()`` holds the same contract for every line of a
        multi-line request taken together.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        lock_manager: BalanceLockManager | None = None,
        clock: Clock | None = None,
        lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        warning_ratio: float = DEFAULT_WARNING_RATIO,
    ):
        self._session_factory = session_factory
        self._lock_manager = lock_manager or get_lock_manager()
        self._clock = clock or SystemClock()
        self._lock_timeout_seconds = lock_timeout_seconds
        self._warning_ratio = warning_ratio

    def execute(
        self,
        request: TransferRequest,
        *,
        actor_id: UUID,
        reason: str | None = None,
        source_kind: str | None = None,
        destination_kind: str | None = None,
        reference_type: ReferenceType = ReferenceType.TRANSFER,
        reverses_reference_id: UUID | None = None,
    ) -> TransferResult:
        """
        Apply ``request`` atomically.

        Args:
            request: What to move, from where to where.
            actor_id: Who is moving it; recorded on both ledger rows.
            reason: Optional free text recorded on both ledger rows.
            source_kind: Required kind of the source location, or None
                for any kind.
            destination_kind: Required kind of the destination location,
                or None for any kind.
            reference_type: Ledger reference type for both rows.
            reverses_reference_id: Set when this transfer undoes another.

        Returns:
            TransferResult with the post-transfer quantities of both ends.
        """
        reference_id = uuid4()
        attempt = TransferAttempt(reference_id)

        with LogContext.bind(
            reference_id=str(reference_id),
            actor_id=str(actor_id),
            product_id=str(request.product_id),
        ):
            logger.info(
                "transfer_requested",
                extra={
                    "source_location_id": str(request.source_location_id),
                    "destination_location_id": str(request.destination_location_id),
                    "qty_full": request.qty_full,
                    "qty_empty": request.qty_empty,
                    "reference_type": reference_type.value,
                },
            )
            result = self._commit(
                attempt,
                check_request_shape(request),
                request.balance_keys(),
                reverses_reference_id,
                lambda session: self._apply_locked(
                    session,
                    attempt,
                    request,
                    reference_id=reference_id,
                    actor_id=actor_id,
                    reason=reason,
                    source_kind=source_kind,
                    destination_kind=destination_kind,
                    reference_type=reference_type,
                    reverses_reference_id=reverses_reference_id,
                ),
            )
            logger.info(
                "transfer_committed",
                extra={
                    "qty_full": result.qty_full_transferred,
                    "qty_empty": result.qty_empty_transferred,
                    "source_remaining_full": result.source_remaining_full,
                    "source_remaining_empty": result.source_remaining_empty,
                    "destination_new_full": result.destination_new_full,
                    "destination_new_empty": result.destination_new_empty,
                },
            )
            return result

    def execute_multi(
        self,
        request: MultiTransferRequest,
        *,
        actor_id: UUID,
        reason: str | None = None,
        source_kind: str | None = None,
        destination_kind: str | None = None,
        reference_type: ReferenceType = ReferenceType.TRANSFER,
        reverses_reference_id: UUID | None = None,
    ) -> MultiTransferResult:
        """
        Apply every line of ``request`` atomically under one reference_id.

        All balance keys of all lines are locked together, in sorted order,
        before any balance is read.  If any line fails a check, nothing is
        written.  Arguments are as for ``execute()``.

        Returns:
            MultiTransferResult with one TransferResult per line, in line
            order.
        """
        reference_id = uuid4()
        attempt = TransferAttempt(reference_id)

        with LogContext.bind(reference_id=str(reference_id), actor_id=str(actor_id)):
            logger.info(
                "transfer_requested",
                extra={
                    "source_location_id": str(request.source_location_id),
                    "destination_location_id": str(request.destination_location_id),
                    "line_count": len(request.lines),
                    "product_ids": [str(line.product_id) for line in request.lines],
                    "reference_type": reference_type.value,
                },
            )
            result = self._commit(
                attempt,
                evaluate_multi_transfer(request, None, None).failures,
                request.balance_keys(),
                reverses_reference_id,
                lambda session: self._apply_locked_multi(
                    session,
                    attempt,
                    request,
                    reference_id=reference_id,
                    actor_id=actor_id,
                    reason=reason,
                    source_kind=source_kind,
                    destination_kind=destination_kind,
                    reference_type=reference_type,
                    reverses_reference_id=reverses_reference_id,
                ),
            )
            logger.info(
                "transfer_committed",
                extra={
                    "line_count": len(result.lines),
                    "qty_full": result.qty_full_transferred,
                    "qty_empty": result.qty_empty_transferred,
                },
            )
            return result

    def reverse(
        self,
        reference_id: UUID,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> TransferResult | MultiTransferResult:
        """
        Move the quantities of a committed transfer back.

        The reversal is a new transfer with its own reference_id, linked to
        the original through reverses_reference_id.  The original ledger
        rows are never modified.  A multi-line transfer is reversed as one
        multi-line transfer covering all of its lines.

        Raises:
            TransferNotFoundError: No committed transfer has reference_id.
            TransferAlreadyReversedError: A reversal already exists.
        """
        with self._session_factory() as session:
            selector = MovementSelector(session)
            lines = selector.transfer_lines(reference_id)
            existing = selector.find_reversal_of(reference_id)

        if not lines:
            logger.warning(
                "transfer_reversal_rejected",
                extra={"reversed_reference_id": str(reference_id), "code": "TRANSFER_NOT_FOUND"},
            )
            raise TransferNotFoundError(str(reference_id))
        if existing is not None:
            logger.warning(
                "transfer_reversal_rejected",
                extra={
                    "reversed_reference_id": str(reference_id),
                    "code": "TRANSFER_ALREADY_REVERSED",
                },
            )
            raise TransferAlreadyReversedError(str(reference_id), str(existing))

        reason = reason or f"reversal of transfer {reference_id}"
        out_leg, in_leg = lines[0]
        if len(lines) == 1:
            request = TransferRequest(
                source_location_id=in_leg.location_id,
                destination_location_id=out_leg.location_id,
                product_id=in_leg.product_id,
                qty_full=in_leg.qty_full_delta,
                qty_empty=in_leg.qty_empty_delta,
            )
            return self.execute(
                request,
                actor_id=actor_id,
                reason=reason,
                reference_type=ReferenceType.TRANSFER_REVERSAL,
                reverses_reference_id=reference_id,
            )

        multi_request = MultiTransferRequest(
            source_location_id=in_leg.location_id,
            destination_location_id=out_leg.location_id,
            lines=tuple(
                TransferLine(line_in.product_id, line_in.qty_full_delta, line_in.qty_empty_delta)
                for _, line_in in lines
            ),
        )
        return self.execute_multi(
            multi_request,
            actor_id=actor_id,
            reason=reason,
            reference_type=ReferenceType.TRANSFER_REVERSAL,
            reverses_reference_id=reference_id,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _commit(
        self,
        attempt: TransferAttempt,
        shape_failures: Sequence[TransferFailure],
        keys: list[BalanceKey],
        reverses_reference_id: UUID | None,
        apply: Callable[[Session], _R],
    ) -> _R:
        """
        Drive ``attempt`` from VALIDATING to COMMITTED around ``apply``.

        ``apply`` runs inside one locked unit of work over ``keys``.  Every
        failure is logged as ``transfer_rejected`` and re-raised; a unique
        violation on a reversal becomes TransferAlreadyReversedError.
        """
        try:
            attempt.advance(TransferState.VALIDATING)
            if shape_failures:
                raise shape_failures[0].to_error()

            attempt.advance(TransferState.LOCKING)
            with locked_unit_of_work(
                self._session_factory,
                self._lock_manager,
                keys,
                self._lock_timeout_seconds,
            ) as session:
                result = apply(session)
        except InventoryKernelError as exc:
            self._reject(attempt, exc)
            raise
        except IntegrityError as exc:
            if reverses_reference_id is None:
                self._reject(attempt, exc)
                raise
            # Another process committed a reversal of the same transfer
            error = TransferAlreadyReversedError(
                str(reverses_reference_id),
                str(self._find_reversal(reverses_reference_id)),
            )
            self._reject(attempt, error)
            raise error from exc
        except Exception as exc:
            self._reject(attempt, exc)
            raise

        attempt.advance(TransferState.COMMITTED)
        return result

    def _apply_locked(
        self,
        session: Session,
        attempt: TransferAttempt,
        request: TransferRequest,
        *,
        reference_id: UUID,
        actor_id: UUID,
        reason: str | None,
        source_kind: str | None,
        destination_kind: str | None,
        reference_type: ReferenceType,
        reverses_reference_id: UUID | None,
    ) -> TransferResult:
        locations = LocationSelector(session)
        self._resolve_location(locations, request.source_location_id, source_kind)
        destination = self._resolve_location(
            locations, request.destination_location_id, destination_kind
        )
        if ProductSelector(session).get_active(request.product_id) is None:
            raise ProductNotFoundError(str(request.product_id))

        if reverses_reference_id is not None:
            existing = MovementSelector(session).find_reversal_of(reverses_reference_id)
            if existing is not None:
                raise TransferAlreadyReversedError(
                    str(reverses_reference_id), str(existing)
                )

        store = BalanceStore(session, self._clock, self._lock_timeout_seconds)
        rows = store.lock_rows(request.balance_keys())
        attempt.advance(TransferState.LOCKED)

        source_row = rows[request.source_key]
        verdict = evaluate_transfer(
            request,
            destination,
            snapshot_of(source_row) if source_row is not None else None,
            self._warning_ratio,
        )
        verdict.raise_if_invalid()

        attempt.advance(TransferState.APPLYING)
        destination_row = rows[request.destination_key] or store.get_or_create_locked(
            request.destination_location_id, request.product_id, actor_id
        )
        store.apply_delta(
            source_row, actor_id, -request.qty_full, -request.qty_empty
        )
        store.apply_delta(
            destination_row, actor_id, request.qty_full, request.qty_empty
        )
        session.flush()

        store.ledger.append_transfer_pair(
            source_row,
            destination_row,
            request.qty_full,
            request.qty_empty,
            reference_type=reference_type,
            reference_id=reference_id,
            actor_id=actor_id,
            reason=reason,
            reverses_reference_id=reverses_reference_id,
        )

        return TransferResult(
            success=True,
            qty_full_transferred=request.qty_full,
            qty_empty_transferred=request.qty_empty,
            reference_id=reference_id,
            source_remaining_full=source_row.qty_full,
            source_remaining_empty=source_row.qty_empty,
            destination_new_full=destination_row.qty_full,
            destination_new_empty=destination_row.qty_empty,
            state=TransferState.COMMITTED.value,
            reference_type=reference_type.value,
            reverses_reference_id=reverses_reference_id,
            warnings=verdict.warnings,
            product_id=request.product_id,
        )

    def _apply_locked_multi(
        self,
        session: Session,
        attempt: TransferAttempt,
        request: MultiTransferRequest,
        *,
        reference_id: UUID,
        actor_id: UUID,
        reason: str | None,
        source_kind: str | None,
        destination_kind: str | None,
        reference_type: ReferenceType,
        reverses_reference_id: UUID | None,
    ) -> MultiTransferResult:
        locations = LocationSelector(session)
        self._resolve_location(locations, request.source_location_id, source_kind)
        destination = self._resolve_location(
            locations, request.destination_location_id, destination_kind
        )
        products = ProductSelector(session)
        for line in request.lines:
            if products.get_active(line.product_id) is None:
                raise ProductNotFoundError(str(line.product_id))

        if reverses_reference_id is not None:
            existing = MovementSelector(session).find_reversal_of(reverses_reference_id)
            if existing is not None:
                raise TransferAlreadyReversedError(
                    str(reverses_reference_id), str(existing)
                )

        store = BalanceStore(session, self._clock, self._lock_timeout_seconds)
        rows = store.lock_rows(request.balance_keys())
        attempt.advance(TransferState.LOCKED)

        sources = {
            line.product_id: snapshot_of(rows[line.source_key])
            for line in request.line_requests()
            if rows[line.source_key] is not None
        }
        verdict = evaluate_multi_transfer(
            request, destination, sources, self._warning_ratio
        )
        verdict.raise_if_invalid()

        attempt.advance(TransferState.APPLYING)
        results = []
        for line in request.line_requests():
            source_row = rows[line.source_key]
            destination_row = rows[line.destination_key] or store.get_or_create_locked(
                line.destination_location_id, line.product_id, actor_id
            )
            store.apply_delta(source_row, actor_id, -line.qty_full, -line.qty_empty)
            store.apply_delta(destination_row, actor_id, line.qty_full, line.qty_empty)
            session.flush()

            store.ledger.append_transfer_pair(
                source_row,
                destination_row,
                line.qty_full,
                line.qty_empty,
                reference_type=reference_type,
                reference_id=reference_id,
                actor_id=actor_id,
                reason=reason,
                reverses_reference_id=reverses_reference_id,
            )
            results.append(
                TransferResult(
                    success=True,
                    qty_full_transferred=line.qty_full,
                    qty_empty_transferred=line.qty_empty,
                    reference_id=reference_id,
                    source_remaining_full=source_row.qty_full,
                    source_remaining_empty=source_row.qty_empty,
                    destination_new_full=destination_row.qty_full,
                    destination_new_empty=destination_row.qty_empty,
                    state=TransferState.COMMITTED.value,
                    reference_type=reference_type.value,
                    reverses_reference_id=reverses_reference_id,
                    product_id=line.product_id,
                )
            )

        return MultiTransferResult(
            success=True,
            reference_id=reference_id,
            lines=tuple(results),
            state=TransferState.COMMITTED.value,
            reference_type=reference_type.value,
            reverses_reference_id=reverses_reference_id,
            warnings=verdict.warnings,
        )

    @staticmethod
    def _resolve_location(
        locations: LocationSelector,
        location_id: UUID,
        kind: str | None,
    ) -> LocationInfo:
        info = (
            locations.get(location_id)
            if kind is None
            else locations.get_of_kind(location_id, kind)
        )
        if info is None:
            raise LocationNotFoundError(str(location_id), kind)
        return info

    def _find_reversal(self, reference_id: UUID) -> UUID | None:
        with self._session_factory() as session:
            return MovementSelector(session).find_reversal_of(reference_id)

    @staticmethod
    def _reject(attempt: TransferAttempt, exc: Exception) -> None:
        from_state = attempt.state
        if not attempt.is_terminal:
            attempt.reject()
        logger.warning(
            "transfer_rejected",
            extra={
                "from_state": from_state.value,
                "code": getattr(exc, "code", type(exc).__name__),
                "retryable": getattr(exc, "retryable", False),
                "detail": str(exc),
            },
        )
