"""TransferValidator -- Pure transfer admissibility checks."""

from collections import Counter
from dataclasses import replace
from typing import Mapping
from uuid import UUID

from inventory_kernel.domain.transfer import (
    EMPTY,
    FULL,
    BalanceSnapshot,
    LocationInfo,
    MultiTransferRequest,
    MultiTransferVerdict,
    RejectionReason,
    TransferFailure,
    TransferRequest,
    TransferVerdict,
)
from inventory_kernel.logging_config import get_logger

logger = get_logger("domain.validator")

DEFAULT_WARNING_RATIO = 0.9
MANY_LINES_WARNING_THRESHOLD = 100


def evaluate_transfer(
    request: TransferRequest,
    destination: LocationInfo | None,
    source: BalanceSnapshot | None,
    warning_ratio: float = DEFAULT_WARNING_RATIO,
) -> TransferVerdict:
    """
    Decide whether ``request`` may be applied against ``source``.

    A missing source balance is evaluated as all zeros.  A missing
    destination skips the destination-active check; lookups are the
    caller's job.  Every failing check is collected in evaluation order.
    """
    if source is None:
        source = BalanceSnapshot.empty(request.source_location_id, request.product_id)

    failures: list[TransferFailure] = []
    failures.extend(check_request_shape(request))
    if destination is not None:
        failures.extend(check_destination(destination))
    failures.extend(check_stock(request, source))
    failures.extend(check_reservation(request, source))

    warnings = large_transfer_warnings(request, source, warning_ratio)

    if failures:
        logger.debug(
            "transfer_evaluated",
            extra={
                "product_id": str(request.product_id),
                "is_valid": False,
                "reasons": [f.reason.value for f in failures],
            },
        )
    return TransferVerdict(
        request=request,
        failures=tuple(failures),
        warnings=tuple(warnings),
    )


def evaluate_dry_run(
    request: TransferRequest,
    destination: LocationInfo | None,
    source: BalanceSnapshot | None,
    lookup_failures: list[TransferFailure],
    warning_ratio: float = DEFAULT_WARNING_RATIO,
) -> TransferVerdict:
    """
    Like evaluate_transfer(), for the read-only validation surface.

    Lookup failures for unknown locations or product are listed right
    after the shape checks.  ``source`` is None only when the source
    location itself is unknown, in which case stock checks are skipped.
    """
    failures = check_request_shape(request) + list(lookup_failures)
    warnings: list[str] = []
    if destination is not None:
        failures.extend(check_destination(destination))
    if source is not None:
        failures.extend(check_stock(request, source))
        failures.extend(check_reservation(request, source))
        warnings = large_transfer_warnings(request, source, warning_ratio)
    return TransferVerdict(
        request=request,
        failures=tuple(failures),
        warnings=tuple(warnings),
    )


def check_request_shape(request: TransferRequest) -> list[TransferFailure]:
    """Checks that need no stored state: sign, non-emptiness, distinct ends."""
    failures = check_quantities(request.qty_full, request.qty_empty)
    failures.extend(
        check_distinct_locations(request.source_location_id, request.destination_location_id)
    )
    return failures


def check_quantities(qty_full: int, qty_empty: int) -> list[TransferFailure]:
    failures: list[TransferFailure] = []

    if qty_full < 0 or qty_empty < 0:
        failures.append(
            TransferFailure(
                reason=RejectionReason.NEGATIVE_QUANTITY,
                message="transfer quantities cannot be negative",
                qty_full=qty_full,
                qty_empty=qty_empty,
            )
        )

    if qty_full == 0 and qty_empty == 0:
        failures.append(
            TransferFailure(
                reason=RejectionReason.EMPTY_REQUEST,
                message="transfer quantities cannot both be zero",
            )
        )

    return failures


def check_distinct_locations(source_id: UUID, destination_id: UUID) -> list[TransferFailure]:
    if source_id != destination_id:
        return []
    return [
        TransferFailure(
            reason=RejectionReason.SAME_LOCATION,
            message="source and destination locations must be different",
            location_id=source_id,
        )
    ]


def check_destination(destination: LocationInfo) -> list[TransferFailure]:
    if destination.accepts_stock:
        return []
    return [
        TransferFailure(
            reason=RejectionReason.INACTIVE_DESTINATION,
            message="destination truck is not active",
            location_id=destination.location_id,
        )
    ]


def check_stock(
    request: TransferRequest,
    source: BalanceSnapshot,
) -> list[TransferFailure]:
    failures: list[TransferFailure] = []
    for unit, requested, on_hand in (
        (FULL, request.qty_full, source.qty_full),
        (EMPTY, request.qty_empty, source.qty_empty),
    ):
        if on_hand < requested:
            failures.append(
                TransferFailure(
                    reason=RejectionReason.INSUFFICIENT_STOCK,
                    message=(
                        f"insufficient {unit} stock: requested {requested}, "
                        f"available {on_hand}"
                    ),
                    unit=unit,
                    requested=requested,
                    available=on_hand,
                )
            )
    return failures


def check_reservation(
    request: TransferRequest,
    source: BalanceSnapshot,
) -> list[TransferFailure]:
    """
    Full units only; empty units carry no reservation floor.

    Evaluated independently of check_stock(): a request larger than the
    full stock on hand reports a negative remainder here as well, even
    when nothing is reserved.
    """
    remaining = source.qty_full - request.qty_full
    if remaining >= source.qty_reserved:
        return []
    return [
        TransferFailure(
            reason=RejectionReason.RESERVATION_VIOLATION,
            message=(
                "transfer would leave insufficient stock for reservations: "
                f"reserved {source.qty_reserved}, remaining after transfer {remaining}"
            ),
            reserved=source.qty_reserved,
            remaining=remaining,
        )
    ]


def large_transfer_warnings(
    request: TransferRequest,
    source: BalanceSnapshot,
    ratio: float = DEFAULT_WARNING_RATIO,
) -> list[str]:
    """Non-blocking notices for transfers that nearly drain the source."""
    warnings: list[str] = []
    pct = f"{ratio:.0%}"
    if request.qty_full > 0 and request.qty_full > source.qty_full * ratio:
        warnings.append(f"transferring more than {pct} of available full stock")
    if request.qty_empty > 0 and request.qty_empty > source.qty_empty * ratio:
        warnings.append(f"transferring more than {pct} of available empty stock")
    return warnings


def not_found_failure(
    reason: RejectionReason,
    entity_id: UUID,
    expected_kind: str | None = None,
    label: str | None = None,
) -> TransferFailure:
    """Failure entry for an unknown location or product in a dry run."""
    if reason == RejectionReason.PRODUCT_NOT_FOUND:
        return TransferFailure(
            reason=reason,
            message="product not found or inactive",
            product_id=entity_id,
        )
    return TransferFailure(
        reason=reason,
        message=f"{label or expected_kind or 'location'} not found",
        location_id=entity_id,
        expected_kind=expected_kind,
    )


# ---------------------------------------------------------------------------
# Multi-line transfers
# ---------------------------------------------------------------------------


def evaluate_multi_transfer(
    request: MultiTransferRequest,
    destination: LocationInfo | None,
    sources: Mapping[UUID, BalanceSnapshot | None] | None,
    warning_ratio: float = DEFAULT_WARNING_RATIO,
    lookup_failures: list[TransferFailure] | None = None,
) -> MultiTransferVerdict:
    """
    Decide whether every line of ``request`` may be applied.

    ``sources`` maps each line's product to its source balance (missing or
    None means all zeros).  Pass None when the source location itself is
    unknown; line stock checks are then skipped.  Failures are ordered:
    request shape, lookups, destination, then each line in line order.
    """
    failures = check_multi_request_shape(request) + list(lookup_failures or ())
    if destination is not None:
        failures.extend(check_destination(destination))

    warnings: list[str] = []
    if len(request.lines) > MANY_LINES_WARNING_THRESHOLD:
        warnings.append(
            f"transfers with over {MANY_LINES_WARNING_THRESHOLD} lines may take longer to process"
        )

    for line_request in request.line_requests():
        product_id = line_request.product_id
        line_failures = check_quantities(line_request.qty_full, line_request.qty_empty)
        if sources is not None:
            source = sources.get(product_id) or BalanceSnapshot.empty(
                request.source_location_id, product_id
            )
            line_failures.extend(check_stock(line_request, source))
            line_failures.extend(check_reservation(line_request, source))
            warnings.extend(
                f"{product_id}: {w}"
                for w in large_transfer_warnings(line_request, source, warning_ratio)
            )
        failures.extend(for_line(f, product_id) for f in line_failures)

    if failures:
        logger.debug(
            "multi_transfer_evaluated",
            extra={
                "is_valid": False,
                "line_count": len(request.lines),
                "reasons": [f.reason.value for f in failures],
            },
        )
    return MultiTransferVerdict(
        request=request,
        failures=tuple(failures),
        warnings=tuple(warnings),
    )


def check_multi_request_shape(request: MultiTransferRequest) -> list[TransferFailure]:
    """Request-level checks: at least one line, distinct ends, one line per product."""
    failures: list[TransferFailure] = []
    if not request.lines:
        failures.append(
            TransferFailure(
                reason=RejectionReason.EMPTY_REQUEST,
                message="transfer must contain at least one line",
            )
        )
    failures.extend(
        check_distinct_locations(request.source_location_id, request.destination_location_id)
    )

    counts = Counter(line.product_id for line in request.lines)
    for product_id, count in counts.items():
        if count > 1:
            failures.append(
                TransferFailure(
                    reason=RejectionReason.DUPLICATE_PRODUCT,
                    message=f"{product_id}: product appears on {count} transfer lines",
                    product_id=product_id,
                )
            )
    return failures


def for_line(failure: TransferFailure, product_id: UUID) -> TransferFailure:
    """Tag a failure with the line's product and prefix its message."""
    return replace(failure, product_id=product_id, message=f"{product_id}: {failure.message}")
