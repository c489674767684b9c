"""
Transfer value objects.

Responsibility:
    Immutable inputs and outputs of the transfer pipeline: the request, the
    destination location facts, the source balance snapshot, the verdict
    produced by the validator, and the dry-run / execution results returned
    by the service facade.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  MUST NOT import from models/,
    services/, selectors/, or db/.

Invariants enforced:
    - All DTOs are frozen dataclasses.
    - A TransferVerdict is valid iff it carries no failures.
    - A TransferFailure maps one-to-one onto a typed TransferRejectedError
      (or NotFoundError for dry-run lookups) via ``to_error()``.
"""

from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Any
from uuid import UUID

from inventory_kernel.exceptions import (
    DuplicateProductLineError,
    EmptyTransferError,
    InactiveDestinationError,
    InsufficientStockError,
    InventoryKernelError,
    LocationNotFoundError,
    NegativeQuantityError,
    ProductNotFoundError,
    ReservationViolationError,
    SameLocationError,
)

FULL = "full"
EMPTY = "empty"

WAREHOUSE = "warehouse"
TRUCK = "truck"


@unique
class RejectionReason(str, Enum):
    """Why a transfer was refused.  Listed in evaluation order."""

    NEGATIVE_QUANTITY = "negative_quantity"
    EMPTY_REQUEST = "empty_request"
    SAME_LOCATION = "same_location"
    DUPLICATE_PRODUCT = "duplicate_product"
    LOCATION_NOT_FOUND = "location_not_found"
    PRODUCT_NOT_FOUND = "product_not_found"
    INACTIVE_DESTINATION = "inactive_destination"
    INSUFFICIENT_STOCK = "insufficient_stock"
    RESERVATION_VIOLATION = "reservation_violation"


@dataclass(frozen=True)
class TransferRequest:
    """A request to move stock of one product between two locations."""

    source_location_id: UUID
    destination_location_id: UUID
    product_id: UUID
    qty_full: int
    qty_empty: int

    @property
    def source_key(self) -> tuple[UUID, UUID]:
        return (self.source_location_id, self.product_id)

    @property
    def destination_key(self) -> tuple[UUID, UUID]:
        return (self.destination_location_id, self.product_id)

    def balance_keys(self) -> list[tuple[UUID, UUID]]:
        """Both balance keys in lock-acquisition order."""
        return sorted(
            {self.source_key, self.destination_key},
            key=lambda k: (str(k[0]), str(k[1])),
        )

    def reversed(self) -> "TransferRequest":
        """The request that moves the same quantities back."""
        return TransferRequest(
            source_location_id=self.destination_location_id,
            destination_location_id=self.source_location_id,
            product_id=self.product_id,
            qty_full=self.qty_full,
            qty_empty=self.qty_empty,
        )


@dataclass(frozen=True)
class TransferLine:
    """One product's quantities within a multi-line transfer."""

    product_id: UUID
    qty_full: int
    qty_empty: int


@dataclass(frozen=True)
class MultiTransferRequest:
    """
    Several products moved together between the same two locations.

    All lines commit together or none do, and they share one reference id.
    """

    source_location_id: UUID
    destination_location_id: UUID
    lines: tuple[TransferLine, ...]

    def line_requests(self) -> list[TransferRequest]:
        return [
            TransferRequest(
                self.source_location_id,
                self.destination_location_id,
                line.product_id,
                line.qty_full,
                line.qty_empty,
            )
            for line in self.lines
        ]

    def balance_keys(self) -> list[tuple[UUID, UUID]]:
        """Every balance key of every line, in lock-acquisition order."""
        keys = {key for request in self.line_requests() for key in request.balance_keys()}
        return sorted(keys, key=lambda k: (str(k[0]), str(k[1])))

    def reversed(self) -> "MultiTransferRequest":
        return MultiTransferRequest(
            source_location_id=self.destination_location_id,
            destination_location_id=self.source_location_id,
            lines=self.lines,
        )


@dataclass(frozen=True)
class LocationInfo:
    """What the validator needs to know about a location."""

    location_id: UUID
    kind: str
    is_active: bool = True

    @property
    def is_truck(self) -> bool:
        return self.kind == TRUCK

    @property
    def accepts_stock(self) -> bool:
        return not self.is_truck or self.is_active


@dataclass(frozen=True)
class BalanceSnapshot:
    """Point-in-time copy of one balance row."""

    location_id: UUID
    product_id: UUID
    qty_full: int = 0
    qty_empty: int = 0
    qty_reserved: int = 0

    @classmethod
    def empty(cls, location_id: UUID, product_id: UUID) -> "BalanceSnapshot":
        """Snapshot for a (location, product) with no balance row yet."""
        return cls(location_id=location_id, product_id=product_id)

    @property
    def available_full(self) -> int:
        return self.qty_full - self.qty_reserved

    @property
    def available_empty(self) -> int:
        return self.qty_empty

    def to_dict(self) -> dict[str, int]:
        return {
            "qty_full": self.qty_full,
            "qty_empty": self.qty_empty,
            "qty_reserved": self.qty_reserved,
            "available_full": self.available_full,
            "available_empty": self.available_empty,
        }


@dataclass(frozen=True)
class TransferFailure:
    """
    One failing admissibility check.

    Structured fields are populated only for the reasons that use them.
    """

    reason: RejectionReason
    message: str
    location_id: UUID | None = None
    product_id: UUID | None = None
    expected_kind: str | None = None
    unit: str | None = None
    requested: int | None = None
    available: int | None = None
    reserved: int | None = None
    remaining: int | None = None
    qty_full: int | None = None
    qty_empty: int | None = None

    def to_error(self) -> InventoryKernelError:
        """Build the typed exception for this failure."""
        reason = self.reason
        if reason == RejectionReason.NEGATIVE_QUANTITY:
            return NegativeQuantityError(self.qty_full, self.qty_empty)
        if reason == RejectionReason.EMPTY_REQUEST:
            return EmptyTransferError()
        if reason == RejectionReason.SAME_LOCATION:
            return SameLocationError(str(self.location_id))
        if reason == RejectionReason.DUPLICATE_PRODUCT:
            return DuplicateProductLineError(str(self.product_id))
        if reason == RejectionReason.LOCATION_NOT_FOUND:
            return LocationNotFoundError(str(self.location_id), self.expected_kind)
        if reason == RejectionReason.PRODUCT_NOT_FOUND:
            return ProductNotFoundError(str(self.product_id))
        if reason == RejectionReason.INACTIVE_DESTINATION:
            return InactiveDestinationError(str(self.location_id))
        if reason == RejectionReason.INSUFFICIENT_STOCK:
            return InsufficientStockError(
                self.unit, self.requested, self.available, self._line_product()
            )
        return ReservationViolationError(self.reserved, self.remaining, self._line_product())

    def _line_product(self) -> str | None:
        return str(self.product_id) if self.product_id is not None else None


@dataclass(frozen=True)
class TransferVerdict:
    """
    Result of evaluating a TransferRequest.

    ``failures`` holds every failing check in evaluation order; the first
    one is the primary failure the executor raises.
    """

    request: TransferRequest
    failures: tuple[TransferFailure, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.failures

    @property
    def primary_failure(self) -> TransferFailure | None:
        return self.failures[0] if self.failures else None

    @property
    def qty_full(self) -> int:
        return self.request.qty_full

    @property
    def qty_empty(self) -> int:
        return self.request.qty_empty

    @property
    def messages(self) -> list[str]:
        return [f.message for f in self.failures]

    def raise_if_invalid(self) -> None:
        if self.failures:
            raise self.failures[0].to_error()


@dataclass(frozen=True)
class TransferValidation:
    """Dry-run answer returned by ``validate_transfer``."""

    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    source_stock: BalanceSnapshot | None = None
    reasons: tuple[RejectionReason, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "source_stock": (
                self.source_stock.to_dict() if self.source_stock is not None else None
            ),
        }


@dataclass(frozen=True)
class TransferResult:
    """Outcome of a committed transfer."""

    success: bool
    qty_full_transferred: int
    qty_empty_transferred: int
    reference_id: UUID
    source_remaining_full: int
    source_remaining_empty: int
    destination_new_full: int
    destination_new_empty: int
    state: str
    reference_type: str = "transfer"
    reverses_reference_id: UUID | None = None
    warnings: tuple[str, ...] = field(default=())
    product_id: UUID | None = None


@dataclass(frozen=True)
class MultiTransferVerdict:
    """
    Result of evaluating a MultiTransferRequest.

    Request-level failures come first, then each line's failures in line
    order.  Line failures carry the line's product_id.
    """

    request: MultiTransferRequest
    failures: tuple[TransferFailure, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.failures

    @property
    def primary_failure(self) -> TransferFailure | None:
        return self.failures[0] if self.failures else None

    @property
    def messages(self) -> list[str]:
        return [f.message for f in self.failures]

    @property
    def blocked_products(self) -> tuple[UUID, ...]:
        """Products whose own line failed a check, without repeats."""
        blocked: list[UUID] = []
        for failure in self.failures:
            if failure.product_id is not None and failure.product_id not in blocked:
                blocked.append(failure.product_id)
        return tuple(blocked)

    def raise_if_invalid(self) -> None:
        if self.failures:
            raise self.failures[0].to_error()


@dataclass(frozen=True)
class MultiTransferValidation:
    """Dry-run answer returned by ``validate_multi_transfer``."""

    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    blocked_products: tuple[UUID, ...] = ()
    source_stock: tuple[BalanceSnapshot, ...] = ()
    reasons: tuple[RejectionReason, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "blocked_products": [str(p) for p in self.blocked_products],
            "source_stock": {
                str(stock.product_id): stock.to_dict() for stock in self.source_stock
            },
        }


@dataclass(frozen=True)
class MultiTransferResult:
    """Outcome of a committed multi-line transfer; one TransferResult per line."""

    success: bool
    reference_id: UUID
    lines: tuple[TransferResult, ...]
    state: str
    reference_type: str = "transfer"
    reverses_reference_id: UUID | None = None
    warnings: tuple[str, ...] = field(default=())

    @property
    def qty_full_transferred(self) -> int:
        return sum(line.qty_full_transferred for line in self.lines)

    @property
    def qty_empty_transferred(self) -> int:
        return sum(line.qty_empty_transferred for line in self.lines)
