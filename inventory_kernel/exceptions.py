"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the transfer engine (order fulfillment, manual UI actions, batch
loaders) must react differently to different failures: a short balance is
reported back to the user, a lock timeout is retried, a missing truck is a
data problem.  Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)
  4. Every exception declares whether retrying can change the outcome

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- TransferRejectedError            (deterministic, never retryable)
    |   +-- NegativeQuantityError
    |   +-- EmptyTransferError
    |   +-- SameLocationError
    |   +-- DuplicateProductLineError
    |   +-- InactiveDestinationError
    |   +-- InsufficientStockError
    |   +-- ReservationViolationError
    |
    +-- NotFoundError
    |   +-- LocationNotFoundError
    |   +-- ProductNotFoundError
    |   +-- TransferNotFoundError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError     (retryable)
    |
    +-- ReversalError
    |   +-- TransferAlreadyReversedError
    |
    +-- BalanceInvariantError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                     | When Raised
-------------|--------------------------|-------------------------------------------
Transfer     | NEGATIVE_QUANTITY        | qty_full or qty_empty below zero
             | EMPTY_REQUEST            | Both quantities are zero, or no lines
             | SAME_LOCATION            | Source and destination are the same
             | DUPLICATE_PRODUCT        | A multi-line transfer lists a product twice
             | INACTIVE_DESTINATION     | Destination truck is not active
             | INSUFFICIENT_STOCK       | Source holds fewer units than requested
             | RESERVATION_VIOLATION    | Source would drop below reserved full stock
-------------|--------------------------|-------------------------------------------
Not found    | LOCATION_NOT_FOUND       | Unknown warehouse/truck, or wrong kind
             | PRODUCT_NOT_FOUND        | Unknown or obsolete product
             | TRANSFER_NOT_FOUND       | No committed transfer for a reference id
-------------|--------------------------|-------------------------------------------
Concurrency  | CONCURRENCY_CONFLICT     | Balance lock not acquired in time
-------------|--------------------------|-------------------------------------------
Reversal     | TRANSFER_ALREADY_REVERSED| Transfer already has a reversal
-------------|--------------------------|-------------------------------------------
Balance      | BALANCE_INVARIANT        | Receipt/adjustment/reservation would break
             |                          | a balance invariant
-------------|--------------------------|-------------------------------------------
Immutability | IMMUTABILITY_VIOLATION   | UPDATE/DELETE of a stock movement

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        result = service.transfer_between_warehouses(...)
    except ConcurrencyConflictError:
        schedule_retry()
    except InsufficientStockError as e:
        return {"error": e.code, "unit": e.unit, "available": e.available}
    except TransferRejectedError as e:
        return {"error": e.code, "message": str(e)}
"""


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"
    retryable: bool = False


# Transfer rejections


class TransferRejectedError(InventoryKernelError):
    """
    Base exception for deterministic transfer rejections.

    Retrying the same request against the same balances gives the same
    answer, so these are never retryable.
    """

    code: str = "TRANSFER_REJECTED"


class NegativeQuantityError(TransferRejectedError):
    """A requested quantity is negative."""

    code: str = "NEGATIVE_QUANTITY"

    def __init__(self, qty_full: int, qty_empty: int):
        self.qty_full = qty_full
        self.qty_empty = qty_empty
        super().__init__(
            f"Transfer quantities cannot be negative: full={qty_full}, empty={qty_empty}"
        )


class EmptyTransferError(TransferRejectedError):
    """Both requested quantities are zero."""

    code: str = "EMPTY_REQUEST"

    def __init__(self):
        super().__init__("Transfer quantities cannot both be zero")


class SameLocationError(TransferRejectedError):
    """Source and destination are the same location."""

    code: str = "SAME_LOCATION"

    def __init__(self, location_id: str):
        self.location_id = location_id
        super().__init__(
            f"Source and destination locations must be different: {location_id}"
        )


class DuplicateProductLineError(TransferRejectedError):
    """A multi-line transfer has more than one line for the same product."""

    code: str = "DUPLICATE_PRODUCT"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} appears on more than one transfer line")


class InactiveDestinationError(TransferRejectedError):
    """Destination truck is not active."""

    code: str = "INACTIVE_DESTINATION"

    def __init__(self, location_id: str):
        self.location_id = location_id
        super().__init__(f"Destination truck {location_id} is inactive")


class InsufficientStockError(TransferRejectedError):
    """Source balance holds fewer units than requested."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        unit: str,
        requested: int,
        available: int,
        product_id: str | None = None,
    ):
        self.unit = unit
        self.requested = requested
        self.available = available
        self.product_id = product_id
        message = f"insufficient {unit} stock: requested {requested}, available {available}"
        super().__init__(f"{product_id}: {message}" if product_id else message)


class ReservationViolationError(TransferRejectedError):
    """Transfer would leave less full stock than is reserved."""

    code: str = "RESERVATION_VIOLATION"

    def __init__(self, reserved: int, remaining: int, product_id: str | None = None):
        self.reserved = reserved
        self.remaining = remaining
        self.product_id = product_id
        message = (
            "transfer would leave insufficient stock for reservations: "
            f"reserved {reserved}, remaining after transfer {remaining}"
        )
        super().__init__(f"{product_id}: {message}" if product_id else message)


# Lookup failures


class NotFoundError(InventoryKernelError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"


class LocationNotFoundError(NotFoundError):
    """Location does not exist, or is not of the expected kind."""

    code: str = "LOCATION_NOT_FOUND"

    def __init__(self, location_id: str, expected_kind: str | None = None):
        self.location_id = location_id
        self.expected_kind = expected_kind
        label = expected_kind or "location"
        super().__init__(f"{label.capitalize()} not found: {location_id}")


class ProductNotFoundError(NotFoundError):
    """Product does not exist or is not active."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found or inactive: {product_id}")


class TransferNotFoundError(NotFoundError):
    """No committed transfer exists for the reference id."""

    code: str = "TRANSFER_NOT_FOUND"

    def __init__(self, reference_id: str):
        self.reference_id = reference_id
        super().__init__(f"Transfer not found: {reference_id}")


# Concurrency


class ConcurrencyError(InventoryKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """
    Exclusive access to a balance could not be obtained in time.

    Distinct from a validation failure: the same request may succeed if
    retried once the competing transfer has finished.
    """

    code: str = "CONCURRENCY_CONFLICT"
    retryable: bool = True

    def __init__(self, keys: list[str], timeout_seconds: float):
        self.keys = keys
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Could not lock balances {', '.join(keys)} within {timeout_seconds}s; retry"
        )


# Reversal


class ReversalError(InventoryKernelError):
    """Base exception for transfer reversal errors."""

    code: str = "REVERSAL_ERROR"


class TransferAlreadyReversedError(ReversalError):
    """Transfer already has a committed reversal."""

    code: str = "TRANSFER_ALREADY_REVERSED"

    def __init__(self, reference_id: str, reversal_reference_id: str):
        self.reference_id = reference_id
        self.reversal_reference_id = reversal_reference_id
        super().__init__(
            f"Transfer {reference_id} already reversed by {reversal_reference_id}"
        )


# Balance collaborators


class BalanceInvariantError(InventoryKernelError):
    """A receipt, adjustment or reservation would break a balance invariant."""

    code: str = "BALANCE_INVARIANT"

    def __init__(self, location_id: str, product_id: str, reason: str):
        self.location_id = location_id
        self.product_id = product_id
        self.reason = reason
        super().__init__(
            f"Balance invariant violated for {location_id}/{product_id}: {reason}"
        )


# Immutability


class ImmutabilityError(InventoryKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
