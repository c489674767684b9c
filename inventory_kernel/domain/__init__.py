"""Pure domain layer: value objects, validation and lifecycle.  No I/O."""

from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_kernel.domain.lifecycle import (
    IllegalTransitionError,
    TransferAttempt,
    TransferState,
)
from inventory_kernel.domain.transfer import (
    BalanceSnapshot,
    LocationInfo,
    MultiTransferRequest,
    MultiTransferResult,
    MultiTransferValidation,
    MultiTransferVerdict,
    RejectionReason,
    TransferFailure,
    TransferLine,
    TransferRequest,
    TransferResult,
    TransferValidation,
    TransferVerdict,
)
from inventory_kernel.domain.validator import evaluate_multi_transfer, evaluate_transfer

__all__ = [
    "BalanceSnapshot",
    "Clock",
    "DeterministicClock",
    "IllegalTransitionError",
    "LocationInfo",
    "MultiTransferRequest",
    "MultiTransferResult",
    "MultiTransferValidation",
    "MultiTransferVerdict",
    "RejectionReason",
    "SystemClock",
    "TransferAttempt",
    "TransferFailure",
    "TransferLine",
    "TransferRequest",
    "TransferResult",
    "TransferState",
    "TransferValidation",
    "TransferVerdict",
    "evaluate_multi_transfer",
    "evaluate_transfer",
]
