"""
Transfer attempt lifecycle.

Each execution attempt walks a fixed state machine.  Terminal states are
COMMITTED and REJECTED; no state loops back, so an attempt never retries
internally.

    requested -> validating -> rejected
                            -> locking -> rejected          (lock timeout)
                                       -> locked -> rejected (re-validation)
                                                 -> applying -> committed
                                                             -> rejected
"""

from enum import Enum, unique
from uuid import UUID

from inventory_kernel.logging_config import get_logger

logger = get_logger("domain.lifecycle")


@unique
class TransferState(str, Enum):
    """State of a single transfer attempt."""

    REQUESTED = "requested"
    VALIDATING = "validating"
    REJECTED = "rejected"
    LOCKING = "locking"
    LOCKED = "locked"
    APPLYING = "applying"
    COMMITTED = "committed"


# Allowed state transitions (from -> set of valid next states)
ALLOWED_TRANSITIONS: dict[TransferState, frozenset[TransferState]] = {
    TransferState.REQUESTED: frozenset({TransferState.VALIDATING}),
    TransferState.VALIDATING: frozenset({TransferState.REJECTED, TransferState.LOCKING}),
    TransferState.LOCKING: frozenset({TransferState.LOCKED, TransferState.REJECTED}),
    TransferState.LOCKED: frozenset({TransferState.APPLYING, TransferState.REJECTED}),
    TransferState.APPLYING: frozenset({TransferState.COMMITTED, TransferState.REJECTED}),
    TransferState.COMMITTED: frozenset(),  # Terminal
    TransferState.REJECTED: frozenset(),  # Terminal
}

TERMINAL_STATES = frozenset({TransferState.COMMITTED, TransferState.REJECTED})


class IllegalTransitionError(RuntimeError):
    """A transfer attempt tried to move to a state it cannot reach."""

    def __init__(self, current: TransferState, target: TransferState):
        self.current = current
        self.target = target
        super().__init__(
            f"Illegal transfer state transition: {current.value} -> {target.value}"
        )


def validate_transition(current: TransferState, target: TransferState) -> bool:
    """Check if a state transition is valid."""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class TransferAttempt:
    """
    Mutable tracker for one attempt's position in the lifecycle.

    Every transition is logged as ``transfer_state_changed``.
    """

    def __init__(self, reference_id: UUID):
        self.reference_id = reference_id
        self.state = TransferState.REQUESTED
        self.history: list[TransferState] = [TransferState.REQUESTED]

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, target: TransferState) -> None:
        if not validate_transition(self.state, target):
            raise IllegalTransitionError(self.state, target)
        logger.debug(
            "transfer_state_changed",
            extra={
                "reference_id": str(self.reference_id),
                "from_state": self.state.value,
                "to_state": target.value,
            },
        )
        self.state = target
        self.history.append(target)

    def reject(self) -> None:
        """Move to REJECTED from any non-terminal state that allows it."""
        self.advance(TransferState.REJECTED)
