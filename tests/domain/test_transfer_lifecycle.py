"""
Tests for the transfer attempt state machine
(``inventory_kernel.domain.lifecycle``).

Invariants tested:
- ALLOWED_TRANSITIONS defines the only valid transitions.
- COMMITTED and REJECTED are terminal.
- Illegal transitions raise instead of silently moving.
"""

from uuid import uuid4

import pytest

from inventory_kernel.domain.lifecycle import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATES,
    IllegalTransitionError,
    TransferAttempt,
    TransferState,
    validate_transition,
)


class TestTransitionTable:
    def test_every_state_has_an_entry(self):
        assert set(ALLOWED_TRANSITIONS) == set(TransferState)

    def test_terminal_states_have_no_outgoing_edges(self):
        for state in TERMINAL_STATES:
            assert ALLOWED_TRANSITIONS[state] == frozenset()

    @pytest.mark.parametrize(
        "current,target",
        [
            (TransferState.REQUESTED, TransferState.VALIDATING),
            (TransferState.VALIDATING, TransferState.REJECTED),
            (TransferState.VALIDATING, TransferState.LOCKING),
            (TransferState.LOCKING, TransferState.REJECTED),
            (TransferState.LOCKING, TransferState.LOCKED),
            (TransferState.LOCKED, TransferState.REJECTED),
            (TransferState.LOCKED, TransferState.APPLYING),
            (TransferState.APPLYING, TransferState.COMMITTED),
            (TransferState.APPLYING, TransferState.REJECTED),
        ],
    )
    def test_allowed(self, current, target):
        assert validate_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (TransferState.REQUESTED, TransferState.COMMITTED),
            (TransferState.VALIDATING, TransferState.APPLYING),
            (TransferState.LOCKING, TransferState.COMMITTED),
            (TransferState.COMMITTED, TransferState.REJECTED),
            (TransferState.REJECTED, TransferState.VALIDATING),
        ],
    )
    def test_forbidden(self, current, target):
        assert not validate_transition(current, target)


class TestTransferAttempt:
    def test_happy_path_history(self):
        attempt = TransferAttempt(uuid4())
        for state in (
            TransferState.VALIDATING,
            TransferState.LOCKING,
            TransferState.LOCKED,
            TransferState.APPLYING,
            TransferState.COMMITTED,
        ):
            attempt.advance(state)

        assert attempt.is_terminal
        assert attempt.history[0] == TransferState.REQUESTED
        assert attempt.history[-1] == TransferState.COMMITTED

    def test_reject_after_lock_timeout(self):
        attempt = TransferAttempt(uuid4())
        attempt.advance(TransferState.VALIDATING)
        attempt.advance(TransferState.LOCKING)
        attempt.reject()
        assert attempt.state == TransferState.REJECTED

    def test_illegal_transition_raises(self):
        attempt = TransferAttempt(uuid4())
        with pytest.raises(IllegalTransitionError) as exc_info:
            attempt.advance(TransferState.APPLYING)
        assert exc_info.value.current == TransferState.REQUESTED
        assert attempt.state == TransferState.REQUESTED

    def test_no_transition_out_of_committed(self):
        attempt = TransferAttempt(uuid4())
        for state in (
            TransferState.VALIDATING,
            TransferState.LOCKING,
            TransferState.LOCKED,
            TransferState.APPLYING,
            TransferState.COMMITTED,
        ):
            attempt.advance(state)
        with pytest.raises(IllegalTransitionError):
            attempt.reject()

    def test_transitions_are_logged(self, captured_logs):
        reference_id = uuid4()
        attempt = TransferAttempt(reference_id)
        attempt.advance(TransferState.VALIDATING)
        attempt.reject()

        changes = [r for r in captured_logs() if r["message"] == "transfer_state_changed"]
        assert [(r["from_state"], r["to_state"]) for r in changes] == [
            ("requested", "validating"),
            ("validating", "rejected"),
        ]
        assert changes[0]["reference_id"] == str(reference_id)
