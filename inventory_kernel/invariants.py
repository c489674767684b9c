"""
Kernel Invariants Contract.

These invariants are structural law for stock.  No setting, caller flag or
configuration file may relax them.

This module declares them explicitly.  Enforcement is distributed across
the transfer validator, TransferExecutor, BalanceStore, the CHECK
constraints on inventory_balances, and the ledger immutability listeners.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    NON_NEGATIVE_BALANCE = "non_negative_balance"
    """qty_full, qty_empty and qty_reserved never drop below zero.  Enforced
    by the validator, BalanceStore and DB check constraints."""

    RESERVATION_FLOOR = "reservation_floor"
    """qty_full never drops below qty_reserved.  Applies to full units
    only."""

    CONSERVATION = "conservation"
    """A transfer never creates or destroys units: the per-product total of
    qty_full and of qty_empty is unchanged by it."""

    LEDGER_PAIRING = "ledger_pairing"
    """Every committed transfer writes exactly two movements per line, all
    sharing one reference_id, with mirrored deltas."""

    LEDGER_IMMUTABILITY = "ledger_immutability"
    """Stock movements are append-only.  Enforced by ORM listeners
    (inventory_kernel.db.immutability)."""

    SERIAL_APPLICATION = "serial_application"
    """Operations on one (location, product) balance apply one at a time.
    Enforced by BalanceLockManager and row locks, taken in sorted key
    order."""

    SINGLE_REVERSAL = "single_reversal"
    """A transfer is reversed at most once.  Enforced by
    uq_movement_single_reversal."""


# All invariants as a frozenset for programmatic checks.
ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "inventory_config",
    "inventory_services",
)
