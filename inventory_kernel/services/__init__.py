"""Kernel write services."""

from inventory_kernel.services.balance_store import BalanceStore
from inventory_kernel.services.lock_manager import BalanceLockManager, get_lock_manager
from inventory_kernel.services.movement_ledger import MovementLedger
from inventory_kernel.services.transfer_executor import TransferExecutor
from inventory_kernel.services.unit_of_work import locked_unit_of_work

__all__ = [
    "BalanceLockManager",
    "BalanceStore",
    "MovementLedger",
    "TransferExecutor",
    "get_lock_manager",
    "locked_unit_of_work",
]
