"""
ORM-Level Immutability Enforcement for the movement ledger.

===============================================================================
WHY THIS EXISTS
===============================================================================

StockMovement rows are the permanent audit trail of every balance change.
Reconciliation replays them to prove that stored balances were reached only
through recorded movements.  A ledger row that can be edited proves nothing,
so movements are append-only: corrections are new rows (a reversal transfer
or an adjustment), never edits.

Balance rows are mutable, but their identity is not: the (location, product)
key of a balance never changes, and a balance that movements reference is
never deleted.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError
         |
    [before_delete event] --> _check_*() --> ImmutabilityViolationError
         |
    [do_orm_execute]      --> bulk UPDATE/DELETE on stock_movements blocked
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | When Immutable            | Why
------------------|---------------------------|-------------------------------
StockMovement     | ALWAYS (from creation)    | Ledger is the audit trail
InventoryBalance  | Key fields always         | Movements point at the row
InventoryBalance  | Delete always             | Referenced by movements

===============================================================================
USAGE
===============================================================================

Registered automatically by ``init_engine_from_url``.  Registration is
idempotent.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm import ORMExecuteState, Session

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_stock_movement_immutability(mapper, connection, target):
    """Prevent any updates to StockMovement records."""
    _blocked(
        "StockMovement",
        str(target.id),
        "UPDATE",
        "Stock movements are append-only and cannot be modified",
    )


def _check_stock_movement_delete(mapper, connection, target):
    """Prevent deletion of StockMovement records."""
    _blocked(
        "StockMovement",
        str(target.id),
        "DELETE",
        "Stock movements are append-only and cannot be deleted",
    )


def _check_balance_key_immutability(mapper, connection, target):
    """Allow quantity changes on a balance but never a change of its key."""
    state = inspect(target)
    for key_field in ("location_id", "product_id"):
        history = state.attrs[key_field].history
        if history.has_changes() and history.deleted:
            _blocked(
                "InventoryBalance",
                str(target.id),
                "UPDATE",
                f"Balance key field '{key_field}' cannot be changed",
            )


def _check_balance_delete(mapper, connection, target):
    """Balances are never deleted; movements reference them."""
    _blocked(
        "InventoryBalance",
        str(target.id),
        "DELETE",
        "Inventory balances cannot be deleted",
    )


def _block_bulk_ledger_writes(orm_execute_state: ORMExecuteState):
    """Block ``session.execute(update(StockMovement))`` style bulk writes."""
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return

    from inventory_kernel.models.stock_movement import StockMovement

    for mapper in orm_execute_state.all_mappers:
        if mapper.class_ is StockMovement:
            operation = "UPDATE" if orm_execute_state.is_update else "DELETE"
            _blocked(
                "StockMovement",
                "*",
                f"BULK {operation}",
                "Stock movements are append-only",
            )


def _listeners():
    from inventory_kernel.models.inventory import InventoryBalance
    from inventory_kernel.models.stock_movement import StockMovement

    return (
        (StockMovement, "before_update", _check_stock_movement_immutability),
        (StockMovement, "before_delete", _check_stock_movement_delete),
        (InventoryBalance, "before_update", _check_balance_key_immutability),
        (InventoryBalance, "before_delete", _check_balance_delete),
        (Session, "do_orm_execute", _block_bulk_ledger_writes),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)

