"""
Ledger immutability tests.

Stock movements are append-only; balances keep their key and are never
deleted.  Enforced by ORM listeners in inventory_kernel.db.immutability.
"""

import pytest
from sqlalchemy import delete, select, update

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.models.inventory import InventoryBalance
from inventory_kernel.models.stock_movement import StockMovement


def _first_movement(session):
    return session.scalars(select(StockMovement).limit(1)).one()


def _balance(session, world):
    return session.scalars(
        select(InventoryBalance).where(InventoryBalance.location_id == world.warehouse_a)
    ).one()


class TestStockMovementImmutability:
    def test_update_blocked(self, world, session):
        movement = _first_movement(session)
        movement.qty_full_delta = 999
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "StockMovement"

    def test_delete_blocked(self, world, session):
        session.delete(_first_movement(session))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_bulk_update_blocked(self, world, session):
        with pytest.raises(ImmutabilityViolationError):
            session.execute(update(StockMovement).values(reason="edited"))

    def test_bulk_delete_blocked(self, world, session):
        with pytest.raises(ImmutabilityViolationError):
            session.execute(delete(StockMovement))

    def test_violation_logged(self, world, session, captured_logs):
        movement = _first_movement(session)
        movement.reason = "edited"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["operation"] == "UPDATE"


class TestBalanceImmutability:
    def test_quantity_change_allowed(self, world, session, test_actor_id):
        balance = _balance(session, world)
        balance.qty_empty = 51
        balance.updated_by_id = test_actor_id
        session.flush()

    def test_key_change_blocked(self, world, session):
        balance = _balance(session, world)
        balance.location_id = world.warehouse_b
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_blocked(self, world, session):
        session.delete(_balance(session, world))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
