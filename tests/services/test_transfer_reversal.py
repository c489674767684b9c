"""
Tests for reverse_transfer().

Invariants tested:
- A reversal is a new transfer, linked by reverses_reference_id; the
  original ledger rows are untouched.
- A transfer is reversed at most once.
- The reversal is validated like any transfer: it fails if the stock has
  since left the original destination.
"""

from uuid import uuid4

import pytest

from inventory_kernel.exceptions import (
    InsufficientStockError,
    TransferAlreadyReversedError,
    TransferNotFoundError,
)
from inventory_kernel.models.stock_movement import ReferenceType


@pytest.fixture
def committed(world, transfer_service, test_actor_id):
    """20 full and 5 empty moved A -> B."""
    return transfer_service.transfer_between_warehouses(
        world.warehouse_a, world.warehouse_b, world.product, 20, 5, actor_id=test_actor_id,
    )


class TestReverseTransfer:
    def test_reversal_restores_balances(self, world, committed, transfer_service, balance_of, test_actor_id):
        result = transfer_service.reverse_transfer(committed.reference_id, actor_id=test_actor_id)

        assert result.reference_type == ReferenceType.TRANSFER_REVERSAL.value
        assert result.reverses_reference_id == committed.reference_id
        assert result.reference_id != committed.reference_id

        a = balance_of(world.warehouse_a, world.product)
        b = balance_of(world.warehouse_b, world.product)
        assert (a.qty_full, a.qty_empty, a.qty_reserved) == (100, 50, 10)
        assert (b.qty_full, b.qty_empty) == (0, 0)

    def test_original_rows_untouched(self, committed, transfer_service, movements_of, test_actor_id):
        before = movements_of(committed.reference_id)
        reversal = transfer_service.reverse_transfer(committed.reference_id, actor_id=test_actor_id)

        assert movements_of(committed.reference_id) == before
        legs = movements_of(reversal.reference_id)
        assert len(legs) == 2
        assert {leg.reverses_reference_id for leg in legs} == {committed.reference_id}
        assert all(leg.reason == f"reversal of transfer {committed.reference_id}" for leg in legs)

    def test_second_reversal_rejected(self, committed, transfer_service, movement_count, test_actor_id):
        first = transfer_service.reverse_transfer(committed.reference_id, actor_id=test_actor_id)
        count = movement_count()

        with pytest.raises(TransferAlreadyReversedError) as exc_info:
            transfer_service.reverse_transfer(committed.reference_id, actor_id=test_actor_id)

        assert exc_info.value.reversal_reference_id == str(first.reference_id)
        assert movement_count() == count

    def test_unknown_reference(self, world, transfer_service, test_actor_id):
        with pytest.raises(TransferNotFoundError):
            transfer_service.reverse_transfer(uuid4(), actor_id=test_actor_id)

    def test_receipt_is_not_a_transfer(self, world, transfer_service, movements_of, test_actor_id):
        receipt = next(
            m for m in movements_of(location_id=world.warehouse_a)
            if m.reference_type == ReferenceType.RECEIPT.value
        )
        with pytest.raises(TransferNotFoundError):
            transfer_service.reverse_transfer(receipt.reference_id, actor_id=test_actor_id)

    def test_reversal_fails_when_stock_has_moved_on(
        self, world, committed, transfer_service, balance_of, test_actor_id
    ):
        transfer_service.transfer_warehouse_to_truck(
            world.warehouse_b, world.truck, world.product, 15, 0, actor_id=test_actor_id,
        )

        with pytest.raises(InsufficientStockError):
            transfer_service.reverse_transfer(committed.reference_id, actor_id=test_actor_id)

        assert balance_of(world.warehouse_b, world.product).qty_full == 5

    def test_reversal_of_truck_transfer(self, world, transfer_service, balance_of, test_actor_id):
        loaded = transfer_service.transfer_warehouse_to_truck(
            world.warehouse_a, world.truck, world.product, 12, 0, actor_id=test_actor_id,
        )
        transfer_service.reverse_transfer(loaded.reference_id, actor_id=test_actor_id)
        assert balance_of(world.truck, world.product).qty_full == 0

    def test_reversal_can_itself_be_reversed(self, committed, transfer_service, test_actor_id):
        reversal = transfer_service.reverse_transfer(committed.reference_id, actor_id=test_actor_id)
        redo = transfer_service.reverse_transfer(reversal.reference_id, actor_id=test_actor_id)
        assert redo.reverses_reference_id == reversal.reference_id
        assert redo.qty_full_transferred == 20

    def test_rejection_logged(self, committed, transfer_service, captured_logs, test_actor_id):
        transfer_service.reverse_transfer(committed.reference_id, actor_id=test_actor_id)
        with pytest.raises(TransferAlreadyReversedError):
            transfer_service.reverse_transfer(committed.reference_id, actor_id=test_actor_id)

        rejected = [r for r in captured_logs() if r["message"] == "transfer_reversal_rejected"]
        assert rejected[-1]["code"] == "TRANSFER_ALREADY_REVERSED"
        assert rejected[-1]["reversed_reference_id"] == str(committed.reference_id)
