"""
Multi-line transfers through InventoryTransferService.

Warehouse A starts with the world product at 100/50/10 and a second
product (CYL-45) at 30 full, 20 empty, nothing reserved.

Invariants tested:
- All or nothing: one inadmissible line leaves every balance and the
  ledger unchanged.
- Ledger pairing: two movements per line, all sharing one reference_id.
- Conservation per product across the whole transfer.
- A multi-line transfer is reversed as a whole, at most once.
- ``validate_multi_transfer`` reports every blocked line and never writes.
"""

from uuid import uuid4

import pytest

from inventory_kernel.domain.transfer import (
    MultiTransferResult,
    RejectionReason,
    TransferLine,
)
from inventory_kernel.exceptions import (
    DuplicateProductLineError,
    EmptyTransferError,
    InactiveDestinationError,
    InsufficientStockError,
    LocationNotFoundError,
    ProductNotFoundError,
    TransferAlreadyReversedError,
)
from inventory_kernel.models.location import Product, ProductStatus
from inventory_kernel.models.stock_movement import MovementType, ReferenceType
from inventory_kernel.selectors.movement_selector import MovementSelector


@pytest.fixture
def second_product(world, session_factory, transfer_service, test_actor_id):
    with session_factory() as sess:
        product = Product(
            sku="CYL-45",
            name="LPG cylinder CYL-45",
            status=ProductStatus.ACTIVE.value,
            capacity_kg=45,
            created_by_id=test_actor_id,
        )
        sess.add(product)
        sess.flush()
        product_id = product.id
        sess.commit()

    transfer_service.receive_stock(
        world.warehouse_a, product_id, 30, 20, actor_id=test_actor_id,
    )
    return product_id


def _quantities(snapshot):
    return (snapshot.qty_full, snapshot.qty_empty, snapshot.qty_reserved)


class TestCommit:
    def test_all_lines_commit_under_one_reference(
        self, world, second_product, transfer_service, balance_of, movements_of, test_actor_id
    ):
        result = transfer_service.transfer_lines_between_warehouses(
            world.warehouse_a,
            world.warehouse_b,
            [TransferLine(world.product, 20, 5), TransferLine(second_product, 10, 0)],
            actor_id=test_actor_id,
        )

        assert isinstance(result, MultiTransferResult)
        assert result.success is True
        assert result.reference_type == ReferenceType.TRANSFER.value
        assert [line.product_id for line in result.lines] == [world.product, second_product]
        assert {line.reference_id for line in result.lines} == {result.reference_id}
        assert result.qty_full_transferred == 30
        assert result.qty_empty_transferred == 5

        assert _quantities(balance_of(world.warehouse_a, world.product)) == (80, 45, 10)
        assert _quantities(balance_of(world.warehouse_b, world.product)) == (20, 5, 0)
        assert _quantities(balance_of(world.warehouse_a, second_product)) == (20, 20, 0)
        assert _quantities(balance_of(world.warehouse_b, second_product)) == (10, 0, 0)

        movements = movements_of(result.reference_id)
        assert len(movements) == 4
        assert sorted(m.movement_type for m in movements) == sorted(
            [MovementType.TRANSFER_OUT.value, MovementType.TRANSFER_IN.value] * 2
        )

    def test_conservation_per_product(
        self, world, second_product, transfer_service, movements_of, test_actor_id
    ):
        result = transfer_service.transfer_lines_between_warehouses(
            world.warehouse_a,
            world.warehouse_b,
            [TransferLine(world.product, 7, 3), TransferLine(second_product, 0, 20)],
            actor_id=test_actor_id,
        )

        for product_id in (world.product, second_product):
            legs = [m for m in movements_of(result.reference_id) if m.product_id == product_id]
            assert len(legs) == 2
            assert sum(m.qty_full_delta for m in legs) == 0
            assert sum(m.qty_empty_delta for m in legs) == 0

    def test_ledger_still_reconciles(
        self, world, second_product, transfer_service, session_factory, test_actor_id
    ):
        transfer_service.transfer_lines_between_warehouses(
            world.warehouse_a,
            world.warehouse_b,
            [TransferLine(world.product, 1, 1), TransferLine(second_product, 1, 1)],
            actor_id=test_actor_id,
        )
        with session_factory() as sess:
            assert MovementSelector(sess).reconcile() == []

    def test_truck_round_trip(
        self, world, second_product, transfer_service, balance_of, movements_of, test_actor_id
    ):
        lines = [TransferLine(world.product, 15, 0), TransferLine(second_product, 5, 0)]
        loaded = transfer_service.transfer_lines_warehouse_to_truck(
            world.warehouse_a, world.truck, lines, actor_id=test_actor_id,
        )
        unloaded = transfer_service.transfer_lines_truck_to_warehouse(
            world.truck, world.warehouse_a, lines, actor_id=test_actor_id,
        )

        assert loaded.reference_type == ReferenceType.TRUCK_TRANSFER.value
        assert unloaded.reference_type == ReferenceType.TRUCK_TRANSFER.value
        assert _quantities(balance_of(world.truck, world.product)) == (0, 0, 0)
        assert _quantities(balance_of(world.warehouse_a, second_product)) == (30, 20, 0)
        assert len(movements_of(unloaded.reference_id)) == 4

    def test_committed_log_counts_lines(
        self, world, second_product, transfer_service, captured_logs, test_actor_id
    ):
        result = transfer_service.transfer_lines_between_warehouses(
            world.warehouse_a,
            world.warehouse_b,
            [TransferLine(world.product, 2, 0), TransferLine(second_product, 3, 0)],
            actor_id=test_actor_id,
        )
        committed = [r for r in captured_logs() if r["message"] == "transfer_committed"]
        assert committed[-1]["line_count"] == 2
        assert committed[-1]["qty_full"] == 5
        assert committed[-1]["reference_id"] == str(result.reference_id)


class TestAllOrNothing:
    def test_one_short_line_rejects_the_whole_transfer(
        self, world, second_product, transfer_service, balance_of, movement_count, test_actor_id
    ):
        before = {
            p: balance_of(world.warehouse_a, p) for p in (world.product, second_product)
        }
        count = movement_count()

        with pytest.raises(InsufficientStockError) as exc_info:
            transfer_service.transfer_lines_between_warehouses(
                world.warehouse_a,
                world.warehouse_b,
                [TransferLine(world.product, 20, 0), TransferLine(second_product, 31, 0)],
                actor_id=test_actor_id,
            )

        assert exc_info.value.product_id == str(second_product)
        for product_id, snapshot in before.items():
            assert balance_of(world.warehouse_a, product_id) == snapshot
            assert balance_of(world.warehouse_b, product_id) is None
        assert movement_count() == count

    def test_failure_writing_a_later_line_rolls_back_earlier_lines(
        self, world, second_product, transfer_service, balance_of, movement_count,
        monkeypatch, test_actor_id,
    ):
        from inventory_kernel.services.movement_ledger import MovementLedger

        real_append = MovementLedger.append
        written = []

        def append_then_fail(self, balance, movement_type, *args, **kwargs):
            written.append((balance.product_id, movement_type))
            if len(written) == 3:
                raise RuntimeError("ledger write failed")
            return real_append(self, balance, movement_type, *args, **kwargs)

        monkeypatch.setattr(MovementLedger, "append", append_then_fail)
        before_a = balance_of(world.warehouse_a, world.product)
        count = movement_count()

        with pytest.raises(RuntimeError):
            transfer_service.transfer_lines_between_warehouses(
                world.warehouse_a,
                world.warehouse_b,
                [TransferLine(world.product, 20, 0), TransferLine(second_product, 10, 0)],
                actor_id=test_actor_id,
            )

        assert written[2] == (second_product, MovementType.TRANSFER_OUT)
        assert balance_of(world.warehouse_a, world.product) == before_a
        assert balance_of(world.warehouse_b, world.product) is None
        assert movement_count() == count

    def test_unknown_product_line(
        self, world, transfer_service, balance_of, movement_count, test_actor_id
    ):
        before_a = balance_of(world.warehouse_a, world.product)
        count = movement_count()
        missing = uuid4()

        with pytest.raises(ProductNotFoundError):
            transfer_service.transfer_lines_between_warehouses(
                world.warehouse_a,
                world.warehouse_b,
                [TransferLine(world.product, 1, 0), TransferLine(missing, 1, 0)],
                actor_id=test_actor_id,
            )

        assert balance_of(world.warehouse_a, world.product) == before_a
        assert movement_count() == count

    def test_duplicate_product_rejected_before_locking(
        self, world, transfer_service, captured_logs, movement_count, test_actor_id
    ):
        count = movement_count()

        with pytest.raises(DuplicateProductLineError) as exc_info:
            transfer_service.transfer_lines_between_warehouses(
                world.warehouse_a,
                world.warehouse_b,
                [TransferLine(world.product, 1, 0), TransferLine(world.product, 2, 0)],
                actor_id=test_actor_id,
            )

        assert exc_info.value.product_id == str(world.product)
        assert movement_count() == count
        rejected = [r for r in captured_logs() if r["message"] == "transfer_rejected"]
        assert rejected[-1]["code"] == "DUPLICATE_PRODUCT"
        assert rejected[-1]["from_state"] == "validating"

    def test_no_lines(self, world, transfer_service, test_actor_id):
        with pytest.raises(EmptyTransferError):
            transfer_service.transfer_lines_between_warehouses(
                world.warehouse_a, world.warehouse_b, [], actor_id=test_actor_id,
            )

    def test_inactive_truck(self, world, second_product, transfer_service, test_actor_id):
        with pytest.raises(InactiveDestinationError):
            transfer_service.transfer_lines_warehouse_to_truck(
                world.warehouse_a,
                world.inactive_truck,
                [TransferLine(world.product, 1, 0), TransferLine(second_product, 1, 0)],
                actor_id=test_actor_id,
            )

    def test_location_kinds_checked(self, world, transfer_service, test_actor_id):
        with pytest.raises(LocationNotFoundError):
            transfer_service.transfer_lines_between_warehouses(
                world.warehouse_a,
                world.truck,
                [TransferLine(world.product, 1, 0)],
                actor_id=test_actor_id,
            )


class TestReversal:
    def test_reversal_restores_every_line(
        self, world, second_product, transfer_service, balance_of, movements_of, test_actor_id
    ):
        before = {
            p: balance_of(world.warehouse_a, p) for p in (world.product, second_product)
        }
        original = transfer_service.transfer_lines_between_warehouses(
            world.warehouse_a,
            world.warehouse_b,
            [TransferLine(world.product, 20, 5), TransferLine(second_product, 10, 2)],
            actor_id=test_actor_id,
        )

        reversal = transfer_service.reverse_transfer(
            original.reference_id, actor_id=test_actor_id
        )

        assert isinstance(reversal, MultiTransferResult)
        assert reversal.reference_type == ReferenceType.TRANSFER_REVERSAL.value
        assert reversal.reverses_reference_id == original.reference_id
        for product_id, snapshot in before.items():
            assert _quantities(balance_of(world.warehouse_a, product_id)) == _quantities(snapshot)
            assert _quantities(balance_of(world.warehouse_b, product_id)) == (0, 0, 0)

        legs = movements_of(reversal.reference_id)
        assert len(legs) == 4
        assert {m.reverses_reference_id for m in legs} == {original.reference_id}

    def test_second_reversal_rejected(
        self, world, second_product, transfer_service, movement_count, test_actor_id
    ):
        original = transfer_service.transfer_lines_between_warehouses(
            world.warehouse_a,
            world.warehouse_b,
            [TransferLine(world.product, 5, 0), TransferLine(second_product, 5, 0)],
            actor_id=test_actor_id,
        )
        first = transfer_service.reverse_transfer(original.reference_id, actor_id=test_actor_id)
        count = movement_count()

        with pytest.raises(TransferAlreadyReversedError) as exc_info:
            transfer_service.reverse_transfer(original.reference_id, actor_id=test_actor_id)

        assert exc_info.value.reversal_reference_id == str(first.reference_id)
        assert movement_count() == count

    def test_single_line_request_reverses_as_single_transfer(
        self, world, transfer_service, test_actor_id
    ):
        original = transfer_service.transfer_lines_between_warehouses(
            world.warehouse_a,
            world.warehouse_b,
            [TransferLine(world.product, 5, 0)],
            actor_id=test_actor_id,
        )
        reversal = transfer_service.reverse_transfer(original.reference_id, actor_id=test_actor_id)

        assert not isinstance(reversal, MultiTransferResult)
        assert reversal.product_id == world.product
        assert reversal.reverses_reference_id == original.reference_id


class TestValidateMultiTransfer:
    def test_valid_request(self, world, second_product, transfer_service):
        validation = transfer_service.validate_multi_transfer(
            world.warehouse_a,
            world.warehouse_b,
            [TransferLine(world.product, 20, 0), TransferLine(second_product, 10, 0)],
        )

        assert validation.is_valid
        assert validation.errors == ()
        assert [s.product_id for s in validation.source_stock] == [
            world.product,
            second_product,
        ]

    def test_blocked_lines_reported_without_writing(
        self, world, second_product, transfer_service, movement_count
    ):
        count = movement_count()
        missing = uuid4()

        validation = transfer_service.validate_multi_transfer(
            world.warehouse_a,
            world.warehouse_b,
            [
                TransferLine(world.product, 20, 0),
                TransferLine(second_product, 0, 25),
                TransferLine(missing, 1, 0),
            ],
        )

        assert not validation.is_valid
        assert validation.blocked_products == (missing, second_product)
        assert RejectionReason.PRODUCT_NOT_FOUND in validation.reasons
        assert f"{missing}: product not found or inactive" in validation.errors
        assert (
            f"{second_product}: insufficient empty stock: requested 25, available 20"
            in validation.errors
        )
        assert movement_count() == count

        payload = validation.to_dict()
        assert payload["blocked_products"] == [str(missing), str(second_product)]
        assert payload["source_stock"][str(second_product)]["qty_empty"] == 20

    def test_unknown_source_location(self, world, transfer_service):
        validation = transfer_service.validate_multi_transfer(
            uuid4(), world.warehouse_b, [TransferLine(world.product, 1, 0)]
        )

        assert validation.reasons == (RejectionReason.LOCATION_NOT_FOUND,)
        assert validation.errors == ("source location not found",)
        assert validation.source_stock == ()
