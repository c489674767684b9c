"""
Reversal concurrency tests.

The in-process key locks serialize reversals within one process.  Across
processes the unique constraint on (reverses_reference_id, movement_type,
inventory_id) is what guarantees a single reversal; these tests give each
competitor its own BalanceLockManager so only the database stands between
them.

Invariants tested:
- Two racing reversals of one transfer: exactly one commits.
- A reversal that slipped past both read checks loses on the constraint
  and surfaces as TransferAlreadyReversedError naming the winner.
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from inventory_kernel.exceptions import TransferAlreadyReversedError
from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_kernel.services.lock_manager import BalanceLockManager
from inventory_services.transfer_service import InventoryTransferService


@pytest.fixture
def committed(world, transfer_service, test_actor_id):
    """20 full moved A -> B, with B topped up so a second reversal has stock."""
    result = transfer_service.transfer_between_warehouses(
        world.warehouse_a, world.warehouse_b, world.product, 20, 0, actor_id=test_actor_id,
    )
    transfer_service.receive_stock(
        world.warehouse_b, world.product, 40, 0, actor_id=test_actor_id,
    )
    return result


def _separate_process_service(session_factory, transfer_settings, deterministic_clock):
    return InventoryTransferService(
        session_factory,
        transfer_settings,
        clock=deterministic_clock,
        lock_manager=BalanceLockManager(default_timeout=10.0),
    )


class TestReversalRace:
    def test_two_racing_reversals_exactly_one_wins(
        self,
        committed,
        session_factory,
        transfer_settings,
        deterministic_clock,
        movements_of,
        test_actor_id,
    ):
        services = [
            _separate_process_service(session_factory, transfer_settings, deterministic_clock)
            for _ in range(2)
        ]
        barrier = Barrier(2)

        def attempt(service):
            barrier.wait(5)
            try:
                return service.reverse_transfer(committed.reference_id, actor_id=test_actor_id)
            except TransferAlreadyReversedError as exc:
                return exc

        with ThreadPoolExecutor(max_workers=2) as pool:
            outcomes = [f.result(timeout=60) for f in [pool.submit(attempt, s) for s in services]]

        losers = [o for o in outcomes if isinstance(o, TransferAlreadyReversedError)]
        winners = [o for o in outcomes if not isinstance(o, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert losers[0].reversal_reference_id == str(winners[0].reference_id)

        with session_factory() as sess:
            reversal = MovementSelector(sess).find_reversal_of(committed.reference_id)
        assert reversal == winners[0].reference_id
        assert len(movements_of(reversal)) == 2

    def test_constraint_catches_reversal_missed_by_reads(
        self,
        world,
        committed,
        transfer_service,
        balance_of,
        movement_count,
        monkeypatch,
        test_actor_id,
    ):
        first = transfer_service.reverse_transfer(committed.reference_id, actor_id=test_actor_id)
        before_a = balance_of(world.warehouse_a, world.product)
        before_b = balance_of(world.warehouse_b, world.product)
        count = movement_count()

        # Both read checks of the next reversal see no reversal yet, as a
        # competitor in another process would before the winner commits.
        stale_reads = iter([True, True])

        class StaleMovementSelector(MovementSelector):
            def find_reversal_of(self, reference_id):
                if next(stale_reads, False):
                    return None
                return super().find_reversal_of(reference_id)

        monkeypatch.setattr(
            "inventory_kernel.services.transfer_executor.MovementSelector",
            StaleMovementSelector,
        )

        with pytest.raises(TransferAlreadyReversedError) as exc_info:
            transfer_service.reverse_transfer(committed.reference_id, actor_id=test_actor_id)

        assert exc_info.value.reversal_reference_id == str(first.reference_id)
        assert movement_count() == count
        assert balance_of(world.warehouse_a, world.product) == before_a
        assert balance_of(world.warehouse_b, world.product) == before_b
