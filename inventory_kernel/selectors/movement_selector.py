"""
Module: inventory_kernel.selectors.movement_selector
Responsibility: Read-only queries over the stock movement ledger, including
    the per-balance replay used to reconcile stored quantities.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Results are ordered by (created_at, id) so replays are deterministic.
    - replay_balance() derives quantities from movements only; it never
      reads inventory_balances.

Audit relevance:
    reconcile() compares every stored balance with its replayed ledger.  An
    empty result means the ledger fully explains the balances.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select

from inventory_kernel.models.inventory import InventoryBalance
from inventory_kernel.models.stock_movement import (
    MovementType,
    ReferenceType,
    StockMovement,
)
from inventory_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class MovementRecord:
    """One ledger row."""

    movement_id: UUID
    inventory_id: UUID
    location_id: UUID
    product_id: UUID
    movement_type: str
    qty_full_delta: int
    qty_empty_delta: int
    qty_reserved_delta: int
    reference_type: str
    reference_id: UUID
    reverses_reference_id: UUID | None
    reason: str | None
    actor_id: UUID
    created_at: datetime


@dataclass(frozen=True)
class ReplayedBalance:
    """Net quantities obtained by summing a balance's movements."""

    inventory_id: UUID
    qty_full: int
    qty_empty: int
    qty_reserved: int
    movement_count: int


@dataclass(frozen=True)
class BalanceDrift:
    """A stored balance that disagrees with its replayed ledger."""

    inventory_id: UUID
    location_id: UUID
    product_id: UUID
    stored: tuple[int, int, int]
    replayed: tuple[int, int, int]


class MovementSelector(BaseSelector[StockMovement]):
    """Selector for ledger queries."""

    def _base_query(self):
        return (
            select(StockMovement, InventoryBalance.location_id, InventoryBalance.product_id)
            .join(InventoryBalance, StockMovement.inventory_id == InventoryBalance.id)
            .order_by(StockMovement.created_at, StockMovement.id)
        )

    def _records(self, query) -> list[MovementRecord]:
        return [
            self._to_record(movement, location_id, product_id)
            for movement, location_id, product_id in self.session.execute(query)
        ]

    def by_balance(self, inventory_id: UUID) -> list[MovementRecord]:
        return self._records(
            self._base_query().where(StockMovement.inventory_id == inventory_id)
        )

    def by_location(
        self,
        location_id: UUID,
        product_id: UUID | None = None,
    ) -> list[MovementRecord]:
        query = self._base_query().where(InventoryBalance.location_id == location_id)
        if product_id is not None:
            query = query.where(InventoryBalance.product_id == product_id)
        return self._records(query)

    def by_reference(self, reference_id: UUID) -> list[MovementRecord]:
        return self._records(
            self._base_query().where(StockMovement.reference_id == reference_id)
        )

    def find_reversal_of(self, reference_id: UUID) -> UUID | None:
        """reference_id of the reversal of ``reference_id``, if any."""
        return self.session.scalars(
            select(StockMovement.reference_id)
            .where(StockMovement.reverses_reference_id == reference_id)
            .limit(1)
        ).first()

    def transfer_lines(
        self,
        reference_id: UUID,
    ) -> list[tuple[MovementRecord, MovementRecord]]:
        """
        (out, in) legs of every line of a transfer, paired by product.

        Empty when reference_id is not a transfer.  Lines are returned in
        ledger order of their out legs.
        """
        out_legs: dict[UUID, MovementRecord] = {}
        in_legs: dict[UUID, MovementRecord] = {}
        for record in self.by_reference(reference_id):
            if record.movement_type == MovementType.TRANSFER_OUT.value:
                out_legs[record.product_id] = record
            elif record.movement_type == MovementType.TRANSFER_IN.value:
                in_legs[record.product_id] = record
        return [
            (out_leg, in_legs[product_id])
            for product_id, out_leg in out_legs.items()
            if product_id in in_legs
        ]

    def replay_balance(self, inventory_id: UUID) -> ReplayedBalance:
        full, empty, reserved, count = self.session.execute(
            select(
                func.coalesce(func.sum(StockMovement.qty_full_delta), 0),
                func.coalesce(func.sum(StockMovement.qty_empty_delta), 0),
                func.coalesce(func.sum(StockMovement.qty_reserved_delta), 0),
                func.count(StockMovement.id),
            ).where(StockMovement.inventory_id == inventory_id)
        ).one()
        return ReplayedBalance(
            inventory_id=inventory_id,
            qty_full=int(full),
            qty_empty=int(empty),
            qty_reserved=int(reserved),
            movement_count=int(count),
        )

    def reconcile(self) -> list[BalanceDrift]:
        """Every balance whose stored quantities differ from its ledger."""
        drifts: list[BalanceDrift] = []
        for balance in self.session.scalars(select(InventoryBalance)):
            replayed = self.replay_balance(balance.id)
            stored = (balance.qty_full, balance.qty_empty, balance.qty_reserved)
            derived = (replayed.qty_full, replayed.qty_empty, replayed.qty_reserved)
            if stored != derived:
                drifts.append(
                    BalanceDrift(
                        inventory_id=balance.id,
                        location_id=balance.location_id,
                        product_id=balance.product_id,
                        stored=stored,
                        replayed=derived,
                    )
                )
        return drifts

    def count_by_reference_type(self, reference_type: ReferenceType) -> int:
        return self.session.scalar(
            select(func.count(StockMovement.id)).where(
                StockMovement.reference_type == reference_type.value
            )
        )

    @staticmethod
    def _to_record(
        movement: StockMovement,
        location_id: UUID,
        product_id: UUID,
    ) -> MovementRecord:
        return MovementRecord(
            movement_id=movement.id,
            inventory_id=movement.inventory_id,
            location_id=location_id,
            product_id=product_id,
            movement_type=_plain(movement.movement_type),
            qty_full_delta=movement.qty_full_delta,
            qty_empty_delta=movement.qty_empty_delta,
            qty_reserved_delta=movement.qty_reserved_delta,
            reference_type=_plain(movement.reference_type),
            reference_id=movement.reference_id,
            reverses_reference_id=movement.reverses_reference_id,
            reason=movement.reason,
            actor_id=movement.actor_id,
            created_at=movement.created_at,
        )


def _plain(value) -> str:
    return value.value if hasattr(value, "value") else value
