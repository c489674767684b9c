"""
MovementLedger -- append-only writer for stock movements.

Responsibility:
    Creates StockMovement rows.  It never updates or deletes them; the ORM
    immutability listeners reject any attempt.

Architecture position:
    Kernel > Services.  Flush-only: rows become visible when the enclosing
    unit of work commits, together with the balance change they record.

Invariants enforced:
    - append_transfer_pair() writes exactly two rows sharing reference_id,
      with mirrored deltas: negative on the source, positive on the
      destination.
"""

from uuid import UUID

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.inventory import InventoryBalance
from inventory_kernel.models.stock_movement import (
    MovementType,
    ReferenceType,
    StockMovement,
)
from inventory_kernel.services.base import BaseService

logger = get_logger("services.movement_ledger")


class MovementLedger(BaseService[StockMovement]):
    """Append-only writer for the stock movement ledger."""

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def append(
        self,
        balance: InventoryBalance,
        movement_type: MovementType,
        reference_type: ReferenceType,
        reference_id: UUID,
        actor_id: UUID,
        qty_full_delta: int = 0,
        qty_empty_delta: int = 0,
        qty_reserved_delta: int = 0,
        reason: str | None = None,
        reverses_reference_id: UUID | None = None,
    ) -> StockMovement:
        movement = StockMovement(
            inventory_id=balance.id,
            movement_type=movement_type.value,
            qty_full_delta=qty_full_delta,
            qty_empty_delta=qty_empty_delta,
            qty_reserved_delta=qty_reserved_delta,
            reference_type=reference_type.value,
            reference_id=reference_id,
            reverses_reference_id=reverses_reference_id,
            reason=reason,
            actor_id=actor_id,
            created_at=self._clock.now(),
        )
        self.session.add(movement)
        self.session.flush()
        logger.debug(
            "movement_appended",
            extra={
                "movement_id": str(movement.id),
                "inventory_id": str(balance.id),
                "movement_type": movement_type.value,
                "qty_full_delta": qty_full_delta,
                "qty_empty_delta": qty_empty_delta,
                "qty_reserved_delta": qty_reserved_delta,
            },
        )
        return movement

    def append_transfer_pair(
        self,
        source: InventoryBalance,
        destination: InventoryBalance,
        qty_full: int,
        qty_empty: int,
        reference_type: ReferenceType,
        reference_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
        reverses_reference_id: UUID | None = None,
    ) -> tuple[StockMovement, StockMovement]:
        """Write the out-leg and in-leg of one transfer."""
        out_leg = self.append(
            source,
            MovementType.TRANSFER_OUT,
            reference_type,
            reference_id,
            actor_id,
            qty_full_delta=-qty_full,
            qty_empty_delta=-qty_empty,
            reason=reason,
            reverses_reference_id=reverses_reference_id,
        )
        in_leg = self.append(
            destination,
            MovementType.TRANSFER_IN,
            reference_type,
            reference_id,
            actor_id,
            qty_full_delta=qty_full,
            qty_empty_delta=qty_empty,
            reason=reason,
            reverses_reference_id=reverses_reference_id,
        )
        return out_leg, in_leg
