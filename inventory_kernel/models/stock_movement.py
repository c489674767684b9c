"""
Module: inventory_kernel.models.stock_movement
Responsibility: ORM persistence for the append-only movement ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listeners in db/immutability.py).
    - A transfer writes exactly two rows per line sharing reference_id: a
      negative delta on the source balance and the mirrored positive delta
      on the destination balance.
    - A transfer is reversed at most once: (reverses_reference_id,
      movement_type, inventory_id) is unique, and only reversal legs set
      reverses_reference_id.

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE.
    - IntegrityError on a second reversal of the same transfer.

Audit relevance:
    This table IS the audit trail of stock.  Reconciliation replays the
    deltas per balance and compares them with the stored quantities.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UUIDString


class MovementType(str, Enum):
    """Direction/kind of a single ledger row."""

    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"
    RECEIPT = "receipt"
    ADJUSTMENT = "adjustment"
    RESERVATION = "reservation"


class ReferenceType(str, Enum):
    """What business operation a group of ledger rows belongs to."""

    TRANSFER = "transfer"
    TRUCK_TRANSFER = "truck_transfer"
    TRANSFER_REVERSAL = "transfer_reversal"
    RECEIPT = "receipt"
    ADJUSTMENT = "adjustment"
    RESERVATION = "reservation"


TRANSFER_REFERENCE_TYPES = frozenset(
    {
        ReferenceType.TRANSFER.value,
        ReferenceType.TRUCK_TRANSFER.value,
        ReferenceType.TRANSFER_REVERSAL.value,
    }
)


class StockMovement(Base):
    """
    One immutable balance adjustment.

    Reservation rows carry zero full/empty deltas; the reserved quantity
    change is kept in qty_reserved_delta so reservations are auditable too.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint(
            "reverses_reference_id",
            "movement_type",
            "inventory_id",
            name="uq_movement_single_reversal",
        ),
        Index("idx_movement_inventory", "inventory_id"),
        Index("idx_movement_reference", "reference_id"),
        Index("idx_movement_created", "created_at"),
    )

    inventory_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_balances.id"),
        nullable=False,
    )

    movement_type: Mapped[MovementType] = mapped_column(String(30), nullable=False)

    qty_full_delta: Mapped[int] = mapped_column(nullable=False, default=0)

    qty_empty_delta: Mapped[int] = mapped_column(nullable=False, default=0)

    qty_reserved_delta: Mapped[int] = mapped_column(nullable=False, default=0)

    reference_type: Mapped[ReferenceType] = mapped_column(String(30), nullable=False)

    # Groups the rows of one operation (both legs of a transfer)
    reference_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Set only on reversal legs; points at the transfer being undone
    reverses_reference_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<StockMovement {self.movement_type} ref={self.reference_id} "
            f"full={self.qty_full_delta:+d} empty={self.qty_empty_delta:+d}>"
        )
