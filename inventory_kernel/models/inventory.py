"""
Module: inventory_kernel.models.inventory
Responsibility: ORM persistence for per-(location, product) stock balances,
    the single source of truth for quantities.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced (CHECK constraints, also enforced in the domain layer):
    - qty_full >= 0, qty_empty >= 0, qty_reserved >= 0
    - qty_full >= qty_reserved
    - (location_id, product_id) is unique

Failure modes:
    - IntegrityError on a duplicate key (concurrent first receipt at a
      location; BalanceStore retries under a savepoint).
    - IntegrityError if a write bypassing the services would break a CHECK.

Audit relevance:
    Every change to a balance row is paired with a StockMovement row in the
    same transaction.  Summing a balance's movements reproduces its
    qty_full / qty_empty.
"""

from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString


class InventoryBalance(TrackedBase):
    """
    Stock on hand for one product at one location.

    Guarantees:
        - At most one row per (location_id, product_id).
        - Quantities satisfy the CHECK constraints at every commit.
        - location_id / product_id never change (ORM immutability listener).
    """

    __tablename__ = "inventory_balances"

    __table_args__ = (
        UniqueConstraint("location_id", "product_id", name="uq_balance_location_product"),
        CheckConstraint("qty_full >= 0", name="ck_balance_full_non_negative"),
        CheckConstraint("qty_empty >= 0", name="ck_balance_empty_non_negative"),
        CheckConstraint("qty_reserved >= 0", name="ck_balance_reserved_non_negative"),
        CheckConstraint("qty_full >= qty_reserved", name="ck_balance_reservation_floor"),
        Index("idx_balance_product", "product_id"),
    )

    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=False,
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    qty_full: Mapped[int] = mapped_column(nullable=False, default=0)

    qty_empty: Mapped[int] = mapped_column(nullable=False, default=0)

    # Full units committed to orders but not yet fulfilled
    qty_reserved: Mapped[int] = mapped_column(nullable=False, default=0)

    @property
    def key(self) -> tuple[UUID, UUID]:
        return (self.location_id, self.product_id)

    @property
    def available_full(self) -> int:
        """Full units not held back by reservations."""
        return self.qty_full - self.qty_reserved

    def __repr__(self) -> str:
        return (
            f"<InventoryBalance {self.location_id}/{self.product_id} "
            f"full={self.qty_full} empty={self.qty_empty} reserved={self.qty_reserved}>"
        )
