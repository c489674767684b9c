"""
Module: inventory_kernel.selectors.balance_selector
Responsibility: Read-only access to stored inventory balances.
Architecture position: Kernel > Selectors.

Failure modes:
    - A (location, product) with no balance row yields None from get(); the
      validator treats that as an all-zero snapshot.
"""

from uuid import UUID

from sqlalchemy import func, select

from inventory_kernel.domain.transfer import BalanceSnapshot
from inventory_kernel.models.inventory import InventoryBalance
from inventory_kernel.selectors.base import BaseSelector


def snapshot_of(balance: InventoryBalance) -> BalanceSnapshot:
    """Freeze an ORM balance row into a BalanceSnapshot."""
    return BalanceSnapshot(
        location_id=balance.location_id,
        product_id=balance.product_id,
        qty_full=balance.qty_full,
        qty_empty=balance.qty_empty,
        qty_reserved=balance.qty_reserved,
    )


class BalanceSelector(BaseSelector[InventoryBalance]):
    """Balance lookups.  Never takes row locks."""

    def _find(self, location_id: UUID, product_id: UUID) -> InventoryBalance | None:
        return self.session.scalars(
            select(InventoryBalance).where(
                InventoryBalance.location_id == location_id,
                InventoryBalance.product_id == product_id,
            )
        ).one_or_none()

    def get(self, location_id: UUID, product_id: UUID) -> BalanceSnapshot | None:
        balance = self._find(location_id, product_id)
        return snapshot_of(balance) if balance is not None else None

    def get_or_zero(self, location_id: UUID, product_id: UUID) -> BalanceSnapshot:
        return self.get(location_id, product_id) or BalanceSnapshot.empty(
            location_id, product_id
        )

    def by_location(self, location_id: UUID) -> list[BalanceSnapshot]:
        rows = self.session.scalars(
            select(InventoryBalance)
            .where(InventoryBalance.location_id == location_id)
            .order_by(InventoryBalance.product_id)
        )
        return [snapshot_of(b) for b in rows]

    def product_totals(self, product_id: UUID) -> tuple[int, int]:
        """Total (qty_full, qty_empty) of a product across all locations."""
        full, empty = self.session.execute(
            select(
                func.coalesce(func.sum(InventoryBalance.qty_full), 0),
                func.coalesce(func.sum(InventoryBalance.qty_empty), 0),
            ).where(InventoryBalance.product_id == product_id)
        ).one()
        return int(full), int(empty)
