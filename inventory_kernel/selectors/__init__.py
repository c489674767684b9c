"""Read-only query selectors."""

from inventory_kernel.selectors.balance_selector import BalanceSelector
from inventory_kernel.selectors.location_selector import (
    LocationSelector,
    ProductInfo,
    ProductSelector,
)
from inventory_kernel.selectors.movement_selector import (
    BalanceDrift,
    MovementRecord,
    MovementSelector,
    ReplayedBalance,
)

__all__ = [
    "BalanceDrift",
    "BalanceSelector",
    "LocationSelector",
    "MovementRecord",
    "MovementSelector",
    "ProductInfo",
    "ProductSelector",
    "ReplayedBalance",
]
