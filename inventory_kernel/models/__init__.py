"""Domain models for the inventory kernel."""

from inventory_kernel.models.inventory import InventoryBalance
from inventory_kernel.models.location import (
    Location,
    LocationKind,
    Product,
    ProductStatus,
)
from inventory_kernel.models.stock_movement import (
    TRANSFER_REFERENCE_TYPES,
    MovementType,
    ReferenceType,
    StockMovement,
)

__all__ = [
    "InventoryBalance",
    "Location",
    "LocationKind",
    "Product",
    "ProductStatus",
    "MovementType",
    "ReferenceType",
    "StockMovement",
    "TRANSFER_REFERENCE_TYPES",
]
