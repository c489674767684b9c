"""
inventory_services -- Package init and public API.

Responsibility:
    Composes the inventory kernel with runtime settings.  This is the
    canonical import surface for callers of the transfer engine.

Architecture position:
    Dependency direction (enforced by tests/architecture/test_kernel_boundary.py):
        inventory_services/ -> inventory_kernel/  (allowed)
        inventory_services/ -> inventory_config/  (allowed)
        inventory_kernel/   -> inventory_services/ (FORBIDDEN)
"""

from inventory_services.transfer_service import (
    InventoryTransferService,
    build_transfer_service,
)

__all__ = [
    "InventoryTransferService",
    "build_transfer_service",
]
