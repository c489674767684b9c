"""
Module: inventory_kernel.models.location
Responsibility: ORM persistence for the two directories the transfer engine
    consumes but does not own: stock locations (warehouses and trucks) and
    the product catalog.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code (locations) and sku (products) are unique.
    - kind is fixed at creation; a warehouse never becomes a truck.

Failure modes:
    - IntegrityError on duplicate code or sku.

Audit relevance:
    is_active on a truck gates whether it may receive stock.  Warehouses are
    always usable regardless of the flag.
"""

from enum import Enum

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase


class LocationKind(str, Enum):
    """Where stock can physically sit."""

    WAREHOUSE = "warehouse"
    TRUCK = "truck"


class ProductStatus(str, Enum):
    """Catalog status.  Obsolete products cannot be transferred."""

    ACTIVE = "active"
    OBSOLETE = "obsolete"


class Location(TrackedBase):
    """
    A warehouse or a delivery truck holding stock.

    Guarantees:
        - code is unique (uq_location_code).
        - is_active only restricts trucks; see ``accepts_stock``.
    """

    __tablename__ = "locations"

    __table_args__ = (
        UniqueConstraint("code", name="uq_location_code"),
        Index("idx_location_kind", "kind"),
    )

    # Warehouse code or truck fleet number
    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    kind: Mapped[LocationKind] = mapped_column(String(20), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_truck(self) -> bool:
        return self.kind == LocationKind.TRUCK

    @property
    def accepts_stock(self) -> bool:
        """Warehouses always accept stock; trucks only while active."""
        return not self.is_truck or self.is_active

    def __repr__(self) -> str:
        return f"<Location {self.kind}:{self.code}>"


class Product(TrackedBase):
    """A cylinder product, tracked in full and empty units."""

    __tablename__ = "products"

    __table_args__ = (
        UniqueConstraint("sku", name="uq_product_sku"),
        Index("idx_product_status", "status"),
    )

    sku: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[ProductStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ProductStatus.ACTIVE.value,
    )

    # Nominal gas capacity, e.g. 6, 13, 48 (kg)
    capacity_kg: Mapped[int | None] = mapped_column(nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Product {self.sku}>"
