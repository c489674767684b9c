"""
Module: inventory_kernel.selectors.location_selector
Responsibility: Read-only lookups over the location directory and the
    product catalog.  These are the collaborators the transfer engine
    consumes; it never writes to either table.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.transfer import LocationInfo
from inventory_kernel.models.location import Location, Product, ProductStatus
from inventory_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class ProductInfo:
    """Catalog facts for one product."""

    product_id: UUID
    sku: str
    name: str
    status: str

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE.value


class LocationSelector(BaseSelector[Location]):
    """Location lookups returning LocationInfo."""

    def get(self, location_id: UUID) -> LocationInfo | None:
        location = self.session.get(Location, location_id)
        if location is None:
            return None
        return self._to_info(location)

    def get_of_kind(self, location_id: UUID, kind: str) -> LocationInfo | None:
        """Location only if it exists and is of ``kind``."""
        info = self.get(location_id)
        if info is None or info.kind != kind:
            return None
        return info

    def list_by_kind(self, kind: str, active_only: bool = False) -> list[LocationInfo]:
        query = select(Location).where(Location.kind == kind)
        if active_only:
            query = query.where(Location.is_active.is_(True))
        query = query.order_by(Location.code)
        return [self._to_info(loc) for loc in self.session.scalars(query)]

    @staticmethod
    def _to_info(location: Location) -> LocationInfo:
        kind = location.kind
        return LocationInfo(
            location_id=location.id,
            kind=kind.value if hasattr(kind, "value") else kind,
            is_active=location.is_active,
        )


class ProductSelector(BaseSelector[Product]):
    """Product catalog lookups."""

    def get(self, product_id: UUID) -> ProductInfo | None:
        product = self.session.get(Product, product_id)
        if product is None:
            return None
        status = product.status
        return ProductInfo(
            product_id=product.id,
            sku=product.sku,
            name=product.name,
            status=status.value if hasattr(status, "value") else status,
        )

    def get_active(self, product_id: UUID) -> ProductInfo | None:
        """Product only if it exists and is not obsolete."""
        info = self.get(product_id)
        if info is None or not info.is_active:
            return None
        return info
