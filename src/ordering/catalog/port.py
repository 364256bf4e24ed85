"""Catalog port — read-only view of the product catalog.

Checkout snapshots products through this port, and seller ownership of order
lines is decided from ``products_owned_by``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ProductSnapshot:
    product_id: str
    seller_id: str
    name: str
    price: float
    category: str | None = None
    image: str | None = None


class CatalogPort(ABC):
    """Abstract interface for catalog lookups."""

    @abstractmethod
    def get_product(self, product_id: str) -> ProductSnapshot:
        """Return a product snapshot. Raises NotFound for unknown products."""
        ...

    def get_products(self, product_ids) -> dict[str, ProductSnapshot]:
        return {str(pid): self.get_product(str(pid)) for pid in product_ids}

    @abstractmethod
    def products_owned_by(self, seller_id: str) -> frozenset[str]:
        """Identifiers of every product listed by ``seller_id``."""
        ...
