"""In-memory catalog adapter — product snapshots registered at runtime."""

import json
from pathlib import Path

from ordering.catalog.port import CatalogPort, ProductSnapshot
from ordering.exceptions import NotFound


class InMemoryCatalog(CatalogPort):
    """Catalog backed by a dict, for development, tests and load runs."""

    def __init__(self, products=None):
        self.products: dict[str, ProductSnapshot] = {}
        for product in products or []:
            self.register(product)

    @classmethod
    def from_file(cls, path) -> "InMemoryCatalog":
        """Load products from a JSON list of ``ProductSnapshot`` field dicts."""
        records = json.loads(Path(path).read_text())
        return cls(
            ProductSnapshot(
                product_id=str(record["product_id"]),
                seller_id=record["seller_id"],
                name=record["name"],
                price=float(record["price"]),
                category=record.get("category"),
                image=record.get("image"),
            )
            for record in records
        )

    def register(self, product: ProductSnapshot) -> ProductSnapshot:
        self.products[str(product.product_id)] = product
        return product

    def get_product(self, product_id: str) -> ProductSnapshot:
        try:
            return self.products[str(product_id)]
        except KeyError:
            raise NotFound({"_entity": f"Product `{product_id}` does not exist"}) from None

    def products_owned_by(self, seller_id: str) -> frozenset[str]:
        return frozenset(pid for pid, product in self.products.items() if product.seller_id == seller_id)
