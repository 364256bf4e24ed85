"""Catalog adapter factory.

Provides get_catalog() / set_catalog(). Defaults to an InMemoryCatalog,
seeded from the JSON file named by ``CATALOG_FILE`` when it is set;
deployments register a catalog backed by the product service.
"""

import os

from ordering.catalog.memory_adapter import InMemoryCatalog
from ordering.catalog.port import CatalogPort

_current_catalog: CatalogPort | None = None


def _build_from_env() -> CatalogPort:
    path = os.getenv("CATALOG_FILE")
    if path:
        return InMemoryCatalog.from_file(path)
    return InMemoryCatalog()


def get_catalog() -> CatalogPort:
    global _current_catalog
    if _current_catalog is None:
        _current_catalog = _build_from_env()
    return _current_catalog


def set_catalog(catalog: CatalogPort) -> None:
    """Override the active catalog (useful for tests)."""
    global _current_catalog
    _current_catalog = catalog


def reset_catalog() -> None:
    global _current_catalog
    _current_catalog = None
