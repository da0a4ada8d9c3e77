"""Catalog registry.

get_catalog() / set_catalog() swap the catalog implementation; the in-memory
FakeCatalog is the default until a real adapter is installed at startup.
"""

from marketplace.catalog.fake_adapter import FakeCatalog
from marketplace.catalog.port import Catalog

_current_catalog: Catalog | None = None


def get_catalog() -> Catalog:
    global _current_catalog
    if _current_catalog is None:
        _current_catalog = FakeCatalog()
    return _current_catalog


def set_catalog(catalog: Catalog) -> None:
    global _current_catalog
    _current_catalog = catalog


def reset_catalog() -> None:
    global _current_catalog
    _current_catalog = None
