"""Bootstrap helpers for seeding the catalog during deploys and tests."""

from .seeding import (
    DEFAULT_PRODUCTS,
    ProductSeedOptions,
    ensure_product,
    seed_catalog,
)

__all__ = [
    "DEFAULT_PRODUCTS",
    "ProductSeedOptions",
    "ensure_product",
    "seed_catalog",
]
