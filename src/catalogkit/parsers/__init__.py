"""Response models and parsers for the catalog API."""

from .catalog_models import (
    CatalogItem,
    ItemKind,
    ResourceResponse,
    Storefront,
    StorefrontsResponse,
)
from .catalog_parser import CatalogParser

__all__ = [
    "CatalogItem",
    "ItemKind",
    "ResourceResponse",
    "Storefront",
    "StorefrontsResponse",
    "CatalogParser",
]
