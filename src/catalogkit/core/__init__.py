"""Core error taxonomy for catalogkit."""

from .exceptions import (
    AggregationTimeoutError,
    CatalogError,
    ConfigError,
    DecodeError,
    NotFoundError,
    StorefrontError,
    TransportError,
)

__all__ = [
    "AggregationTimeoutError",
    "CatalogError",
    "ConfigError",
    "DecodeError",
    "NotFoundError",
    "StorefrontError",
    "TransportError",
]
