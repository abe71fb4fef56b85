"""Workflow modules for catalogkit."""

from .aggregator import (
    AggregateResult,
    AggregationState,
    CatalogAggregator,
    ErrorKind,
    FederatedAggregator,
    StorefrontFailure,
    StorefrontOutcome,
)

__all__ = [
    "AggregateResult",
    "AggregationState",
    "CatalogAggregator",
    "ErrorKind",
    "FederatedAggregator",
    "StorefrontFailure",
    "StorefrontOutcome",
]
