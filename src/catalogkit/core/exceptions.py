"""Exceptions for catalog access and aggregation."""

from typing import Optional, Sequence


class CatalogError(Exception):
    """Base exception for catalogkit errors."""

    pass


class ConfigError(CatalogError):
    """Raised when a request cannot be constructed (malformed storefront, kind or URL).

    Indicates a programming or configuration defect; never retried.
    """

    def __init__(self, message: str, value: Optional[str] = None):
        super().__init__(message)
        self.value = value


class TransportError(CatalogError):
    """Raised for network failures and non-2xx responses."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class NotFoundError(TransportError):
    """Raised when a single-item lookup returns no item."""

    def __init__(self, message: str, item_id: Optional[str] = None, url: Optional[str] = None):
        super().__init__(message, status_code=404, url=url)
        self.item_id = item_id


class DecodeError(CatalogError):
    """Raised when a response payload does not match the expected shape."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class StorefrontError(CatalogError):
    """Raised when a single storefront's failure aborts an aggregation.

    The originating exception is available as ``__cause__``.
    """

    def __init__(self, message: str, storefront: str, error_kind: str):
        super().__init__(message)
        self.storefront = storefront
        self.error_kind = error_kind


class AggregationTimeoutError(CatalogError, TimeoutError):
    """Raised when an aggregation exceeds its per-call time bound."""

    def __init__(
        self,
        message: str,
        timeout: float,
        pending_storefronts: Sequence[str] = (),
    ):
        super().__init__(message)
        self.timeout = timeout
        self.pending_storefronts = tuple(pending_storefronts)
