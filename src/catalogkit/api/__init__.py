"""API interaction layer for catalogkit.

Clients here add rate limiting, concurrency control and error mapping on top
of the shared async HTTP client.
"""

from .base_client import RateLimitedAPIClient
from .catalog_client import CatalogClient, build_request_url

__all__ = [
    "RateLimitedAPIClient",
    "CatalogClient",
    "build_request_url",
]
