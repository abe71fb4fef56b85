"""Base API client with rate limiting and concurrency control."""

from typing import Any, Dict, Optional

import httpx
import structlog

from ..common.concurrency_limiter import ConcurrencyLimiter
from ..common.config import HTTPConfig
from ..common.http_client import AsyncHTTPClient
from ..common.rate_limiter import RateLimiter

logger = structlog.get_logger(__name__)


class RateLimitedAPIClient(AsyncHTTPClient):
    """
    HTTP client with built-in rate limiting, concurrency control and auth headers.

    Every request waits for a rate-limit token, then holds a concurrency slot
    for the duration of the (retried) request. Static auth headers are merged
    into each request's headers.
    """

    def __init__(
        self,
        http_config: HTTPConfig,
        base_url: str = "",
        rate_limiter: Optional[RateLimiter] = None,
        concurrency_limiter: Optional[ConcurrencyLimiter] = None,
        auth_headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the rate-limited API client.

        Args:
            http_config: HTTP configuration (timeout, retries, etc.)
            base_url: Base URL for all requests
            rate_limiter: Optional rate limiter instance
            concurrency_limiter: Optional concurrency limiter instance
            auth_headers: Optional authentication headers to include in all requests
            transport: Optional custom httpx transport
        """
        super().__init__(http_config, base_url, transport=transport)
        self.rate_limiter = rate_limiter
        self.concurrency_limiter = concurrency_limiter
        self.auth_headers = auth_headers or {}

        self.logger.info(
            "rate_limited_api_client_initialized",
            base_url=base_url,
            has_rate_limiter=rate_limiter is not None,
            has_concurrency_limiter=concurrency_limiter is not None,
            has_auth=bool(self.auth_headers),
        )

    async def _apply_limiters_and_auth(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        if self.auth_headers:
            headers = dict(kwargs.get("headers") or {})
            for key, value in self.auth_headers.items():
                headers.setdefault(key, value)
            kwargs["headers"] = headers

        if self.rate_limiter:
            await self.rate_limiter.acquire()

        if self.concurrency_limiter:
            async with self.concurrency_limiter:
                return await self._make_request_with_retry(method, url, **kwargs)

        return await self._make_request_with_retry(method, url, **kwargs)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """Make a GET request with rate limiting and concurrency control."""
        self.logger.debug("api_request", method="GET", url=str(url))
        return await self._apply_limiters_and_auth("GET", url, **kwargs)
