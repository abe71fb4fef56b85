"""Async HTTP client with automatic retry logic using httpx and tenacity."""

from typing import Any, Optional

import httpx
import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import HTTPConfig

logger = structlog.get_logger(__name__)

RETRYABLE_NETWORK_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


class AsyncHTTPClient:
    """
    Async HTTP client with connection pooling and automatic retry logic.

    Requests are retried on network errors and on the status codes listed in
    ``HTTPConfig.retry.status_codes`` (408, 429 and 5xx by default) with
    exponential backoff. Other 4xx responses are returned to the caller as-is.

    Example:
        >>> async def main():
        ...     async with AsyncHTTPClient(HTTPConfig(), base_url="https://api.example.com") as client:
        ...         response = await client.get("/storefronts")
        ...         print(response.json())
    """

    def __init__(
        self,
        config: HTTPConfig,
        base_url: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the async HTTP client.

        Args:
            config: HTTPConfig object with client settings
            base_url: Base URL for all requests (optional)
            transport: Custom httpx transport (tests, proxies)
        """
        self.config = config
        self.base_url = base_url
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.logger = logger.bind(component="http_client")

    async def __aenter__(self) -> "AsyncHTTPClient":
        limits = httpx.Limits(
            max_connections=self.config.max_connections,
            max_keepalive_connections=self.config.max_keepalive_connections,
        )
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(float(self.config.timeout)),
            limits=limits,
            follow_redirects=True,
            max_redirects=self.config.max_redirects,
            verify=self.config.verify_ssl,
            transport=self._transport,
        )

        self.logger.info(
            "http_client_initialized",
            base_url=self.base_url,
            timeout=self.config.timeout,
            max_connections=self.config.max_connections,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        if self._client:
            await self._client.aclose()
            self._client = None
            self.logger.info("http_client_closed")

    def _should_retry_status(self, response: httpx.Response) -> bool:
        return response.status_code in self.config.retry.status_codes

    def _log_retry_attempt(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        self.logger.warning(
            "http_retry_attempt",
            attempt=retry_state.attempt_number,
            seconds_since_start=round(retry_state.seconds_since_start, 2),
            error=type(exc).__name__ if exc else None,
        )

    async def _make_request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Make an HTTP request with retry logic.

        Raises:
            httpx.HTTPStatusError: When a retryable status persists after all attempts
            httpx.RequestError: After exhausting retries for network errors
            RuntimeError: If used outside the async context manager
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use async with context manager.")

        def should_retry_http_error(exception: BaseException) -> bool:
            if isinstance(exception, httpx.HTTPStatusError):
                return exception.response.status_code in self.config.retry.status_codes
            return False

        @retry(
            stop=stop_after_attempt(self.config.retry.max_attempts),
            wait=wait_exponential(
                multiplier=self.config.retry.backoff_multiplier,
                min=self.config.retry.min_wait,
                max=self.config.retry.max_wait,
            ),
            retry=(
                retry_if_exception_type(RETRYABLE_NETWORK_EXCEPTIONS)
                | retry_if_exception(should_retry_http_error)
            ),
            before_sleep=self._log_retry_attempt,
            reraise=True,
        )
        async def _request() -> httpx.Response:
            response = await self._client.request(method, url, **kwargs)

            if self._should_retry_status(response):
                self.logger.warning(
                    "http_retryable_status",
                    method=method,
                    url=str(url),
                    status_code=response.status_code,
                )
                response.raise_for_status()

            return response

        return await _request()

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """Make a GET request with automatic retry logic."""
        self.logger.debug("http_request", method="GET", url=str(url))
        return await self._make_request_with_retry("GET", url, **kwargs)
