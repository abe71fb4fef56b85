"""Token bucket rate limiting for outbound catalog requests."""

import asyncio
import time
from typing import Any, Optional

import structlog

from .config import RateLimitConfig

logger = structlog.get_logger(__name__)


class RateLimiter:
    """
    Token bucket rate limiter for catalog API requests.

    Tokens refill continuously at ``rate`` per second up to ``burst_size``.
    Each request consumes one token; callers wait when the bucket is empty.
    A storefront fan-out of 150+ requests therefore drains the burst and then
    proceeds at the steady rate instead of tripping 429 responses.

    Example:
        >>> limiter = RateLimiter(requests_per_minute=300, burst_size=20)
        >>> async with limiter:
        ...     response = await client.get("/storefronts")
    """

    def __init__(
        self,
        requests_per_minute: Optional[int] = None,
        requests_per_second: Optional[int] = None,
        requests_per_hour: Optional[int] = None,
        burst_size: Optional[int] = None,
    ):
        """
        Initialize the rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            requests_per_second: Maximum requests per second
            requests_per_hour: Maximum requests per hour
            burst_size: Maximum burst size (defaults to one minute of tokens)

        Raises:
            ValueError: If no rate is given
        """
        rate = 0.0
        if requests_per_second:
            rate += requests_per_second
        if requests_per_minute:
            rate += requests_per_minute / 60.0
        if requests_per_hour:
            rate += requests_per_hour / 3600.0

        if rate == 0:
            raise ValueError(
                "At least one rate limit must be specified "
                "(requests_per_second, requests_per_minute, or requests_per_hour)"
            )

        self.rate = rate
        self.burst_size = burst_size if burst_size is not None else max(1, int(rate * 60))
        self.tokens = float(self.burst_size)
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

        logger.debug(
            "rate_limiter_initialized",
            rate_per_second=round(self.rate, 2),
            burst_size=self.burst_size,
        )

    @classmethod
    def from_config(cls, config: RateLimitConfig) -> Optional["RateLimiter"]:
        """Build a limiter from config, or None when limiting is disabled."""
        if not config.is_active():
            return None
        return cls(
            requests_per_minute=config.requests_per_minute,
            requests_per_second=config.requests_per_second,
            requests_per_hour=config.requests_per_hour,
            burst_size=config.burst_size,
        )

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_update
        self.tokens = min(self.burst_size, self.tokens + elapsed * self.rate)
        self.last_update = now

    async def acquire(self, tokens: int = 1) -> None:
        """
        Wait until ``tokens`` tokens are available and consume them.

        The lock is held while sleeping so waiters are served in arrival order.
        """
        async with self._lock:
            self._refill()
            while self.tokens < tokens:
                wait_time = (tokens - self.tokens) / self.rate
                logger.debug(
                    "rate_limit_waiting",
                    tokens_needed=round(tokens - self.tokens, 2),
                    wait_seconds=round(wait_time, 3),
                )
                await asyncio.sleep(wait_time)
                self._refill()

            self.tokens -= tokens
            logger.debug(
                "rate_limit_acquired",
                tokens_acquired=tokens,
                tokens_remaining=round(self.tokens, 2),
            )

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, *args: Any) -> None:
        pass

    def get_available_tokens(self) -> float:
        """Current number of available tokens (non-blocking, does not consume)."""
        elapsed = time.monotonic() - self.last_update
        return min(self.burst_size, self.tokens + elapsed * self.rate)
