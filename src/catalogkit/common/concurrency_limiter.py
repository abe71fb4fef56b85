"""Concurrency limiting using asyncio semaphores."""

import asyncio
from typing import Any, Optional

import structlog

logger = structlog.get_logger(__name__)


class ConcurrencyLimiter:
    """
    Limit the number of operations in flight at once.

    Passing ``max_concurrent=None`` gives an unbounded limiter that only keeps
    the in-flight count, so callers can use one code path for both bounded and
    unbounded fan-out.

    Example:
        >>> limiter = ConcurrencyLimiter(max_concurrent=20)
        >>> async with limiter:
        ...     items = await client.fetch_items("us", ItemKind.GENRES)

    Attributes:
        max_concurrent: Maximum number of operations in flight, or None
        peak_active: Highest in-flight count observed
    """

    def __init__(self, max_concurrent: Optional[int]):
        """
        Initialize the concurrency limiter.

        Args:
            max_concurrent: Maximum number of concurrent operations, None for no cap

        Raises:
            ValueError: If max_concurrent is less than 1
        """
        if max_concurrent is not None and max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent) if max_concurrent else None
        self._active_count = 0
        self.peak_active = 0

        logger.debug("concurrency_limiter_initialized", max_concurrent=max_concurrent)

    @property
    def bounded(self) -> bool:
        return self._semaphore is not None

    async def acquire(self) -> None:
        """Wait for a free slot and take it."""
        if self._semaphore is not None:
            await self._semaphore.acquire()
        self._active_count += 1
        self.peak_active = max(self.peak_active, self._active_count)
        logger.debug(
            "concurrency_acquired",
            active=self._active_count,
            max=self.max_concurrent,
        )

    def release(self) -> None:
        """Give a slot back."""
        if self._active_count == 0:
            raise RuntimeError("release() called more times than acquire()")
        self._active_count -= 1
        if self._semaphore is not None:
            self._semaphore.release()
        logger.debug(
            "concurrency_released",
            active=self._active_count,
            max=self.max_concurrent,
        )

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, *args: Any) -> None:
        self.release()

    def get_active_count(self) -> int:
        """Number of operations currently holding a slot."""
        return self._active_count

    def get_available_slots(self) -> Optional[int]:
        """Number of free slots, or None when unbounded."""
        if self.max_concurrent is None:
            return None
        return self.max_concurrent - self._active_count
