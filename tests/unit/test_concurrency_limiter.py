"""Unit tests for concurrency limiter."""

import asyncio
import pytest

from catalogkit.common.concurrency_limiter import ConcurrencyLimiter


class TestConcurrencyLimiter:
    """Tests for ConcurrencyLimiter class."""

    @pytest.mark.asyncio
    async def test_basic_concurrency_limiting(self):
        """Test basic concurrency limiting."""
        limiter = ConcurrencyLimiter(max_concurrent=2)

        active_count = 0
        max_concurrent_seen = 0

        async def task():
            nonlocal active_count, max_concurrent_seen
            async with limiter:
                active_count += 1
                max_concurrent_seen = max(max_concurrent_seen, active_count)
                await asyncio.sleep(0.05)
                active_count -= 1

        await asyncio.gather(*[task() for _ in range(5)])

        assert max_concurrent_seen == 2
        assert limiter.peak_active == 2

    @pytest.mark.asyncio
    async def test_get_active_count(self):
        """Test getting active operation count."""
        limiter = ConcurrencyLimiter(max_concurrent=3)

        assert limiter.get_active_count() == 0

        async with limiter:
            assert limiter.get_active_count() == 1

            async with limiter:
                assert limiter.get_active_count() == 2

        assert limiter.get_active_count() == 0

    @pytest.mark.asyncio
    async def test_get_available_slots(self):
        """Test getting available concurrency slots."""
        limiter = ConcurrencyLimiter(max_concurrent=5)

        assert limiter.get_available_slots() == 5

        async with limiter:
            assert limiter.get_available_slots() == 4

        assert limiter.get_available_slots() == 5

    @pytest.mark.asyncio
    async def test_unbounded_limiter(self):
        """None means no cap: every task runs at once."""
        limiter = ConcurrencyLimiter(max_concurrent=None)
        started = asyncio.Event()
        active = 0

        async def task():
            nonlocal active
            async with limiter:
                active += 1
                if active == 10:
                    started.set()
                await started.wait()

        await asyncio.wait_for(asyncio.gather(*[task() for _ in range(10)]), timeout=1.0)

        assert not limiter.bounded
        assert limiter.peak_active == 10
        assert limiter.get_available_slots() is None

    @pytest.mark.asyncio
    async def test_release_on_exception(self):
        """Slot is given back when the body raises."""
        limiter = ConcurrencyLimiter(max_concurrent=1)

        with pytest.raises(ValueError):
            async with limiter:
                raise ValueError("boom")

        assert limiter.get_active_count() == 0
        assert limiter.get_available_slots() == 1

    def test_release_without_acquire(self):
        """Unbalanced release is an error."""
        limiter = ConcurrencyLimiter(max_concurrent=2)

        with pytest.raises(RuntimeError):
            limiter.release()

    @pytest.mark.parametrize("value", [0, -1])
    def test_invalid_max_concurrent(self, value):
        """Test that a non-positive limit raises ValueError."""
        with pytest.raises(ValueError, match="at least 1"):
            ConcurrencyLimiter(max_concurrent=value)

    @pytest.mark.asyncio
    async def test_waiters_proceed_after_release(self):
        """A blocked acquirer proceeds once a slot is released."""
        limiter = ConcurrencyLimiter(max_concurrent=1)
        await limiter.acquire()

        waiter = asyncio.create_task(limiter.acquire())
        await asyncio.sleep(0.01)
        assert not waiter.done()

        limiter.release()
        await asyncio.wait_for(waiter, timeout=1.0)

        assert limiter.get_active_count() == 1
        limiter.release()
