"""
Tests for the per-client request limiter.
"""

import pytest

from tars.limits import RequestRateLimiter, SlidingWindowCounter


class TestSlidingWindowCounter:

    def test_counts_within_window(self):
        counter = SlidingWindowCounter(window_seconds=60)
        counter.add(100)
        counter.add(100)
        counter.add(130)

        assert counter.count(130) == 3
        assert counter.oldest() == 100

    def test_old_buckets_leave_window(self):
        counter = SlidingWindowCounter(window_seconds=60)
        counter.add(100)
        counter.add(130)

        assert counter.count(160) == 1
        assert counter.oldest() == 130


class TestRequestRateLimiter:

    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self, fake_clock):
        limiter = RequestRateLimiter(100, clock=fake_clock)

        results = [await limiter.hit("10.0.0.1") for _ in range(100)]

        assert all(r.allowed for r in results)
        assert results[-1].count == 100
        assert results[-1].limit == 100

    @pytest.mark.asyncio
    async def test_rejects_over_limit(self, fake_clock):
        """The 101st request in a minute is rejected with a retry hint."""
        limiter = RequestRateLimiter(100, clock=fake_clock)
        for _ in range(100):
            await limiter.hit("10.0.0.1")

        fake_clock.advance(20)
        result = await limiter.hit("10.0.0.1")

        assert result.allowed is False
        assert result.count == 100
        assert result.retry_after == 40

    @pytest.mark.asyncio
    async def test_rejected_requests_not_counted(self, fake_clock):
        limiter = RequestRateLimiter(1, clock=fake_clock)
        await limiter.hit("10.0.0.1")
        await limiter.hit("10.0.0.1")
        await limiter.hit("10.0.0.1")

        fake_clock.advance(60)

        assert (await limiter.hit("10.0.0.1")).count == 1

    @pytest.mark.asyncio
    async def test_window_slides(self, fake_clock):
        limiter = RequestRateLimiter(2, clock=fake_clock)
        await limiter.hit("10.0.0.1")
        fake_clock.advance(30)
        await limiter.hit("10.0.0.1")

        assert (await limiter.hit("10.0.0.1")).allowed is False

        fake_clock.advance(30)
        assert (await limiter.hit("10.0.0.1")).allowed is True
        assert (await limiter.hit("10.0.0.1")).allowed is False

    @pytest.mark.asyncio
    async def test_clients_limited_independently(self, fake_clock):
        limiter = RequestRateLimiter(1, clock=fake_clock)

        assert (await limiter.hit("10.0.0.1")).allowed is True
        assert (await limiter.hit("10.0.0.1")).allowed is False
        assert (await limiter.hit("10.0.0.2")).allowed is True

    @pytest.mark.asyncio
    async def test_zero_disables(self, fake_clock):
        limiter = RequestRateLimiter(0, clock=fake_clock)

        results = [await limiter.hit("10.0.0.1") for _ in range(500)]

        assert limiter.enabled is False
        assert all(r.allowed for r in results)

    @pytest.mark.asyncio
    async def test_idle_clients_pruned(self, fake_clock):
        limiter = RequestRateLimiter(5, clock=fake_clock)
        await limiter.hit("10.0.0.1")

        fake_clock.advance(61)
        await limiter.hit("10.0.0.2")

        assert list(limiter._counters) == ["10.0.0.2"]
