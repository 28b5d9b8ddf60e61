"""
Tests for the TTL cache in front of upstream fetches.

Run with: pytest tests/test_cached_feed.py -v
"""

import asyncio

import pytest

from goldwatch.core.cached_feed import CachedFeed


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class CountingFetch:
    def __init__(self, values, delay=0.0):
        self.values = list(values)
        self.delay = delay
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        value = self.values.pop(0)
        if isinstance(value, Exception):
            raise value
        return value


class TestCachedFeed:

    @pytest.mark.asyncio
    async def test_fresh_value_skips_upstream(self):
        clock = Clock()
        fetch = CountingFetch([2000.0, 2100.0])
        feed = CachedFeed('xau', fetch, ttl_s=30, clock=clock)

        assert await feed.get() == 2000.0
        clock.now += 10
        assert await feed.get() == 2000.0
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_expired_value_refetches(self):
        clock = Clock()
        fetch = CountingFetch([2000.0, 2100.0])
        feed = CachedFeed('xau', fetch, ttl_s=30, clock=clock)

        await feed.get()
        clock.now += 30
        assert not feed.is_fresh()
        assert await feed.get() == 2100.0
        assert fetch.calls == 2

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_value(self):
        clock = Clock()
        fetch = CountingFetch([2000.0, None, RuntimeError('boom')])
        feed = CachedFeed('xau', fetch, ttl_s=30, clock=clock)

        await feed.get()
        clock.now += 31
        assert await feed.get() == 2000.0
        assert await feed.get() == 2000.0
        assert feed.failed_refreshes == 2
        assert feed.peek() == 2000.0

    @pytest.mark.asyncio
    async def test_failed_first_refresh_is_none(self):
        feed = CachedFeed('fx', CountingFetch([None]), ttl_s=60, clock=Clock())
        assert await feed.get() is None
        assert feed.peek() is None
        assert feed.get_status()['age_seconds'] is None

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self):
        fetch = CountingFetch([16250.0], delay=0.05)
        feed = CachedFeed('fx', fetch, ttl_s=60, clock=Clock())

        results = await asyncio.gather(feed.get(), feed.get(), feed.get())
        assert results == [16250.0, 16250.0, 16250.0]
        assert fetch.calls == 1
        assert feed.upstream_calls == 1
