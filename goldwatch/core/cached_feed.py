"""
TTL cache in front of an upstream fetch.

* fresh cache -> no upstream call;
* failed refresh (``None``) -> the previous value is kept and returned;
* one refresh in flight per feed, concurrent callers share it.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from .logger import get_logger

logger = get_logger("cached_feed")

T = TypeVar("T")


class CachedFeed(Generic[T]):
    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[Optional[T]]],
        ttl_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._fetch = fetch
        self.ttl_s = ttl_s
        self._clock = clock

        self._value: Optional[T] = None
        self._fetched_at: Optional[float] = None
        self._inflight: Optional[asyncio.Task] = None

        self.upstream_calls = 0
        self.failed_refreshes = 0

    @property
    def fetched_at(self) -> Optional[float]:
        return self._fetched_at

    def is_fresh(self) -> bool:
        if self._value is None or self._fetched_at is None:
            return False
        return (self._clock() - self._fetched_at) < self.ttl_s

    def peek(self) -> Optional[T]:
        """Cached value, fresh or stale, without touching the upstream."""
        return self._value

    async def get(self) -> Optional[T]:
        if self.is_fresh():
            return self._value
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(self._refresh())
        # shield: a caller timing out must not cancel the shared refresh
        return await asyncio.shield(self._inflight)

    async def _refresh(self) -> Optional[T]:
        self.upstream_calls += 1
        try:
            value = await self._fetch()
        except Exception as exc:
            logger.warning("[%s] refresh raised %s, keeping cached value", self.name, exc)
            value = None

        if value is None:
            self.failed_refreshes += 1
            if self._value is not None:
                logger.debug("[%s] refresh failed, keeping stale value", self.name)
            return self._value

        self._value = value
        self._fetched_at = self._clock()
        return value

    def get_status(self) -> Dict[str, Any]:
        age = None
        if self._fetched_at is not None:
            age = round(self._clock() - self._fetched_at, 1)
        return {
            "name": self.name,
            "fresh": self.is_fresh(),
            "age_seconds": age,
            "ttl_seconds": self.ttl_s,
            "upstream_calls": self.upstream_calls,
            "failed_refreshes": self.failed_refreshes,
        }
