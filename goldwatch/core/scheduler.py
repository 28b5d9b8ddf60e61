"""
Fixed-interval tick scheduler.

Each :class:`Ticker` fires its tick coroutine every ``interval_s`` seconds
without waiting for the previous tick. If the previous tick is still
running when the interval elapses, that interval is skipped (never
queued).
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from .logger import get_logger

logger = get_logger("scheduler")


class Ticker:
    def __init__(
        self,
        name: str,
        interval_s: float,
        tick: Callable[[], Awaitable[Any]],
        *,
        initial_delay_s: Optional[float] = None,
    ) -> None:
        self.name = name
        self.interval_s = interval_s
        self._tick = tick
        self.initial_delay_s = interval_s if initial_delay_s is None else initial_delay_s

        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._current: Optional[asyncio.Task] = None

        self.ticks_started = 0
        self.ticks_skipped = 0
        self.ticks_failed = 0
        self.last_tick_ts: Optional[float] = None
        self.last_error: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self._current is not None and not self._current.done()

    def fire(self) -> bool:
        """Start a tick now unless one is still running. Returns False when skipped."""
        if self.busy:
            self.ticks_skipped += 1
            logger.debug("[%s] previous tick still running, skipping", self.name)
            return False
        self.ticks_started += 1
        self.last_tick_ts = time.time()
        self._current = asyncio.create_task(self._guarded())
        return True

    async def run_once(self) -> Any:
        """Run one tick inline (warm-up, tests). Honors the overlap rule."""
        if self.busy:
            self.ticks_skipped += 1
            return None
        self.ticks_started += 1
        self.last_tick_ts = time.time()
        self._current = asyncio.create_task(self._guarded())
        return await self._current

    async def _guarded(self) -> Any:
        try:
            return await self._tick()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.ticks_failed += 1
            self.last_error = str(e)
            logger.error(f"[{self.name}] tick error: {e}")
            logger.debug("[%s] tick traceback", self.name, exc_info=True)
            return None

    async def _loop(self) -> None:
        await asyncio.sleep(self.initial_delay_s)
        while self._running:
            self.fire()
            await asyncio.sleep(self.interval_s)

    def start(self) -> asyncio.Task:
        if self._loop_task and not self._loop_task.done():
            return self._loop_task
        self._running = True
        self._loop_task = asyncio.create_task(self._loop(), name=f"ticker:{self.name}")
        return self._loop_task

    async def stop(self) -> None:
        self._running = False
        for task in (self._loop_task, self._current):
            if task and not task.done():
                task.cancel()
        pending = [t for t in (self._loop_task, self._current) if t is not None]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def get_status(self) -> Dict[str, Any]:
        return {
            "interval_s": self.interval_s,
            "busy": self.busy,
            "ticks_started": self.ticks_started,
            "ticks_skipped": self.ticks_skipped,
            "ticks_failed": self.ticks_failed,
            "last_error": self.last_error,
        }
