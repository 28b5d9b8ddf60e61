"""
Price Watcher
=============

Polls the Treasury buy/sell price and decides when a change is announced.

States: UNINITIALIZED (no ``last_known``) -> TRACKING. The first good poll
seeds ``last_known`` and ``last_broadcast`` without announcing. After that
each poll either absorbs the change, defers it, or passes the broadcast
gate:

    stale  OR  cooldown elapsed  OR  wall-clock minute advanced

When the gate passes, the state is updated *before* the fan-out task is
dispatched, so a failed fan-out never re-announces the same delta.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from .errors import UpstreamUnavailable
from .logger import get_logger
from .models import PriceDelta, PriceSnapshot, PriceStatus, ReferenceMarketData
from .price_status import PriceStatusReport, analyze_price_status

logger = get_logger("price_watcher")


@dataclass(frozen=True, slots=True)
class PriceWatcherConfig:
    interval_s: float = 1.0
    min_change: Decimal = Decimal(1)
    cooldown_s: float = 50.0
    stale_threshold_s: float = 300.0

    @classmethod
    def from_config(cls, section: Dict[str, Any]) -> "PriceWatcherConfig":
        return cls(
            interval_s=float(section.get('interval_seconds', 1)),
            min_change=Decimal(str(section.get('min_change', 1))),
            cooldown_s=float(section.get('cooldown_seconds', 50)),
            stale_threshold_s=float(section.get('stale_threshold_seconds', 300)),
        )


class PriceTickOutcome(str, Enum):
    SEEDED = "seeded"
    FETCH_FAILED = "fetch_failed"
    UNCHANGED = "unchanged"
    ABSORBED = "absorbed"
    DEFERRED = "deferred"
    BROADCAST = "broadcast"


@dataclass(frozen=True, slots=True)
class PriceTick:
    outcome: PriceTickOutcome
    snapshot: Optional[PriceSnapshot] = None
    delta: Optional[PriceDelta] = None
    status: PriceStatus = PriceStatus.INDETERMINATE
    stale: bool = False


@dataclass
class PriceWatchState:
    last_known: Optional[PriceSnapshot] = None
    last_broadcast: Optional[PriceSnapshot] = None
    last_broadcast_at: Optional[float] = None
    last_price_update_at: Optional[float] = None
    broadcast_count: int = 0
    status: PriceStatus = PriceStatus.INDETERMINATE
    status_report: Optional[PriceStatusReport] = None

    @property
    def initialized(self) -> bool:
        return self.last_known is not None

    def is_stale(self, now: float, threshold_s: float) -> bool:
        if self.last_price_update_at is None:
            return False
        return now - self.last_price_update_at >= threshold_s


PriceFetch = Callable[[], Awaitable[Optional[PriceSnapshot]]]
Renderer = Callable[[PriceSnapshot, PriceDelta, PriceStatusReport], str]


class PriceWatcher:
    """
    Owns :class:`PriceWatchState`; ``tick()`` is the only writer.

    Args:
        fetch: coroutine returning a fresh snapshot (may raise UpstreamUnavailable)
        reference: returns the latest ReferenceMarketData (may be ``None``)
        fanout: BroadcastFanout used for announcements
        recipients: RecipientRegistry iterated at dispatch time
        render: builds the message body for an announcement
    """

    def __init__(
        self,
        fetch: PriceFetch,
        reference: Callable[[], Optional[ReferenceMarketData]],
        fanout,
        recipients,
        render: Renderer,
        config: Optional[PriceWatcherConfig] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._fetch = fetch
        self._reference = reference
        self._fanout = fanout
        self._recipients = recipients
        self._render = render
        self.config = config or PriceWatcherConfig()
        self._clock = clock

        self.state = PriceWatchState()
        self._dispatches: Set[asyncio.Task] = set()
        self._stale_logged = False

        self.fetch_failures = 0
        self.gate_passes = 0

    async def tick(self, now: Optional[float] = None) -> PriceTick:
        try:
            snapshot = await self._fetch()
        except UpstreamUnavailable as e:
            snapshot = None
            logger.debug("Price fetch failed: %s", e)
        if snapshot is None:
            self.fetch_failures += 1
            return PriceTick(PriceTickOutcome.FETCH_FAILED)

        now = self._clock() if now is None else now
        state = self.state
        report = analyze_price_status(snapshot.sell, self._reference())
        self._track_status(report)

        if not state.initialized:
            state.last_known = snapshot
            state.last_broadcast = snapshot
            state.last_price_update_at = now
            logger.info(f"Seeded price: buy={snapshot.buy} sell={snapshot.sell}")
            if report.status == PriceStatus.ABNORMAL:
                logger.warning(f"Initial price is outside the normal band: {report.message}")
            return PriceTick(PriceTickOutcome.SEEDED, snapshot, status=report.status)

        last = state.last_known
        if snapshot.buy == last.buy and snapshot.sell == last.sell:
            state.last_known = last.refreshed(snapshot.fetched_at)
            stale = state.is_stale(now, self.config.stale_threshold_s)
            if stale and not self._stale_logged:
                self._stale_logged = True
                idle = now - state.last_price_update_at
                logger.info(f"Price unchanged for {idle:.0f}s (stale)")
            return PriceTick(PriceTickOutcome.UNCHANGED, snapshot, status=report.status, stale=stale)

        stale = state.is_stale(now, self.config.stale_threshold_s)
        self._stale_logged = False
        delta = PriceDelta.between(snapshot, state.last_broadcast)

        if delta.is_below(self.config.min_change):
            state.last_known = snapshot
            state.last_price_update_at = now
            logger.debug("Sub-threshold change absorbed: %s/%s", delta.buy, delta.sell)
            return PriceTick(PriceTickOutcome.ABSORBED, snapshot, delta, report.status, stale)

        if not self._gate(now, stale):
            state.last_known = snapshot
            state.last_price_update_at = now
            return PriceTick(PriceTickOutcome.DEFERRED, snapshot, delta, report.status, stale)

        self.gate_passes += 1
        state.last_broadcast = snapshot
        state.last_broadcast_at = now
        state.last_known = snapshot
        state.last_price_update_at = now
        state.broadcast_count += 1

        message = self._render(snapshot, delta, report)
        logger.info(
            f"Broadcasting price change buy {delta.buy:+} sell {delta.sell:+}"
            f"{' (stale override)' if stale else ''}"
        )
        self._dispatch(message)
        return PriceTick(PriceTickOutcome.BROADCAST, snapshot, delta, report.status, stale)

    def _gate(self, now: float, stale: bool) -> bool:
        if stale:
            return True
        last_at = self.state.last_broadcast_at
        if last_at is None:
            return True
        if now - last_at >= self.config.cooldown_s:
            return True
        return int(now // 60) != int(last_at // 60)

    def _track_status(self, report: PriceStatusReport) -> None:
        previous = self.state.status
        self.state.status = report.status
        self.state.status_report = report
        decided = (PriceStatus.NORMAL, PriceStatus.ABNORMAL)
        if previous != report.status and previous in decided and report.status in decided:
            logger.info(f"Price status {previous.value} -> {report.status.value}: {report.message}")

    def _dispatch(self, message: str) -> None:
        recipients = list(self._recipients)
        if not recipients:
            logger.debug("No subscribers, announcement not sent")
            return
        task = asyncio.create_task(self._send(message, recipients))
        self._dispatches.add(task)
        task.add_done_callback(self._dispatches.discard)

    async def _send(self, message: str, recipients) -> None:
        try:
            result = await self._fanout.send(message, recipients)
        except Exception as e:
            logger.error(f"Price fan-out failed: {e}")
            return
        if result.dropped:
            logger.info("Price fan-out dropped, another broadcast in progress")

    async def drain(self) -> None:
        """Wait for dispatched fan-outs (shutdown, tests)."""
        if self._dispatches:
            await asyncio.gather(*list(self._dispatches), return_exceptions=True)

    def get_status(self) -> Dict[str, Any]:
        state = self.state
        now = self._clock()
        return {
            'initialized': state.initialized,
            'last_price': state.last_known.to_dict() if state.last_known else None,
            'last_broadcast': state.last_broadcast.to_dict() if state.last_broadcast else None,
            'last_broadcast_at': state.last_broadcast_at,
            'last_price_update_at': state.last_price_update_at,
            'broadcast_count': state.broadcast_count,
            'stale': state.is_stale(now, self.config.stale_threshold_s),
            'status': state.status.value,
            'fetch_failures': self.fetch_failures,
        }
