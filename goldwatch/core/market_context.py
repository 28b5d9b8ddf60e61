"""
Market context: gold spot, USD/IDR and the economic calendar, each behind
its own :class:`CachedFeed`. ``refresh()`` runs on its own timer; the
watchers only ever ``peek``.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List, Optional

from .cached_feed import CachedFeed
from .logger import get_logger
from .models import ReferenceMarketData

logger = get_logger("market_context")


class MarketContext:
    def __init__(
        self,
        gold_resolver,
        fx_resolver,
        calendar=None,
        *,
        gold_ttl_s: float = 30.0,
        fx_ttl_s: float = 60.0,
        calendar_ttl_s: float = 300.0,
    ) -> None:
        self.gold_resolver = gold_resolver
        self.fx_resolver = fx_resolver
        self.calendar = calendar

        self.gold = CachedFeed("xau_usd", gold_resolver.resolve, gold_ttl_s)
        self.fx = CachedFeed("usd_idr", fx_resolver.resolve, fx_ttl_s)
        self.events: Optional[CachedFeed] = None
        if calendar is not None:
            self.events = CachedFeed("calendar", calendar.fetch_events, calendar_ttl_s)

        self.refresh_count = 0
        self.last_refresh_ts: Optional[float] = None

    async def refresh(self) -> ReferenceMarketData:
        feeds = [self.gold.get(), self.fx.get()]
        if self.events is not None:
            feeds.append(self.events.get())
        await asyncio.gather(*feeds)
        self.refresh_count += 1
        self.last_refresh_ts = time.time()
        return self.reference()

    def reference(self) -> ReferenceMarketData:
        return ReferenceMarketData(
            spot_usd=self.gold.peek(),
            fx_rate=self.fx.peek(),
            fetched_at=self.last_refresh_ts or 0.0,
        )

    def calendar_events(self) -> List[Any]:
        if self.events is None:
            return []
        return self.events.peek() or []

    def calendar_text(self) -> str:
        if self.calendar is None:
            return ''
        return self.calendar.format(self.calendar_events())

    def get_status(self) -> Dict[str, Any]:
        return {
            'xau_usd': self.gold.peek(),
            'usd_idr': self.fx.peek(),
            'events': len(self.calendar_events()),
            'refresh_count': self.refresh_count,
            'feeds': [f.get_status() for f in (self.gold, self.fx, self.events) if f is not None],
            'resolvers': [self.gold_resolver.get_status(), self.fx_resolver.get_status()],
        }
