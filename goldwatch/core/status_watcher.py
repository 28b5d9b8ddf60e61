"""
Promo Status Watcher
====================

Polls the promotional-nominal feed and announces ON/OFF flips.

* the first status observed after start arms the watcher, never announces;
* afterwards a flip is announced when it differs from the last announced
  status, the cooldown has elapsed and someone is subscribed;
* a flip back before the cooldown expires cancels the pending announcement.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from .errors import UpstreamUnavailable
from .formatting import format_promo_message
from .logger import get_logger
from .models import PromoStatus

logger = get_logger("status_watcher")


@dataclass(frozen=True, slots=True)
class StatusWatcherConfig:
    interval_s: float = 1.0
    cooldown_s: float = 60.0

    @classmethod
    def from_config(cls, section: Dict[str, Any]) -> "StatusWatcherConfig":
        return cls(
            interval_s=float(section.get('interval_seconds', 1)),
            cooldown_s=float(section.get('cooldown_seconds', 60)),
        )


@dataclass
class PromoState:
    status: Optional[PromoStatus] = None
    last_broadcast_status: Optional[PromoStatus] = None
    last_broadcast_at: float = 0.0
    armed: bool = False
    check_count: int = 0
    announce_count: int = 0


class StatusWatcher:
    """Owns :class:`PromoState`; ``tick()`` is the only writer."""

    def __init__(
        self,
        fetch: Callable[[], Awaitable[PromoStatus]],
        fanout,
        recipients,
        config: Optional[StatusWatcherConfig] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._fetch = fetch
        self._fanout = fanout
        self._recipients = recipients
        self.config = config or StatusWatcherConfig()
        self._clock = clock
        self.state = PromoState()

    async def tick(self, now: Optional[float] = None) -> bool:
        """Poll once. Returns True when an announcement was delivered."""
        state = self.state
        state.check_count += 1
        if state.check_count % 60 == 0:
            logger.debug(
                "Promo check #%d (status: %s)",
                state.check_count, state.status.value if state.status else 'unknown',
            )

        try:
            current = PromoStatus(await self._fetch())
        except UpstreamUnavailable as e:
            logger.debug("Promo fetch failed: %s", e)
            return False

        now = self._clock() if now is None else now
        previous = state.status
        state.status = current

        if not state.armed:
            state.armed = True
            state.last_broadcast_status = current
            logger.info(f"Initial promo status: {current.value} (not announced)")
            return False

        if current == state.last_broadcast_status:
            return False

        remaining = self.config.cooldown_s - (now - state.last_broadcast_at)
        if remaining > 0:
            if previous != current:
                logger.info(
                    f"Promo changed {previous.value if previous else '-'} -> {current.value} "
                    f"(cooldown: {remaining:.0f}s remaining)"
                )
            return False

        recipients = list(self._recipients)
        if not recipients:
            return False

        logger.info(f"Promo status changed: {state.last_broadcast_status.value} -> {current.value}")
        result = await self._fanout.send(format_promo_message(current), recipients, pin=True)
        if result.dropped:
            logger.info("Promo fan-out dropped, retrying next tick")
            return False

        state.last_broadcast_status = current
        state.last_broadcast_at = now
        state.announce_count += 1
        return True

    def get_status(self) -> Dict[str, Any]:
        state = self.state
        return {
            'status': state.status.value if state.status else None,
            'last_broadcast_status': state.last_broadcast_status.value if state.last_broadcast_status else None,
            'last_broadcast_at': state.last_broadcast_at or None,
            'armed': state.armed,
            'announce_count': state.announce_count,
        }
