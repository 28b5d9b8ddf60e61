"""
Broadcast fan-out.

Delivers one rendered message to every recipient, sequentially:

* only one fan-out runs at a time; a call arriving while one is running
  is dropped (``FanoutResult.dropped``), never queued;
* an identical message (SHA-256 fingerprint) to the same recipient inside
  the dedup window is skipped;
* a failed recipient is logged and counted, the rest still get theirs;
* group recipients can have the message pinned after a short settle delay,
  with one alternate attempt if the first pin fails.
"""

from __future__ import annotations

import asyncio
import hashlib
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from ..core.errors import TransportDeliveryFailure
from ..core.logger import get_alert_logger

logger = get_alert_logger()


@dataclass(frozen=True, slots=True)
class FanoutConfig:
    dedup_window_s: float = 65.0
    prune_interval_s: float = 120.0
    pace_every: int = 5
    pace_delay_s: float = 0.1
    pin_delay_s: float = 0.5

    @classmethod
    def from_config(cls, section: Dict[str, Any]) -> "FanoutConfig":
        return cls(
            dedup_window_s=float(section.get('dedup_window_seconds', 65)),
            prune_interval_s=float(section.get('prune_interval_seconds', 120)),
            pace_every=int(section.get('pace_every', 5)),
            pace_delay_s=float(section.get('pace_delay_seconds', 0.1)),
            pin_delay_s=float(section.get('pin_delay_seconds', 0.5)),
        )


@dataclass(frozen=True, slots=True)
class BroadcastRecord:
    content_hash: str
    sent_at: float


@dataclass(frozen=True, slots=True)
class FanoutResult:
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    pinned: int = 0
    dropped: bool = False


def fingerprint(message: str) -> str:
    return hashlib.sha256(message.encode('utf-8')).hexdigest()


class BroadcastFanout:
    def __init__(
        self,
        transport,
        config: Optional[FanoutConfig] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.transport = transport
        self.config = config or FanoutConfig()
        self._clock = clock
        self._records: Dict[str, BroadcastRecord] = {}
        self._busy = False

        self.fanout_count = 0
        self.dropped_count = 0
        self.sent_total = 0
        self.failed_total = 0
        self.last_fanout_ts: Optional[float] = None

    @property
    def busy(self) -> bool:
        return self._busy

    def _is_duplicate(self, recipient: str, content_hash: str, now: float) -> bool:
        record = self._records.get(recipient)
        return (
            record is not None
            and record.content_hash == content_hash
            and now - record.sent_at < self.config.dedup_window_s
        )

    async def send(self, message: str, recipients: Iterable[str], pin: bool = False) -> FanoutResult:
        if self._busy:
            self.dropped_count += 1
            logger.debug("Fan-out already running, dropping this one")
            return FanoutResult(dropped=True)

        self._busy = True
        self.fanout_count += 1
        fanout_id = self.fanout_count
        sent = skipped = failed = pinned = 0
        content_hash = fingerprint(message)
        targets = list(recipients)
        try:
            logger.info(f"[#{fanout_id}] Sending to {len(targets)} recipients")
            for recipient in targets:
                if self._is_duplicate(recipient, content_hash, self._clock()):
                    skipped += 1
                    logger.debug("[#%d] Skipped duplicate to %s", fanout_id, recipient)
                    continue

                start = time.perf_counter()
                try:
                    sent_msg = await self.transport.send_text(recipient, message)
                except TransportDeliveryFailure as e:
                    failed += 1
                    logger.warning(f"[#{fanout_id}] Failed to {recipient}: {e.reason}")
                    continue

                self._records[recipient] = BroadcastRecord(content_hash, self._clock())
                sent += 1
                logger.debug(
                    "[#%d] Sent to %s (%.0fms)", fanout_id, recipient, (time.perf_counter() - start) * 1000,
                )

                if pin and self.transport.is_group(recipient):
                    if await self._pin(sent_msg):
                        pinned += 1

                if self.config.pace_every and sent % self.config.pace_every == 0:
                    await asyncio.sleep(self.config.pace_delay_s)
        finally:
            self._busy = False
            self.last_fanout_ts = self._clock()

        self.sent_total += sent
        self.failed_total += failed
        logger.info(
            f"[#{fanout_id}] Fan-out done (sent: {sent}, skipped: {skipped}, "
            f"failed: {failed}, pinned: {pinned})"
        )
        return FanoutResult(sent=sent, skipped=skipped, failed=failed, pinned=pinned)

    async def _pin(self, sent_msg) -> bool:
        await asyncio.sleep(self.config.pin_delay_s)
        try:
            await self.transport.pin(sent_msg)
            return True
        except TransportDeliveryFailure as e:
            logger.warning(f"Pin failed in {sent_msg.chat_id}: {e.reason}")
        try:
            await self.transport.pin(sent_msg, alternate=True)
            return True
        except TransportDeliveryFailure as e:
            logger.warning(f"Alternate pin also failed in {sent_msg.chat_id}: {e.reason}")
            return False

    async def prune(self, now: Optional[float] = None) -> int:
        """Drop dedup records older than the window. Returns how many were removed."""
        now = self._clock() if now is None else now
        expired = [
            r for r, rec in self._records.items()
            if now - rec.sent_at > self.config.dedup_window_s
        ]
        for recipient in expired:
            del self._records[recipient]
        if expired:
            logger.debug("Pruned %d dedup records", len(expired))
        return len(expired)

    def get_status(self) -> Dict[str, Any]:
        return {
            'busy': self._busy,
            'fanouts': self.fanout_count,
            'dropped': self.dropped_count,
            'sent_total': self.sent_total,
            'failed_total': self.failed_total,
            'dedup_records': len(self._records),
            'last_fanout_ts': self.last_fanout_ts,
        }
