"""
Chat command handling.

Inbound text is normalized (whitespace collapsed, trimmed, lower-cased)
and matched as whole words:

    aktif     subscribe the chat
    nonaktif  unsubscribe the chat
    emas      on-demand price report (per-chat cooldown + global spacing)
"""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from ..core.formatting import FETCH_FAILED_TEXT
from ..core.logger import get_alert_logger
from .transport import IncomingMessage

logger = get_alert_logger()

REPLY_ALREADY_ACTIVE = "✅ Sudah aktif!"
REPLY_ACTIVATED = "🎉 Berhasil Diaktifkan!"
REPLY_DEACTIVATED = "👋 Notifikasi dihentikan."
REPLY_NOT_ACTIVE = "❌ Belum aktif."

_AKTIF = re.compile(r'\baktif\b')
_NONAKTIF = re.compile(r'\bnonaktif\b')


def normalize_text(text: Optional[str]) -> str:
    if not text:
        return ''
    return re.sub(r'\s+', ' ', text).strip().lower()


@dataclass(frozen=True, slots=True)
class ThrottleConfig:
    trigger_word: str = 'emas'
    per_chat_cooldown_s: float = 60.0
    global_spacing_s: float = 3.0
    typing_s: float = 2.0
    processed_ids_max: int = 300
    processed_ids_keep: int = 200

    @classmethod
    def from_config(cls, section: Dict[str, Any]) -> "ThrottleConfig":
        return cls(
            trigger_word=str(section.get('trigger_word', 'emas')).lower(),
            per_chat_cooldown_s=float(section.get('cooldown_per_chat_seconds', 60)),
            global_spacing_s=float(section.get('global_throttle_seconds', 3)),
            typing_s=float(section.get('typing_seconds', 2)),
            processed_ids_max=int(section.get('processed_ids_max', 300)),
            processed_ids_keep=int(section.get('processed_ids_keep', 200)),
        )


class CommandRouter:
    """
    Routes inbound messages to subscribe / unsubscribe / price report.

    Args:
        registry: RecipientRegistry mutated by aktif/nonaktif
        transport: MessageTransport used for replies
        report: coroutine building the on-demand price report text
        is_ready: messages are ignored until this returns True
    """

    def __init__(
        self,
        registry,
        transport,
        report: Callable[[], Awaitable[str]],
        config: Optional[ThrottleConfig] = None,
        *,
        is_ready: Callable[[], bool] = lambda: True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self._report = report
        self.config = config or ThrottleConfig()
        self._is_ready = is_ready
        self._clock = clock
        self._trigger = re.compile(rf'\b{re.escape(self.config.trigger_word)}\b')

        # dict keeps insertion order, newest last
        self._processed: Dict[str, None] = {}
        self._last_reply_per_chat: Dict[str, float] = {}
        self._last_global_reply = 0.0

        self.reports_sent = 0
        self.reports_throttled = 0

    async def handle(self, msg: IncomingMessage) -> Optional[str]:
        """Handle one message. Returns the action taken, or ``None`` when ignored."""
        if not self._is_ready():
            return None
        if msg.from_self or msg.is_status_broadcast:
            return None
        if msg.message_id in self._processed:
            return None
        self._processed[msg.message_id] = None

        text = normalize_text(msg.text)
        if not text:
            return None
        chat = msg.chat_id

        if _AKTIF.search(text):
            if self.registry.subscribe(chat):
                await self._reply(chat, REPLY_ACTIVATED)
                return 'subscribed'
            await self._reply(chat, REPLY_ALREADY_ACTIVE)
            return 'already_subscribed'

        if _NONAKTIF.search(text):
            if self.registry.unsubscribe(chat):
                await self._reply(chat, REPLY_DEACTIVATED)
                return 'unsubscribed'
            await self._reply(chat, REPLY_NOT_ACTIVE)
            return 'not_subscribed'

        if not self._trigger.search(text):
            return None

        now = self._clock()
        if now - self._last_reply_per_chat.get(chat, 0.0) < self.config.per_chat_cooldown_s:
            self.reports_throttled += 1
            return 'throttled'
        if now - self._last_global_reply < self.config.global_spacing_s:
            self.reports_throttled += 1
            return 'throttled'
        # stamped before the typing delay
        self._last_reply_per_chat[chat] = now
        self._last_global_reply = now

        await self.transport.send_typing(chat)
        await asyncio.sleep(self.config.typing_s)

        try:
            text = await self._report()
        except Exception as e:
            logger.warning(f"Price report failed: {e}")
            text = FETCH_FAILED_TEXT

        await self._reply(chat, text)
        self.reports_sent += 1
        return 'report'

    async def _reply(self, chat: str, text: str) -> None:
        try:
            await self.transport.send_text(chat, text)
        except Exception as e:
            logger.error(f"Reply to {chat} failed: {e}")

    async def prune_processed(self) -> int:
        """Keep only the newest ids once the set grows past the limit."""
        if len(self._processed) <= self.config.processed_ids_max:
            return 0
        keep = list(self._processed)[-self.config.processed_ids_keep:]
        removed = len(self._processed) - len(keep)
        self._processed = dict.fromkeys(keep)
        logger.debug("Pruned %d processed message ids", removed)
        return removed

    def get_status(self) -> Dict[str, Any]:
        return {
            'processed_ids': len(self._processed),
            'reports_sent': self.reports_sent,
            'reports_throttled': self.reports_throttled,
        }
