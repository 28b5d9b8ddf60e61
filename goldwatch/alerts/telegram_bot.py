"""
Telegram Transport
==================

:class:`MessageTransport` on python-telegram-bot. Outbound messages go
through a plain ``Bot``; inbound text is received by long polling under a
supervisor task that rebuilds the ``Application`` with exponential backoff
whenever Telegram drops the connection. Group chats have negative ids and
are the only place messages get pinned.
"""

import asyncio
import random
import time
from typing import Any, Dict, Optional
import httpx
from telegram import Bot, Update
from telegram.constants import ChatAction
from telegram.ext import Application, ContextTypes, MessageHandler, filters
from telegram.error import TelegramError, NetworkError, TimedOut, Conflict

from ..core.errors import TransportDeliveryFailure
from ..core.logger import get_alert_logger
from ..core.status import build_status
from .transport import IncomingMessage, MessageHandler as IncomingHandler, SentMessage

logger = get_alert_logger()

# errors that only mean "reconnect", everything else is logged with its type
RECONNECT_ERRORS = (
    NetworkError,
    TimedOut,
    Conflict,
    httpx.RemoteProtocolError,
    httpx.TimeoutException,
    asyncio.TimeoutError,
)

RESTART_PAUSE_S = 3.0
MAX_BACKOFF_S = 60.0
WARN_EVERY_S = 60.0


class _UpdaterFailed(Exception):
    """Raised inside the supervisor when the updater reported an error."""

    def __init__(self, cause: Optional[BaseException]) -> None:
        super().__init__(str(cause) if cause else "updater error")
        self.cause = cause


def backoff_delay(attempt: int, error: Optional[BaseException] = None) -> float:
    """``2^attempt`` seconds (capped) plus up to 1s jitter; Conflict waits at least 10s."""
    delay = min(2 ** attempt, MAX_BACKOFF_S) + random.uniform(0.0, 1.0)
    if isinstance(error, Conflict):
        delay = max(delay, 10.0)
    return delay


class TelegramTransport:
    """
    Telegram bot carrying broadcasts and chat commands.

    Commands arrive as ordinary text (``aktif``, ``nonaktif``, ``emas``) and
    are handed to the registered message handler.
    """

    def __init__(self, bot_token: str):
        """
        Args:
            bot_token: Telegram bot token from @BotFather
        """
        self.bot_token = bot_token
        self.bot = Bot(token=bot_token)
        self.username: Optional[str] = None

        self._on_message: Optional[IncomingHandler] = None
        self._app: Optional[Application] = None
        self._supervisor: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()
        self._updater_error = asyncio.Event()
        self._updater_cause: Optional[BaseException] = None

        self.failures_in_row = 0
        self.reconnects = 0
        self.last_error: Optional[str] = None
        self.last_ok_ts: Optional[float] = None
        self.sent_count = 0
        self.send_failures = 0

        self._suppressed_warnings = 0
        self._last_warning_ts = 0.0

        logger.info("Telegram transport initialized")

    # ------------------------------------------------------------------
    # MessageTransport
    # ------------------------------------------------------------------

    @property
    def polling(self) -> bool:
        return self._supervisor is not None and not self._supervisor.done()

    @property
    def connected(self) -> bool:
        return self.polling and self.failures_in_row == 0

    @staticmethod
    def is_group(recipient: str) -> bool:
        return str(recipient).startswith('-')

    def set_message_handler(self, handler: IncomingHandler) -> None:
        self._on_message = handler

    async def send_text(self, recipient: str, text: str) -> SentMessage:
        try:
            msg = await self.bot.send_message(chat_id=recipient, text=text)
        except TelegramError as e:
            self.send_failures += 1
            raise TransportDeliveryFailure(recipient, str(e)) from e
        self.sent_count += 1
        self.last_ok_ts = time.time()
        return SentMessage(chat_id=recipient, message_id=msg.message_id)

    async def pin(self, message: SentMessage, *, alternate: bool = False) -> None:
        """Pin in a group; the alternate attempt pins silently."""
        try:
            await self.bot.pin_chat_message(
                chat_id=message.chat_id,
                message_id=message.message_id,
                disable_notification=alternate,
            )
        except TelegramError as e:
            raise TransportDeliveryFailure(message.chat_id, f"pin: {e}") from e

    async def send_typing(self, recipient: str) -> None:
        try:
            await self.bot.send_chat_action(chat_id=recipient, action=ChatAction.TYPING)
        except TelegramError as e:
            logger.debug(f"Typing indicator failed for {recipient}: {e}")

    async def test_connection(self) -> bool:
        """Check the token with ``getMe``."""
        try:
            me = await self.bot.get_me()
        except TelegramError as e:
            logger.error(f"Telegram getMe failed: {e}")
            return False
        self.username = me.username
        logger.info(f"Logged in as @{me.username}")
        return True

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def _handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        if message is None or self._on_message is None:
            return
        user = update.effective_user
        incoming = IncomingMessage(
            message_id=f"{message.chat_id}:{message.message_id}",
            chat_id=str(message.chat_id),
            text=message.text,
            from_self=bool(user and user.is_bot),
        )
        try:
            await self._on_message(incoming)
        except Exception as e:
            logger.error(f"Message handler error: {e}")

    # ------------------------------------------------------------------
    # Polling supervisor
    # ------------------------------------------------------------------

    async def start_polling(self) -> None:
        if self.polling:
            return
        self._stopping.clear()
        self._supervisor = asyncio.create_task(self._supervise(), name="telegram-polling")

    async def stop_polling(self) -> None:
        if self.polling:
            self._stopping.set()
            self._updater_error.set()
            await self._supervisor
        await self._teardown()

    async def _supervise(self) -> None:
        attempt = 0
        while not self._stopping.is_set():
            self._updater_error.clear()
            self._updater_cause = None
            try:
                await self._bring_up()
                attempt = 0
                await self._updater_error.wait()
                if not self._stopping.is_set():
                    raise _UpdaterFailed(self._updater_cause)
            except Exception as exc:
                attempt += 1
                cause = exc.cause if isinstance(exc, _UpdaterFailed) else exc
                await self._after_failure(cause, attempt)
            finally:
                await self._teardown()

            if not self._stopping.is_set():
                # getUpdates holds the connection for a moment after teardown
                await self._pause(RESTART_PAUSE_S)

    async def _bring_up(self) -> None:
        if self._app is None:
            self._app = Application.builder().token(self.bot_token).build()
            self._app.add_handler(MessageHandler(filters.TEXT, self._handle_message))
        await self._app.initialize()
        await self._app.start()
        await self._app.updater.start_polling(
            drop_pending_updates=True,
            error_callback=self._on_updater_error,
        )
        self.failures_in_row = 0
        self.last_error = None
        self.last_ok_ts = time.time()
        logger.info("Telegram polling running")

    async def _teardown(self) -> None:
        app, self._app = self._app, None
        if app is None:
            return
        try:
            if app.updater.running:
                await app.updater.stop()
            if app.running:
                await app.stop()
            await app.shutdown()
        except Exception as e:
            logger.warning(f"Telegram shutdown error: {e}")

    def _on_updater_error(self, error: TelegramError) -> None:
        # called from the updater's network loop
        self._updater_cause = error
        self._updater_error.set()

    async def _after_failure(self, error: Optional[BaseException], attempt: int) -> None:
        self.reconnects += 1
        self.failures_in_row += 1
        self.last_error = str(error) if error else None
        delay = backoff_delay(attempt, error)
        self._warn(error, delay)
        await self._pause(delay)

    def _warn(self, error: Optional[BaseException], delay: float) -> None:
        now = time.time()
        if now - self._last_warning_ts < WARN_EVERY_S:
            self._suppressed_warnings += 1
            return
        extra = f" (+{self._suppressed_warnings} suppressed)" if self._suppressed_warnings else ""
        self._last_warning_ts = now
        self._suppressed_warnings = 0
        kind = "reconnecting" if isinstance(error, RECONNECT_ERRORS) else type(error).__name__
        logger.warning(f"Telegram polling lost ({kind}: {error}); retry in {delay:.1f}s{extra}")

    async def _pause(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def get_status(self) -> Dict[str, Any]:
        if self.connected:
            status = "ok"
        elif self.polling:
            status = "degraded"
        else:
            status = "down"
        return build_status(
            name="telegram",
            type="transport",
            status=status,
            last_success_ts=self.last_ok_ts,
            last_error=self.last_error,
            consecutive_failures=self.failures_in_row,
            sent_count=self.sent_count,
            error_count=self.send_failures + self.reconnects,
            extras={"username": self.username, "polling": self.polling},
        )
