"""
Shared test fixtures.

Plain in-memory fakes for the messaging transport and the fan-out so the
watchers and the command router can be driven without a network.
"""

from decimal import Decimal
from typing import List, Optional, Set, Tuple

import pytest

from goldwatch.alerts.broadcast import FanoutResult
from goldwatch.alerts.transport import IncomingMessage, SentMessage
from goldwatch.core.errors import TransportDeliveryFailure
from goldwatch.core.models import PriceSnapshot


class FakeTransport:
    """Records every call; recipients in ``fail`` raise TransportDeliveryFailure."""

    def __init__(self, fail: Optional[Set[str]] = None, pin_failures: int = 0):
        self.fail = set(fail or ())
        self.pin_failures = pin_failures
        self.sent: List[Tuple[str, str]] = []
        self.pins: List[Tuple[SentMessage, bool]] = []
        self.typing: List[str] = []
        self.handler = None
        self.polling_stopped = False
        self._next_id = 0

    @property
    def connected(self) -> bool:
        return True

    def is_group(self, recipient: str) -> bool:
        return str(recipient).startswith('-')

    async def send_text(self, recipient: str, text: str) -> SentMessage:
        if recipient in self.fail:
            raise TransportDeliveryFailure(recipient, "blocked")
        self._next_id += 1
        self.sent.append((recipient, text))
        return SentMessage(chat_id=recipient, message_id=self._next_id)

    async def pin(self, message: SentMessage, *, alternate: bool = False) -> None:
        self.pins.append((message, alternate))
        if self.pin_failures > 0:
            self.pin_failures -= 1
            raise TransportDeliveryFailure(message.chat_id, "not enough rights")

    async def send_typing(self, recipient: str) -> None:
        self.typing.append(recipient)

    def set_message_handler(self, handler) -> None:
        self.handler = handler

    async def start_polling(self) -> None:
        pass

    async def stop_polling(self) -> None:
        self.polling_stopped = True

    def get_status(self) -> dict:
        return {'connected': True, 'sent': len(self.sent)}


class FakeFanout:
    """Stands in for BroadcastFanout; ``dropped=True`` simulates a busy fan-out."""

    def __init__(self, dropped: bool = False, error: Optional[Exception] = None):
        self.dropped = dropped
        self.error = error
        self.calls: List[Tuple[str, List[str], bool]] = []

    async def send(self, message: str, recipients, pin: bool = False) -> FanoutResult:
        self.calls.append((message, list(recipients), pin))
        if self.error is not None:
            raise self.error
        if self.dropped:
            return FanoutResult(dropped=True)
        return FanoutResult(sent=len(list(recipients)))


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_snapshot(buy, sell, fetched_at: float = 0.0) -> PriceSnapshot:
    return PriceSnapshot(buy=Decimal(str(buy)), sell=Decimal(str(sell)), as_of=None, fetched_at=fetched_at)


def make_message(message_id: str, chat_id: str, text: Optional[str], **kwargs) -> IncomingMessage:
    return IncomingMessage(message_id=message_id, chat_id=chat_id, text=text, **kwargs)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def fanout():
    return FakeFanout()


@pytest.fixture
def clock():
    return FakeClock()
