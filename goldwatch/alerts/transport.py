"""
Messaging transport capability.

The engine only needs to send text, pin a sent message in a group, show a
typing indicator and receive text messages. Any chat backend providing
:class:`MessageTransport` can carry GoldWatch.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union


@dataclass(frozen=True, slots=True)
class SentMessage:
    chat_id: str
    message_id: Union[int, str]


@dataclass(frozen=True, slots=True)
class IncomingMessage:
    message_id: str
    chat_id: str
    text: Optional[str]
    from_self: bool = False
    is_status_broadcast: bool = False


MessageHandler = Callable[[IncomingMessage], Awaitable[None]]


class MessageTransport(Protocol):
    """Outbound and inbound messaging used by the fan-out and the command router."""

    @property
    def connected(self) -> bool:
        ...

    def is_group(self, recipient: str) -> bool:
        ...

    async def send_text(self, recipient: str, text: str) -> SentMessage:
        """Deliver ``text``; raises TransportDeliveryFailure."""
        ...

    async def pin(self, message: SentMessage, *, alternate: bool = False) -> None:
        """Pin a sent message; raises TransportDeliveryFailure."""
        ...

    async def send_typing(self, recipient: str) -> None:
        ...

    def set_message_handler(self, handler: MessageHandler) -> None:
        ...

    async def start_polling(self) -> None:
        ...

    async def stop_polling(self) -> None:
        ...

    def get_status(self) -> Dict[str, Any]:
        ...
