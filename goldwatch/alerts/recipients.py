"""Subscribed chats."""

from __future__ import annotations

from typing import Iterable, Iterator, List, Set

from ..core.logger import get_alert_logger

logger = get_alert_logger()


class RecipientRegistry:
    """In-memory subscription set. Iteration walks a snapshot."""

    def __init__(self, initial: Iterable[str] = ()) -> None:
        self._ids: Set[str] = {str(r) for r in initial}

    def subscribe(self, recipient: str) -> bool:
        """Add ``recipient``. Returns False when it was already subscribed."""
        recipient = str(recipient)
        if recipient in self._ids:
            return False
        self._ids.add(recipient)
        logger.info(f"Subscribed {recipient} (total: {len(self._ids)})")
        return True

    def unsubscribe(self, recipient: str) -> bool:
        """Remove ``recipient``. Returns False when it was not subscribed."""
        recipient = str(recipient)
        if recipient not in self._ids:
            return False
        self._ids.discard(recipient)
        logger.info(f"Unsubscribed {recipient} (total: {len(self._ids)})")
        return True

    def snapshot(self) -> List[str]:
        return list(self._ids)

    def __contains__(self, recipient: object) -> bool:
        return str(recipient) in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())
