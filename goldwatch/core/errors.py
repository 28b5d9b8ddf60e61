"""
GoldWatch error taxonomy.

Every error here is recovered at the component boundary that detects it;
none of them is meant to reach the event loop.
"""


class GoldWatchError(Exception):
    """Base class for GoldWatch errors."""


class UpstreamUnavailable(GoldWatchError):
    """A single upstream source failed (network, timeout, bad status, bad payload)."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class NoConsensus(GoldWatchError):
    """No acceptable candidate cluster. Only used inside the resolver."""


class AuthExpired(UpstreamUnavailable):
    """The promo API rejected our bearer token (HTTP 401)."""

    def __init__(self, source: str) -> None:
        super().__init__(source, "unauthorized")


class TransportDeliveryFailure(GoldWatchError):
    """Sending or pinning a message to one recipient failed."""

    def __init__(self, recipient: str, reason: str) -> None:
        super().__init__(f"delivery to {recipient} failed: {reason}")
        self.recipient = recipient
        self.reason = reason
