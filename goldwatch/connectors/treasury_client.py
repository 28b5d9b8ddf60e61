"""
Treasury Price Client
=====================

Fetches the retail gold buy/sell rate (IDR per gram) from the Treasury
rate endpoint.
"""

import time
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from ..core.errors import UpstreamUnavailable
from ..core.formatting import to_wib
from ..core.logger import get_connector_logger
from ..core.models import PriceSnapshot

logger = get_connector_logger('treasury')


def _parse_rate(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return rate if rate.is_finite() and rate > 0 else None


def parse_updated_at(value: Any) -> Optional[datetime]:
    """Parse ``updated_at``; naive timestamps are Jakarta local time."""
    if not value:
        return None
    try:
        return to_wib(datetime.fromisoformat(str(value).replace('Z', '+00:00')))
    except ValueError:
        logger.debug("Unparseable updated_at %r", value)
        return None


def parse_price_payload(payload: Any, fetched_at: float) -> PriceSnapshot:
    """
    Turn ``{"data": {"buying_rate", "selling_rate", "updated_at"}}`` into a snapshot.

    Raises:
        UpstreamUnavailable: when either rate is missing, not finite or not positive
    """
    data = payload.get('data') if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        raise UpstreamUnavailable('treasury', "missing data object")

    buy = _parse_rate(data.get('buying_rate'))
    sell = _parse_rate(data.get('selling_rate'))
    if buy is None or sell is None:
        raise UpstreamUnavailable('treasury', "invalid data")

    return PriceSnapshot(
        buy=buy,
        sell=sell,
        as_of=parse_updated_at(data.get('updated_at')),
        fetched_at=fetched_at,
    )


class TreasuryPriceClient:
    """POSTs to the rate endpoint under a short timeout."""

    def __init__(self, http, url: str, timeout: float = 3.0):
        self._http = http
        self.url = url
        self.timeout = timeout
        self.request_count = 0
        self.error_count = 0
        self.last_error: Optional[str] = None

    async def fetch_snapshot(self) -> PriceSnapshot:
        self.request_count += 1
        try:
            payload = await self._http.post_json(
                self.url, None, source='treasury', timeout=self.timeout,
                headers={'Content-Type': 'application/json'},
            )
            return parse_price_payload(payload, time.time())
        except UpstreamUnavailable as e:
            self.error_count += 1
            self.last_error = e.reason
            raise

    def get_status(self) -> dict:
        return {
            'url': self.url,
            'requests': self.request_count,
            'errors': self.error_count,
            'last_error': self.last_error,
        }
