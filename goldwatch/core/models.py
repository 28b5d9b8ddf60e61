"""
Value objects shared by the watchers, the broadcaster and the HTTP view.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


@dataclass(frozen=True, slots=True)
class PriceSnapshot:
    """Point-in-time buy/sell reading in IDR per gram."""

    buy: Decimal
    sell: Decimal
    as_of: Optional[datetime]
    fetched_at: float

    def refreshed(self, fetched_at: float) -> "PriceSnapshot":
        return replace(self, fetched_at=fetched_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "buy": float(self.buy),
            "sell": float(self.sell),
            "updated_at": self.as_of.isoformat() if self.as_of else None,
            "fetchedAt": int(self.fetched_at * 1000),
        }


@dataclass(frozen=True, slots=True)
class PriceDelta:
    buy: Decimal
    sell: Decimal

    @classmethod
    def between(cls, current: PriceSnapshot, reference: PriceSnapshot) -> "PriceDelta":
        return cls(buy=current.buy - reference.buy, sell=current.sell - reference.sell)

    def is_below(self, threshold: Decimal) -> bool:
        return abs(self.buy) < threshold and abs(self.sell) < threshold


@dataclass(frozen=True, slots=True)
class ReferenceMarketData:
    """Auxiliary market context. Either field may be missing."""

    spot_usd: Optional[float] = None
    fx_rate: Optional[float] = None
    fetched_at: float = 0.0

    @property
    def complete(self) -> bool:
        return bool(self.spot_usd) and bool(self.fx_rate)


class PriceStatus(str, Enum):
    NORMAL = "NORMAL"
    ABNORMAL = "ABNORMAL"
    INDETERMINATE = "INDETERMINATE"


class PromoStatus(str, Enum):
    ON = "ON"
    OFF = "OFF"
