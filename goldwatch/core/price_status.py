"""
Price validity band.

The Treasury sell price is NORMAL when it sits between 0.97% and 1.25%
above the international base price (XAU/USD x USD/IDR per gram).
Without both reference inputs the status is INDETERMINATE.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from .formatting import format_rupiah, js_round
from .models import PriceStatus, ReferenceMarketData

TROY_OZ_TO_GRAM = 31.1035
MIN_MARGIN = 1.0097
MAX_MARGIN = 1.0125

Number = Union[int, float, Decimal]


@dataclass(frozen=True, slots=True)
class PriceStatusReport:
    status: PriceStatus
    message: str
    base_price: Optional[float] = None
    lower_bound: Optional[float] = None
    upper_bound: Optional[float] = None
    difference: float = 0.0
    actual_margin_pct: Optional[float] = None


def analyze_price_status(sell: Number, reference: Optional[ReferenceMarketData]) -> PriceStatusReport:
    if reference is None or not reference.complete:
        return PriceStatusReport(status=PriceStatus.INDETERMINATE, message="-")

    sell_f = float(sell)
    base_price = (reference.spot_usd * reference.fx_rate) / TROY_OZ_TO_GRAM
    lower = base_price * MIN_MARGIN
    upper = base_price * MAX_MARGIN

    status = PriceStatus.NORMAL
    difference = 0.0
    message = "✅ NORMAL"
    if sell_f < lower:
        difference = sell_f - lower
        status = PriceStatus.ABNORMAL
        message = f"⚠️ TIDAK NORMAL ({format_rupiah(js_round(difference))})"
    elif sell_f > upper:
        difference = sell_f - upper
        status = PriceStatus.ABNORMAL
        message = f"⚠️ TIDAK NORMAL (+{format_rupiah(js_round(difference))})"

    return PriceStatusReport(
        status=status,
        message=message,
        base_price=base_price,
        lower_bound=lower,
        upper_bound=upper,
        difference=difference,
        actual_margin_pct=(sell_f - base_price) / base_price * 100,
    )
