"""
Message rendering for price broadcasts, on-demand reports and promo flips.

Amounts are written the Indonesian way (``1.234.567``), times in WIB.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Union
from zoneinfo import ZoneInfo

from .models import PriceDelta, PriceSnapshot, PromoStatus, ReferenceMarketData

WIB = ZoneInfo("Asia/Jakarta")

# indexed by datetime.weekday()
DAY_NAMES = ("Senin", "Selasa", "Rabu", "Kamis", "Jumat", "Sabtu", "Minggu")

SCENARIO_AMOUNTS = (20_000_000, 30_000_000, 40_000_000, 50_000_000)
MIN_DISCOUNT = 5000

DEFAULT_FOOTER = "⚡ Auto-update"
FETCH_FAILED_TEXT = "❌ Gagal mengambil data harga."

Number = Union[int, float, Decimal]


def js_round(value: Number) -> int:
    """Round half up (``Math.round`` semantics)."""
    return int(math.floor(float(value) + 0.5))


def format_rupiah(value: Optional[Number]) -> str:
    """``1234567.5`` -> ``1.234.567,5`` (at most three decimals)."""
    try:
        n = round(float(value or 0), 3)
    except (TypeError, ValueError):
        n = 0.0
    if n == int(n):
        return f"{int(n):,}".replace(",", ".")
    text = f"{n:,.3f}".rstrip("0")
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def to_wib(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=WIB)
    return moment.astimezone(WIB)


def format_wib_timestamp(moment: datetime) -> str:
    local = to_wib(moment)
    return f"{DAY_NAMES[local.weekday()]} {local:%H:%M:%S} WIB"


def calculate_discount(amount: float) -> int:
    if amount <= 10_000:
        discount = max(amount * 0.5, MIN_DISCOUNT)
    elif amount <= 250_000:
        discount = amount * 0.0299
    elif amount <= 20_000_000:
        discount = amount * 0.0343
    elif amount <= 30_000_000:
        discount = amount * 0.034
    else:
        discount = amount * 0.03275 + 37_500
    return js_round(discount)


@dataclass(frozen=True, slots=True)
class Scenario:
    amount: int
    discounted_price: int
    grams: float
    profit: float


def calculate_profit(buy: Number, sell: Number, amount: int) -> Scenario:
    discounted = amount - calculate_discount(amount)
    grams = amount / float(buy)
    profit = grams * float(sell) - discounted
    return Scenario(amount=amount, discounted_price=discounted, grams=grams, profit=profit)


def _signed_rupiah(value: float) -> str:
    rounded = js_round(value)
    sign = "+" if rounded >= 0 else "-"
    return f"{sign}Rp{format_rupiah(abs(rounded))}"


def format_scenarios(buy: Number, sell: Number, amounts: Iterable[int] = SCENARIO_AMOUNTS) -> List[str]:
    lines = []
    for amount in amounts:
        s = calculate_profit(buy, sell, amount)
        lines.append(f"🎁 {amount // 1_000_000}jt→{s.grams:.4f}gr ({_signed_rupiah(s.profit)})")
    return lines


def format_change_banner(delta: Optional[PriceDelta]) -> str:
    if delta is None or delta.buy == 0:
        return ""
    amount = format_rupiah(abs(delta.buy))
    if delta.buy > 0:
        return f"🚀 🚀 NAIK 🚀 🚀 (+Rp{amount})\n"
    return f"🔻 🔻 TURUN 🔻 🔻 (-Rp{amount})\n"


def format_market_line(reference: Optional[ReferenceMarketData]) -> str:
    fx = reference.fx_rate if reference else None
    spot = reference.spot_usd if reference else None
    line = f"💱 USD Rp{format_rupiah(js_round(fx))}" if fx else "💱 USD -"
    if spot:
        line += f" | XAU ${spot:.2f}"
    return line


def format_price_message(
    snapshot: PriceSnapshot,
    reference: Optional[ReferenceMarketData] = None,
    *,
    delta: Optional[PriceDelta] = None,
    status_line: Optional[str] = None,
    calendar_text: str = "",
    footer: str = DEFAULT_FOOTER,
) -> str:
    """Render the full price message body."""
    buy, sell = snapshot.buy, snapshot.sell
    spread_pct = float(sell - buy) / float(buy) * 100 if buy else 0.0
    spread_text = f"{'-' if spread_pct > 0 else ''}{spread_pct:.2f}"

    header = format_change_banner(delta)
    time_section = format_wib_timestamp(snapshot.as_of) if snapshot.as_of else ""
    status_section = f"\n{status_line}" if status_line and status_line != "-" else ""

    body = [
        f"{header}{time_section}{status_section}",
        "",
        f"💰 Beli Rp{format_rupiah(buy)}/gr | Jual Rp{format_rupiah(sell)}/gr ({spread_text}%)",
        format_market_line(reference),
        "",
        *format_scenarios(buy, sell),
        calendar_text,
        footer,
    ]
    return "\n".join(body)


def format_promo_message(status: Any) -> str:
    return "🟢 ON" if PromoStatus(status) is PromoStatus.ON else "🔴 OFF"
