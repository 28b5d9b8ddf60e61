"""
Tests for message rendering.

Run with: pytest tests/test_formatting.py -v
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from goldwatch.core.formatting import (
    calculate_discount,
    calculate_profit,
    format_change_banner,
    format_market_line,
    format_price_message,
    format_promo_message,
    format_rupiah,
    format_scenarios,
    format_wib_timestamp,
    js_round,
)
from goldwatch.core.models import PriceDelta, PriceSnapshot, PromoStatus, ReferenceMarketData


class TestNumbers:

    @pytest.mark.parametrize("value,expected", [
        (1234567, "1.234.567"),
        (1234567.5, "1.234.567,5"),
        (0.1234, "0,123"),
        (Decimal("1020000"), "1.020.000"),
        (None, "0"),
    ])
    def test_format_rupiah(self, value, expected):
        assert format_rupiah(value) == expected

    def test_js_round_half_up(self):
        assert js_round(2.5) == 3
        assert js_round(-2.5) == -2
        assert js_round(1.49) == 1


class TestScenarios:

    @pytest.mark.parametrize("amount,expected", [
        (100, 5000),
        (10_000, 5000),
        (200_000, 5980),
        (20_000_000, 686_000),
        (30_000_000, 1_020_000),
        (40_000_000, 1_347_500),
    ])
    def test_calculate_discount_tiers(self, amount, expected):
        assert calculate_discount(amount) == expected

    def test_calculate_profit(self):
        scenario = calculate_profit(1_000_000, 990_000, 20_000_000)
        assert scenario.discounted_price == 19_314_000
        assert scenario.grams == pytest.approx(20.0)
        assert scenario.profit == pytest.approx(486_000)

    def test_scenario_lines_carry_sign(self):
        lines = format_scenarios(1_000_000, 990_000)
        assert len(lines) == 4
        assert lines[0] == "🎁 20jt→20.0000gr (+Rp486.000)"

        loss = format_scenarios(1_000_000, 960_000, amounts=(20_000_000,))
        assert loss == ["🎁 20jt→20.0000gr (-Rp114.000)"]


class TestMessageParts:

    def test_change_banner(self):
        up = PriceDelta(buy=Decimal(5000), sell=Decimal(5000))
        down = PriceDelta(buy=Decimal(-2500), sell=Decimal(-2500))
        assert format_change_banner(up) == "🚀 🚀 NAIK 🚀 🚀 (+Rp5.000)\n"
        assert format_change_banner(down) == "🔻 🔻 TURUN 🔻 🔻 (-Rp2.500)\n"
        assert format_change_banner(None) == ""

    def test_market_line(self):
        assert format_market_line(None) == "💱 USD -"
        ref = ReferenceMarketData(spot_usd=2345.678, fx_rate=16250.4)
        assert format_market_line(ref) == "💱 USD Rp16.250 | XAU $2345.68"
        assert format_market_line(ReferenceMarketData(fx_rate=16250.0)) == "💱 USD Rp16.250"

    def test_wib_timestamp(self):
        moment = datetime(2024, 1, 15, 3, 5, 0, tzinfo=timezone.utc)
        assert format_wib_timestamp(moment) == "Senin 10:05:00 WIB"

    def test_promo_message(self):
        assert format_promo_message(PromoStatus.ON) == "🟢 ON"
        assert format_promo_message("OFF") == "🔴 OFF"


class TestPriceMessage:

    def _snapshot(self):
        return PriceSnapshot(
            buy=Decimal(1_000_000),
            sell=Decimal(990_000),
            as_of=datetime(2024, 1, 15, 3, 5, 0, tzinfo=timezone.utc),
            fetched_at=0.0,
        )

    def test_layout(self):
        text = format_price_message(self._snapshot(), status_line="✅ NORMAL", footer="⚡ test")
        lines = text.split("\n")

        assert lines[0] == "Senin 10:05:00 WIB"
        assert lines[1] == "✅ NORMAL"
        assert lines[2] == ""
        assert lines[3] == "💰 Beli Rp1.000.000/gr | Jual Rp990.000/gr (-1.00%)"
        assert lines[4] == "💱 USD -"
        assert lines[6].startswith("🎁 20jt")
        assert lines[-1] == "⚡ test"

    def test_banner_and_calendar(self):
        delta = PriceDelta(buy=Decimal(5000), sell=Decimal(4000))
        calendar = "\n📅 USD News\n• Senin 20:30 CPI F:0.3%\n"
        text = format_price_message(self._snapshot(), delta=delta, calendar_text=calendar)

        assert text.startswith("🚀 🚀 NAIK 🚀 🚀 (+Rp5.000)\nSenin 10:05:00 WIB")
        assert "📅 USD News" in text
        assert text.endswith("⚡ Auto-update")

    def test_indeterminate_status_is_omitted(self):
        text = format_price_message(self._snapshot(), status_line="-")
        assert text.split("\n")[1] == ""
