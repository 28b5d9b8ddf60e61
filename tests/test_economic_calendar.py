"""
Tests for the economic calendar section.

Run with: pytest tests/test_economic_calendar.py -v
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from goldwatch.core.economic_calendar import (
    CalendarEvent,
    EconomicCalendar,
    GoldImpact,
    analyze_gold_impact,
    filter_events,
    format_calendar,
    format_event_line,
    parse_event_time,
    short_title,
)
from goldwatch.core.errors import UpstreamUnavailable
from goldwatch.core.formatting import WIB

# Monday noon, Jakarta
NOW = datetime(2024, 1, 15, 12, 0, tzinfo=WIB)


def _event(title, at, country='USD', impact='High', forecast='', actual='', previous=''):
    return CalendarEvent(
        title=title, country=country, impact=impact, date=at,
        forecast=forecast, previous=previous, actual=actual,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Gold impact
# ═══════════════════════════════════════════════════════════════════════════

class TestGoldImpact:

    @pytest.mark.parametrize("title,actual,forecast,expected", [
        ("Non-Farm Employment Change", "250K", "180K", GoldImpact.JELEK),
        ("Non-Farm Employment Change", "150K", "180K", GoldImpact.BAGUS),
        ("Unemployment Rate", "3.9%", "3.8%", GoldImpact.BAGUS),
        ("CPI m/m", "0.2%", "0.3%", GoldImpact.JELEK),
        ("Federal Funds Rate", "5.50%", "5.25%", GoldImpact.JELEK),
        ("Advance GDP q/q", "2.0%", "1.5%", GoldImpact.JELEK),
        ("Unemployment Claims", "230K", "210K", GoldImpact.BAGUS),
        ("Retail Sales m/m", "-0.1%", "0.4%", GoldImpact.BAGUS),
    ])
    def test_rules(self, title, actual, forecast, expected):
        event = _event(title, NOW, actual=actual, forecast=forecast)
        assert analyze_gold_impact(event) is expected

    def test_untracked_release_has_no_impact(self):
        event = _event("ISM Manufacturing PMI", NOW, actual="49.1", forecast="47.5")
        assert analyze_gold_impact(event) is None

    def test_missing_numbers_have_no_impact(self):
        assert analyze_gold_impact(_event("CPI m/m", NOW, actual="0.2%")) is None
        assert analyze_gold_impact(_event("CPI m/m", NOW, actual="-", forecast="0.3%")) is None
        assert analyze_gold_impact(_event("CPI m/m", NOW, actual="n/a", forecast="0.3%")) is None


# ═══════════════════════════════════════════════════════════════════════════
# Filtering
# ═══════════════════════════════════════════════════════════════════════════

class TestFilterEvents:

    def test_keeps_usd_high_today_and_tomorrow(self):
        keep_today = _event("CPI m/m", NOW + timedelta(hours=8))
        keep_recent = _event("GDP", NOW - timedelta(hours=2))
        keep_tomorrow = _event("Retail Sales m/m", NOW + timedelta(days=1))
        too_old = _event("PPI m/m", NOW - timedelta(hours=4))
        too_far = _event("NFP", NOW + timedelta(days=2))
        wrong_country = _event("ECB Rate", NOW + timedelta(hours=1), country='EUR')
        low_impact = _event("Crude Oil", NOW + timedelta(hours=1), impact='Low')

        kept = filter_events(
            [keep_tomorrow, too_old, keep_today, too_far, wrong_country, low_impact, keep_recent], NOW,
        )
        assert kept == [keep_recent, keep_today, keep_tomorrow]

    def test_caps_number_of_events(self):
        events = [_event(f"E{i}", NOW + timedelta(minutes=i)) for i in range(15)]
        assert len(filter_events(events, NOW, max_events=10)) == 10


# ═══════════════════════════════════════════════════════════════════════════
# Rendering
# ═══════════════════════════════════════════════════════════════════════════

class TestRendering:

    def test_upcoming_event_with_forecast(self):
        event = _event("Core CPI m/m", NOW + timedelta(hours=8, minutes=30), forecast="0.3%")
        assert format_event_line(event, NOW) == "• Senin 20:30 (⏰8j 30m) CPI F:0.3%"

    def test_upcoming_within_hour(self):
        event = _event("Unemployment Claims", NOW + timedelta(minutes=45))
        assert format_event_line(event, NOW) == "• Senin 12:45 (⏰45m) Unemp"

    def test_released_event_shows_actual_and_impact(self):
        event = _event(
            "Non-Farm Employment Change", NOW - timedelta(hours=1, minutes=30),
            actual="250K", forecast="180K",
        )
        assert format_event_line(event, NOW) == "• Senin 10:30 (✅1j 30m lalu) NFP 250K>180K 🔴 JELEK"

    def test_recent_release_in_minutes(self):
        event = _event("Retail Sales m/m", NOW - timedelta(minutes=10), actual="-0.1%", forecast="0.4%")
        assert format_event_line(event, NOW) == "• Senin 11:50 (✅10m lalu) Retail -0.1%>0.4% 🟢 BAGUS"

    def test_time_is_rounded_to_five_minutes(self):
        event = _event("GDP", datetime(2024, 1, 16, 20, 58, tzinfo=WIB))
        assert format_event_line(event, NOW).startswith("• Selasa 21:00 ")

    def test_short_titles(self):
        assert short_title("Non-Farm Employment Change") == "NFP"
        assert short_title("Federal Funds Rate") == "Federal Funds Rate"

    def test_format_calendar(self):
        event = _event("CPI m/m", NOW + timedelta(hours=8, minutes=30), forecast="0.3%")
        assert format_calendar([event], NOW) == "\n📅 USD News\n• Senin 20:30 (⏰8j 30m) CPI F:0.3%\n"
        assert format_calendar([], NOW) == ''
        assert format_calendar(None, NOW) == ''


# ═══════════════════════════════════════════════════════════════════════════
# Feed
# ═══════════════════════════════════════════════════════════════════════════

class TestEconomicCalendarFeed:

    def test_parse_event_time(self):
        parsed = parse_event_time("2024-01-15T08:30:00-05:00")
        assert parsed.hour == 20 and parsed.minute == 30
        assert parse_event_time("garbage") is None
        assert parse_event_time(None) is None

    @pytest.mark.asyncio
    async def test_fetch_filters_rows(self):
        http = AsyncMock()
        http.get_json.return_value = [
            {"title": "CPI m/m", "country": "USD", "date": "2024-01-15T08:30:00-05:00",
             "impact": "High", "forecast": "0.3%", "previous": "0.1%"},
            {"title": "German ZEW", "country": "EUR", "date": "2024-01-15T05:00:00-05:00",
             "impact": "High"},
            {"title": "Broken", "country": "USD", "impact": "High", "date": "??"},
            "not a row",
        ]
        calendar = EconomicCalendar(http, clock=lambda: NOW)

        events = await calendar.fetch_events()

        assert [e.title for e in events] == ["CPI m/m"]
        assert events[0].to_dict()['forecast'] == "0.3%"
        assert "📅 USD News" in calendar.format(events)

    @pytest.mark.asyncio
    async def test_fetch_failure_returns_none(self):
        http = AsyncMock()
        http.get_json.side_effect = UpstreamUnavailable('forexfactory', 'HTTP 429')
        assert await EconomicCalendar(http, clock=lambda: NOW).fetch_events() is None

    @pytest.mark.asyncio
    async def test_unexpected_payload_returns_none(self):
        http = AsyncMock()
        http.get_json.return_value = {"error": "rate limited"}
        assert await EconomicCalendar(http, clock=lambda: NOW).fetch_events() is None
