"""
Economic Calendar
=================

High-impact USD releases from the ForexFactory weekly feed, shown under the
price message. Each released event gets a rough gold-impact tag: data that
strengthens the dollar is JELEK (bad) for gold, data that weakens it is
BAGUS (good).
"""

import math
import re
from datetime import datetime, timedelta
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence
from enum import Enum

from .errors import UpstreamUnavailable
from .formatting import DAY_NAMES, to_wib
from .logger import get_logger

logger = get_logger("calendar")

FOREX_FACTORY_URL = "https://nfs.faireconomy.media/ff_calendar_thisweek.json"


class GoldImpact(Enum):
    """Expected effect of a release on gold."""
    BAGUS = "BAGUS"
    JELEK = "JELEK"


@dataclass(frozen=True)
class CalendarEvent:
    """One economic release."""
    title: str
    country: str
    impact: str
    date: datetime
    forecast: str = ""
    previous: str = ""
    actual: str = ""

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> Optional["CalendarEvent"]:
        """Build from a ForexFactory row; ``None`` when the date is unusable."""
        when = parse_event_time(raw.get('date'))
        if when is None:
            return None
        return cls(
            title=str(raw.get('title') or raw.get('event') or 'Unknown Event'),
            country=str(raw.get('country') or ''),
            impact=str(raw.get('impact') or ''),
            date=when,
            forecast=str(raw.get('forecast') or ''),
            previous=str(raw.get('previous') or ''),
            actual=str(raw.get('actual') or ''),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'country': self.country,
            'impact': self.impact,
            'date': self.date.isoformat(),
            'forecast': self.forecast,
            'previous': self.previous,
            'actual': self.actual,
        }


def parse_event_time(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None
    # feed dates always carry an offset; a bare one is taken as WIB
    return to_wib(parsed)


_NUMBER = re.compile(r'-?(?:\d+\.?\d*|\.\d+)')


def _leading_number(text: str) -> Optional[float]:
    cleaned = re.sub(r'[^0-9.\-]', '', text)
    match = _NUMBER.match(cleaned)
    return float(match.group(0)) if match else None


# (keywords, impact when actual > forecast)
_IMPACT_RULES = (
    (('interest rate', 'fed', 'fomc'), GoldImpact.JELEK),
    (('non-farm', 'nfp', 'payroll'), GoldImpact.JELEK),
    (('unemployment',), GoldImpact.BAGUS),
    (('cpi', 'inflation', 'pce'), GoldImpact.BAGUS),
    (('gdp',), GoldImpact.JELEK),
    (('jobless', 'claims'), GoldImpact.BAGUS),
    (('retail sales',), GoldImpact.JELEK),
)


def analyze_gold_impact(event: CalendarEvent) -> Optional[GoldImpact]:
    """
    Tag a released event as good or bad for gold.

    Returns ``None`` when the event has no actual/forecast pair or its
    title is not one of the tracked releases.
    """
    if not event.actual or event.actual == '-' or not event.forecast or event.forecast == '-':
        return None

    actual = _leading_number(event.actual)
    forecast = _leading_number(event.forecast)
    if actual is None or forecast is None:
        return None

    title = event.title.lower()
    for keywords, when_higher in _IMPACT_RULES:
        if any(k in title for k in keywords):
            if actual > forecast:
                return when_higher
            return GoldImpact.BAGUS if when_higher is GoldImpact.JELEK else GoldImpact.JELEK
    return None


def filter_events(
    events: Iterable[CalendarEvent],
    now: datetime,
    *,
    countries: Sequence[str] = ('USD',),
    impact: str = 'High',
    hide_after_hours: float = 3,
    max_events: int = 10,
) -> List[CalendarEvent]:
    """Events dated today or tomorrow (WIB) that are not long past release."""
    today = to_wib(now).date()
    window = {today, today + timedelta(days=1)}
    hide_after = timedelta(hours=hide_after_hours)

    kept = [
        e for e in events
        if now <= e.date + hide_after
        and to_wib(e.date).date() in window
        and e.country in countries
        and e.impact == impact
    ]
    kept.sort(key=lambda e: e.date)
    return kept[:max_events]


_SHORT_TITLES = (
    ('Non-Farm', 'NFP'),
    ('Unemployment', 'Unemp'),
    ('Interest Rate', 'Interest'),
    ('CPI', 'CPI'),
    ('GDP', 'GDP'),
    ('Retail', 'Retail'),
    ('Jobless', 'Jobless'),
)


def short_title(title: str) -> str:
    for needle, short in _SHORT_TITLES:
        if needle in title:
            return short
    return title


def _time_marker(event: CalendarEvent, now: datetime, hide_after_hours: float) -> str:
    elapsed_s = (now - event.date).total_seconds()
    minutes = math.floor(elapsed_s / 60)
    if elapsed_s < 0:
        until = abs(minutes)
        if until < 60:
            return f"⏰{until}m"
        hours, mins = divmod(until, 60)
        return f"⏰{hours}j {mins}m" if mins else f"⏰{hours}j"
    if 0 < elapsed_s <= hide_after_hours * 3600:
        hours, mins = divmod(minutes, 60)
        return f"✅{hours}j {mins}m lalu" if hours else f"✅{mins}m lalu"
    return ""


def format_event_line(event: CalendarEvent, now: datetime, hide_after_hours: float = 3) -> str:
    local = to_wib(event.date)
    rounded = math.floor(local.minute / 5 + 0.5) * 5
    local = local.replace(minute=0, second=0, microsecond=0) + timedelta(minutes=rounded)

    line = f"• {DAY_NAMES[local.weekday()]} {local:%H:%M}"
    marker = _time_marker(event, now, hide_after_hours)
    if marker:
        line += f" ({marker})"
    line += f" {short_title(event.title)}"

    forecast = event.forecast or '-'
    if event.actual and event.actual != '-':
        line += f" {event.actual}>{forecast}"
        impact = analyze_gold_impact(event)
        if impact is GoldImpact.BAGUS:
            line += " 🟢 BAGUS"
        elif impact is GoldImpact.JELEK:
            line += " 🔴 JELEK"
    elif forecast != '-':
        line += f" F:{forecast}"
    return line


def format_calendar(
    events: Optional[Sequence[CalendarEvent]],
    now: datetime,
    hide_after_hours: float = 3,
) -> str:
    """Render the ``📅 USD News`` section, or ``''`` when there is nothing to show."""
    if not events:
        return ''
    lines = [format_event_line(e, now, hide_after_hours) for e in events]
    return '\n📅 USD News\n' + ''.join(f"{line}\n" for line in lines)


class EconomicCalendar:
    """
    Fetches and filters the ForexFactory weekly calendar.

    ``fetch_events`` is the refresh function behind the calendar CachedFeed:
    it returns ``None`` on failure so the previous list is kept.
    """

    def __init__(
        self,
        http,
        url: str = FOREX_FACTORY_URL,
        *,
        countries: Sequence[str] = ('USD',),
        impact: str = 'High',
        hide_after_hours: float = 3,
        max_events: int = 10,
        timeout: float = 5.0,
        clock=None,
    ):
        self._http = http
        self.url = url
        self.countries = tuple(countries)
        self.impact = impact
        self.hide_after_hours = hide_after_hours
        self.max_events = max_events
        self.timeout = timeout
        self._clock = clock or (lambda: datetime.now().astimezone())

    async def fetch_events(self) -> Optional[List[CalendarEvent]]:
        try:
            rows = await self._http.get_json(self.url, source='forexfactory', timeout=self.timeout)
        except UpstreamUnavailable as e:
            logger.warning(f"Economic calendar fetch failed: {e.reason}")
            return None
        if not isinstance(rows, list):
            logger.warning("Economic calendar payload is not a list")
            return None

        events = [ev for ev in (CalendarEvent.from_dict(r) for r in rows if isinstance(r, dict)) if ev]
        kept = filter_events(
            events,
            self._clock(),
            countries=self.countries,
            impact=self.impact,
            hide_after_hours=self.hide_after_hours,
            max_events=self.max_events,
        )
        logger.info(f"Found {len(kept)} USD high-impact events")
        return kept

    def format(self, events: Optional[Sequence[CalendarEvent]], now: Optional[datetime] = None) -> str:
        return format_calendar(events, now or self._clock(), self.hide_after_hours)
