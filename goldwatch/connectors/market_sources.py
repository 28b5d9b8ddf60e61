"""
Reference Market Sources
========================

Individual upstream readings of gold spot (XAU/USD) and USD/IDR. Each
source implements the resolver's ``Source`` protocol: ``fetch()`` returns
one number or raises :class:`UpstreamUnavailable`. Plausibility checks and
cross-source reconciliation happen in the :class:`ValueResolver`.
"""

import re
from typing import List, Optional, Pattern, Sequence, Tuple

from ..core.errors import UpstreamUnavailable
from ..core.logger import get_connector_logger
from ..core.value_resolver import Candidate, reconcile

logger = get_connector_logger('market')

HTML_HEADERS = {
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Cache-Control': 'no-cache',
    'Pragma': 'no-cache',
}

# Plausibility ranges used by the resolvers
XAU_USD_RANGE = (1000.0, 10000.0)
USD_IDR_RANGE = (10000.0, 20000.0)


def parse_number(text: str) -> Optional[float]:
    """``'2,345.67'`` -> ``2345.67``."""
    try:
        return float(text.replace(',', ''))
    except (AttributeError, ValueError):
        return None


class TradingViewGoldSource:
    """TradingView scanner, OANDA:XAUUSD close."""

    URL = "https://scanner.tradingview.com/symbol"
    PAYLOAD = {
        'symbols': {'tickers': ['OANDA:XAUUSD'], 'query': {'types': []}},
        'columns': ['close'],
    }

    def __init__(self, http, priority: int = 1, timeout: float = 5.0):
        self._http = http
        self.name = 'tradingview'
        self.priority = priority
        self.timeout = timeout

    async def fetch(self) -> float:
        data = await self._http.post_json(
            self.URL, self.PAYLOAD, source=self.name, timeout=self.timeout,
        )
        try:
            return float(data['data'][0]['d'][0])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(self.name, "unexpected payload") from e


class InvestingGoldSource:
    """
    Investing.com XAU/USD page.

    The page is matched with several patterns of different reliability; the
    readings are reconciled with the same clustering the resolver uses.
    """

    URL = "https://www.investing.com/currencies/xau-usd"
    PATTERNS: Sequence[Tuple[Pattern, int]] = (
        (re.compile(r'data-test="instrument-price-last"[^>]*>([0-9,]+\.?[0-9]*)<', re.I), 1),
        (re.compile(r'class="instrument-price-last[^"]*"[^>]*>([0-9,]+\.?[0-9]*)<', re.I), 2),
        (re.compile(r'instrument[^>]{0,50}([0-9],?[0-9]{3}\.[0-9]{2})', re.I), 9),
        (re.compile(r'quote[^>]{0,50}([0-9],?[0-9]{3}\.[0-9]{2})', re.I), 9),
        (re.compile(r'current[^>]{0,50}([0-9],?[0-9]{3}\.[0-9]{2})', re.I), 9),
    )
    TOLERANCE = 1.0

    def __init__(self, http, priority: int = 2, timeout: float = 6.0):
        self._http = http
        self.name = 'investing'
        self.priority = priority
        self.timeout = timeout

    def extract(self, html: str) -> Optional[float]:
        low, high = XAU_USD_RANGE
        candidates: List[Candidate] = []
        for idx, (pattern, priority) in enumerate(self.PATTERNS):
            match = pattern.search(html)
            if not match:
                continue
            price = parse_number(match.group(1))
            if price is not None and low < price < high:
                candidates.append(Candidate(source=f"pattern{idx}", value=price, priority=priority))
        return reconcile(candidates, self.TOLERANCE)

    async def fetch(self) -> float:
        html = await self._http.get_text(
            self.URL, source=self.name, timeout=self.timeout, headers=HTML_HEADERS,
        )
        price = self.extract(html)
        if price is None:
            raise UpstreamUnavailable(self.name, "price not found in page")
        return price


class GoogleFinanceSource:
    """Google Finance quote page for a currency pair (``XAU-USD``, ``USD-IDR``)."""

    URL = "https://www.google.com/finance/quote/{pair}"
    PATTERNS = (
        re.compile(r'class="YMlKec fxKbKc"[^>]*>([0-9,\.]+)</div>', re.I),
        re.compile(r'class="[^"]*fxKbKc[^"]*"[^>]*>([0-9,\.]+)</div>', re.I),
        re.compile(r'data-last-price="([0-9,\.]+)"', re.I),
    )

    def __init__(self, http, pair: str, priority: int, timeout: float = 5.0):
        self._http = http
        self.pair = pair
        self.name = f"google:{pair}"
        self.priority = priority
        self.timeout = timeout

    def extract(self, html: str) -> Optional[float]:
        for pattern in self.PATTERNS:
            match = pattern.search(html)
            if match:
                value = parse_number(match.group(1))
                if value is not None:
                    return value
        return None

    async def fetch(self) -> float:
        html = await self._http.get_text(
            self.URL.format(pair=self.pair), source=self.name,
            timeout=self.timeout, headers=HTML_HEADERS,
        )
        value = self.extract(html)
        if value is None:
            raise UpstreamUnavailable(self.name, "price not found in page")
        return value


class ExchangeRateApiSource:
    """api.exchangerate-api.com latest USD rates."""

    URL = "https://api.exchangerate-api.com/v4/latest/USD"

    def __init__(self, http, currency: str = 'IDR', priority: int = 2, timeout: float = 5.0):
        self._http = http
        self.currency = currency
        self.name = 'exchangerate-api'
        self.priority = priority
        self.timeout = timeout

    async def fetch(self) -> float:
        data = await self._http.get_json(self.URL, source=self.name, timeout=self.timeout)
        try:
            return float(data['rates'][self.currency])
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(self.name, f"no {self.currency} rate") from e


def gold_sources(http, timeout: float = 5.0) -> list:
    return [
        TradingViewGoldSource(http, priority=1, timeout=timeout),
        InvestingGoldSource(http, priority=2, timeout=timeout),
        GoogleFinanceSource(http, 'XAU-USD', priority=3, timeout=timeout),
    ]


def usd_idr_sources(http, timeout: float = 5.0) -> list:
    return [
        GoogleFinanceSource(http, 'USD-IDR', priority=1, timeout=timeout),
        ExchangeRateApiSource(http, 'IDR', priority=2, timeout=timeout),
    ]
