"""Connectors module - Treasury API and reference market sources."""
from .http import HttpClient
from .treasury_client import TreasuryPriceClient
from .treasury_promo import PromoClient, TokenStore
from .market_sources import (
    TradingViewGoldSource, InvestingGoldSource, GoogleFinanceSource, ExchangeRateApiSource,
)

__all__ = [
    'HttpClient', 'TreasuryPriceClient', 'PromoClient', 'TokenStore',
    'TradingViewGoldSource', 'InvestingGoldSource', 'GoogleFinanceSource', 'ExchangeRateApiSource',
]
