"""Core module - config, logging, watchers, resolver, formatting."""
from .config import load_all_config, load_config, load_secrets
from .logger import setup_logger, get_logger
from .models import PriceSnapshot, PriceDelta, ReferenceMarketData, PriceStatus, PromoStatus
from .value_resolver import ValueResolver
from .cached_feed import CachedFeed
from .scheduler import Ticker
from .price_watcher import PriceWatcher, PriceWatcherConfig
from .status_watcher import StatusWatcher, StatusWatcherConfig

__all__ = [
    'load_all_config', 'load_config', 'load_secrets', 'setup_logger', 'get_logger',
    'PriceSnapshot', 'PriceDelta', 'ReferenceMarketData', 'PriceStatus', 'PromoStatus',
    'ValueResolver', 'CachedFeed', 'Ticker',
    'PriceWatcher', 'PriceWatcherConfig', 'StatusWatcher', 'StatusWatcherConfig',
]
