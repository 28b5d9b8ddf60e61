"""
GoldWatch Orchestrator
======================

Wires the connectors, watchers, fan-out, command router and HTTP status
view together and owns every timer:

    price poll        1s    PriceWatcher.tick
    promo poll        1s    StatusWatcher.tick
    market context    5s    MarketContext.refresh
    dedup prune     120s    BroadcastFanout.prune
    processed ids   300s    CommandRouter.prune_processed
    lock heartbeat   60s    InstanceLock.heartbeat
    keep-alive       60s    GET <SELF_URL>/health

Bootstrap failures (config, lock, transport) are fatal: ``main`` logs
them and returns exit status 1.
"""

import argparse
import asyncio
import os
import signal
import sys
import time
from collections import deque
from typing import Any, Dict, List, Optional, Tuple

from .core.config import ConfigurationError, load_all_config, validate_secrets, get_secret
from .core.economic_calendar import EconomicCalendar
from .core.errors import UpstreamUnavailable
from .core.formatting import DEFAULT_FOOTER, FETCH_FAILED_TEXT, format_price_message
from .core.instance_lock import InstanceLock
from .core.logger import setup_logger, get_logger, uptime_seconds
from .core.market_context import MarketContext
from .core.price_status import analyze_price_status
from .core.price_watcher import PriceWatcher, PriceWatcherConfig
from .core.scheduler import Ticker
from .core.status import utc_iso
from .core.status_watcher import StatusWatcher, StatusWatcherConfig
from .core.value_resolver import ValueResolver
from .connectors.http import HttpClient
from .connectors.market_sources import USD_IDR_RANGE, XAU_USD_RANGE, gold_sources, usd_idr_sources
from .connectors.treasury_client import TreasuryPriceClient
from .connectors.treasury_promo import PromoClient, PromoCredentials, TokenStore
from .alerts.broadcast import BroadcastFanout, FanoutConfig
from .alerts.commands import CommandRouter, ThrottleConfig
from .alerts.recipients import RecipientRegistry
from .dashboard.web import GoldWatchDashboard

SELF_URL_ENV = ("SELF_URL", "RENDER_EXTERNAL_URL", "RAILWAY_STATIC_URL")


class GoldWatchOrchestrator:
    """
    Main GoldWatch orchestrator.

    Coordinates:
    - Treasury price and promo polling
    - Reference market context (XAU/USD, USD/IDR, calendar)
    - Broadcast fan-out and chat commands
    - HTTP status view
    """

    def __init__(self, config_dir: str = "config", config: Optional[Dict[str, Any]] = None, transport=None):
        """
        Initialize GoldWatch.

        Args:
            config_dir: Path to config directory
            config: Pre-loaded configuration (skips loading from disk)
            transport: MessageTransport to use instead of Telegram
        """
        self.config = config if config is not None else load_all_config(config_dir)
        self.secrets = self.config.get('secrets', {})

        # Recent log lines for /stats (must be before logger setup)
        self._recent_logs: deque = deque(maxlen=200)

        system = self.config.get('system', {})
        setup_logger('goldwatch', level=system.get('log_level', 'INFO'), ring_buffer=self._recent_logs)
        self.logger = get_logger('orchestrator')

        issues = validate_secrets(self.secrets)
        if issues:
            self.logger.warning("Configuration issues:")
            for issue in issues:
                self.logger.warning(f"  - {issue}")

        self.lock = InstanceLock(
            system.get('lock_file', 'bot.lock'),
            stale_after_s=float(system.get('lock_stale_seconds', 300)),
        )
        self.warmup_seconds = float(system.get('warmup_seconds', 15))
        self.footer = system.get('footer', DEFAULT_FOOTER)

        market_cfg = self.config.get('market', {})
        self.http = HttpClient(default_timeout=float(market_cfg.get('source_timeout_seconds', 5)))
        self.registry = RecipientRegistry()
        self.transport = transport

        self.fanout: Optional[BroadcastFanout] = None
        self.market: Optional[MarketContext] = None
        self.calendar: Optional[EconomicCalendar] = None
        self.treasury: Optional[TreasuryPriceClient] = None
        self.promo: Optional[PromoClient] = None
        self.price_watcher: Optional[PriceWatcher] = None
        self.status_watcher: Optional[StatusWatcher] = None
        self.router: Optional[CommandRouter] = None
        self.dashboard: Optional[GoldWatchDashboard] = None

        self.tickers: Dict[str, Ticker] = {}
        self.ready = False
        self._running = False
        self._stop_event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self._shutdown_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def setup(self) -> None:
        """Build every component. Raises on fatal bootstrap errors."""
        self.logger.info("Setting up GoldWatch components...")
        self.lock.acquire()

        if self.transport is None:
            token = get_secret(self.secrets, 'telegram', 'bot_token')
            if not token:
                raise ConfigurationError("telegram.bot_token is required")
            from .alerts.telegram_bot import TelegramTransport
            self.transport = TelegramTransport(token)

        self.fanout = BroadcastFanout(self.transport, FanoutConfig.from_config(self.config.get('broadcast', {})))
        self._setup_market()
        self._setup_treasury()

        self.price_watcher = PriceWatcher(
            self.treasury.fetch_snapshot,
            self.market.reference,
            self.fanout,
            self.registry,
            self._render_price,
            PriceWatcherConfig.from_config(self.config.get('price_watch', {})),
        )
        self.status_watcher = StatusWatcher(
            self.promo.fetch_status,
            self.fanout,
            self.registry,
            StatusWatcherConfig.from_config(self.config.get('promo_watch', {})),
        )

        throttle = ThrottleConfig.from_config(self.config.get('commands', {}))
        self.router = CommandRouter(
            self.registry, self.transport, self.build_price_report, throttle,
            is_ready=lambda: self.ready,
        )
        self.transport.set_message_handler(self.router.handle)

        self._setup_tickers()
        self._setup_dashboard()
        self.logger.info("Setup complete")

    def _setup_market(self) -> None:
        market_cfg = self.config.get('market', {})
        timeout = float(market_cfg.get('source_timeout_seconds', 5))

        gold = ValueResolver(
            "XAU/USD", gold_sources(self.http, timeout),
            min_value=XAU_USD_RANGE[0], max_value=XAU_USD_RANGE[1],
            tolerance=float(market_cfg.get('xau_tolerance', 5.0)), timeout_s=timeout + 1,
        )
        fx = ValueResolver(
            "USD/IDR", usd_idr_sources(self.http, timeout),
            min_value=USD_IDR_RANGE[0], max_value=USD_IDR_RANGE[1],
            tolerance=float(market_cfg.get('usd_idr_tolerance', 50.0)), timeout_s=timeout + 1,
        )

        cal_cfg = self.config.get('calendar', {})
        if cal_cfg.get('enabled', True):
            self.calendar = EconomicCalendar(
                self.http,
                cal_cfg.get('url') or 'https://nfs.faireconomy.media/ff_calendar_thisweek.json',
                countries=cal_cfg.get('countries', ['USD']),
                impact=cal_cfg.get('impact', 'High'),
                hide_after_hours=float(cal_cfg.get('hide_after_hours', 3)),
                max_events=int(cal_cfg.get('max_events', 10)),
                timeout=timeout,
            )

        self.market = MarketContext(
            gold, fx, self.calendar,
            gold_ttl_s=float(market_cfg.get('xau_cache_seconds', 30)),
            fx_ttl_s=float(market_cfg.get('usd_idr_cache_seconds', 60)),
            calendar_ttl_s=float(market_cfg.get('calendar_cache_seconds', 300)),
        )

    def _setup_treasury(self) -> None:
        t_cfg = self.config.get('treasury', {})
        self.treasury = TreasuryPriceClient(
            self.http, t_cfg['price_url'], timeout=float(t_cfg.get('price_timeout_seconds', 3)),
        )
        credentials = PromoCredentials.from_secrets(self.secrets)
        if credentials is None:
            self.logger.warning("Treasury credentials missing: promo token cannot be refreshed")
        self.promo = PromoClient(
            self.http,
            TokenStore(t_cfg.get('token_file', 'token.txt')),
            credentials,
            nominal_url=t_cfg['nominal_url'],
            login_url=t_cfg['login_url'],
            timeout=float(t_cfg.get('promo_timeout_seconds', 15)),
        )

    def _setup_tickers(self) -> None:
        price_cfg = self.price_watcher.config
        promo_cfg = self.status_watcher.config
        market_cfg = self.config.get('market', {})
        bcast = self.fanout.config
        cmd_cfg = self.config.get('commands', {})

        self.tickers = {
            'price': Ticker('price', price_cfg.interval_s, self._price_tick),
            'promo': Ticker('promo', promo_cfg.interval_s, self._promo_tick),
            'market': Ticker(
                'market', float(market_cfg.get('refresh_interval_seconds', 5)),
                self.market.refresh, initial_delay_s=0,
            ),
            'dedup_prune': Ticker('dedup_prune', bcast.prune_interval_s, self.fanout.prune),
            'processed_ids_prune': Ticker(
                'processed_ids_prune', float(cmd_cfg.get('processed_ids_prune_seconds', 300)),
                self.router.prune_processed,
            ),
            'lock_heartbeat': Ticker('lock_heartbeat', 60, self.lock.heartbeat),
        }

        ka_cfg = self.config.get('keepalive', {})
        self.self_url = next((os.environ[k] for k in SELF_URL_ENV if os.environ.get(k)), None)
        if ka_cfg.get('enabled', True) and self.self_url:
            self.tickers['keepalive'] = Ticker(
                'keepalive', float(ka_cfg.get('interval_seconds', 60)), self._keepalive_tick,
                initial_delay_s=float(ka_cfg.get('initial_delay_seconds', 30)),
            )

    def _setup_dashboard(self) -> None:
        dash_cfg = self.config.get('dashboard', {})
        if not dash_cfg.get('enabled', True):
            return
        self.dashboard = GoldWatchDashboard(
            host=dash_cfg.get('host', '0.0.0.0'),
            port=int(dash_cfg.get('port', 8000)),
        )
        self.dashboard.set_callbacks(
            get_health=self.get_health,
            get_stats=self.get_stats,
            get_calendar=self.get_calendar,
            get_recent_logs=self.get_recent_logs,
        )

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def _price_tick(self):
        if not self.ready:
            return None
        return await self.price_watcher.tick()

    async def _promo_tick(self):
        if not self.ready:
            return None
        return await self.status_watcher.tick()

    async def _keepalive_tick(self) -> None:
        url = f"{self.self_url.rstrip('/')}/health"
        try:
            await self.http.get_text(url, source='keepalive', timeout=10)
            self.logger.debug("Keep-alive ping ok")
        except UpstreamUnavailable as e:
            self.logger.warning(f"Keep-alive ping failed: {e.reason}")

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def _render_price(self, snapshot, delta, report) -> str:
        return format_price_message(
            snapshot,
            self.market.reference(),
            delta=delta,
            status_line=report.message,
            calendar_text=self.market.calendar_text(),
            footer=self.footer,
        )

    async def build_price_report(self) -> str:
        """On-demand report for the ``emas`` command."""
        try:
            snapshot = await self.treasury.fetch_snapshot()
        except UpstreamUnavailable as e:
            self.logger.warning(f"On-demand price fetch failed: {e.reason}")
            return FETCH_FAILED_TEXT
        reference = await self.market.refresh()
        report = analyze_price_status(snapshot.sell, reference)
        return format_price_message(
            snapshot,
            reference,
            status_line=report.message,
            calendar_text=self.market.calendar_text(),
            footer=self.footer,
        )

    # ------------------------------------------------------------------
    # HTTP callbacks
    # ------------------------------------------------------------------

    async def get_health(self) -> Dict[str, Any]:
        return {
            'ready': self.ready,
            'subscriptions': len(self.registry),
            'wsConnected': bool(self.transport and self.transport.connected),
        }

    async def get_stats(self) -> Dict[str, Any]:
        now = time.time()
        state = self.price_watcher.state
        price_cfg = self.price_watcher.config
        reference = self.market.reference()

        def _since(ts: Optional[float]) -> Optional[float]:
            return round(now - ts, 1) if ts else None

        return {
            'subs': len(self.registry),
            'lastPrice': state.last_known.to_dict() if state.last_known else None,
            'lastBroadcasted': state.last_broadcast.to_dict() if state.last_broadcast else None,
            'broadcastCount': state.broadcast_count,
            'lastBroadcastTime': utc_iso(state.last_broadcast_at),
            'timeSinceLastBroadcast': _since(state.last_broadcast_at),
            'lastPriceUpdateTime': utc_iso(state.last_price_update_at),
            'timeSinceLastPriceUpdate': _since(state.last_price_update_at),
            'isPriceStale': state.is_stale(now, price_cfg.stale_threshold_s),
            'staleThreshold': price_cfg.stale_threshold_s,
            'cachedXAUUSD': reference.spot_usd,
            'cachedUSDIDR': reference.fx_rate,
            'promoStatus': self.status_watcher.state.status.value if self.status_watcher.state.status else None,
            'cachedEconomicEvents': len(self.market.calendar_events()),
            'wsConnected': bool(self.transport and self.transport.connected),
            'transport': self.transport.get_status() if self.transport else None,
            'engine': {
                'ready': self.ready,
                'price': self.price_watcher.get_status(),
                'promo': self.status_watcher.get_status(),
                'fanout': self.fanout.get_status(),
                'market': self.market.get_status(),
                'commands': self.router.get_status(),
                'tickers': {name: t.get_status() for name, t in self.tickers.items()},
            },
        }

    async def get_calendar(self) -> Tuple[List[Dict[str, Any]], str]:
        if self.calendar is None or self.market.events is None:
            raise RuntimeError("economic calendar disabled")
        events = await self.market.events.get()
        if events is None:
            raise RuntimeError("economic calendar unavailable")
        return [e.to_dict() for e in events], self.calendar.format(events)

    async def get_recent_logs(self) -> List[str]:
        return list(self._recent_logs)[-20:]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _warm_up(self) -> None:
        self.logger.info(f"Warming up for {self.warmup_seconds:.0f}s before polling...")
        await asyncio.sleep(self.warmup_seconds)
        await self.tickers['market'].run_once()
        self.ready = True
        self.logger.info(f"Ready ({len(self.registry)} subscribers)")
        await self.tickers['price'].run_once()
        self.tickers['price'].start()
        self.tickers['promo'].start()

    async def run(self) -> None:
        """Start all components and wait for stop()."""
        self._running = True
        self.logger.info("Starting GoldWatch...")

        if self.dashboard:
            await self.dashboard.start()

        await self.transport.start_polling()
        if hasattr(self.transport, 'test_connection'):
            if not await self.transport.test_connection():
                self.logger.error("Transport connection test failed, polling will keep retrying")

        for name, ticker in self.tickers.items():
            if name not in ('price', 'promo'):
                ticker.start()
        self._tasks.append(asyncio.create_task(self._warm_up()))

        await self._stop_event.wait()

    def request_stop(self) -> asyncio.Task:
        """Start the shutdown sequence once; later callers get the same task."""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.create_task(self._shutdown(), name="goldwatch-shutdown")
        return self._shutdown_task

    async def stop(self) -> None:
        """Stop all components gracefully."""
        await asyncio.shield(self.request_stop())

    async def _shutdown(self) -> None:
        self.logger.info("Stopping GoldWatch...")
        self._running = False
        self.ready = False
        self._stop_event.set()

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        for ticker in self.tickers.values():
            await ticker.stop()
        if self.price_watcher:
            await self.price_watcher.drain()

        if self.dashboard:
            await self.dashboard.stop()
        if self.transport:
            await self.transport.stop_polling()
        await self.http.close()
        self.lock.release()

        self.logger.info(f"GoldWatch stopped after {uptime_seconds():.0f}s")


async def main() -> int:
    """Entry point for GoldWatch. Returns the process exit status."""
    orchestrator: Optional[GoldWatchOrchestrator] = None
    try:
        orchestrator = GoldWatchOrchestrator()
        await orchestrator.setup()
    except Exception as e:
        get_logger('orchestrator').critical(f"Fatal error during start-up: {e}", exc_info=True)
        if orchestrator is not None:
            orchestrator.lock.release()
        return 1

    loop = asyncio.get_running_loop()

    def signal_handler():
        orchestrator.request_stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    exit_code = 0
    try:
        await orchestrator.run()
    except KeyboardInterrupt:
        pass
    except Exception as e:
        orchestrator.logger.critical(f"Fatal error: {e}", exc_info=True)
        exit_code = 1
    finally:
        await orchestrator.stop()
    return exit_code


def _parse_args(argv=None):
    p = argparse.ArgumentParser(description="Run GoldWatch")
    p.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        metavar="LEVEL",
        help="Set log level. Default from config.",
    )
    return p.parse_args(argv)


def cli(argv=None) -> None:
    args = _parse_args(argv)
    if args.log_level:
        os.environ["GOLDWATCH_LOG_LEVEL"] = args.log_level
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nGoldWatch stopped by user")


if __name__ == "__main__":
    cli()
