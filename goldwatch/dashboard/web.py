"""
GoldWatch HTTP Status View
==========================

Small aiohttp app serving liveness and diagnostics for the hosting
platform and for whoever is debugging the bot. Reads state through
callbacks set by the orchestrator.
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from aiohttp import web

from ..core.logger import _uptime, uptime_seconds

logger = logging.getLogger('goldwatch.dashboard')


def _ensure_json_safe(payload: Dict[str, Any]) -> Dict[str, Any]:
    try:
        json.dumps(payload)
        return payload
    except TypeError:
        return json.loads(json.dumps(payload, default=str))


class GoldWatchDashboard:
    """``/``, ``/health``, ``/stats`` and ``/calendar``."""

    def __init__(self, host: str = '0.0.0.0', port: int = 8000):
        self.host = host
        self.port = port
        self._app = web.Application()
        self._runner = None

        # Callbacks set by orchestrator
        self._get_health: Optional[Callable] = None
        self._get_stats: Optional[Callable] = None
        self._get_calendar: Optional[Callable] = None
        self._get_recent_logs: Optional[Callable] = None

        self._app.router.add_get('/', self._handle_index)
        self._app.router.add_get('/health', self._handle_health)
        self._app.router.add_get('/stats', self._handle_stats)
        self._app.router.add_get('/calendar', self._handle_calendar)

    @property
    def app(self) -> web.Application:
        return self._app

    def set_callbacks(
        self,
        get_health=None,
        get_stats=None,
        get_calendar=None,
        get_recent_logs=None,
    ):
        if get_health: self._get_health = get_health
        if get_stats: self._get_stats = get_stats
        if get_calendar: self._get_calendar = get_calendar
        if get_recent_logs: self._get_recent_logs = get_recent_logs

    async def start(self):
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"HTTP status view at http://{self.host}:{self.port}")

    async def stop(self):
        if self._runner:
            await self._runner.cleanup()

    async def _handle_index(self, request):
        return web.Response(text='✅ Bot Running')

    async def _handle_health(self, request):
        result: Dict[str, Any] = {
            'status': 'ok',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'uptime': round(uptime_seconds(), 1),
            'ready': False,
            'subscriptions': 0,
            'wsConnected': False,
        }
        if self._get_health:
            try:
                result.update(await self._get_health())
            except Exception as e:
                logger.error(f"/health error: {e}")
                result['status'] = 'degraded'
                result['error'] = str(e)
        return web.json_response(result)

    async def _handle_stats(self, request):
        start = time.perf_counter()
        status_code = 200
        result: Dict[str, Any] = {'status': 'ok', 'uptime': _uptime()}
        try:
            if self._get_stats:
                result.update(await self._get_stats())
            if self._get_recent_logs:
                try:
                    result['logs'] = await self._get_recent_logs()
                except Exception as e:
                    result['logs'] = [str(e)]
        except Exception as e:
            logger.error(f"/stats error: {e}")
            status_code = 500
            result = {'status': 'error', 'error': str(e)}
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.debug(f"/stats {status_code} in {duration_ms:.1f}ms")

        return web.json_response(_ensure_json_safe(result), status=status_code)

    async def _handle_calendar(self, request):
        if not self._get_calendar:
            return web.json_response({'success': False, 'error': 'calendar disabled'}, status=500)
        try:
            events, formatted = await self._get_calendar()
        except Exception as e:
            logger.error(f"/calendar error: {e}")
            return web.json_response({'success': False, 'error': str(e)}, status=500)
        return web.json_response(_ensure_json_safe({
            'success': True,
            'count': len(events),
            'events': events,
            'formatted': formatted,
        }))
