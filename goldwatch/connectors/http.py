"""
Shared HTTP Client
==================

Thin aiohttp wrapper used by every upstream connector. Each call carries a
``ClientTimeout``; anything short of a 2xx answer with a parseable body is
raised as :class:`UpstreamUnavailable`.
"""

import asyncio
import json
from typing import Any, Dict, Optional
import aiohttp

from ..core.errors import AuthExpired, UpstreamUnavailable
from ..core.logger import get_connector_logger

logger = get_connector_logger('http')

DEFAULT_HEADERS = {
    'User-Agent': (
        'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
        '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
    ),
    'Accept-Language': 'en-US,en;q=0.9',
}


class HttpClient:
    """Lazily created aiohttp session shared by the connectors."""

    def __init__(self, default_timeout: float = 5.0):
        self.default_timeout = default_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=DEFAULT_HEADERS)
        return self._session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def request(
        self,
        method: str,
        url: str,
        *,
        source: str,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        json_body: Any = None,
    ) -> str:
        """
        Perform a request and return the body text.

        Raises:
            AuthExpired: on HTTP 401
            UpstreamUnavailable: on any other failure
        """
        session = await self._get_session()
        client_timeout = aiohttp.ClientTimeout(total=timeout or self.default_timeout)
        try:
            async with session.request(
                method, url, headers=headers, json=json_body, timeout=client_timeout,
            ) as resp:
                if resp.status == 401:
                    raise AuthExpired(source)
                if resp.status < 200 or resp.status >= 300:
                    raise UpstreamUnavailable(source, f"HTTP {resp.status}")
                return await resp.text()
        except UpstreamUnavailable:
            raise
        except asyncio.TimeoutError as exc:
            raise UpstreamUnavailable(source, "timeout") from exc
        except aiohttp.ClientError as exc:
            raise UpstreamUnavailable(source, f"{type(exc).__name__}: {exc}") from exc

    async def get_text(self, url: str, *, source: str, **kwargs) -> str:
        return await self.request('GET', url, source=source, **kwargs)

    async def get_json(self, url: str, *, source: str, **kwargs) -> Any:
        return _decode(await self.request('GET', url, source=source, **kwargs), source)

    async def post_json(self, url: str, payload: Any = None, *, source: str, **kwargs) -> Any:
        text = await self.request('POST', url, source=source, json_body=payload, **kwargs)
        return _decode(text, source)


def _decode(text: str, source: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as exc:
        raise UpstreamUnavailable(source, "malformed JSON") from exc
