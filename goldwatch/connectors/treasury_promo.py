"""
Treasury Promo Client
=====================

Reads the nominal-suggestion list from the Treasury app API and derives
the 20jt promo ON/OFF status. The API wants a bearer token; when it
answers 401 the client signs in once with the configured credentials,
stores the new token and retries.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ..core.errors import AuthExpired, UpstreamUnavailable
from ..core.logger import get_connector_logger
from ..core.models import PromoStatus

logger = get_connector_logger('treasury_promo')

NOMINAL_URL = "https://connect.treasury.id/nominal/suggestion"
LOGIN_URL = "https://connect.treasury.id/user/signin"

APP_HEADERS = {
    'accept': 'application/json',
    'content-type': 'application/json',
    'x-app-version': '8.0.82',
    'x-language': 'id',
    'x-platform': 'android',
    'x-version': '1.0',
}

PROMO_AMOUNT = 19_315_000
PROMO_DEFAULT_AMOUNT = 20_000_000


def derive_promo_status(payload: Dict[str, Any]) -> PromoStatus:
    """
    ON when an active suggestion carries the 20jt promo amount.

    Raises:
        UpstreamUnavailable: when ``data`` is present but not a list
    """
    items = payload.get('data') if isinstance(payload, dict) else None
    if items is None:
        return PromoStatus.OFF
    if not isinstance(items, list):
        raise UpstreamUnavailable('treasury-promo', f"unexpected data type {type(items).__name__}")
    for item in items:
        if not isinstance(item, dict) or item.get('status') is not True:
            continue
        if item.get('promotion_amount') == PROMO_AMOUNT or item.get('default_amount') == PROMO_DEFAULT_AMOUNT:
            return PromoStatus.ON
    return PromoStatus.OFF


def _is_success(payload: Any) -> bool:
    return isinstance(payload, dict) and (payload.get('meta') or {}).get('status') == 'success'


class TokenStore:
    """Bearer token persisted as a single-line text file."""

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> str:
        try:
            return self.path.read_text(encoding='utf-8').strip()
        except FileNotFoundError:
            return ''

    def save(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(token, encoding='utf-8')


@dataclass(frozen=True)
class PromoCredentials:
    email: str
    password: str
    client_id: str
    client_secret: str
    device_id: Optional[str] = None
    shield_id: Optional[str] = None
    shield_session_id: Optional[str] = None

    @classmethod
    def from_secrets(cls, secrets: Dict[str, Any]) -> Optional["PromoCredentials"]:
        section = secrets.get('treasury') or {}
        required = ('email', 'password', 'client_id', 'client_secret')
        if not all(section.get(k) for k in required):
            return None
        return cls(
            email=str(section['email']),
            password=str(section['password']),
            client_id=str(section['client_id']),
            client_secret=str(section['client_secret']),
            device_id=section.get('device_id'),
            shield_id=section.get('shield_id'),
            shield_session_id=section.get('shield_session_id'),
        )

    def login_payload(self) -> Dict[str, Any]:
        return {
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'latitude': '0.0',
            'longitude': '0.0',
            'scope': '*',
            'email': self.email,
            'password': self.password,
            'app_name': None,
            'provider': None,
            'token': None,
            'device_id': self.device_id,
            'shield_id': self.shield_id,
            'shield_session_id': self.shield_session_id,
        }


class PromoClient:
    """Fetches promo status, refreshing the token once on 401."""

    SOURCE = 'treasury-promo'

    def __init__(
        self,
        http,
        token_store: TokenStore,
        credentials: Optional[PromoCredentials],
        *,
        nominal_url: str = NOMINAL_URL,
        login_url: str = LOGIN_URL,
        timeout: float = 15.0,
        login_timeout: float = 10.0,
    ):
        self._http = http
        self.token_store = token_store
        self.credentials = credentials
        self.nominal_url = nominal_url
        self.login_url = login_url
        self.timeout = timeout
        self.login_timeout = login_timeout

        self.token_refreshes = 0
        self.last_error: Optional[str] = None

    def _headers(self) -> Dict[str, str]:
        return {**APP_HEADERS, 'authorization': f"Bearer {self.token_store.load()}"}

    async def _fetch_nominal_once(self) -> Dict[str, Any]:
        headers = self._headers()
        try:
            payload = await self._http.post_json(
                self.nominal_url, {}, source=self.SOURCE, timeout=self.timeout, headers=headers,
            )
            if _is_success(payload):
                return payload
        except AuthExpired:
            raise
        except UpstreamUnavailable as e:
            logger.debug("Nominal POST failed (%s), trying GET", e.reason)

        payload = await self._http.get_json(
            self.nominal_url, source=self.SOURCE, timeout=self.timeout, headers=headers,
        )
        if not _is_success(payload):
            raise UpstreamUnavailable(self.SOURCE, "API error")
        return payload

    async def refresh_token(self) -> str:
        """Sign in and persist the new token."""
        if self.credentials is None:
            raise UpstreamUnavailable(self.SOURCE, "no credentials configured")

        logger.info("Refreshing promo API token...")
        payload = await self._http.post_json(
            self.login_url, self.credentials.login_payload(),
            source='treasury-login', timeout=self.login_timeout, headers=APP_HEADERS,
        )
        if not _is_success(payload):
            message = ((payload or {}).get('meta') or {}).get('message', 'Unknown error')
            raise UpstreamUnavailable('treasury-login', f"login failed: {message}")

        token_data = (payload.get('data') or {}).get('token')
        token = token_data.get('access_token') if isinstance(token_data, dict) else token_data
        if not token:
            raise UpstreamUnavailable('treasury-login', "no token in response")

        self.token_store.save(token)
        self.token_refreshes += 1
        logger.info(f"Token refreshed (length {len(token)})")
        return token

    async def fetch_nominal(self) -> Dict[str, Any]:
        try:
            return await self._fetch_nominal_once()
        except AuthExpired:
            logger.info("Promo API returned 401, signing in again")
        await self.refresh_token()
        return await self._fetch_nominal_once()

    async def fetch_status(self) -> PromoStatus:
        try:
            status = derive_promo_status(await self.fetch_nominal())
        except UpstreamUnavailable as e:
            self.last_error = e.reason
            raise
        self.last_error = None
        return status
