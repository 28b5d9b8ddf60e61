"""
GoldWatch Configuration Loader
==============================

Loads YAML configuration, layers it over built-in defaults and applies
the environment overrides the service is deployed with.
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional
import yaml


class ConfigurationError(Exception):
    """Raised when configuration is invalid."""
    pass


DEFAULT_TREASURY_URL = "https://api.treasury.id/api/v1/antigrvty/gold/rate"

DEFAULTS: Dict[str, Any] = {
    'system': {
        'log_level': 'INFO',
        'lock_file': 'bot.lock',
        'lock_stale_seconds': 300,
        'warmup_seconds': 15,
        'footer': '⚡ Auto-update',
    },
    'treasury': {
        'price_url': DEFAULT_TREASURY_URL,
        'price_timeout_seconds': 3,
        'nominal_url': 'https://connect.treasury.id/nominal/suggestion',
        'login_url': 'https://connect.treasury.id/user/signin',
        'promo_timeout_seconds': 15,
        'token_file': 'token.txt',
    },
    'price_watch': {
        'interval_seconds': 1,
        'min_change': 1,
        'cooldown_seconds': 50,
        'stale_threshold_seconds': 300,
    },
    'promo_watch': {
        'interval_seconds': 1,
        'cooldown_seconds': 60,
    },
    'market': {
        'refresh_interval_seconds': 5,
        'xau_cache_seconds': 30,
        'usd_idr_cache_seconds': 60,
        'calendar_cache_seconds': 300,
        'source_timeout_seconds': 5,
        'xau_tolerance': 5.0,
        'usd_idr_tolerance': 50.0,
    },
    'calendar': {
        'enabled': True,
        'url': 'https://nfs.faireconomy.media/ff_calendar_thisweek.json',
        'countries': ['USD'],
        'impact': 'High',
        'hide_after_hours': 3,
        'max_events': 10,
    },
    'broadcast': {
        'dedup_window_seconds': 65,
        'prune_interval_seconds': 120,
        'pace_every': 5,
        'pace_delay_seconds': 0.1,
        'pin_delay_seconds': 0.5,
    },
    'commands': {
        'trigger_word': 'emas',
        'cooldown_per_chat_seconds': 60,
        'global_throttle_seconds': 3,
        'typing_seconds': 2,
        'processed_ids_max': 300,
        'processed_ids_keep': 200,
        'processed_ids_prune_seconds': 300,
    },
    'dashboard': {
        'enabled': True,
        'host': '0.0.0.0',
        'port': 8000,
    },
    'keepalive': {
        'enabled': True,
        'interval_seconds': 60,
        'initial_delay_seconds': 30,
    },
}


def load_yaml(path: str) -> Dict[str, Any]:
    """Load a YAML file."""
    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


def find_repo_root(start: Optional[Path] = None) -> Path:
    """Locate the repo root by walking upward for known anchors."""
    start_path = (start or Path.cwd()).resolve()
    for current in [start_path, *start_path.parents]:
        if (current / ".git").exists() or (current / "config" / "config.yaml").exists():
            return current
    return start_path


def _resolve_path(path: str) -> Path:
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate
    repo_root = find_repo_root(Path(__file__).resolve())
    return repo_root / candidate


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def apply_env_overrides(config: Dict[str, Any], environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Apply deployment env vars on top of a config dict.

    ``TREASURY_URL`` replaces the price endpoint and ``PORT`` the dashboard
    listen port.
    """
    env = os.environ if environ is None else environ
    config = copy.deepcopy(config)

    url = env.get("TREASURY_URL")
    if url:
        config.setdefault('treasury', {})['price_url'] = url

    port = env.get("PORT")
    if port:
        try:
            config.setdefault('dashboard', {})['port'] = int(port)
        except ValueError as exc:
            raise ConfigurationError(f"PORT must be an integer, got {port!r}") from exc

    level = env.get("GOLDWATCH_LOG_LEVEL")
    if level:
        config.setdefault('system', {})['log_level'] = level

    return config


def load_config(config_path: Optional[str] = "config/config.yaml") -> Dict[str, Any]:
    """
    Load main configuration merged over the built-in defaults.

    Args:
        config_path: Path to config.yaml. ``None`` means defaults only.

    Returns:
        Configuration dictionary
    """
    if config_path is None:
        return copy.deepcopy(DEFAULTS)

    path = _resolve_path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    return _deep_merge(DEFAULTS, load_yaml(str(path)))


def load_secrets(secrets_path: str = "config/secrets.yaml") -> Dict[str, Any]:
    """
    Load secrets configuration file.

    A missing secrets file is not fatal: the service still serves the
    HTTP surface and polls prices, it just cannot log in to Telegram
    or refresh the promo token.
    """
    override_path = os.getenv("GOLDWATCH_SECRETS")
    if override_path:
        secrets_path = override_path

    path = _resolve_path(secrets_path)
    if not path.exists():
        return {}

    return load_yaml(str(path))


def load_all_config(config_dir: str = "config") -> Dict[str, Any]:
    """
    Load config + secrets and apply env overrides.

    Returns:
        Merged configuration with the secrets under ``'secrets'``
    """
    config_dir = Path(config_dir)
    config_file = _resolve_path(str(config_dir / "config.yaml"))

    config = load_config(str(config_file)) if config_file.exists() else load_config(None)
    secrets = load_secrets(str(config_dir / "secrets.yaml"))

    merged = apply_env_overrides(config)
    merged['secrets'] = secrets
    return merged


def validate_secrets(secrets: Dict[str, Any]) -> list:
    """
    Validate that required secrets are present.

    Returns:
        List of missing/invalid secret names
    """
    issues = []

    required = {
        'telegram': ['bot_token'],
        'treasury': ['email', 'password', 'client_id', 'client_secret'],
    }

    for service, keys in required.items():
        if service not in secrets:
            issues.append(f"Missing {service} configuration")
            continue

        for key in keys:
            value = str(secrets[service].get(key, '') or '')
            if not value or value.startswith('PASTE_') or value.startswith('YOUR_'):
                issues.append(f"Missing or placeholder: {service}.{key}")

    return issues


def get_secret(secrets: Dict, service: str, key: str) -> Optional[str]:
    """Safely get a secret value."""
    return (secrets.get(service) or {}).get(key)
