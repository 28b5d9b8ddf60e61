"""
Tests for configuration loading.

Run with: pytest tests/test_config.py -v
"""

import pytest

from goldwatch.core.config import (
    DEFAULTS,
    ConfigurationError,
    apply_env_overrides,
    get_secret,
    load_config,
    load_secrets,
    validate_secrets,
)


class TestLoadConfig:

    def test_none_returns_defaults_copy(self):
        config = load_config(None)
        assert config == DEFAULTS
        config['price_watch']['cooldown_seconds'] = 1
        assert DEFAULTS['price_watch']['cooldown_seconds'] == 50

    def test_yaml_merges_over_defaults(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text("price_watch:\n  cooldown_seconds: 30\nsystem:\n  footer: hi\n", encoding='utf-8')

        config = load_config(str(path))

        assert config['price_watch']['cooldown_seconds'] == 30
        assert config['price_watch']['min_change'] == 1
        assert config['system']['footer'] == 'hi'

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(str(tmp_path / 'missing.yaml'))


class TestEnvOverrides:

    def test_treasury_url_and_port(self):
        config = apply_env_overrides(DEFAULTS, {'TREASURY_URL': 'https://mirror.test/rate', 'PORT': '9000'})
        assert config['treasury']['price_url'] == 'https://mirror.test/rate'
        assert config['dashboard']['port'] == 9000
        assert DEFAULTS['dashboard']['port'] == 8000

    def test_bad_port_raises(self):
        with pytest.raises(ConfigurationError):
            apply_env_overrides(DEFAULTS, {'PORT': 'eighty'})

    def test_log_level(self):
        config = apply_env_overrides(DEFAULTS, {'GOLDWATCH_LOG_LEVEL': 'DEBUG'})
        assert config['system']['log_level'] == 'DEBUG'


class TestSecrets:

    def test_env_path_override(self, tmp_path, monkeypatch):
        path = tmp_path / 'secrets.yaml'
        path.write_text("telegram:\n  bot_token: '123:abc'\n", encoding='utf-8')
        monkeypatch.setenv('GOLDWATCH_SECRETS', str(path))

        secrets = load_secrets()
        assert get_secret(secrets, 'telegram', 'bot_token') == '123:abc'
        assert get_secret(secrets, 'treasury', 'email') is None

    def test_missing_secrets_file_is_empty(self, tmp_path, monkeypatch):
        monkeypatch.setenv('GOLDWATCH_SECRETS', str(tmp_path / 'nope.yaml'))
        assert load_secrets() == {}

    def test_validate_flags_placeholders(self):
        issues = validate_secrets({
            'telegram': {'bot_token': 'PASTE_YOUR_BOT_TOKEN'},
            'treasury': {'email': 'a@b.c', 'password': 'x', 'client_id': '3', 'client_secret': 'YOUR_SECRET'},
        })
        assert issues == [
            'Missing or placeholder: telegram.bot_token',
            'Missing or placeholder: treasury.client_secret',
        ]

    def test_validate_missing_section(self):
        assert validate_secrets({}) == ['Missing telegram configuration', 'Missing treasury configuration']
