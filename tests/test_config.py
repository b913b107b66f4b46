"""Tests for configuration loading."""

from __future__ import annotations

import pytest

from mailbridge.config import Settings
from mailbridge.config import load_settings
from mailbridge.config import validate_settings
from mailbridge.errors import ConfigError

CONFIG_TOML = """
[telegram]
token = "123:abc"
community_chat_id = -1001
setup_chat_id = -1002

[mailgun]
domain = "mg.example.org"
api_key = "key-from-file"
route_prefix = "mailbridge:"

[forwarder]
refresh_interval_seconds = 120
refresh_after_delete = true
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "mailbridge.toml"
    path.write_text(CONFIG_TOML)
    return path


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings(environ={}, dotenv=False)

        assert settings.mailgun_base_url == "https://api.mailgun.net"
        assert settings.smtp_server == "smtp.mailgun.org"
        assert settings.refresh_interval_seconds == 600.0
        assert settings.refresh_after_delete is False
        assert settings.sources == {}

    def test_file_values(self, config_file):
        settings = load_settings(config_file, environ={}, dotenv=False)

        assert settings.telegram_token == "123:abc"
        assert settings.community_chat_id == -1001
        assert settings.route_prefix == "mailbridge:"
        assert settings.refresh_interval_seconds == 120.0
        assert settings.refresh_after_delete is True
        assert settings.sources["mailgun_api_key"] == "file"

    def test_env_overrides_file(self, config_file):
        env = {"MAILGUN_API_KEY": "key-from-env", "TELEGRAM_SETUP_CHAT_ID": "-5", "REFRESH_AFTER_DELETE": "no"}

        settings = load_settings(config_file, environ=env, dotenv=False)

        assert settings.mailgun_api_key == "key-from-env"
        assert settings.setup_chat_id == -5
        assert settings.refresh_after_delete is False
        assert settings.sources["mailgun_api_key"] == "env"

    def test_empty_env_value_does_not_override(self, config_file):
        settings = load_settings(config_file, environ={"MAILGUN_DOMAIN": ""}, dotenv=False)
        assert settings.mailgun_domain == "mg.example.org"

    def test_config_path_from_env(self, config_file):
        settings = load_settings(environ={"MAILBRIDGE_CONFIG": str(config_file)}, dotenv=False)
        assert settings.mailgun_domain == "mg.example.org"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "nope.toml", environ={}, dotenv=False)

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[mailgun\n")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_settings(path, environ={}, dotenv=False)

    def test_invalid_number(self):
        with pytest.raises(ConfigError, match="community_chat_id"):
            load_settings(environ={"TELEGRAM_COMMUNITY_CHAT_ID": "general"}, dotenv=False)

    def test_dotenv_file(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text("MAILGUN_ROUTE_PREFIX=from-dotenv:\n")
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("MAILGUN_ROUTE_PREFIX", raising=False)

        settings = load_settings()

        assert settings.route_prefix == "from-dotenv:"
        monkeypatch.delenv("MAILGUN_ROUTE_PREFIX", raising=False)


class TestValidateSettings:
    def test_complete_config_passes(self, config_file):
        validate_settings(load_settings(config_file, environ={}, dotenv=False))

    def test_missing_core_values(self):
        with pytest.raises(ConfigError) as excinfo:
            validate_settings(Settings(), require_bot=False)

        message = str(excinfo.value)
        assert "MAILGUN_DOMAIN" in message
        assert "MAILGUN_API_KEY" in message
        assert "MAILGUN_ROUTE_PREFIX" in message
        assert "TELEGRAM_TOKEN" not in message

    def test_bot_values_required_for_bot(self):
        settings = Settings(mailgun_domain="d", mailgun_api_key="k", route_prefix="p:")
        validate_settings(settings, require_bot=False)

        with pytest.raises(ConfigError, match="TELEGRAM_TOKEN"):
            validate_settings(settings, require_bot=True)

    def test_non_positive_interval(self):
        settings = Settings(mailgun_domain="d", mailgun_api_key="k", route_prefix="p:", refresh_interval_seconds=0)
        with pytest.raises(ConfigError, match="refresh_interval_seconds"):
            validate_settings(settings, require_bot=False)


class TestDisplay:
    def test_secrets_masked(self, config_file):
        settings = load_settings(config_file, environ={}, dotenv=False)
        rows = {key: (value, source) for key, value, source in settings.display()}

        assert rows["mailgun_api_key"] == ("key-…", "file")
        assert rows["telegram_token"][0] == "123:…"
        assert rows["smtp_server"] == ("smtp.mailgun.org", "default")
        assert "sources" not in rows
