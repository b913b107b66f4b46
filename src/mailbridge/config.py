"""Configuration loading.

Values are resolved once at startup with the precedence
``defaults < TOML file < environment`` (a ``.env`` file in the working
directory is loaded into the environment first, without overriding variables
that are already set).

Example ``mailbridge.toml``::

    [telegram]
    token = "123456:ABC-DEF"
    community_chat_id = -1001234567890
    setup_chat_id = -1009876543210

    [mailgun]
    domain = "mg.example.org"
    api_key = "key-..."
    route_prefix = "mailbridge:"

    [forwarder]
    refresh_interval_seconds = 600
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass
from dataclasses import field
from dataclasses import fields
from pathlib import Path
from typing import Any
from typing import Callable
from typing import Mapping

from dotenv import load_dotenv

from mailbridge.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "MAILBRIDGE_CONFIG"


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Resolved settings for one process."""

    # Telegram ----------------------------------------------------------
    telegram_token: str | None = None
    telegram_bot_name: str | None = None
    community_chat_id: int | None = None
    setup_chat_id: int | None = None

    # Mailgun -----------------------------------------------------------
    mailgun_domain: str | None = None
    mailgun_api_key: str | None = None
    mailgun_base_url: str = "https://api.mailgun.net"
    route_prefix: str | None = None
    smtp_server: str = "smtp.mailgun.org"

    # Forwarder ---------------------------------------------------------
    refresh_interval_seconds: float = 600.0
    request_timeout_seconds: float = 30.0
    refresh_after_delete: bool = False

    # Misc
    log_level: str = "INFO"

    sources: dict[str, str] = field(default_factory=dict, repr=False, compare=False)

    def display(self) -> list[tuple[str, str, str]]:
        """(key, value, source) rows with secrets masked."""
        rows = []
        for f in fields(self):
            if f.name == "sources":
                continue
            value = getattr(self, f.name)
            if f.name in _SECRET_FIELDS and value:
                shown = str(value)[:4] + "…"
            else:
                shown = "" if value is None else str(value)
            rows.append((f.name, shown, self.sources.get(f.name, "default")))
        return rows


_SECRET_FIELDS = {"telegram_token", "mailgun_api_key"}

# attr -> (toml section, toml key, env var, parser)
_FIELD_SOURCES: dict[str, tuple[str, str, str, Callable[[Any], Any]]] = {
    "telegram_token": ("telegram", "token", "TELEGRAM_TOKEN", str),
    "telegram_bot_name": ("telegram", "bot_name", "TELEGRAM_BOT_NAME", str),
    "community_chat_id": ("telegram", "community_chat_id", "TELEGRAM_COMMUNITY_CHAT_ID", int),
    "setup_chat_id": ("telegram", "setup_chat_id", "TELEGRAM_SETUP_CHAT_ID", int),
    "mailgun_domain": ("mailgun", "domain", "MAILGUN_DOMAIN", str),
    "mailgun_api_key": ("mailgun", "api_key", "MAILGUN_API_KEY", str),
    "mailgun_base_url": ("mailgun", "base_url", "MAILGUN_BASE_URL", str),
    "route_prefix": ("mailgun", "route_prefix", "MAILGUN_ROUTE_PREFIX", str),
    "smtp_server": ("mailgun", "smtp_server", "MAILGUN_SMTP_SERVER", str),
    "refresh_interval_seconds": ("forwarder", "refresh_interval_seconds", "ROUTE_REFRESH_INTERVAL", float),
    "request_timeout_seconds": ("forwarder", "request_timeout_seconds", "MAILGUN_TIMEOUT", float),
    "refresh_after_delete": ("forwarder", "refresh_after_delete", "REFRESH_AFTER_DELETE", _truthy),
    "log_level": ("logging", "level", "LOG_LEVEL", str),
}

_REQUIRED_CORE = ("mailgun_domain", "mailgun_api_key", "route_prefix")
_REQUIRED_BOT = ("telegram_token", "community_chat_id", "setup_chat_id")


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc


def _parse(attr: str, origin: str, parser: Callable[[Any], Any], raw: Any) -> Any:
    try:
        return parser(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {attr} from {origin}: {raw!r}") from exc


def load_settings(
    config_path: Path | str | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    dotenv: bool = True,
) -> Settings:
    """Resolve :class:`Settings` from file and environment.

    Args:
        config_path: TOML file; falls back to ``$MAILBRIDGE_CONFIG`` when omitted
        environ: Environment mapping (defaults to ``os.environ``)
        dotenv: Load ``./.env`` into the process environment first

    Raises:
        ConfigError: If the file is unreadable or a value does not parse
    """
    if dotenv:
        env_path = Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path, override=False)

    env = os.environ if environ is None else environ
    if config_path is None and env.get(CONFIG_PATH_ENV):
        config_path = env[CONFIG_PATH_ENV]

    data: dict[str, Any] = {}
    if config_path is not None:
        data = _read_toml(Path(config_path))
        logger.debug("Loaded config file %s", config_path)

    settings = Settings()
    for attr, (section, key, env_var, parser) in _FIELD_SOURCES.items():
        section_data = data.get(section) or {}
        if key in section_data:
            setattr(settings, attr, _parse(attr, "file", parser, section_data[key]))
            settings.sources[attr] = "file"
        raw_env = env.get(env_var)
        if raw_env not in (None, ""):
            setattr(settings, attr, _parse(attr, env_var, parser, raw_env))
            settings.sources[attr] = "env"

    return settings


def validate_settings(settings: Settings, *, require_bot: bool = True) -> None:
    """Fail fast when required values are missing.

    Raises:
        ConfigError: Listing every missing key
    """
    required = _REQUIRED_CORE + (_REQUIRED_BOT if require_bot else ())
    missing = [attr for attr in required if getattr(settings, attr) in (None, "")]
    if missing:
        hints = ", ".join(f"{attr} ({_FIELD_SOURCES[attr][2]})" for attr in missing)
        raise ConfigError(f"Missing required configuration: {hints}")
    if settings.refresh_interval_seconds <= 0:
        raise ConfigError("refresh_interval_seconds must be positive")
    if settings.request_timeout_seconds <= 0:
        raise ConfigError("request_timeout_seconds must be positive")


__all__ = ["CONFIG_PATH_ENV", "Settings", "load_settings", "validate_settings"]
