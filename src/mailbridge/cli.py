"""Command-line entry point.

Usage:
    mailbridge run                     # Start the Telegram bot
    mailbridge routes [--all]          # Print cached routes
    mailbridge forward ALIAS DEST ID   # Forward on behalf of a member
    mailbridge delete ID               # Remove a member's forwarding
    mailbridge config show             # Effective configuration
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer

from mailbridge.config import Settings
from mailbridge.config import load_settings
from mailbridge.config import validate_settings
from mailbridge.errors import ConfigError
from mailbridge.errors import ForwarderError
from mailbridge.forwarder import Forwarder
from mailbridge.store import MailgunRoutingStore

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2

app = typer.Typer(
    name="mailbridge",
    help="Self-service Mailgun forwarding aliases for a Telegram community",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Configuration management")
app.add_typer(config_app, name="config")

logger = logging.getLogger(__name__)

ConfigOption = typer.Option(None, "--config", "-c", help="TOML config file (default: $MAILBRIDGE_CONFIG)")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _settings(config: Optional[Path], *, require_bot: bool) -> Settings:
    try:
        settings = load_settings(config)
        validate_settings(settings, require_bot=require_bot)
    except ConfigError as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR)
    configure_logging(settings.log_level)
    return settings


def build_forwarder(settings: Settings) -> Forwarder:
    store = MailgunRoutingStore(
        settings.mailgun_domain,
        settings.mailgun_api_key,
        base_url=settings.mailgun_base_url,
        timeout=settings.request_timeout_seconds,
    )
    return Forwarder(
        store,
        settings.mailgun_domain,
        settings.route_prefix,
        refresh_interval=settings.refresh_interval_seconds,
        refresh_after_delete=settings.refresh_after_delete,
    )


async def _with_cache(forwarder: Forwarder, action):
    """Refresh once, run ``action``, then wait for follow-up refreshes and close."""
    try:
        if not await forwarder.cache.refresh():
            raise ForwarderError("could not load routes from Mailgun")
        return await action(forwarder)
    finally:
        await forwarder.cache.wait_for_pending()
        await forwarder.store.aclose()


@app.command()
def run(config: Optional[Path] = ConfigOption) -> None:
    """Start the Telegram bot and the periodic route refresh."""
    from mailbridge.bot import EmailBot

    settings = _settings(config, require_bot=True)
    EmailBot(settings, build_forwarder(settings)).run()


@app.command()
def routes(
    config: Optional[Path] = ConfigOption,
    show_all: bool = typer.Option(False, "--all", "-a", help="Include routes not owned by this bot"),
) -> None:
    """Fetch routes once and print them."""
    settings = _settings(config, require_bot=False)
    forwarder = build_forwarder(settings)

    async def _list(f: Forwarder):
        return list(f.cache.rules) if show_all else f.cache.owned_rules()

    try:
        rules = asyncio.run(_with_cache(forwarder, _list))
    except ForwarderError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(EXIT_ERROR)

    for rule in rules:
        owner = rule.owner(settings.route_prefix)
        typer.echo(f"{rule.id}\t{owner or '-'}\t{rule.expression}\t{', '.join(rule.actions)}")
    typer.echo(f"{len(rules)} route(s)")


@app.command()
def forward(
    alias: str = typer.Argument(..., help="Local-part to receive mail for"),
    destination: str = typer.Argument(..., help="Mailbox to forward to"),
    identifier: str = typer.Argument(..., help="Member id owning the alias"),
    config: Optional[Path] = ConfigOption,
) -> None:
    """Create or move a member's forwarding and print fresh SMTP details."""
    settings = _settings(config, require_bot=False)
    forwarder = build_forwarder(settings)

    async def _forward(f: Forwarder):
        return await f.forward(alias, destination, identifier)

    try:
        result = asyncio.run(_with_cache(forwarder, _forward))
    except (ForwarderError, ValueError) as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(EXIT_ERROR)

    typer.echo(f"address:  {result.alias}@{settings.mailgun_domain} -> {result.destination}")
    typer.echo(f"server:   {settings.smtp_server}")
    typer.echo(f"username: {result.mailbox}")
    typer.echo(f"password: {result.secret}")


@app.command()
def delete(
    identifier: str = typer.Argument(..., help="Member id whose forwarding is removed"),
    config: Optional[Path] = ConfigOption,
) -> None:
    """Remove a member's forwarding (no-op when none exists)."""
    settings = _settings(config, require_bot=False)
    forwarder = build_forwarder(settings)

    async def _delete(f: Forwarder):
        return await f.delete(identifier)

    try:
        removed = asyncio.run(_with_cache(forwarder, _delete))
    except ForwarderError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(EXIT_ERROR)

    typer.echo("Removed." if removed else "Nothing to remove.")


@config_app.command(name="show")
def config_show(config: Optional[Path] = ConfigOption) -> None:
    """Show effective configuration with sources."""
    try:
        settings = load_settings(config)
    except ConfigError as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR)

    for key, value, source in settings.display():
        source_indicator = {
            "file": typer.style("[file]", fg=typer.colors.CYAN),
            "env": typer.style("[env]", fg=typer.colors.YELLOW),
            "default": typer.style("[default]", fg=typer.colors.WHITE, dim=True),
        }.get(source, f"[{source}]")
        typer.echo(f"  {key}: {value} {source_indicator}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
