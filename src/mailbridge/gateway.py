"""Command gateway: turn chat commands into forwarder calls and reply text.

This layer knows nothing about Telegram; :mod:`mailbridge.bot` feeds it the
command arguments and the caller's id, and delivers the replies it returns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from mailbridge.errors import ConflictError
from mailbridge.errors import ForwarderError
from mailbridge.forwarder import Forwarder
from mailbridge.routes import is_valid_email
from mailbridge.routes import normalize_alias

logger = logging.getLogger(__name__)

FORWARD_COMMAND = "email"
REMOVE_COMMAND = "email_remove"

USAGE = (
    "`/email <name> <email address>` - for example: `/email first.last email@example.org` "
    "would forward emails sent to `first.last@{domain}` to the mailbox `email@example.org`."
)
CONFIGURED_INFO = (
    "Your forwarding address {alias}@{domain} has been configured. This allows you to receive email "
    "to your personal mailbox. To send email from this address, you may need to configure your mail "
    "client with these SMTP details:\n```\nserver: {server}\nusername: {username}\npassword: {password}\n```"
)
REMOVED_INFO = "Your forwarding address has been removed."
NOTHING_TO_REMOVE = "You have no forwarding address configured."


@dataclass(frozen=True)
class ForwardCommand:
    alias: str
    destination: str


@dataclass(frozen=True)
class GatewayReply:
    """Messages produced for one command.

    ``reply`` goes back to the chat the command came from, ``direct`` to the
    requester privately, ``audit`` to the setup chat.
    """

    reply: str | None = None
    direct: str | None = None
    audit: str | None = None


def strip_domain(alias: str, domain: str) -> str:
    """Drop a trailing ``@domain`` so fully-qualified aliases are accepted."""
    suffix = "@" + domain
    if alias.lower().endswith(suffix.lower()):
        return alias[: -len(suffix)]
    return alias


def parse_forward_args(args: Sequence[str], domain: str) -> ForwardCommand | None:
    """Parse ``<alias> <destination>``; None means the usage text should be shown."""
    if len(args) < 2 or not is_valid_email(args[1]):
        return None
    try:
        alias = normalize_alias(strip_domain(args[0], domain))
    except ValueError:
        return None
    return ForwardCommand(alias=alias, destination=args[1])


def parse_forward_command(text: str, domain: str) -> ForwardCommand | None:
    """Parse a full ``/email <alias> <destination>`` message."""
    fields = text.split()
    if not fields:
        return None
    name = fields[0].lstrip("/!").split("@", 1)[0]
    if name != FORWARD_COMMAND:
        return None
    return parse_forward_args(fields[1:], domain)


def mention(identifier: str) -> str:
    return f"[{identifier}](tg://user?id={identifier})"


class CommandGateway:
    """Executes parsed chat commands against a :class:`Forwarder`."""

    def __init__(self, forwarder: Forwarder, smtp_server: str = "smtp.mailgun.org"):
        self.forwarder = forwarder
        self.smtp_server = smtp_server

    @property
    def domain(self) -> str:
        return self.forwarder.domain

    def usage(self) -> str:
        return USAGE.format(domain=self.domain)

    async def handle_forward(self, args: Sequence[str], identifier: str) -> GatewayReply:
        command = parse_forward_args(args, self.domain)
        if command is None:
            return GatewayReply(reply=self.usage())

        try:
            result = await self.forwarder.forward(command.alias, command.destination, identifier)
        except ConflictError as exc:
            owner = mention(exc.owner) if exc.owner else "a route not managed by this bot"
            return GatewayReply(reply=f"Error configuring `{exc.alias}@{self.domain}`: already assigned to {owner}")
        except (ForwarderError, ValueError) as exc:
            logger.warning("Forward of %r for %s failed: %s", command.alias, identifier, exc)
            return GatewayReply(reply=f"Error configuring `{command.alias}@{self.domain}`: {exc}")

        direct = CONFIGURED_INFO.format(
            alias=result.alias,
            domain=self.domain,
            server=self.smtp_server,
            username=result.mailbox,
            password=result.secret,
        )
        audit = f"Configured `{result.alias}@{self.domain}` for {mention(identifier)}"
        return GatewayReply(direct=direct, audit=audit)

    async def handle_remove(self, identifier: str) -> GatewayReply:
        try:
            removed = await self.forwarder.delete(identifier)
        except ForwarderError as exc:
            logger.warning("Removal for %s failed: %s", identifier, exc)
            return GatewayReply(reply=f"Error removing forwarding: {exc}")

        if not removed:
            return GatewayReply(reply=NOTHING_TO_REMOVE)
        return GatewayReply(reply=REMOVED_INFO, audit=f"Removed forwarding for {mention(identifier)}")


__all__ = [
    "CONFIGURED_INFO",
    "FORWARD_COMMAND",
    "REMOVE_COMMAND",
    "USAGE",
    "CommandGateway",
    "ForwardCommand",
    "GatewayReply",
    "parse_forward_args",
    "parse_forward_command",
    "strip_domain",
]
