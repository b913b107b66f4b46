"""Exceptions raised by the forwarding coordinator and its collaborators."""

from __future__ import annotations


class ForwarderError(Exception):
    """Base class for every error surfaced to the chat gateway."""

    pass


class ConflictError(ForwarderError):
    """The requested alias is already routed for another identity."""

    def __init__(self, alias: str, owner: str | None):
        self.alias = alias
        self.owner = owner
        who = f"member {owner}" if owner else "a route not managed by this bot"
        super().__init__(f"`{alias}` already assigned to {who}")


class ProviderError(ForwarderError):
    """A call against the remote routing store failed."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class RandomnessError(ForwarderError):
    """The operating system could not supply random bytes for a secret."""

    pass


class ConfigError(ForwarderError):
    """Required configuration is missing or malformed."""

    pass


__all__ = [
    "ConfigError",
    "ConflictError",
    "ForwarderError",
    "ProviderError",
    "RandomnessError",
]
