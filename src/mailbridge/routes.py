"""Routing rule model and the canonical strings Mailgun matches on.

A rule created by this system looks like::

    priority:    1337
    description: "<prefix><identifier>"
    expression:  match_recipient("alias@example.org")
    actions:     ['forward("someone@elsewhere.example")']

The description prefix is the only thing separating our rules from any other
routes living in the same Mailgun account, so every helper that decides
ownership goes through :meth:`RoutingRule.owner`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any

DEFAULT_PRIORITY = 1337

_FORWARD_RE = re.compile(r'^forward\("(?P<target>[^"]*)"\)$')

EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
ALIAS_RE = re.compile(r"^[a-z0-9.!#$%&'*+/=?^_`{|}~-]+$")


def is_valid_email(address: str) -> bool:
    return bool(EMAIL_RE.match(address))


def normalize_alias(alias: str) -> str:
    """Lower-case and validate an alias local-part.

    Raises:
        ValueError: If the alias is empty or has characters not allowed in a local-part.
    """
    normalized = alias.strip().lower()
    if not ALIAS_RE.match(normalized):
        raise ValueError(f"`{alias}` is not a valid address name")
    return normalized


def canonical_expression(alias: str, domain: str) -> str:
    """Return the match expression selecting mail for ``alias@domain``."""
    return f'match_recipient("{alias}@{domain}")'


def canonical_action(destination: str) -> str:
    """Return the action forwarding matched mail to ``destination``."""
    return f'forward("{destination}")'


def identity_description(prefix: str, identifier: str) -> str:
    return prefix + identifier


@dataclass(frozen=True)
class RoutingRule:
    """A single Mailgun route.

    ``id`` is empty until the provider assigns one.
    """

    description: str
    expression: str
    actions: tuple[str, ...] = ()
    priority: int = DEFAULT_PRIORITY
    id: str = ""
    created_at: datetime | None = field(default=None, compare=False)

    @classmethod
    def for_identity(cls, prefix: str, identifier: str, alias: str, destination: str, domain: str) -> "RoutingRule":
        """Build the rule forwarding ``alias@domain`` to ``destination`` for one identity."""
        return cls(
            description=identity_description(prefix, identifier),
            expression=canonical_expression(alias, domain),
            actions=(canonical_action(destination),),
        )

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RoutingRule":
        """Parse a route object as returned by the Mailgun routes API."""
        created_at = None
        raw_created = data.get("created_at")
        if raw_created:
            try:
                created_at = parsedate_to_datetime(raw_created)
            except (TypeError, ValueError):
                created_at = None

        return cls(
            id=str(data.get("id", "")),
            priority=int(data.get("priority", 0)),
            description=data.get("description") or "",
            expression=data.get("expression") or "",
            actions=tuple(data.get("actions") or ()),
            created_at=created_at,
        )

    def to_form(self) -> dict[str, Any]:
        """Form fields for create/update calls; ``action`` repeats once per action."""
        return {
            "priority": str(self.priority),
            "description": self.description,
            "expression": self.expression,
            "action": list(self.actions),
        }

    def with_id(self, route_id: str) -> "RoutingRule":
        return replace(self, id=route_id)

    def owner(self, prefix: str) -> str | None:
        """Return the identifier owning this rule, or None if it is not ours."""
        if not self.description.startswith(prefix):
            return None
        return self.description[len(prefix) :]

    @property
    def destination(self) -> str | None:
        """Target of the first ``forward(...)`` action, if any."""
        for action in self.actions:
            match = _FORWARD_RE.match(action)
            if match:
                return match.group("target")
        return None


@dataclass(frozen=True)
class RoutePage:
    """One page of ``GET /v3/routes``."""

    items: tuple[RoutingRule, ...]
    total_count: int


__all__ = [
    "DEFAULT_PRIORITY",
    "EMAIL_RE",
    "RoutePage",
    "RoutingRule",
    "canonical_action",
    "canonical_expression",
    "identity_description",
    "is_valid_email",
    "normalize_alias",
]
