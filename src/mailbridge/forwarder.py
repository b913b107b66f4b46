"""Forwarding coordinator: create, move and remove per-member aliases.

Each member owns at most one route, found by its description
(``<prefix><identifier>``). Forwarding to a new alias updates that route in
place, which releases the alias it previously matched.

The alias conflict check runs against the cached snapshot and there is no
conditional write at Mailgun, so two members forwarding the same alias at the
same moment can both pass the check and both succeed. Nothing here serializes
mutations; the gap is accepted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from mailbridge.cache import RouteCache
from mailbridge.errors import ConflictError
from mailbridge.errors import ProviderError
from mailbridge.passwords import generate_secret
from mailbridge.routes import RoutingRule
from mailbridge.routes import identity_description
from mailbridge.routes import is_valid_email
from mailbridge.routes import normalize_alias
from mailbridge.scheduler import DEFAULT_REFRESH_INTERVAL
from mailbridge.scheduler import RefreshScheduler
from mailbridge.store import RoutingStore

logger = logging.getLogger(__name__)

CREDENTIAL_PREFIX = "d-"


def credential_login(identifier: str) -> str:
    return CREDENTIAL_PREFIX + identifier


@dataclass(frozen=True)
class ForwardResult:
    """Outcome of a successful :meth:`Forwarder.forward`."""

    mailbox: str
    secret: str
    alias: str
    destination: str
    created: bool


class Forwarder:
    """Coordinates the route cache, the routing store and SMTP credentials.

    Usage:
        forwarder = Forwarder(store, domain="mg.example.org", prefix="bot:")
        await forwarder.start()
        result = await forwarder.forward("jdoe", "jdoe@elsewhere.example", "12345")
        await forwarder.close()
    """

    def __init__(
        self,
        store: RoutingStore,
        domain: str,
        prefix: str,
        *,
        cache: RouteCache | None = None,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        refresh_after_delete: bool = False,
        secret_factory: Callable[[], str] = generate_secret,
    ):
        self.store = store
        self.domain = domain
        self.prefix = prefix
        self.cache = cache or RouteCache(store, prefix)
        self.scheduler = RefreshScheduler(self.cache, refresh_interval)
        self.refresh_after_delete = refresh_after_delete
        self._secret_factory = secret_factory

    # --- Lifecycle ---

    async def start(self) -> None:
        """Populate the cache, then start periodic refreshes.

        Raises:
            ProviderError: If the initial refresh fails.
        """
        if not await self.cache.refresh():
            raise ProviderError("initial route refresh failed")
        self.scheduler.start()

    async def close(self) -> None:
        self.scheduler.stop()
        await self.cache.wait_for_pending()
        await self.store.aclose()

    # --- Operations ---

    async def forward(self, alias: str, destination: str, identifier: str) -> ForwardResult:
        """Route ``alias@domain`` to ``destination`` for ``identifier`` and issue a new SMTP secret.

        Args:
            alias: Local-part to receive mail for
            destination: Mailbox receiving the forwarded mail
            identifier: Stable id of the requesting member

        Returns:
            ForwardResult with the SMTP login and its fresh secret

        Raises:
            ValueError: If alias or destination is malformed
            ConflictError: If the alias belongs to another identity
            ProviderError: If a Mailgun call fails
            RandomnessError: If no secret could be generated
        """
        alias = normalize_alias(alias)
        if not is_valid_email(destination):
            raise ValueError(f"`{destination}` is not a valid email address")

        # lookups must see the refresh scheduled by the previous mutation
        await self.cache.wait_for_pending()

        try:
            description = identity_description(self.prefix, identifier)

            current = self.cache.lookup_by_alias(alias, self.domain)
            if current is not None and current.description != description:
                raise ConflictError(alias, current.owner(self.prefix))

            rule = RoutingRule.for_identity(self.prefix, identifier, alias, destination, self.domain)
            existing = self.cache.lookup_by_identity(identifier)
            if existing is None:
                await self.store.create_route(rule)
            else:
                await self.store.update_route(existing.id, rule)

            login = credential_login(identifier)
            secret = self._secret_factory()
            await self.store.create_credential(login, secret)
        finally:
            self.cache.schedule_refresh()

        logger.info("Forwarding %s@%s for %s (%s)", alias, self.domain, identifier, "created" if existing is None else "updated")
        return ForwardResult(
            mailbox=f"{login}@{self.domain}",
            secret=secret,
            alias=alias,
            destination=destination,
            created=existing is None,
        )

    async def delete(self, identifier: str) -> bool:
        """Remove the route owned by ``identifier``.

        Returns:
            True if a route was deleted, False if there was none (or it
            had already been removed at the provider).
        """
        await self.cache.wait_for_pending()

        rule = self.cache.lookup_by_identity(identifier)
        if rule is None:
            return False

        try:
            await self.store.delete_route(rule.id)
        except ProviderError as exc:
            if exc.status_code != 404:
                raise
            logger.info("Route %s for %s was already gone", rule.id, identifier)
            self.cache.discard(rule.id)
            return False

        self.cache.discard(rule.id)
        logger.info("Removed forwarding for %s", identifier)
        if self.refresh_after_delete:
            self.cache.schedule_refresh()
        return True


__all__ = ["CREDENTIAL_PREFIX", "ForwardResult", "Forwarder", "credential_login"]
