"""Route cache: the last-fetched view of every Mailgun route.

Mailgun has no reverse index by description or recipient, so the whole rule
set is pulled on a timer and scanned locally. The cached rules are held as an
immutable tuple that is swapped wholesale on refresh; lookups just read the
current tuple and never block. Only refreshes take the lock, so two refreshes
never interleave their page fetches.

A scanned rule may be stale by up to one refresh interval. Callers that act on
a lookup (conflict checks in particular) inherit that staleness.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from datetime import timezone

from mailbridge.errors import ProviderError
from mailbridge.routes import RoutingRule
from mailbridge.routes import canonical_expression
from mailbridge.routes import identity_description
from mailbridge.store import RoutingStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000  # Mailgun's maximum for /v3/routes
DEFAULT_MAX_PAGES = 50
DEFAULT_REFRESH_TIMEOUT = 30.0


class RouteCache:
    """Snapshot of all routes in the provider account.

    Args:
        store: Remote routing store to fetch from
        prefix: Description prefix marking rules owned by this instance
        page_size: Routes requested per page
        max_pages: Upper bound on page requests per refresh
        timeout: Deadline in seconds for a whole refresh
    """

    def __init__(
        self,
        store: RoutingStore,
        prefix: str,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        timeout: float = DEFAULT_REFRESH_TIMEOUT,
    ):
        self.prefix = prefix
        self.page_size = page_size
        self.max_pages = max_pages
        self.timeout = timeout
        self.last_refreshed: datetime | None = None

        self._store = store
        self._rules: tuple[RoutingRule, ...] = ()
        self._refresh_lock = asyncio.Lock()
        self._pending: asyncio.Task | None = None
        self._dirty = False

    @property
    def rules(self) -> tuple[RoutingRule, ...]:
        return self._rules

    def discard(self, route_id: str) -> None:
        """Drop one rule from the snapshot without a refresh."""
        self._rules = tuple(rule for rule in self._rules if rule.id != route_id)

    def owned_rules(self) -> list[RoutingRule]:
        """Rules whose description carries this instance's prefix."""
        return [rule for rule in self._rules if rule.owner(self.prefix) is not None]

    # --- Lookups ---

    def lookup_by_identity(self, identifier: str) -> RoutingRule | None:
        description = identity_description(self.prefix, identifier)
        for rule in self._rules:
            if rule.description == description:
                return rule
        return None

    def lookup_by_alias(self, alias: str, domain: str) -> RoutingRule | None:
        expression = canonical_expression(alias, domain)
        for rule in self._rules:
            if rule.expression == expression:
                return rule
        return None

    # --- Refresh ---

    async def _fetch_all(self) -> tuple[RoutingRule, ...]:
        rules: list[RoutingRule] = []
        skip = 0
        for _ in range(self.max_pages):
            page = await self._store.list_routes(limit=self.page_size, skip=skip)
            rules.extend(page.items)
            skip += len(page.items)
            if not page.items or skip >= page.total_count:
                return tuple(rules)
        raise ProviderError(f"route listing exceeded {self.max_pages} pages of {self.page_size}")

    async def refresh(self) -> bool:
        """Replace the snapshot with the provider's current rule set.

        Provider errors and timeouts are logged and leave the previous
        snapshot in place.

        Returns:
            True when the snapshot was replaced.
        """
        async with self._refresh_lock:
            logger.info("Updating routes...")
            try:
                rules = await asyncio.wait_for(self._fetch_all(), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning("Route refresh timed out after %.1fs; keeping %d cached routes", self.timeout, len(self._rules))
                return False
            except ProviderError as exc:
                logger.warning("Route refresh failed: %s; keeping %d cached routes", exc, len(self._rules))
                return False

            self._rules = rules
            self.last_refreshed = datetime.now(timezone.utc)
            owned = sum(1 for rule in rules if rule.owner(self.prefix) is not None)
            logger.info("Route cache refreshed: %d routes, %d owned", len(rules), owned)
            return True

    async def _scheduled_refresh(self) -> bool:
        while True:
            self._dirty = False
            refreshed = await self.refresh()
            if not self._dirty:
                return refreshed
            logger.debug("Route refresh requested mid-flight, refreshing again")

    def schedule_refresh(self) -> asyncio.Task | None:
        """Start a background refresh unless one is already in flight.

        A request arriving while the scheduled refresh runs marks it dirty;
        the running task then refreshes once more before finishing.

        Must be called from within a running event loop.

        Returns:
            The new task, or None when a scheduled refresh is still running.
        """
        if self._pending is not None and not self._pending.done():
            logger.debug("Route refresh already in flight, marking it dirty")
            self._dirty = True
            return None

        task = asyncio.create_task(self._scheduled_refresh(), name="route-cache-refresh")
        task.add_done_callback(_log_refresh_failure)
        self._pending = task
        return task

    async def wait_for_pending(self) -> None:
        """Wait for the in-flight scheduled refresh, if any."""
        task = self._pending
        if task is None or task.done():
            return
        await asyncio.wait({task})


def _log_refresh_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background route refresh crashed", exc_info=exc)


__all__ = [
    "DEFAULT_MAX_PAGES",
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_REFRESH_TIMEOUT",
    "RouteCache",
]
