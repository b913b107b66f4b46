"""Test configuration and fixtures."""

from __future__ import annotations

import itertools

import pytest

from mailbridge.cache import RouteCache
from mailbridge.errors import ProviderError
from mailbridge.forwarder import Forwarder
from mailbridge.routes import RoutePage
from mailbridge.routes import RoutingRule

DOMAIN = "mg.example.org"
PREFIX = "mailbridge:"


class FakeRoutingStore:
    """In-memory routing store implementing the RoutingStore protocol."""

    def __init__(self):
        self.routes: dict[str, RoutingRule] = {}
        self.credentials: dict[str, list[str]] = {}
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()
        self.closed = False
        self._ids = itertools.count(1)

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail_on:
            raise ProviderError(f"{op} failed", status_code=500)

    def add(self, rule: RoutingRule) -> RoutingRule:
        """Seed a route directly, bypassing call recording."""
        stored = rule.with_id(f"r{next(self._ids)}")
        self.routes[stored.id] = stored
        return stored

    async def list_routes(self, limit: int, skip: int) -> RoutePage:
        self.calls.append(("list_routes", limit, skip))
        self._maybe_fail("list_routes")
        items = list(self.routes.values())
        return RoutePage(items=tuple(items[skip : skip + limit]), total_count=len(items))

    async def create_route(self, rule: RoutingRule) -> str:
        self.calls.append(("create_route", rule))
        self._maybe_fail("create_route")
        return self.add(rule).id

    async def update_route(self, route_id: str, rule: RoutingRule) -> None:
        self.calls.append(("update_route", route_id, rule))
        self._maybe_fail("update_route")
        if route_id not in self.routes:
            raise ProviderError("route not found", status_code=404)
        self.routes[route_id] = rule.with_id(route_id)

    async def delete_route(self, route_id: str) -> None:
        self.calls.append(("delete_route", route_id))
        self._maybe_fail("delete_route")
        if route_id not in self.routes:
            raise ProviderError("route not found", status_code=404)
        del self.routes[route_id]

    async def create_credential(self, login: str, password: str) -> None:
        self.calls.append(("create_credential", login))
        self._maybe_fail("create_credential")
        self.credentials.setdefault(login, []).append(password)

    async def aclose(self) -> None:
        self.closed = True

    def ops(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def store() -> FakeRoutingStore:
    return FakeRoutingStore()


@pytest.fixture
def cache(store) -> RouteCache:
    return RouteCache(store, PREFIX, timeout=5.0)


@pytest.fixture
def forwarder(store, cache) -> Forwarder:
    return Forwarder(store, DOMAIN, PREFIX, cache=cache)


def foreign_rule(alias: str, destination: str = "ops@elsewhere.example") -> RoutingRule:
    """A route in the same account that this bot does not own."""
    return RoutingRule(
        description="catch-all managed by hand",
        expression=f'match_recipient("{alias}@{DOMAIN}")',
        actions=(f'forward("{destination}")',),
        priority=0,
    )
