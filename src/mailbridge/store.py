"""Remote routing store: the Mailgun routes and SMTP credentials API.

The store is the source of truth for routing rules. :class:`RoutingStore`
describes what the coordinator needs; :class:`MailgunRoutingStore` implements
it over ``httpx.AsyncClient``.
"""

from __future__ import annotations

import logging
from typing import Any
from typing import Protocol

import httpx

from mailbridge.errors import ProviderError
from mailbridge.routes import RoutePage
from mailbridge.routes import RoutingRule

logger = logging.getLogger(__name__)

MAILGUN_API_BASE = "https://api.mailgun.net"
DEFAULT_TIMEOUT = 30.0


class RoutingStore(Protocol):
    """Operations the forwarding coordinator performs against the provider."""

    async def list_routes(self, limit: int, skip: int) -> RoutePage: ...

    async def create_route(self, rule: RoutingRule) -> str: ...

    async def update_route(self, route_id: str, rule: RoutingRule) -> None: ...

    async def delete_route(self, route_id: str) -> None: ...

    async def create_credential(self, login: str, password: str) -> None: ...

    async def aclose(self) -> None: ...


def mailgun_async_client(
    api_key: str,
    *,
    base_url: str = MAILGUN_API_BASE,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an AsyncClient authenticated against the Mailgun API.

    Args:
        api_key: Mailgun private API key
        base_url: API host (``https://api.eu.mailgun.net`` for EU accounts)
        timeout: Per-request timeout in seconds
        transport: Optional transport override (tests use ``httpx.MockTransport``)

    Returns:
        httpx.AsyncClient with basic auth ``api:<key>`` and base_url set
    """
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/"),
        auth=("api", api_key),
        headers={"User-Agent": "mailbridge/0.1"},
        timeout=timeout,
        transport=transport,
    )


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text.strip()


class MailgunRoutingStore:
    """Routing store backed by the Mailgun v3 REST API.

    Usage:
        store = MailgunRoutingStore("mg.example.org", api_key)
        page = await store.list_routes(limit=1000, skip=0)
        await store.aclose()
    """

    def __init__(
        self,
        domain: str,
        api_key: str,
        *,
        base_url: str = MAILGUN_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.domain = domain
        self._client = client or mailgun_async_client(api_key, base_url=base_url, timeout=timeout)

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise ProviderError(f"Mailgun {method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Mailgun {method} {path} failed: {exc}") from exc

        if response.status_code >= 300:
            detail = _error_detail(response)
            raise ProviderError(
                f"Mailgun {method} {path} returned {response.status_code}: {detail}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(f"Mailgun {method} {path} returned invalid JSON", status_code=response.status_code) from exc
        return payload if isinstance(payload, dict) else {}

    # --- Routes ---

    async def list_routes(self, limit: int, skip: int) -> RoutePage:
        payload = await self._request("GET", "/v3/routes", params={"limit": limit, "skip": skip})
        items = tuple(RoutingRule.from_api(item) for item in payload.get("items") or [])
        return RoutePage(items=items, total_count=int(payload.get("total_count", len(items))))

    async def create_route(self, rule: RoutingRule) -> str:
        payload = await self._request("POST", "/v3/routes", data=rule.to_form())
        route_id = (payload.get("route") or {}).get("id")
        if not route_id:
            raise ProviderError("Mailgun create route response did not include an id")
        logger.info("Created route %s (%s)", route_id, rule.description)
        return str(route_id)

    async def update_route(self, route_id: str, rule: RoutingRule) -> None:
        await self._request("PUT", f"/v3/routes/{route_id}", data=rule.to_form())
        logger.info("Updated route %s (%s)", route_id, rule.description)

    async def delete_route(self, route_id: str) -> None:
        await self._request("DELETE", f"/v3/routes/{route_id}")
        logger.info("Deleted route %s", route_id)

    # --- Credentials ---

    async def create_credential(self, login: str, password: str) -> None:
        """Create the SMTP login, or reset its password when it already exists."""
        path = f"/v3/domains/{self.domain}/credentials"
        try:
            await self._request("POST", path, data={"login": login, "password": password})
        except ProviderError as exc:
            if exc.status_code not in (400, 409):
                raise
            logger.info("SMTP login %s exists (%s), resetting password", login, exc)
            await self._request("PUT", f"{path}/{login}", data={"password": password})
            return
        logger.info("Created SMTP login %s@%s", login, self.domain)

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = [
    "DEFAULT_TIMEOUT",
    "MAILGUN_API_BASE",
    "MailgunRoutingStore",
    "RoutingStore",
    "mailgun_async_client",
]
