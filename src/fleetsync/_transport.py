"""HTTP transport for the fleet REST API."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from fleetsync._constants import USER_AGENT
from fleetsync._redact import redact_for_log
from fleetsync.exceptions import FleetSyncTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the sync components.

    Having a protocol here makes it easy to pass test doubles/mocks while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def get_json(self, endpoint: str) -> Any:
        ...

    async def post_json(self, endpoint: str, payload: Mapping[str, Any]) -> Any:
        ...

    async def head(self, endpoint: str, *, timeout: float | None = None) -> int:
        ...


def _is_success(status: int) -> bool:
    return 200 <= status < 300


class HttpTransport:
    """JSON-over-HTTP transport backed by an :class:`aiohttp.ClientSession`."""

    def __init__(self, base_url: str, http_session: aiohttp.ClientSession) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_session

    def _url(self, endpoint: str) -> str:
        if not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"
        return f"{self._base_url}{endpoint}"

    async def _request_json(
        self,
        method: str,
        endpoint: str,
        payload: Mapping[str, Any] | None = None,
    ) -> Any:
        url = self._url(endpoint)
        headers: dict[str, str] = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        body: str | None = None
        if payload is not None:
            headers["content-type"] = "application/json; charset=UTF-8"
            body = json.dumps(payload, separators=(",", ":"))
            _logger.debug("%s %s payload=%s", method, url, redact_for_log(payload))
        else:
            _logger.debug("%s %s", method, url)

        try:
            async with self._http.request(method, url, data=body, headers=headers) as resp:
                text = await resp.text()
                if not _is_success(resp.status):
                    raise FleetSyncTransportError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except FleetSyncTransportError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise FleetSyncTransportError(
                f"Request to {endpoint} failed: {exc!r}",
                endpoint=endpoint,
            ) from exc

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise FleetSyncTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=resp.status,
                endpoint=endpoint,
            ) from exc

    async def get_json(self, endpoint: str) -> Any:
        """GET *endpoint* and return the decoded JSON body."""
        return await self._request_json("GET", endpoint)

    async def post_json(self, endpoint: str, payload: Mapping[str, Any]) -> Any:
        """POST *payload* as JSON and return the decoded response body."""
        return await self._request_json("POST", endpoint, payload)

    async def head(self, endpoint: str, *, timeout: float | None = None) -> int:
        """Send a HEAD request and return the status code.

        Raises :class:`FleetSyncTransportError` only when no status was
        received at all (connection error or timeout).
        """
        url = self._url(endpoint)
        kwargs: dict[str, Any] = {"headers": {"cache-control": "no-cache", "user-agent": USER_AGENT}}
        if timeout:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=timeout)
        try:
            async with self._http.head(url, **kwargs) as resp:
                return resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise FleetSyncTransportError(
                f"HEAD {endpoint} failed: {exc!r}",
                endpoint=endpoint,
            ) from exc
