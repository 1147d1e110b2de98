"""Network access for the cache worker."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import aiohttp

from fleetsync._constants import USER_AGENT
from fleetsync.exceptions import FleetSyncTransportError
from fleetsync.worker._http import HttpRequest, HttpResponse

_logger = logging.getLogger(__name__)


class Network(Protocol):
    """Like ``fetch()``: resolves for any HTTP status, raises only when no response arrived."""

    async def fetch(self, request: HttpRequest) -> HttpResponse:
        ...


class AiohttpNetwork:
    """:class:`Network` backed by an :class:`aiohttp.ClientSession`."""

    def __init__(self, http_session: aiohttp.ClientSession) -> None:
        self._http = http_session

    async def fetch(self, request: HttpRequest) -> HttpResponse:
        headers = {"user-agent": USER_AGENT, **request.headers}
        _logger.debug("Worker fetch %s %s", request.method, request.url)
        try:
            async with self._http.request(request.method, request.url, headers=headers) as resp:
                body = await resp.read()
                return HttpResponse(
                    status=resp.status,
                    status_text=resp.reason or "",
                    headers={key: value for key, value in resp.headers.items()},
                    body=body,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise FleetSyncTransportError(
                f"Fetch {request.url} failed: {exc!r}",
                endpoint=request.path,
            ) from exc
