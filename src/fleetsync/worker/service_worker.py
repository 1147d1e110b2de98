"""Transport-layer cache worker.

Intercepts same-origin GET traffic and answers it from versioned cache
buckets according to the request class:

* navigation: network first, then the cached page, then the cached shell;
* static assets: cache first with background revalidation;
* API (only under ``ApiCachePolicy.NETWORK_FIRST``): network first with
  client notifications about which path answered;
* everything else: network first with a bare cache fallback.

Stale cache generations are only evicted during activation.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import Any
from urllib.parse import urljoin, urlsplit

from pydantic import BaseModel, ConfigDict, Field

from fleetsync import _constants
from fleetsync.config import ApiCachePolicy, FleetSyncConfig
from fleetsync.exceptions import FleetSyncTransportError, FleetSyncWorkerError
from fleetsync.messages import Message, MessageType, WorkerClient, WorkerClients
from fleetsync.worker._http import HttpRequest, HttpResponse, RequestMode
from fleetsync.worker.cache_storage import CacheStorage
from fleetsync.worker.network import Network
from fleetsync.worker.policy import RequestClass, classify_request

_logger = logging.getLogger(__name__)

ReplyPort = Callable[[Message], None]


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class WorkerState(StrEnum):
    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"
    REDUNDANT = "redundant"


class Notification(BaseModel):
    """A notification shown in response to a push message."""

    model_config = ConfigDict(frozen=True)

    title: str = _constants.DEFAULT_NOTIFICATION_TITLE
    body: str = _constants.DEFAULT_NOTIFICATION_BODY
    icon: str = "/icon-192x192.svg"
    url: str = "/"
    timestamp: int = Field(default_factory=_now_ms)
    actions: tuple[str, ...] = ("open", "close")


class ServiceWorker:
    """Cache policy and lifecycle for one worker version.

    Parameters
    ----------
    config : FleetSyncConfig
        Supplies the origin, cache names, shell manifest and API policy.
    network : Network
        Where requests go when the cache does not answer them.
    cache_storage : CacheStorage or None
        Shared bucket storage. Pass the previous worker's storage to model
        an upgrade; a fresh one is created otherwise.
    clients : WorkerClients or None
        Open pages this worker can message.
    notification_sink : callable or None
        Receives every :class:`Notification` built from a push message.
    """

    def __init__(
        self,
        config: FleetSyncConfig,
        network: Network,
        *,
        cache_storage: CacheStorage | None = None,
        clients: WorkerClients | None = None,
        notification_sink: Callable[[Notification], None] | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._config = config
        self._network = network
        self.caches = cache_storage if cache_storage is not None else CacheStorage()
        self.clients = clients if clients is not None else WorkerClients()
        self._notification_sink = notification_sink
        self._clock = clock
        self._state = WorkerState.PARSED
        self._skip_waiting = False
        self._background: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def api_policy(self) -> ApiCachePolicy:
        return self._config.api_cache_policy

    @property
    def current_cache_names(self) -> frozenset[str]:
        names = {self._config.static_cache_name, self._config.dynamic_cache_name}
        if self.api_policy is ApiCachePolicy.NETWORK_FIRST:
            names.add(self._config.api_cache_name)
        return frozenset(names)

    def _absolute(self, url: str) -> str:
        return urljoin(f"{self._config.origin}/", url)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def install(self) -> None:
        """Pre-cache the application shell, then ask to skip waiting.

        Each shell URL is cached independently; a missing asset is logged
        and does not abort installation.
        """
        if self._state is not WorkerState.PARSED:
            raise FleetSyncWorkerError(f"install() called in state {self._state}")
        self._state = WorkerState.INSTALLING
        _logger.debug("Worker installing, static cache %s", self._config.static_cache_name)
        cache = await self.caches.open(self._config.static_cache_name)

        cached = 0
        for url in self._config.shell_urls:
            request = HttpRequest(url=self._absolute(url))
            try:
                response = await self._network.fetch(request)
                if not response.ok:
                    raise FleetSyncTransportError(
                        f"HTTP {response.status} for {url}",
                        status_code=response.status,
                        endpoint=url,
                    )
                await cache.put(request, response)
                cached += 1
            except (FleetSyncTransportError, FleetSyncWorkerError) as exc:
                _logger.warning("Could not pre-cache %s: %s", url, exc)

        _logger.info("Worker installed: %d/%d shell URLs cached", cached, len(self._config.shell_urls))
        self._state = WorkerState.INSTALLED
        self._skip_waiting = True

    async def activate(self) -> None:
        """Evict every cache generation except the current ones, then claim clients."""
        if self._state is not WorkerState.INSTALLED:
            raise FleetSyncWorkerError(f"activate() called in state {self._state}")
        self._state = WorkerState.ACTIVATING
        keep = self.current_cache_names
        for name in await self.caches.keys():
            if name not in keep:
                _logger.info("Deleting old cache %s", name)
                await self.caches.delete(name)
        claimed = self.clients.claim()
        self._state = WorkerState.ACTIVATED
        _logger.info("Worker activated, claimed %d clients", claimed)

    async def skip_waiting(self) -> None:
        """Activate now instead of waiting for the previous worker to stop."""
        self._skip_waiting = True
        if self._state is WorkerState.INSTALLED:
            await self.activate()

    async def register(self) -> None:
        """Install and, when skip-waiting was requested, activate."""
        try:
            await self.install()
        except Exception:
            self._state = WorkerState.REDUNDANT
            raise
        if self._skip_waiting:
            await self.activate()

    async def wait_for_background(self) -> None:
        """Wait for outstanding background cache refreshes."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Fetch interception
    # ------------------------------------------------------------------

    async def fetch(self, request: HttpRequest) -> HttpResponse | None:
        """Answer *request*, or return ``None`` when it is not intercepted."""
        if self._state is not WorkerState.ACTIVATED:
            return None
        kind = classify_request(
            request,
            origin=self._config.origin,
            api_prefix=self._config.api_prefix,
            api_policy=self.api_policy,
        )
        if kind is RequestClass.PASSTHROUGH:
            return None
        if kind is RequestClass.NAVIGATION:
            return await self._handle_navigation(request)
        if kind is RequestClass.STATIC:
            return await self._handle_static(request)
        if kind is RequestClass.API:
            return await self._handle_api(request)
        return await self._handle_other(request)

    async def _store(self, cache_name: str, request: HttpRequest, response: HttpResponse) -> None:
        cache = await self.caches.open(cache_name)
        await cache.put(request, response)

    async def _handle_navigation(self, request: HttpRequest) -> HttpResponse:
        try:
            response = await self._network.fetch(request)
        except FleetSyncTransportError:
            _logger.debug("Navigation to %s failed; serving from cache", request.url)
        else:
            if response.ok:
                await self._store(self._config.dynamic_cache_name, request, response)
            return response

        cached = await self.caches.match(request)
        if cached is not None:
            return cached
        shell = await self.caches.match(self._absolute("/"))
        if shell is not None:
            return shell
        return HttpResponse.service_unavailable_text(_constants.OFFLINE_TEXT)

    async def _handle_static(self, request: HttpRequest) -> HttpResponse:
        cached = await self.caches.match(request)
        if cached is not None:
            self._spawn_revalidation(request)
            return cached

        try:
            response = await self._network.fetch(request)
        except FleetSyncTransportError:
            _logger.debug("Static asset %s unavailable", request.url)
            return HttpResponse.service_unavailable_text(_constants.OFFLINE_TEXT)
        if response.ok:
            await self._store(self._config.static_cache_name, request, response)
        return response

    def _spawn_revalidation(self, request: HttpRequest) -> None:
        task = asyncio.get_running_loop().create_task(self._revalidate(request))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _revalidate(self, request: HttpRequest) -> None:
        try:
            response = await self._network.fetch(request)
        except FleetSyncTransportError:
            _logger.debug("Background refresh of %s failed", request.url)
            return
        if response.ok:
            await self._store(self._config.static_cache_name, request, response)
            _logger.debug("Refreshed cached %s", request.url)

    async def _handle_other(self, request: HttpRequest) -> HttpResponse:
        try:
            response = await self._network.fetch(request)
        except FleetSyncTransportError:
            cached = await self.caches.match(request)
            if cached is not None:
                return cached
            return HttpResponse.service_unavailable_text(_constants.OFFLINE_TEXT)
        if response.ok:
            await self._store(self._config.dynamic_cache_name, request, response)
        return response

    async def _handle_api(self, request: HttpRequest) -> HttpResponse:
        cache = await self.caches.open(self._config.api_cache_name)
        try:
            response = await self._network.fetch(request)
        except FleetSyncTransportError:
            _logger.debug("API request %s failed; trying cache", request.path)
        else:
            if response.ok:
                await cache.put(request, response)
                self._notify(MessageType.NETWORK_SUCCESS, url=request.path)
            return response

        cached = await cache.match(request)
        if cached is not None:
            self._notify(MessageType.CACHE_USED, url=request.path)
            return cached
        self._notify(MessageType.OFFLINE_ERROR, url=request.path)
        return HttpResponse.service_unavailable_json({"error": _constants.OFFLINE_API_ERROR, "offline": True})

    def _notify(self, message_type: MessageType, **fields: Any) -> None:
        self.clients.post_all({"type": str(message_type), "timestamp": self._clock(), **fields})

    # ------------------------------------------------------------------
    # Messages, background sync, push
    # ------------------------------------------------------------------

    async def message(self, data: Mapping[str, Any] | None, reply: ReplyPort | None = None) -> None:
        """Handle a message posted by a client."""
        if not isinstance(data, Mapping):
            return
        kind = data.get("type")
        if kind == MessageType.SKIP_WAITING:
            await self.skip_waiting()
        elif kind == MessageType.CLEAR_CACHE:
            result: Message
            try:
                for name in await self.caches.keys():
                    await self.caches.delete(name)
                result = {"success": True}
            except Exception as exc:
                _logger.warning("Clearing caches failed", exc_info=True)
                result = {"success": False, "error": str(exc)}
            if reply is not None:
                reply(result)
        else:
            _logger.debug("Ignoring worker message %r", kind)

    async def sync(self, tag: str) -> bool:
        """Background-sync hook: ask open clients to drain their pending queue."""
        if tag not in _constants.SYNC_TAGS:
            _logger.debug("Ignoring unknown sync tag %s", tag)
            return False
        self._notify(MessageType.START_SYNC, tag=tag)
        return True

    async def push(self, data: Mapping[str, Any] | None) -> Notification | None:
        """Show a notification for a push message and forward it to clients."""
        if not isinstance(data, Mapping) or not data:
            return None
        # Push payloads are untrusted; non-string values are rendered as text.
        fields = {key: str(data[key]) for key in ("title", "body", "url") if data.get(key) not in (None, "")}
        notification = Notification(**fields)
        if self._notification_sink is not None:
            self._notification_sink(notification)
        self._notify(MessageType.PUSH_RECEIVED, notification=notification.model_dump())
        return notification

    async def notification_click(self, notification: Notification, action: str | None = None) -> WorkerClient | None:
        """Focus an open same-origin client on the notification URL, or open one."""
        if action not in (None, "", "open"):
            return None
        target = self._absolute(notification.url)
        for client in self.clients.match_all(include_uncontrolled=True):
            if client.origin == self._config.origin:
                client.focus()
                client.navigate(target)
                return client
        return self.clients.open_window(target)


def navigation_request(url: str) -> HttpRequest:
    """Build a top-level navigation request for *url*."""
    if not urlsplit(url).scheme:
        raise ValueError(f"navigation URL must be absolute, got {url!r}")
    return HttpRequest(url=url, mode=RequestMode.NAVIGATE)
