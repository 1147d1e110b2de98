"""Application-scoped wiring of the offline sync components."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from fleetsync._transport import HttpTransport, Transport
from fleetsync.config import FleetSyncConfig
from fleetsync.connectivity import ConnectivityState, TempIdAllocator
from fleetsync.exceptions import FleetSyncError
from fleetsync.fetcher import FallbackFetcher
from fleetsync.messages import Message, MessageType, WorkerClient
from fleetsync.registrations import RegistrationService
from fleetsync.store import LocalStore
from fleetsync.sync import SyncReconciler

_logger = logging.getLogger(__name__)


class FleetSyncContext:
    """Async context owning one instance of every offline component.

    Usage::

        async with FleetSyncContext(config) as ctx:
            vehicles = await ctx.fetcher.get_vehicles()
            await ctx.registrations.create(record)
            ok = await ctx.sync_with_server()
    """

    def __init__(
        self,
        config: FleetSyncConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        initial_online: bool = True,
        on_sync_result: Callable[[bool], None] | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._external_transport = transport
        self._transport: Transport | None = transport
        self._on_sync_result = on_sync_result
        self._sync_tasks: set[asyncio.Task[bool]] = set()
        self._periodic_task: asyncio.Task[None] | None = None

        self.connectivity = ConnectivityState(initial_online)
        self.store = LocalStore(config.data_dir)
        self.allocator = TempIdAllocator()
        self._fetcher: FallbackFetcher | None = None
        self._registrations: RegistrationService | None = None
        self._reconciler: SyncReconciler | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FleetSyncContext:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._config.base_url, self._http_session)
        transport = self._transport
        self._fetcher = FallbackFetcher(transport, self.store, self.connectivity)
        self._registrations = RegistrationService(
            transport,
            self.store,
            self.connectivity,
            self.allocator,
            endpoint=self._config.registrations_endpoint,
        )
        self._reconciler = SyncReconciler(
            transport,
            self.store,
            endpoint=self._config.registrations_endpoint,
            fetcher=self._fetcher,
            max_retries=self._config.max_sync_retries,
        )
        self.connectivity.add_listener(self._on_connectivity_changed)
        if self._config.sync_interval:
            self._periodic_task = asyncio.get_running_loop().create_task(
                self._periodic_sync(self._config.sync_interval)
            )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.connectivity.remove_listener(self._on_connectivity_changed)
        if self._periodic_task is not None:
            self._periodic_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._periodic_task
            self._periodic_task = None
        if self._sync_tasks:
            await asyncio.gather(*list(self._sync_tasks), return_exceptions=True)
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = self._external_transport
        self._fetcher = None
        self._registrations = None
        self._reconciler = None

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def _require(self, component: Any, name: str) -> Any:
        if component is None:
            raise FleetSyncError(f"{name} not initialized. Use 'async with FleetSyncContext(...) as ctx:'")
        return component

    @property
    def config(self) -> FleetSyncConfig:
        return self._config

    @property
    def fetcher(self) -> FallbackFetcher:
        fetcher: FallbackFetcher = self._require(self._fetcher, "Fetcher")
        return fetcher

    @property
    def registrations(self) -> RegistrationService:
        service: RegistrationService = self._require(self._registrations, "Registration service")
        return service

    @property
    def reconciler(self) -> SyncReconciler:
        reconciler: SyncReconciler = self._require(self._reconciler, "Reconciler")
        return reconciler

    # ------------------------------------------------------------------
    # Connectivity and sync
    # ------------------------------------------------------------------

    async def fetch_with_fallback(self, endpoint: str, category: str) -> list[Any]:
        return await self.fetcher.fetch_with_fallback(endpoint, category)

    async def sync_with_server(self) -> bool:
        result = await self.reconciler.sync_with_server()
        if self._on_sync_result is not None:
            try:
                self._on_sync_result(result)
            except Exception:
                _logger.warning("on_sync_result callback failed", exc_info=True)
        return result

    async def probe_connectivity(self) -> bool:
        transport: Transport = self._require(self._transport, "Transport")
        return await self.connectivity.probe(
            transport,
            self._config.ping_endpoint,
            timeout=self._config.probe_timeout or None,
        )

    def connectivity_changed(self, online: bool) -> None:
        """Feed an online/offline event from the runtime."""
        self.connectivity.set_online(online)

    def _on_connectivity_changed(self, online: bool) -> None:
        if online and self._config.auto_sync and self._reconciler is not None:
            self.schedule_sync()

    def schedule_sync(self) -> asyncio.Task[bool]:
        """Run :meth:`sync_with_server` in the background."""
        task = asyncio.get_running_loop().create_task(self.sync_with_server())
        self._sync_tasks.add(task)
        task.add_done_callback(self._sync_tasks.discard)
        return task

    async def wait_for_sync(self) -> None:
        """Wait for syncs started by :meth:`schedule_sync`."""
        while self._sync_tasks:
            await asyncio.gather(*list(self._sync_tasks), return_exceptions=True)

    async def _periodic_sync(self, interval: float) -> None:
        """Drain the queue every *interval* seconds while online and idle."""
        while True:
            await asyncio.sleep(interval)
            if self.connectivity.is_offline or self.reconciler.is_syncing:
                continue
            pending = await self.store.pending_registrations()
            if not any(not record.is_sync_error for record in pending):
                continue
            _logger.debug("Periodic sync of pending registrations")
            await self.sync_with_server()

    def attach_worker_client(self, client: WorkerClient) -> None:
        """Answer the worker's ``START_SYNC`` requests posted to *client*."""

        def _handle(target: WorkerClient, message: Message) -> None:
            if message.get("type") != MessageType.START_SYNC:
                return
            task = self.schedule_sync()
            task.add_done_callback(lambda done: _report(target, done))

        def _report(target: WorkerClient, done: asyncio.Task[bool]) -> None:
            success = (not done.cancelled()) and done.exception() is None and done.result()
            target.post_message({"type": str(MessageType.SYNC_COMPLETED), "success": bool(success)})

        client.subscribe(_handle)
