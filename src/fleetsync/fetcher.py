"""Network-first reads with local-store fallback."""

from __future__ import annotations

import logging
from typing import Any

from fleetsync._transport import Transport
from fleetsync.connectivity import ConnectivityState
from fleetsync.exceptions import FleetSyncTransportError
from fleetsync.models.categories import EntityCategory
from fleetsync.store import LocalStore

_logger = logging.getLogger(__name__)


class FallbackFetcher:
    """Fetch entity lists from the API, mirroring them into the local store.

    The store is a strict fallback: while online every successful read
    refreshes it, and it is only read when the network is unavailable.
    """

    def __init__(
        self,
        transport: Transport,
        store: LocalStore,
        connectivity: ConnectivityState,
    ) -> None:
        self._transport = transport
        self._store = store
        self._connectivity = connectivity

    async def fetch_with_fallback(self, endpoint: str, category: EntityCategory | str) -> list[Any]:
        """Return the entity list for *category*.

        Online: GET *endpoint*; on success save the decoded body as the new
        snapshot and return it. Offline, or on any transport failure: return
        the last saved snapshot, even if empty.
        """
        if self._connectivity.is_online:
            try:
                body = await self._transport.get_json(endpoint)
            except FleetSyncTransportError as exc:
                _logger.debug("Fetch %s failed (%s); using local store", endpoint, exc)
            else:
                if isinstance(body, list):
                    await self._store.save(category, body)
                    return body
                _logger.warning("Expected a JSON array from %s, got %s; using local store", endpoint, type(body).__name__)
        else:
            _logger.debug("Offline; reading %s from local store", category)

        return await self._store.get(category)

    async def fetch_category(self, category: EntityCategory) -> list[Any]:
        return await self.fetch_with_fallback(category.endpoint, category)

    async def get_vehicles(self) -> list[Any]:
        return await self.fetch_category(EntityCategory.VEHICLES)

    async def get_drivers(self) -> list[Any]:
        return await self.fetch_category(EntityCategory.DRIVERS)

    async def get_fuel_stations(self) -> list[Any]:
        return await self.fetch_category(EntityCategory.FUEL_STATIONS)

    async def get_fuel_types(self) -> list[Any]:
        return await self.fetch_category(EntityCategory.FUEL_TYPES)

    async def get_maintenance_types(self) -> list[Any]:
        return await self.fetch_category(EntityCategory.MAINTENANCE_TYPES)

    async def get_registrations(self) -> list[Any]:
        return await self.fetch_category(EntityCategory.REGISTRATIONS)
