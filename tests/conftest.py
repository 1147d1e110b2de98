from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from fleetsync.connectivity import ConnectivityState
from fleetsync.exceptions import FleetSyncTransportError
from fleetsync.store import LocalStore


@dataclass
class FakeFleetApi:
    """In-memory stand-in for the fleet REST API implementing ``Transport``."""

    lists: dict[str, Any] = field(default_factory=dict)
    reachable: bool = True
    ping_status: int = 204
    failing_endpoints: set[str] = field(default_factory=set)
    reject_post_when: Any = None
    next_id: int = 57
    calls: list[tuple[str, str]] = field(default_factory=list)
    posted: list[dict[str, Any]] = field(default_factory=list)

    def _check(self, method: str, endpoint: str) -> None:
        self.calls.append((method, endpoint))
        if not self.reachable:
            raise FleetSyncTransportError(f"{endpoint} unreachable", endpoint=endpoint)
        if endpoint in self.failing_endpoints:
            raise FleetSyncTransportError(f"HTTP 500 from {endpoint}", status_code=500, endpoint=endpoint)

    async def get_json(self, endpoint: str) -> Any:
        self._check("GET", endpoint)
        if endpoint not in self.lists:
            raise FleetSyncTransportError(f"HTTP 404 from {endpoint}", status_code=404, endpoint=endpoint)
        return copy.deepcopy(self.lists[endpoint])

    async def post_json(self, endpoint: str, payload: Mapping[str, Any]) -> Any:
        self._check("POST", endpoint)
        if self.reject_post_when is not None and self.reject_post_when(payload):
            raise FleetSyncTransportError(f"HTTP 400 from {endpoint}", status_code=400, endpoint=endpoint)
        self.posted.append(dict(payload))
        created = {**payload, "id": self.next_id}
        self.next_id += 1
        return created

    async def head(self, endpoint: str, *, timeout: float | None = None) -> int:
        self._check("HEAD", endpoint)
        return self.ping_status

    def count(self, method: str, endpoint: str | None = None) -> int:
        return sum(1 for m, e in self.calls if m == method and (endpoint is None or e == endpoint))


@pytest.fixture
def api() -> FakeFleetApi:
    return FakeFleetApi()


@pytest.fixture
def store(tmp_path: Path) -> LocalStore:
    return LocalStore(tmp_path / "store")


@pytest.fixture
def connectivity() -> ConnectivityState:
    return ConnectivityState(initial_online=True)


def trip_draft(**overrides: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "type": "trip",
        "vehicleId": 1,
        "driverId": 2,
        "date": "2026-10-17T08:30:00Z",
        "initialKm": 12000,
        "finalKm": 12085,
        "origin": "Depot",
        "destination": "Warehouse 3",
        "reason": "Delivery",
    }
    record.update(overrides)
    return record


def fuel_draft(**overrides: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "type": "fuel",
        "vehicleId": 1,
        "driverId": 2,
        "date": "2026-10-16T17:00:00Z",
        "initialKm": 11950,
        "fuelStationId": 4,
        "fuelTypeId": 1,
        "liters": 42.5,
        "fuelCost": 25500,
        "fullTank": True,
    }
    record.update(overrides)
    return record
