from __future__ import annotations

import pytest
from conftest import FakeFleetApi, fuel_draft, trip_draft

from fleetsync.connectivity import ConnectivityState, TempIdAllocator
from fleetsync.models.registration import FuelRegistration, parse_registration
from fleetsync.registrations import RegistrationService, confirmed_record
from fleetsync.store import LocalStore


def _service(api: FakeFleetApi, store: LocalStore, *, online: bool = True) -> RegistrationService:
    return RegistrationService(
        api,
        store,
        ConnectivityState(initial_online=online),
        TempIdAllocator(clock=lambda: 1_760_000_000_000),
    )


@pytest.mark.asyncio
async def test_online_create_returns_server_record(api: FakeFleetApi, store: LocalStore) -> None:
    record = await _service(api, store).create(fuel_draft())

    assert isinstance(record, FuelRegistration)
    assert record.id == 57
    assert record.is_offline is False
    assert api.count("POST", "/api/registrations") == 1
    assert await store.pending_registrations() == []
    assert [r.id for r in await store.get_registrations()] == [57]


@pytest.mark.asyncio
async def test_offline_create_queues_without_network(api: FakeFleetApi, store: LocalStore) -> None:
    record = await _service(api, store, online=False).create(trip_draft())

    assert record.id == -1_760_000_000_000
    assert record.is_offline is True
    assert api.calls == []
    assert [r.id for r in await store.pending_registrations()] == [record.id]


@pytest.mark.asyncio
async def test_post_failure_while_online_queues_record(api: FakeFleetApi, store: LocalStore) -> None:
    api.reachable = False

    record = await _service(api, store).create(trip_draft())

    assert record.is_temporary
    assert await _service(api, store).pending_count() == 1


@pytest.mark.asyncio
async def test_queued_ids_survive_a_new_allocator(api: FakeFleetApi, store: LocalStore) -> None:
    first = await _service(api, store, online=False).create(trip_draft())
    # A fresh service (e.g. after restart) with a clock reading the same millisecond.
    second = await _service(api, store, online=False).create(trip_draft())

    assert first.id != second.id


@pytest.mark.asyncio
async def test_response_without_id_is_queued(store: LocalStore) -> None:
    class _NoIdApi(FakeFleetApi):
        async def post_json(self, endpoint, payload):  # type: ignore[no-untyped-def]
            self.calls.append(("POST", endpoint))
            return {"ok": True}

    api = _NoIdApi()

    record = await _service(api, store).create(trip_draft())

    assert record.is_offline is True
    assert record.is_temporary


def test_confirmed_record_prefers_server_fields() -> None:
    draft = parse_registration(trip_draft()).as_pending(-1)

    confirmed = confirmed_record(draft, {"id": 57, "finalKm": 12090})

    assert confirmed is not None
    assert confirmed.id == 57
    assert confirmed.final_km == 12090
    assert confirmed.is_offline is False


@pytest.mark.parametrize("body", [None, [], {"id": 0}, {"id": -4}, {"id": "57"}, {"id": True}])
def test_confirmed_record_requires_positive_int_id(body: object) -> None:
    draft = parse_registration(trip_draft())

    assert confirmed_record(draft, body) is None
