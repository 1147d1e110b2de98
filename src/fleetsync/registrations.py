"""Offline-aware creation of registration records."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from fleetsync._constants import REGISTRATIONS_ENDPOINT
from fleetsync._redact import redact_for_log
from fleetsync._transport import Transport
from fleetsync.connectivity import ConnectivityState, TempIdAllocator
from fleetsync.exceptions import FleetSyncTransportError
from fleetsync.models.registration import RegistrationRecord, parse_registration
from fleetsync.store import LocalStore

_logger = logging.getLogger(__name__)


def confirmed_record(draft: RegistrationRecord, body: Any) -> RegistrationRecord | None:
    """Build the confirmed form of *draft* from a server response body.

    Returns ``None`` when the body carries no positive integer ``id``.
    Server fields win over submitted ones; the offline flag is cleared.
    """
    if not isinstance(body, dict):
        return None
    server_id = body.get("id")
    if not isinstance(server_id, int) or isinstance(server_id, bool) or server_id <= 0:
        return None
    try:
        return parse_registration({**draft.to_payload(), **body, "isOffline": False})
    except ValidationError:
        _logger.debug("Server body does not validate; keeping submitted fields", exc_info=True)
        return draft.as_confirmed(server_id)  # type: ignore[return-value]


class RegistrationService:
    """Create fuel/maintenance/trip records online or queue them offline."""

    def __init__(
        self,
        transport: Transport,
        store: LocalStore,
        connectivity: ConnectivityState,
        allocator: TempIdAllocator,
        *,
        endpoint: str = REGISTRATIONS_ENDPOINT,
    ) -> None:
        self._transport = transport
        self._store = store
        self._connectivity = connectivity
        self._allocator = allocator
        self._endpoint = endpoint

    async def create(self, record: RegistrationRecord | Mapping[str, Any]) -> RegistrationRecord:
        """Submit *record*, falling back to the pending queue.

        Returns the server-confirmed record (positive id) when the POST
        succeeds, otherwise the queued copy carrying a negative temporary id
        and ``is_offline=True``.
        """
        draft = parse_registration(dict(record) if isinstance(record, Mapping) else record)

        if self._connectivity.is_online:
            try:
                body = await self._transport.post_json(self._endpoint, draft.to_payload())
            except FleetSyncTransportError as exc:
                _logger.info("Registration POST failed (%s); queueing offline", exc)
            else:
                confirmed = confirmed_record(draft, body)
                if confirmed is not None:
                    await self._store.add_registration(confirmed)
                    return confirmed
                _logger.warning("Unexpected registration response %s; queueing offline", redact_for_log(body))

        return await self._queue(draft)

    async def _queue(self, draft: RegistrationRecord) -> RegistrationRecord:
        queued_ids = [r.id for r in await self._store.pending_registrations() if r.id is not None]
        self._allocator.reserve(queued_ids)
        pending = draft.as_pending(self._allocator.allocate())
        if not await self._store.add_registration(pending):
            _logger.error("Offline registration %s could not be persisted", pending.id)
        else:
            _logger.info("Queued offline %s registration id=%s", pending.type, pending.id)
        return pending  # type: ignore[return-value]

    async def pending_count(self) -> int:
        return len(await self._store.pending_registrations())
