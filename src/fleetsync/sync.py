"""Drain registrations created offline through the real API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from fleetsync._constants import MAX_SYNC_RETRIES, REGISTRATIONS_ENDPOINT
from fleetsync._transport import Transport
from fleetsync.exceptions import FleetSyncTransportError
from fleetsync.fetcher import FallbackFetcher
from fleetsync.models.registration import RegistrationRecord
from fleetsync.registrations import confirmed_record
from fleetsync.store import LocalStore

_logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Outcome of one reconciliation pass."""

    confirmed: list[tuple[int, int | None]] = field(default_factory=list)
    """``(temp_id, server_id)`` pairs; ``server_id`` is None when the server sent no id."""
    failed: list[int] = field(default_factory=list)
    """Temporary ids that stay queued after a failed attempt."""
    gave_up: list[int] = field(default_factory=list)
    """Temporary ids in the terminal error state; queued but not retried."""
    unreadable: list[dict[str, Any]] = field(default_factory=list)
    """Queued entries that no longer validate and cannot be submitted."""
    unpersisted: list[int] = field(default_factory=list)
    """Accepted by the server, but the local queue could not be updated."""
    refreshed: bool = False

    @property
    def attempted(self) -> int:
        return len(self.confirmed) + len(self.failed) + len(self.unpersisted)

    @property
    def ok(self) -> bool:
        """True iff every pending record was confirmed (vacuously true when none)."""
        return not (self.failed or self.gave_up or self.unreadable or self.unpersisted)


def _accepted_despite_error(exc: FleetSyncTransportError) -> bool:
    # 2xx with an unreadable body: the server stored the record.
    return exc.status_code is not None and 200 <= exc.status_code < 300


class SyncReconciler:
    """Re-submit pending registrations one at a time, in store order.

    Failures are per record: a record that cannot be confirmed stays queued
    with its attempt counted and the loop moves on. After *max_retries*
    failed attempts a record is marked as a sync error and skipped by later
    passes, but it is never removed. Nothing is rolled back.

    When a *fetcher* is given, the registrations list is re-fetched after a
    pass that confirmed anything, so the store holds the server's view.
    """

    def __init__(
        self,
        transport: Transport,
        store: LocalStore,
        *,
        endpoint: str = REGISTRATIONS_ENDPOINT,
        fetcher: FallbackFetcher | None = None,
        max_retries: int = MAX_SYNC_RETRIES,
    ) -> None:
        self._transport = transport
        self._store = store
        self._endpoint = endpoint
        self._fetcher = fetcher
        self._max_retries = max_retries
        self._lock = asyncio.Lock()

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    async def reconcile(self) -> SyncReport:
        """Run one pass over the pending queue and report per-record results."""
        async with self._lock:
            report = SyncReport()
            report.unreadable = await self._store.unreadable_pending()
            if report.unreadable:
                _logger.error("%d queued registrations cannot be read and were not sent", len(report.unreadable))

            pending = await self._store.pending_registrations()
            if not pending:
                _logger.debug("No pending registrations to sync")
                return report

            _logger.info("Syncing %d pending registrations", len(pending))
            for record in pending:
                if record.id is None:
                    continue
                if record.is_sync_error:
                    report.gave_up.append(record.id)
                    continue
                await self._submit(record, record.id, report)

            if report.confirmed and self._fetcher is not None:
                await self._fetcher.get_registrations()
                report.refreshed = True

            _logger.info(
                "Sync finished: %d confirmed, %d still pending, %d given up",
                len(report.confirmed),
                len(report.failed) + len(report.unpersisted),
                len(report.gave_up),
            )
            return report

    async def _submit(self, record: RegistrationRecord, temp_id: int, report: SyncReport) -> None:
        try:
            body = await self._transport.post_json(self._endpoint, record.to_payload())
        except FleetSyncTransportError as exc:
            if not _accepted_despite_error(exc):
                await self._record_failure(record, temp_id, str(exc))
                report.failed.append(temp_id)
                return
            body = None

        confirmed = confirmed_record(record, body)
        if confirmed is not None:
            persisted = await self._store.replace_registration(temp_id, confirmed)
        else:
            persisted = await self._store.remove_registration(temp_id)

        if not persisted:
            # Still queued locally: the next pass will POST it again.
            _logger.error("Registration %s accepted by the server but the local queue was not updated", temp_id)
            report.unpersisted.append(temp_id)
            return
        report.confirmed.append((temp_id, confirmed.id if confirmed is not None else None))
        _logger.debug("Registration %s confirmed", temp_id)

    async def _record_failure(self, record: RegistrationRecord, temp_id: int, error: str) -> None:
        updated = record.with_failed_attempt(error, max_retries=self._max_retries)
        if updated.is_sync_error:
            _logger.error("Registration %s failed %d times; marked as sync error: %s", temp_id, updated.retry_count, error)
        else:
            _logger.warning("Sync failed for registration %s (attempt %d): %s", temp_id, updated.retry_count, error)
        if not await self._store.replace_registration(temp_id, updated):  # type: ignore[arg-type]
            _logger.warning("Could not record failed attempt for registration %s", temp_id)

    async def sync_with_server(self) -> bool:
        """Drain the pending queue; True iff every record was confirmed."""
        report = await self.reconcile()
        return report.ok
