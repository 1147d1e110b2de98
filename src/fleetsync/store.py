"""Durable local persistence store.

The store is a cache, not a system of record: reads never raise (a miss is
an empty list) and write failures are logged and swallowed. Each key is one
JSON file under the data directory, replaced atomically on every write.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import tempfile
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any
from urllib.parse import quote

from pydantic import ValidationError

from fleetsync._redact import redact_for_log
from fleetsync.exceptions import FleetSyncStorageError
from fleetsync.models.categories import EntityCategory
from fleetsync.models.registration import RegistrationRecord, parse_registration

_logger = logging.getLogger(__name__)

_IMAGES_DIR = "images"


def _key_filename(key: str) -> str:
    return f"{quote(key, safe='')}.json"


def _is_pending_wire(entry: Any) -> bool:
    return isinstance(entry, dict) and entry.get("isOffline") is True


class LocalStore:
    """Per-category snapshots plus the registration queue.

    Parameters
    ----------
    data_dir : Path
        Directory holding one ``<category>.json`` file per key and an
        ``images/`` subdirectory for image data URLs. Created lazily.
    """

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = Path(data_dir)
        self._queue_lock = asyncio.Lock()

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    # ------------------------------------------------------------------
    # Blocking file primitives (run in the default executor)
    # ------------------------------------------------------------------

    def _path(self, key: str, *, subdir: str | None = None) -> Path:
        base = self._data_dir / subdir if subdir else self._data_dir
        return base / _key_filename(key)

    def _read_blocking(self, path: Path) -> Any:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise FleetSyncStorageError(f"Cannot read {path}: {exc}", key=path.stem) from exc
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise FleetSyncStorageError(f"Corrupt snapshot {path}: {exc}", key=path.stem) from exc

    def _write_blocking(self, path: Path, value: Any) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(value, fh, ensure_ascii=False, separators=(",", ":"))
                os.replace(tmp_name, path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
                raise
        except (OSError, TypeError, ValueError) as exc:
            raise FleetSyncStorageError(f"Cannot write {path}: {exc}", key=path.stem) from exc

    def _delete_blocking(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise FleetSyncStorageError(f"Cannot delete {path}: {exc}", key=path.stem) from exc

    async def _read(self, path: Path) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_blocking, path)

    async def _write(self, path: Path, value: Any) -> bool:
        """Write *value*; return False (after logging) when persistence failed."""
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write_blocking, path, value)
        except FleetSyncStorageError:
            _logger.warning("Local store write failed for %s", path.name, exc_info=True)
            return False
        return True

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    async def get(self, category: EntityCategory | str) -> list[Any]:
        """Return the last saved snapshot for *category* (``[]`` on a miss)."""
        key = str(category)
        try:
            data = await self._read(self._path(key))
        except FleetSyncStorageError:
            _logger.warning("Local store read failed for %s; treating as empty", key, exc_info=True)
            return []
        if data is None:
            return []
        if not isinstance(data, list):
            _logger.warning("Ignoring non-list snapshot for %s", key)
            return []
        return data

    async def save(self, category: EntityCategory | str, entities: Iterable[Any]) -> None:
        """Replace the whole snapshot for *category*.

        Reference snapshots are written verbatim. The registrations
        snapshot keeps queued offline records that the incoming list does
        not already contain, so a refetch never drops work that is still
        waiting for the server; non-object entries in it are skipped.
        """
        key = str(category)
        if key != EntityCategory.REGISTRATIONS:
            await self._write(self._path(key), list(entities))
            return

        snapshot: list[dict[str, Any]] = []
        for entity in entities:
            if isinstance(entity, Mapping):
                snapshot.append(dict(entity))
            else:
                _logger.warning("Skipping non-object registration entry %s", redact_for_log(entity))

        async with self._queue_lock:
            existing = await self.get(key)
            incoming_ids = {entry.get("id") for entry in snapshot}
            carried = [entry for entry in existing if _is_pending_wire(entry) and entry.get("id") not in incoming_ids]
            if carried:
                _logger.debug("Keeping %d pending registrations across refresh", len(carried))
            await self._write(self._path(key), snapshot + carried)

    async def clear(self, category: EntityCategory | str) -> None:
        """Drop the snapshot for *category*."""
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._delete_blocking, self._path(str(category)))
        except FleetSyncStorageError:
            _logger.warning("Local store clear failed for %s", category, exc_info=True)

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    async def save_image(self, key: str, data_url: str) -> None:
        """Persist an image data URL under an application key (e.g. ``vehicle_12``)."""
        _logger.debug("Saving image %s %s", key, redact_for_log(data_url))
        await self._write(self._path(key, subdir=_IMAGES_DIR), {"key": key, "dataUrl": data_url})

    async def get_image(self, key: str) -> str | None:
        try:
            data = await self._read(self._path(key, subdir=_IMAGES_DIR))
        except FleetSyncStorageError:
            _logger.warning("Local store image read failed for %s", key, exc_info=True)
            return None
        if isinstance(data, dict) and isinstance(data.get("dataUrl"), str):
            return str(data["dataUrl"])
        return None

    # ------------------------------------------------------------------
    # Registration queue
    # ------------------------------------------------------------------

    async def get_registrations(self) -> list[RegistrationRecord]:
        """Return every stored registration, in store order.

        Entries that no longer validate are skipped and logged rather than
        failing the whole read.
        """
        records: list[RegistrationRecord] = []
        for entry in await self.get(EntityCategory.REGISTRATIONS):
            try:
                records.append(parse_registration(entry))
            except ValidationError:
                _logger.warning("Skipping invalid stored registration %s", redact_for_log(entry), exc_info=True)
        return records

    async def pending_registrations(self) -> list[RegistrationRecord]:
        """Registrations created offline and not yet confirmed."""
        return [record for record in await self.get_registrations() if record.is_offline]

    async def unreadable_pending(self) -> list[dict[str, Any]]:
        """Raw queued entries (``isOffline: true``) that no longer validate.

        They cannot be submitted, but they are still waiting for the server,
        so they are reported rather than forgotten.
        """
        unreadable: list[dict[str, Any]] = []
        for entry in await self.get(EntityCategory.REGISTRATIONS):
            if not _is_pending_wire(entry):
                continue
            try:
                parse_registration(entry)
            except ValidationError:
                unreadable.append(entry)
        return unreadable

    async def add_registration(self, record: RegistrationRecord) -> bool:
        """Append *record* to the registrations snapshot."""
        async with self._queue_lock:
            entries = await self.get(EntityCategory.REGISTRATIONS)
            entries.append(record.to_wire())
            return await self._write(self._path(EntityCategory.REGISTRATIONS), entries)

    async def remove_registration(self, record_id: int) -> bool:
        """Remove the registration with *record_id*; False if absent or not persisted."""
        async with self._queue_lock:
            entries = await self.get(EntityCategory.REGISTRATIONS)
            remaining = [entry for entry in entries if not (isinstance(entry, dict) and entry.get("id") == record_id)]
            if len(remaining) == len(entries):
                return False
            return await self._write(self._path(EntityCategory.REGISTRATIONS), remaining)

    async def replace_registration(self, record_id: int, record: RegistrationRecord) -> bool:
        """Swap the registration with *record_id* for *record*, keeping its position."""
        async with self._queue_lock:
            entries = await self.get(EntityCategory.REGISTRATIONS)
            replaced = False
            updated: list[dict[str, Any]] = []
            for entry in entries:
                if not replaced and isinstance(entry, dict) and entry.get("id") == record_id:
                    updated.append(record.to_wire())
                    replaced = True
                else:
                    updated.append(entry)
            if not replaced:
                return False
            return await self._write(self._path(EntityCategory.REGISTRATIONS), updated)
