"""Online/offline flag and temporary-id allocation.

Both objects are constructed explicitly by the application context; nothing
here is a module-level singleton. The flag is never persisted: every start
re-initializes it from the runtime's connectivity signal.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from fleetsync._constants import PING_ENDPOINT
from fleetsync._transport import Transport
from fleetsync.exceptions import FleetSyncTransportError

_logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class ConnectivityState:
    """Process-wide online flag flipped by online/offline transitions."""

    def __init__(self, initial_online: bool = True) -> None:
        self._online = initial_online
        self._listeners: list[ConnectivityListener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_offline(self) -> bool:
        return not self._online

    def add_listener(self, listener: ConnectivityListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ConnectivityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_online(self, online: bool) -> bool:
        """Update the flag; return True when this was a real transition.

        Listeners only fire on transitions. A failing listener is logged
        and does not stop the others.
        """
        if online == self._online:
            return False
        self._online = online
        _logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                _logger.warning("Connectivity listener failed", exc_info=True)
        return True

    async def probe(
        self,
        transport: Transport,
        endpoint: str = PING_ENDPOINT,
        *,
        timeout: float | None = None,
    ) -> bool:
        """Check real reachability of the API with a HEAD request.

        A 2xx status means online; any other status or a transport failure
        means offline. The flag is updated and the result returned.
        """
        try:
            status = await transport.head(endpoint, timeout=timeout)
        except FleetSyncTransportError:
            _logger.debug("Connectivity probe failed", exc_info=True)
            online = False
        else:
            online = 200 <= status < 300
        self.set_online(online)
        return online


class TempIdAllocator:
    """Mint negative identifiers for records created offline.

    Each id is the negated wall-clock timestamp in milliseconds. A second
    allocation within the same millisecond (or after the clock steps back)
    takes the next free value below the previous one, so one allocator never
    hands out the same id twice.
    """

    def __init__(self, clock: Callable[[], int] = _now_ms) -> None:
        self._clock = clock
        self._last: int | None = None

    def allocate(self) -> int:
        candidate = -max(int(self._clock()), 1)
        if self._last is not None and candidate >= self._last:
            candidate = self._last - 1
        self._last = candidate
        return candidate

    def reserve(self, existing_ids: list[int]) -> None:
        """Never allocate above the lowest id already queued (e.g. after a restart)."""
        negatives = [value for value in existing_ids if value < 0]
        if not negatives:
            return
        lowest = min(negatives)
        if self._last is None or lowest < self._last:
            self._last = lowest
