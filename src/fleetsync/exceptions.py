"""Custom exception hierarchy for fleetsync."""

from __future__ import annotations


class FleetSyncError(Exception):
    """Base exception for all fleetsync errors."""


class FleetSyncConfigError(FleetSyncError):
    """Invalid or missing configuration."""


class FleetSyncTransportError(FleetSyncError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)

    @property
    def is_network_failure(self) -> bool:
        """Whether the request never produced an HTTP status."""
        return self.status_code is None


class FleetSyncStorageError(FleetSyncError):
    """Local persistence failure (quota, permissions, corrupt file).

    Raised by the storage back end only; :class:`~fleetsync.store.LocalStore`
    catches it so callers proceed as if the write succeeded.
    """

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class FleetSyncWorkerError(FleetSyncError):
    """Cache worker lifecycle misuse (e.g. fetch before activation)."""
