"""fleetsync - Offline cache and sync layer for the fleet management API."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fleetsync")
except PackageNotFoundError:
    __version__ = "0+local"
from fleetsync._transport import HttpTransport, Transport
from fleetsync.config import ApiCachePolicy, FleetSyncConfig
from fleetsync.connectivity import ConnectivityState, TempIdAllocator
from fleetsync.context import FleetSyncContext
from fleetsync.exceptions import (
    FleetSyncConfigError,
    FleetSyncError,
    FleetSyncStorageError,
    FleetSyncTransportError,
    FleetSyncWorkerError,
)
from fleetsync.fetcher import FallbackFetcher
from fleetsync.messages import MessageType, WorkerClient, WorkerClients
from fleetsync.models import (
    EntityCategory,
    FuelRegistration,
    MaintenanceRegistration,
    RegistrationRecord,
    TripRegistration,
    parse_registration,
)
from fleetsync.registrations import RegistrationService
from fleetsync.store import LocalStore
from fleetsync.sync import SyncReconciler, SyncReport

__all__ = [
    "__version__",
    "ApiCachePolicy",
    "ConnectivityState",
    "EntityCategory",
    "FallbackFetcher",
    "FleetSyncConfig",
    "FleetSyncConfigError",
    "FleetSyncContext",
    "FleetSyncError",
    "FleetSyncStorageError",
    "FleetSyncTransportError",
    "FleetSyncWorkerError",
    "FuelRegistration",
    "HttpTransport",
    "LocalStore",
    "MaintenanceRegistration",
    "MessageType",
    "RegistrationRecord",
    "RegistrationService",
    "SyncReconciler",
    "SyncReport",
    "TempIdAllocator",
    "Transport",
    "TripRegistration",
    "WorkerClient",
    "WorkerClients",
    "parse_registration",
]
