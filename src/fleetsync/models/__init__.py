"""Data models for cached and synchronized fleet records."""

from fleetsync.models._base import FleetBaseModel
from fleetsync.models.categories import REFERENCE_CATEGORIES, EntityCategory
from fleetsync.models.registration import (
    FuelRegistration,
    MaintenanceRegistration,
    RegistrationRecord,
    SyncStatus,
    TripRegistration,
    parse_registration,
)

__all__ = [
    "REFERENCE_CATEGORIES",
    "EntityCategory",
    "FleetBaseModel",
    "FuelRegistration",
    "MaintenanceRegistration",
    "RegistrationRecord",
    "SyncStatus",
    "TripRegistration",
    "parse_registration",
]
