"""Entity categories cached by the local store."""

from __future__ import annotations

from enum import StrEnum


class EntityCategory(StrEnum):
    """Store key space. Values double as the on-disk snapshot names."""

    VEHICLES = "vehicles"
    DRIVERS = "drivers"
    FUEL_STATIONS = "fuel_stations"
    FUEL_TYPES = "fuel_types"
    MAINTENANCE_TYPES = "maintenance_types"
    REGISTRATIONS = "registrations"

    @property
    def endpoint(self) -> str:
        """REST endpoint serving the full list for this category."""
        return _ENDPOINTS[self]

    @property
    def is_reference(self) -> bool:
        """Low-churn lookup data, refetched wholesale and never edited offline."""
        return self is not EntityCategory.REGISTRATIONS


_ENDPOINTS: dict[EntityCategory, str] = {
    EntityCategory.VEHICLES: "/api/vehicles",
    EntityCategory.DRIVERS: "/api/drivers",
    EntityCategory.FUEL_STATIONS: "/api/fuel-stations",
    EntityCategory.FUEL_TYPES: "/api/fuel-types",
    EntityCategory.MAINTENANCE_TYPES: "/api/maintenance-types",
    EntityCategory.REGISTRATIONS: "/api/registrations",
}

REFERENCE_CATEGORIES: tuple[EntityCategory, ...] = tuple(c for c in EntityCategory if c.is_reference)
