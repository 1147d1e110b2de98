"""Registration records: logged fuel, maintenance and trip events.

A record created while offline carries a negative temporary ``id`` and
``is_offline=True`` until the server confirms it with a positive id.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, Field, TypeAdapter

from fleetsync.models._base import FleetBaseModel


class SyncStatus(StrEnum):
    """Queue state of a record created offline."""

    PENDING = "pending"
    ERROR = "error"
    """Gave up after too many failed attempts; kept, but no longer retried."""


_LOCAL_FIELDS = {"id", "is_offline", "sync_status", "retry_count", "last_error"}


class _RegistrationBase(FleetBaseModel):
    id: int | None = None
    """Server id (positive) or temporary offline id (negative)."""
    vehicle_id: int
    driver_id: int
    date: datetime
    initial_km: int
    final_km: int | None = None
    observations: str | None = None
    photo_url: str | None = None
    is_offline: bool = False
    """True while the record waits in the pending queue."""
    sync_status: SyncStatus | None = None
    retry_count: int | None = None
    """Failed submissions so far (queued records only)."""
    last_error: str | None = None

    @property
    def is_temporary(self) -> bool:
        """Whether the id was minted locally and not yet confirmed."""
        return self.id is not None and self.id < 0

    @property
    def is_confirmed(self) -> bool:
        return self.id is not None and self.id > 0 and not self.is_offline

    @property
    def is_sync_error(self) -> bool:
        return self.sync_status is SyncStatus.ERROR

    def to_payload(self) -> dict[str, Any]:
        """Body POSTed to the registrations endpoint (no local id or queue state)."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude_none=True,
            exclude=_LOCAL_FIELDS,
        )

    def as_pending(self, temp_id: int) -> _RegistrationBase:
        """Copy tagged as an offline record with *temp_id*."""
        if temp_id >= 0:
            raise ValueError(f"temporary ids must be negative, got {temp_id}")
        return self.model_copy(
            update={"id": temp_id, "is_offline": True, "sync_status": SyncStatus.PENDING, "retry_count": 0}
        )

    def as_confirmed(self, server_id: int) -> _RegistrationBase:
        """Copy carrying the server-assigned id with the queue state cleared."""
        if server_id <= 0:
            raise ValueError(f"server ids must be positive, got {server_id}")
        return self.model_copy(
            update={
                "id": server_id,
                "is_offline": False,
                "sync_status": None,
                "retry_count": None,
                "last_error": None,
            }
        )

    def with_failed_attempt(self, error: str, *, max_retries: int) -> _RegistrationBase:
        """Copy with one more failed attempt recorded.

        Once *max_retries* attempts have failed the record moves to
        :attr:`SyncStatus.ERROR`; it stays queued either way.
        """
        retries = (self.retry_count or 0) + 1
        status = SyncStatus.ERROR if retries >= max_retries else SyncStatus.PENDING
        return self.model_copy(update={"retry_count": retries, "last_error": error, "sync_status": status})


class FuelRegistration(_RegistrationBase):
    """Refuelling event."""

    type: Literal["fuel"] = "fuel"
    fuel_station_id: int = Field(
        validation_alias=AliasChoices("fuelStationId", "stationId", "fuel_station_id"),
        serialization_alias="fuelStationId",
    )
    fuel_type_id: int
    liters: float
    fuel_cost: int = Field(
        validation_alias=AliasChoices("fuelCost", "cost", "fuel_cost"),
        serialization_alias="fuelCost",
    )
    """Total cost in cents."""
    full_tank: bool = False
    arla: bool = False


class MaintenanceRegistration(_RegistrationBase):
    """Workshop or service event."""

    type: Literal["maintenance"] = "maintenance"
    maintenance_type_id: int
    maintenance_cost: int = Field(
        validation_alias=AliasChoices("maintenanceCost", "cost", "maintenance_cost"),
        serialization_alias="maintenanceCost",
    )
    """Total cost in cents."""


class TripRegistration(_RegistrationBase):
    """Trip between two places with odometer readings."""

    type: Literal["trip"] = "trip"
    origin: str | None = None
    destination: str
    reason: str | None = None


RegistrationRecord = Annotated[
    FuelRegistration | MaintenanceRegistration | TripRegistration,
    Field(discriminator="type"),
]

_RECORD_ADAPTER: TypeAdapter[FuelRegistration | MaintenanceRegistration | TripRegistration] = TypeAdapter(
    RegistrationRecord
)


def parse_registration(obj: Any) -> FuelRegistration | MaintenanceRegistration | TripRegistration:
    """Validate one wire-format record into its tagged variant.

    Raises :class:`pydantic.ValidationError` for unknown ``type`` values or
    missing variant fields.
    """
    if isinstance(obj, _RegistrationBase):
        return obj  # type: ignore[return-value]
    return _RECORD_ADAPTER.validate_python(obj)
