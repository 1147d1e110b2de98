"""Base model for fleet API records.

Every record model inherits from :class:`FleetBaseModel` which provides:

* ``alias_generator=to_camel`` so the camelCase keys of the REST API map
  automatically to snake_case fields (and are written back as camelCase).
* A ``model_validator(mode="before")`` that drops ``None`` and blank-string
  values so field defaults apply, matching how the forms submit
  optional fields.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


class FleetBaseModel(BaseModel):
    """Base for fleet API record models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_blank_values(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            cleaned[key] = value
        return cleaned

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON shape used by the API and the store."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
