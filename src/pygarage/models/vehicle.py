"""Vehicle model."""

from __future__ import annotations

from pydantic import AliasChoices, Field, field_validator

from pygarage.models._base import GarageBaseModel, GarageTimestamp
from pygarage.models.status import VehicleStatus


class Vehicle(GarageBaseModel):
    """A vehicle as held by the vehicle store.

    Accepts the ``garage`` table row layout (``car_id``, ``car_name``...)
    as well as the camelCase JSON served by remote stores.
    """

    id: int = Field(validation_alias=AliasChoices("id", "car_id", "carId"))
    """Stable integer identity."""
    name: str = Field(validation_alias=AliasChoices("name", "car_name", "carName"))
    """Free-text display name (casing not guaranteed unique)."""
    status: VehicleStatus
    """Current canonical status."""
    last_maintenance: GarageTimestamp = Field(
        default=None,
        validation_alias=AliasChoices("last_maintenance", "lastMaintenance"),
    )
    """When the status was last set, if known."""

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("name must be non-empty")
        return name
