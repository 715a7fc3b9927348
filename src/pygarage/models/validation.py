"""Validation outcome models."""

from __future__ import annotations

from pydantic import Field

from pygarage.models._base import GarageBaseModel
from pygarage.models.status import VehicleStatus


class ValidationOutcome(GarageBaseModel):
    is_valid: bool
    normalized_status: VehicleStatus | None = None
    error: str | None = None


class TransitionOutcome(GarageBaseModel):
    """Classification of a status change on the ``BAD < AVERAGE < GOOD`` ladder.

    ``is_valid`` only reflects whether both statuses are known; every
    transition between valid statuses is allowed.
    """

    is_valid: bool
    is_no_change: bool = False
    is_upgrade: bool = False
    is_downgrade: bool = False
    warning: str | None = None
    recommendation: str | None = None
    error: str | None = None


class NameValidation(GarageBaseModel):
    is_valid: bool
    normalized_name: str | None = None
    error: str | None = None
    warnings: list[str] = Field(default_factory=list)


class MaintenanceCheck(GarageBaseModel):
    """Plausibility notes for a status given the vehicle's maintenance history."""

    warnings: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
