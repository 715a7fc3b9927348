"""Update request and result models."""

from __future__ import annotations

from pydantic import AliasChoices, Field

from pygarage.models._base import GarageBaseModel, UtcTimestamp
from pygarage.models.matching import MatchType
from pygarage.models.status import VehicleStatus


class StatusUpdateRequest(GarageBaseModel):
    """One caller-supplied ``{name, status}`` pair. Never persisted as-is."""

    car_name: str = Field(validation_alias=AliasChoices("car_name", "carName", "name"))
    status: str = Field(validation_alias=AliasChoices("status", "desiredStatus", "desired_status"))


class UpdateResult(GarageBaseModel):
    """Outcome of one requested update."""

    success: bool
    changed: bool = False
    car_name: str | None = None
    """Matched store name on success, the caller's input otherwise."""
    car_id: int | None = None
    old_status: VehicleStatus | None = None
    new_status: VehicleStatus | None = None
    message: str | None = None
    error: str | None = None
    suggestions: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    match_type: MatchType | None = None
    similarity: float | None = None


class BatchSummary(GarageBaseModel):
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class BatchReport(GarageBaseModel):
    """Aggregate of one batch run.

    Only items actually attempted are listed; when the batch deadline
    expires ``cancelled`` is set and ``attempted < total``.
    """

    batch_id: str
    total: int
    attempted: int
    successful: list[UpdateResult] = Field(default_factory=list)
    failed: list[UpdateResult] = Field(default_factory=list)
    unchanged: list[UpdateResult] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)
    start_time: UtcTimestamp
    end_time: UtcTimestamp
    duration: float
    """Wall-clock seconds between ``start_time`` and ``end_time``."""
    cancelled: bool = False


class PreviewMatch(GarageBaseModel):
    input: str
    matched: str
    match_type: MatchType
    similarity: float


class PreviewMiss(GarageBaseModel):
    input: str
    suggestions: list[str] = Field(default_factory=list)


class BatchPreview(GarageBaseModel):
    """Dry-run analysis of a batch: nothing is written to the store or the audit log."""

    total: int
    unique_vehicles: int
    status_distribution: dict[str, int] = Field(default_factory=dict)
    duplicates_in_list: list[str] = Field(default_factory=list)
    matches: list[PreviewMatch] = Field(default_factory=list)
    unmatched: list[PreviewMiss] = Field(default_factory=list)
    invalid_statuses: list[str] = Field(default_factory=list)
