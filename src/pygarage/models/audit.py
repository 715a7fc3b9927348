"""Audit trail models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator

from pygarage.models._base import GarageBaseModel, UtcTimestamp


class AuditEvent(StrEnum):
    STATUS_UPDATE = "status_update"
    BATCH_START = "batch_start"
    BATCH_COMPLETE = "batch_complete"


class AuditEntry(GarageBaseModel):
    """One immutable audit record.

    Serialized as one JSON object per line with camelCase keys
    (``auditId``, ``carId``, ``batchId``...).
    """

    audit_id: str
    timestamp: UtcTimestamp
    event: AuditEvent
    car_id: int | None = None
    car_name: str | None = None
    old_status: str | None = None
    new_status: str | None = None
    reason: str
    source: str
    operator: str
    batch_id: str | None = None
    success: bool = True
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("audit_id")
    @classmethod
    def _require_audit_id(cls, value: str) -> str:
        if not value:
            raise ValueError("audit_id must be non-empty")
        return value


class AuditStatistics(GarageBaseModel):
    """Aggregates over ``status_update`` events in an inclusive time window."""

    total_updates: int = 0
    successful_updates: int = 0
    failed_updates: int = 0
    status_transition_counts: dict[str, int] = Field(default_factory=dict)
    """``"old → new"`` -> count, for entries that actually changed status."""
    per_vehicle_counts: dict[str, int] = Field(default_factory=dict)
    per_operator_counts: dict[str, int] = Field(default_factory=dict)
    start: datetime
    end: datetime


class ArchiveResult(GarageBaseModel):
    archived: int
    retained: int
    archive_path: Path | None = None
