"""Data models for pygarage."""

from pygarage.models._base import GarageBaseModel, GarageTimestamp, UtcTimestamp, parse_timestamp
from pygarage.models.audit import ArchiveResult, AuditEntry, AuditEvent, AuditStatistics
from pygarage.models.matching import KeywordMatch, MatchCandidate, MatchType
from pygarage.models.results import (
    BatchPreview,
    BatchReport,
    BatchSummary,
    PreviewMatch,
    PreviewMiss,
    StatusUpdateRequest,
    UpdateResult,
)
from pygarage.models.status import STATUS_ALIASES, VehicleStatus
from pygarage.models.validation import MaintenanceCheck, NameValidation, TransitionOutcome, ValidationOutcome
from pygarage.models.vehicle import Vehicle

__all__ = [
    "ArchiveResult",
    "AuditEntry",
    "AuditEvent",
    "AuditStatistics",
    "BatchPreview",
    "BatchReport",
    "BatchSummary",
    "GarageBaseModel",
    "GarageTimestamp",
    "KeywordMatch",
    "MaintenanceCheck",
    "MatchCandidate",
    "MatchType",
    "NameValidation",
    "PreviewMatch",
    "PreviewMiss",
    "STATUS_ALIASES",
    "StatusUpdateRequest",
    "TransitionOutcome",
    "UpdateResult",
    "UtcTimestamp",
    "ValidationOutcome",
    "Vehicle",
    "VehicleStatus",
    "parse_timestamp",
]
