"""pygarage - Async fleet status updates with fuzzy name matching and an audit trail."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pygarage")
except PackageNotFoundError:
    __version__ = "0+local"
from pygarage.audit import AuditLogger
from pygarage.client import GarageClient
from pygarage.config import GarageConfig
from pygarage.exceptions import (
    GarageAuditError,
    GarageConfigError,
    GarageError,
    GarageInputError,
    GarageStoreError,
    GarageTransportError,
    InvalidStatusError,
    StatusConflictError,
    VehicleNotFoundError,
)
from pygarage.matching import NameMatcher, normalize_name, similarity
from pygarage.models import (
    ArchiveResult,
    AuditEntry,
    AuditEvent,
    AuditStatistics,
    BatchPreview,
    BatchReport,
    BatchSummary,
    MatchCandidate,
    MatchType,
    StatusUpdateRequest,
    UpdateResult,
    ValidationOutcome,
    Vehicle,
    VehicleStatus,
)
from pygarage.store import HttpVehicleStore, InMemoryVehicleStore, SqliteVehicleStore, VehicleStore
from pygarage.updater import StatusUpdater, generate_report
from pygarage.validation import StatusValidator

__all__ = [
    "__version__",
    "ArchiveResult",
    "AuditEntry",
    "AuditEvent",
    "AuditLogger",
    "AuditStatistics",
    "BatchPreview",
    "BatchReport",
    "BatchSummary",
    "GarageAuditError",
    "GarageClient",
    "GarageConfig",
    "GarageConfigError",
    "GarageError",
    "GarageInputError",
    "GarageStoreError",
    "GarageTransportError",
    "HttpVehicleStore",
    "InMemoryVehicleStore",
    "InvalidStatusError",
    "MatchCandidate",
    "MatchType",
    "NameMatcher",
    "SqliteVehicleStore",
    "StatusConflictError",
    "StatusUpdateRequest",
    "StatusUpdater",
    "StatusValidator",
    "UpdateResult",
    "ValidationOutcome",
    "Vehicle",
    "VehicleNotFoundError",
    "VehicleStatus",
    "VehicleStore",
    "generate_report",
    "normalize_name",
    "similarity",
]
