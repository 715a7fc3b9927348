"""Status, transition and name validation.

Validation never raises; every check returns an outcome model the caller
inspects. Transitions are only classified, never blocked.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pygarage._constants import (
    MAINTENANCE_BAD_SUSPICIOUS_DAYS,
    MAINTENANCE_GOOD_SUSPICIOUS_DAYS,
    MAINTENANCE_STALE_DAYS,
    NAME_DIGIT_RATIO,
    NAME_MAX_LENGTH,
    NAME_MIN_LENGTH,
    SUSPICIOUS_NAME_CHARS,
)
from pygarage.models.status import STATUS_ALIASES, VehicleStatus
from pygarage.models.validation import MaintenanceCheck, NameValidation, TransitionOutcome, ValidationOutcome
from pygarage.models.vehicle import Vehicle

_ALLOWED = ", ".join(status.value for status in VehicleStatus)


class StatusValidator:
    """Validate operator input against the canonical status table.

    Parameters
    ----------
    aliases : Mapping[str, VehicleStatus] or None
        Casefolded label -> status lookup. Defaults to
        :data:`pygarage.models.status.STATUS_ALIASES`.
    """

    def __init__(self, aliases: Mapping[str, VehicleStatus] | None = None) -> None:
        self._aliases = STATUS_ALIASES if aliases is None else aliases

    def validate_status(self, raw: Any) -> ValidationOutcome:
        if not isinstance(raw, str):
            return ValidationOutcome(is_valid=False, error="Status must be a string")

        trimmed = raw.strip()
        if not trimmed:
            return ValidationOutcome(is_valid=False, error="Status must not be empty")

        status = self._aliases.get(trimmed.casefold())
        if status is None:
            return ValidationOutcome(
                is_valid=False,
                error=f'Unknown status: "{raw}". Allowed values: {_ALLOWED}',
            )
        return ValidationOutcome(is_valid=True, normalized_status=status)

    def validate_transition(self, old_status: Any, new_status: Any) -> TransitionOutcome:
        old = self.validate_status(old_status)
        if not old.is_valid:
            return TransitionOutcome(is_valid=False, error=f"Invalid current status: {old.error}")
        new = self.validate_status(new_status)
        if not new.is_valid:
            return TransitionOutcome(is_valid=False, error=f"Invalid new status: {new.error}")

        assert old.normalized_status is not None and new.normalized_status is not None  # noqa: S101
        if old.normalized_status == new.normalized_status:
            return TransitionOutcome(is_valid=True, is_no_change=True, warning="Status unchanged")
        if new.normalized_status.rank > old.normalized_status.rank:
            return TransitionOutcome(
                is_valid=True,
                is_upgrade=True,
                recommendation="Vehicle condition improved",
            )
        return TransitionOutcome(
            is_valid=True,
            is_downgrade=True,
            warning=f"Vehicle condition downgraded: {old.normalized_status} → {new.normalized_status}",
        )

    def validate_name(self, raw: Any) -> NameValidation:
        if not isinstance(raw, str):
            return NameValidation(is_valid=False, error="Vehicle name must be a string")

        name = raw.strip()
        if not name:
            return NameValidation(is_valid=False, error="Vehicle name must not be empty")
        if len(name) > NAME_MAX_LENGTH:
            return NameValidation(
                is_valid=False,
                error=f"Vehicle name is too long (maximum {NAME_MAX_LENGTH} characters)",
            )
        if len(name) < NAME_MIN_LENGTH:
            return NameValidation(
                is_valid=False,
                error=f"Vehicle name is too short (minimum {NAME_MIN_LENGTH} characters)",
            )

        warnings: list[str] = []
        if SUSPICIOUS_NAME_CHARS.search(name):
            warnings.append("Vehicle name contains suspicious characters")
        digits = sum(1 for ch in name if ch.isdigit())
        if digits > len(name) * NAME_DIGIT_RATIO:
            warnings.append("Vehicle name contains too many digits")

        return NameValidation(is_valid=True, normalized_name=name, warnings=warnings)

    def validate_maintenance(self, vehicle: Vehicle, new_status: VehicleStatus, now: datetime) -> MaintenanceCheck:
        """Flag statuses that look implausible given the last maintenance date."""
        warnings: list[str] = []
        recommendations: list[str] = []

        if vehicle.last_maintenance is None:
            warnings.append("No maintenance history recorded")
        else:
            days = (now - vehicle.last_maintenance).days
            if days > MAINTENANCE_STALE_DAYS:
                warnings.append(f"Last maintenance was {days} days ago")
            if new_status == VehicleStatus.GOOD and days > MAINTENANCE_GOOD_SUSPICIOUS_DAYS:
                warnings.append("Suspicious: good condition long after the last maintenance")
            if new_status == VehicleStatus.BAD and days < MAINTENANCE_BAD_SUSPICIOUS_DAYS:
                warnings.append("Suspicious: bad condition right after maintenance")

        if new_status == VehicleStatus.BAD:
            recommendations.append("Schedule maintenance")
        elif new_status == VehicleStatus.AVERAGE:
            recommendations.append("Schedule a preventive inspection")

        return MaintenanceCheck(warnings=warnings, recommendations=recommendations)
