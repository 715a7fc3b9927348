"""Canonical vehicle status and the label lookup table."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from types import MappingProxyType


class VehicleStatus(StrEnum):
    """Operational state of a vehicle.

    Member names are language-neutral; values are the labels the fleet
    store holds, so ``VehicleStatus.GOOD == "Хорошее"``.
    """

    GOOD = "Хорошее"
    AVERAGE = "Среднее"
    BAD = "Плохое"

    @property
    def rank(self) -> int:
        """Position on the ladder ``BAD < AVERAGE < GOOD``."""
        return _RANKS[self]


_RANKS: dict[VehicleStatus, int] = {
    VehicleStatus.BAD: 1,
    VehicleStatus.AVERAGE: 2,
    VehicleStatus.GOOD: 3,
}


def _build_aliases(table: dict[VehicleStatus, tuple[str, ...]]) -> Mapping[str, VehicleStatus]:
    aliases: dict[str, VehicleStatus] = {}
    for status, labels in table.items():
        aliases[status.value.casefold()] = status
        for label in labels:
            aliases[label.casefold()] = status
    return MappingProxyType(aliases)


# Adding a locale means adding labels here; lookups are casefolded.
STATUS_ALIASES: Mapping[str, VehicleStatus] = _build_aliases(
    {
        VehicleStatus.GOOD: (
            "хороший",
            "хорошо",
            "отличное",
            "отлично",
            "good",
            "excellent",
        ),
        VehicleStatus.AVERAGE: (
            "средний",
            "средне",
            "нормальное",
            "нормально",
            "average",
            "medium",
            "ok",
        ),
        VehicleStatus.BAD: (
            "плохой",
            "плохо",
            "ужасное",
            "ужасно",
            "bad",
            "poor",
            "terrible",
        ),
    }
)
"""Casefolded label -> canonical status."""
