"""Name matching result models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from pygarage.models._base import GarageBaseModel
from pygarage.models.vehicle import Vehicle


class MatchType(StrEnum):
    EXACT = "exact"
    CASE_INSENSITIVE = "case-insensitive"
    FUZZY = "fuzzy"


class MatchCandidate(GarageBaseModel):
    """A store vehicle proposed for a free-text name."""

    vehicle: Vehicle
    similarity: float = Field(ge=0.0, le=1.0)
    match_type: MatchType


class KeywordMatch(GarageBaseModel):
    """A store vehicle sharing keywords with a free-text name."""

    vehicle: Vehicle
    score: float = Field(ge=0.0, le=1.0)
    common_keywords: list[str] = Field(default_factory=list)
