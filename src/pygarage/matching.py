"""Free-text vehicle name resolution.

Names typed by operators are compared against the store roster after
normalization (case, punctuation, whitespace). A normalized-equal name
short-circuits scoring; everything else is ranked by a length-normalized
Levenshtein similarity. Matching is pure and never raises.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any

from rapidfuzz.distance import Levenshtein

from pygarage._constants import (
    DEFAULT_MATCH_THRESHOLD,
    DEFAULT_MAX_SUGGESTIONS,
    DEFAULT_SUGGESTION_THRESHOLD,
    KEYWORD_STOPWORDS,
)
from pygarage.models.matching import KeywordMatch, MatchCandidate, MatchType
from pygarage.models.vehicle import Vehicle

# Anything but letters, digits, whitespace and hyphen (``\w`` also admits "_").
_STRIP_RE = re.compile(r"[^\w\s-]|_")
_SPACE_RE = re.compile(r"\s+")
_KEYWORD_SPLIT_RE = re.compile(r"[\s\-]+")


def normalize_name(name: Any) -> str:
    """Lowercase, drop punctuation, collapse whitespace and trim.

    Non-string input normalizes to ``""``.
    """
    if not isinstance(name, str):
        return ""
    cleaned = _STRIP_RE.sub("", name.lower())
    return _SPACE_RE.sub(" ", cleaned).strip()


def similarity(left: Any, right: Any) -> float:
    """Return ``1 - distance / max(len)`` over the normalized names, in [0, 1].

    Equal normalized names (including two empty ones) score exactly 1.0.
    """
    a = normalize_name(left)
    b = normalize_name(right)
    if a == b:
        return 1.0
    longest = max(len(a), len(b))
    score = 1.0 - Levenshtein.distance(a, b) / longest
    return min(1.0, max(0.0, score))


def extract_keywords(name: Any) -> list[str]:
    """Split a normalized name into keywords, skipping one-letter tokens and stop words."""
    normalized = normalize_name(name)
    if not normalized:
        return []
    return [
        word
        for word in _KEYWORD_SPLIT_RE.split(normalized)
        if len(word) > 1 and word not in KEYWORD_STOPWORDS
    ]


class NameMatcher:
    """Resolve operator-typed names to store vehicles.

    Parameters
    ----------
    match_threshold : float
        Minimum similarity for :meth:`find_best` to accept a candidate.
    suggestion_threshold : float
        Similarity used by :meth:`suggest` and the default for :meth:`resolve`.
    max_suggestions : int
        Default number of names returned by :meth:`suggest`.
    """

    def __init__(
        self,
        *,
        match_threshold: float = DEFAULT_MATCH_THRESHOLD,
        suggestion_threshold: float = DEFAULT_SUGGESTION_THRESHOLD,
        max_suggestions: int = DEFAULT_MAX_SUGGESTIONS,
    ) -> None:
        self.match_threshold = match_threshold
        self.suggestion_threshold = suggestion_threshold
        self.max_suggestions = max_suggestions

    def resolve(
        self,
        raw_name: Any,
        vehicles: Sequence[Vehicle],
        min_similarity: float = DEFAULT_SUGGESTION_THRESHOLD,
    ) -> list[MatchCandidate]:
        """Return candidates for *raw_name*, best first.

        A normalized-equal vehicle is returned alone with similarity 1.0.
        Otherwise candidates below *min_similarity* are dropped and the rest
        are sorted by descending similarity, keeping store order for ties.
        """
        query = normalize_name(raw_name)
        if not query:
            return []

        equal = self._normalized_equal(str(raw_name), query, vehicles)
        if equal is not None:
            return [equal]

        candidates: list[MatchCandidate] = []
        for vehicle in vehicles:
            score = similarity(query, vehicle.name)
            if score >= min_similarity:
                candidates.append(MatchCandidate(vehicle=vehicle, similarity=score, match_type=MatchType.FUZZY))
        # list.sort is stable, also with reverse=True.
        candidates.sort(key=lambda candidate: candidate.similarity, reverse=True)
        return candidates

    def find_best(self, raw_name: Any, vehicles: Sequence[Vehicle]) -> MatchCandidate | None:
        """Return the top candidate if it clears the acceptance threshold."""
        candidates = self.resolve(raw_name, vehicles, min_similarity=self.match_threshold)
        return candidates[0] if candidates else None

    def find_duplicates(self, raw_name: Any, vehicles: Sequence[Vehicle]) -> list[Vehicle]:
        """Return every vehicle whose normalized name equals the normalized query."""
        query = normalize_name(raw_name)
        if not query:
            return []
        return [vehicle for vehicle in vehicles if normalize_name(vehicle.name) == query]

    def keyword_matches(self, raw_name: Any, vehicles: Sequence[Vehicle]) -> list[KeywordMatch]:
        """Rank vehicles by shared keywords (substring match in either direction)."""
        keywords = extract_keywords(raw_name)
        if not keywords:
            return []

        matches: list[KeywordMatch] = []
        for vehicle in vehicles:
            vehicle_keywords = extract_keywords(vehicle.name)
            common = [
                keyword
                for keyword in keywords
                if any(keyword in other or other in keyword for other in vehicle_keywords)
            ]
            if common:
                score = len(common) / max(len(keywords), len(vehicle_keywords))
                matches.append(KeywordMatch(vehicle=vehicle, score=min(score, 1.0), common_keywords=common))
        matches.sort(key=lambda match: match.score, reverse=True)
        return matches

    def suggest(self, raw_name: Any, vehicles: Sequence[Vehicle], limit: int | None = None) -> list[str]:
        """Names an operator probably meant: loose fuzzy matches first, then keyword matches."""
        limit = self.max_suggestions if limit is None else limit
        if limit <= 0:
            return []

        names: list[str] = []
        for candidate in self.resolve(raw_name, vehicles, min_similarity=self.suggestion_threshold)[:limit]:
            if candidate.vehicle.name not in names:
                names.append(candidate.vehicle.name)
        for match in self.keyword_matches(raw_name, vehicles)[:limit]:
            if match.vehicle.name not in names:
                names.append(match.vehicle.name)
        return names[:limit]

    @staticmethod
    def _normalized_equal(raw_name: str, query: str, vehicles: Sequence[Vehicle]) -> MatchCandidate | None:
        stripped = raw_name.strip()
        first: Vehicle | None = None
        for vehicle in vehicles:
            if normalize_name(vehicle.name) != query:
                continue
            if vehicle.name.strip() == stripped:
                return MatchCandidate(vehicle=vehicle, similarity=1.0, match_type=MatchType.EXACT)
            if first is None:
                first = vehicle
        if first is None:
            return None
        return MatchCandidate(vehicle=first, similarity=1.0, match_type=MatchType.CASE_INSENSITIVE)
