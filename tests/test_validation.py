from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from pygarage.models.status import VehicleStatus
from pygarage.models.vehicle import Vehicle
from pygarage.validation import StatusValidator

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TestValidateStatus:
    @pytest.mark.parametrize("raw", ["good", "ХОРОШЕЕ", "  хорошее  ", "Хорошее", "Excellent", "отлично"])
    def test_good_labels_normalize_to_canonical(self, raw: str) -> None:
        outcome = StatusValidator().validate_status(raw)
        assert outcome.is_valid
        assert outcome.normalized_status == VehicleStatus.GOOD
        assert outcome.normalized_status == "Хорошее"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("average", VehicleStatus.AVERAGE),
            ("OK", VehicleStatus.AVERAGE),
            ("среднее", VehicleStatus.AVERAGE),
            ("Poor", VehicleStatus.BAD),
            ("плохое", VehicleStatus.BAD),
            ("BAD", VehicleStatus.BAD),
        ],
    )
    def test_synonyms(self, raw: str, expected: VehicleStatus) -> None:
        assert StatusValidator().validate_status(raw).normalized_status == expected

    @pytest.mark.parametrize("raw", ["", "   ", None, 3])
    def test_empty_or_non_string_is_invalid(self, raw: object) -> None:
        outcome = StatusValidator().validate_status(raw)
        assert not outcome.is_valid
        assert outcome.normalized_status is None
        assert outcome.error

    def test_unknown_label_lists_allowed_values(self) -> None:
        outcome = StatusValidator().validate_status("broken")
        assert not outcome.is_valid
        assert "broken" in (outcome.error or "")
        assert "Хорошее" in (outcome.error or "")

    def test_alias_table_is_injectable(self) -> None:
        validator = StatusValidator({"kaputt": VehicleStatus.BAD})
        assert validator.validate_status("Kaputt").normalized_status == VehicleStatus.BAD
        assert not validator.validate_status("good").is_valid


class TestValidateTransition:
    def test_no_change(self) -> None:
        outcome = StatusValidator().validate_transition("Хорошее", "good")
        assert outcome.is_valid
        assert outcome.is_no_change
        assert not outcome.is_upgrade and not outcome.is_downgrade
        assert outcome.warning

    def test_upgrade(self) -> None:
        outcome = StatusValidator().validate_transition(VehicleStatus.BAD, VehicleStatus.GOOD)
        assert outcome.is_valid
        assert outcome.is_upgrade
        assert outcome.recommendation
        assert outcome.warning is None

    def test_downgrade_warns_but_is_allowed(self) -> None:
        outcome = StatusValidator().validate_transition(VehicleStatus.GOOD, "плохое")
        assert outcome.is_valid
        assert outcome.is_downgrade
        assert outcome.warning is not None
        assert "Хорошее → Плохое" in outcome.warning

    def test_invalid_side_reported(self) -> None:
        outcome = StatusValidator().validate_transition("broken", "good")
        assert not outcome.is_valid
        assert outcome.error is not None
        assert outcome.error.startswith("Invalid current status")


class TestValidateName:
    def test_trims_and_keeps_casing(self) -> None:
        outcome = StatusValidator().validate_name("  BMW 4-Series ")
        assert outcome.is_valid
        assert outcome.normalized_name == "BMW 4-Series"
        assert outcome.warnings == []

    @pytest.mark.parametrize("raw", ["", "   ", "A", None, 12])
    def test_rejects_empty_short_or_non_string(self, raw: object) -> None:
        outcome = StatusValidator().validate_name(raw)
        assert not outcome.is_valid
        assert outcome.error

    def test_length_limit(self) -> None:
        assert StatusValidator().validate_name("x" * 100).is_valid
        assert not StatusValidator().validate_name("x" * 101).is_valid

    def test_suspicious_characters_warn(self) -> None:
        outcome = StatusValidator().validate_name("<script>BMW")
        assert outcome.is_valid
        assert any("suspicious" in warning for warning in outcome.warnings)

    def test_mostly_digits_warns(self) -> None:
        outcome = StatusValidator().validate_name("12345X")
        assert outcome.is_valid
        assert any("digits" in warning for warning in outcome.warnings)


class TestValidateMaintenance:
    def _vehicle(self, days_ago: int | None) -> Vehicle:
        last = NOW - timedelta(days=days_ago) if days_ago is not None else None
        return Vehicle(id=1, name="BMW 4-Series", status=VehicleStatus.AVERAGE, last_maintenance=last)

    def test_no_history(self) -> None:
        check = StatusValidator().validate_maintenance(self._vehicle(None), VehicleStatus.GOOD, NOW)
        assert check.warnings == ["No maintenance history recorded"]
        assert check.recommendations == []

    def test_stale_maintenance(self) -> None:
        check = StatusValidator().validate_maintenance(self._vehicle(40), VehicleStatus.AVERAGE, NOW)
        assert "Last maintenance was 40 days ago" in check.warnings
        assert check.recommendations == ["Schedule a preventive inspection"]

    def test_good_long_after_maintenance_is_suspicious(self) -> None:
        check = StatusValidator().validate_maintenance(self._vehicle(61), VehicleStatus.GOOD, NOW)
        assert len(check.warnings) == 2

    def test_bad_right_after_maintenance_is_suspicious(self) -> None:
        check = StatusValidator().validate_maintenance(self._vehicle(2), VehicleStatus.BAD, NOW)
        assert any("right after maintenance" in warning for warning in check.warnings)
        assert check.recommendations == ["Schedule maintenance"]

    def test_recent_maintenance_is_quiet(self) -> None:
        check = StatusValidator().validate_maintenance(self._vehicle(10), VehicleStatus.GOOD, NOW)
        assert check.warnings == []
