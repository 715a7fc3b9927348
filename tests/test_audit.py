from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from pygarage.audit import AuditLogger, format_log_line
from pygarage.exceptions import GarageAuditError
from pygarage.models.audit import AuditEntry, AuditEvent


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


T0 = datetime(2026, 1, 1, tzinfo=UTC)


def _logger(tmp_path: Path, clock: _Clock | None = None, **kwargs: object) -> AuditLogger:
    return AuditLogger(tmp_path / "logs", clock=clock or _Clock(T0), **kwargs)  # type: ignore[arg-type]


async def _log_update(audit: AuditLogger, car_id: int = 1, name: str = "BMW 4-Series", **kwargs: object) -> AuditEntry:
    params: dict[str, object] = {"old_status": "Хорошее", "new_status": "Среднее"}
    params.update(kwargs)
    return await audit.log_status_update(car_id=car_id, car_name=name, **params)  # type: ignore[arg-type]


# ------------------------------------------------------------------
# Identifiers and formatting
# ------------------------------------------------------------------


def test_generated_ids(tmp_path: Path) -> None:
    audit = _logger(tmp_path)

    audit_ids = {audit.generate_audit_id() for _ in range(200)}
    assert len(audit_ids) == 200
    assert all(re.fullmatch(r"audit_[0-9a-z]+_[0-9a-z]{9}", value) for value in audit_ids)
    assert re.fullmatch(r"batch_[0-9a-z]+_[0-9a-z]{6}", audit.generate_batch_id())


def test_format_log_line() -> None:
    entry = AuditEntry(
        audit_id="audit_x_1",
        timestamp=T0,
        event=AuditEvent.STATUS_UPDATE,
        car_id=1,
        car_name="BMW 4-Series",
        old_status="Хорошее",
        new_status="Плохое",
        reason="Manual update",
        source="StatusUpdater",
        operator="system",
        batch_id="batch_x_2",
        success=False,
        error="conflict",
    )

    assert format_log_line(entry) == (
        "[2026-01-01T00:00:00+00:00] STATUS_UPDATE ERROR audit_x_1 - "
        "Vehicle: BMW 4-Series (ID: 1) | Status: Хорошее → Плохое | Batch: batch_x_2 | Error: conflict"
    )


# ------------------------------------------------------------------
# Write path
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_writes_text_and_json_line(tmp_path: Path) -> None:
    audit = _logger(tmp_path, operator="dispatcher")

    entry = await _log_update(audit, reason="Inspection")

    assert entry.success
    assert entry.operator == "dispatcher"
    assert entry.reason == "Inspection"
    text_lines = audit.text_log_path.read_text(encoding="utf-8").splitlines()
    json_lines = audit.json_log_path.read_text(encoding="utf-8").splitlines()
    assert text_lines == [format_log_line(entry)]
    assert len(json_lines) == 1
    record = json.loads(json_lines[0])
    assert record["auditId"] == entry.audit_id
    assert record["carId"] == 1
    assert record["oldStatus"] == "Хорошее"
    assert record["event"] == "status_update"


@pytest.mark.asyncio
async def test_batch_entries_carry_counts(tmp_path: Path) -> None:
    audit = _logger(tmp_path)
    batch_id = audit.generate_batch_id()

    start = await audit.log_batch_start(batch_id=batch_id, total_vehicles=2)
    complete = await audit.log_batch_complete(
        batch_id=batch_id,
        total_vehicles=2,
        successful_updates=1,
        failed_updates=1,
        unchanged_vehicles=0,
        errors=["Audi Q7: not found"],
        processing_time=0.5,
        success=True,
    )

    assert start.event == AuditEvent.BATCH_START
    assert start.metadata["totalVehicles"] == 2
    assert complete.metadata["failedUpdates"] == 1
    assert complete.metadata["errors"] == ["Audi Q7: not found"]
    assert complete.metadata["cancelled"] is False


@pytest.mark.asyncio
async def test_write_failure_is_swallowed(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    blocked = tmp_path / "blocked"
    blocked.write_text("not a directory", encoding="utf-8")
    failures: list[tuple[AuditEntry, Exception]] = []
    audit = AuditLogger(
        blocked / "logs",
        clock=_Clock(T0),
        on_write_error=lambda entry, exc: failures.append((entry, exc)),
    )
    caplog.set_level(logging.WARNING, logger="pygarage.audit")

    entry = await _log_update(audit)

    assert entry.audit_id
    assert audit.write_failures == 1
    assert failures[0][0] is entry
    assert isinstance(failures[0][1], OSError)
    assert "Failed to write audit entry" in caplog.text


@pytest.mark.asyncio
async def test_debug_log_redacts_metadata(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    audit = _logger(tmp_path)
    caplog.set_level(logging.DEBUG, logger="pygarage.audit")

    await _log_update(audit, metadata={"ipAddress": "10.0.0.12", "changed": True})

    assert "10.0.0.12" not in caplog.text
    assert "<redacted>" in caplog.text
    # The file keeps the full metadata.
    assert "10.0.0.12" in audit.json_log_path.read_text(encoding="utf-8")


# ------------------------------------------------------------------
# Read path
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_missing_log_reads_empty(tmp_path: Path) -> None:
    audit = _logger(tmp_path)

    assert await audit.read_entries() == []
    assert await audit.vehicle_history(1) == []
    stats = await audit.statistics(T0, T0 + timedelta(days=1))
    assert stats.total_updates == 0


@pytest.mark.asyncio
async def test_vehicle_history_newest_first(tmp_path: Path) -> None:
    clock = _Clock(T0)
    audit = _logger(tmp_path, clock)
    first = await _log_update(audit)
    clock.advance(minutes=1)
    await _log_update(audit, car_id=2, name="Audi RS6")
    clock.advance(minutes=1)
    second = await _log_update(audit, old_status="Среднее", new_status="Плохое")
    clock.advance(minutes=1)
    third = await _log_update(audit, old_status="Плохое", new_status="Хорошее")

    history = await audit.vehicle_history(1)
    assert [entry.audit_id for entry in history] == [third.audit_id, second.audit_id, first.audit_id]
    assert [entry.audit_id for entry in await audit.vehicle_history(1, limit=2)] == [
        third.audit_id,
        second.audit_id,
    ]


@pytest.mark.asyncio
async def test_vehicle_history_equal_timestamps_keeps_write_order(tmp_path: Path) -> None:
    audit = _logger(tmp_path)
    first = await _log_update(audit)
    second = await _log_update(audit)

    assert [entry.audit_id for entry in await audit.vehicle_history(1)] == [second.audit_id, first.audit_id]


@pytest.mark.asyncio
async def test_batch_history_in_bracket_order(tmp_path: Path) -> None:
    clock = _Clock(T0)
    audit = _logger(tmp_path, clock)
    batch_id = audit.generate_batch_id()

    await audit.log_batch_start(batch_id=batch_id, total_vehicles=1)
    await _log_update(audit, batch_id=batch_id)
    await _log_update(audit, car_id=2)
    await audit.log_batch_complete(
        batch_id=batch_id,
        total_vehicles=1,
        successful_updates=1,
        failed_updates=0,
        unchanged_vehicles=0,
        errors=[],
        processing_time=0.0,
        success=True,
    )

    events = [entry.event for entry in await audit.batch_history(batch_id)]
    assert events == [AuditEvent.BATCH_START, AuditEvent.STATUS_UPDATE, AuditEvent.BATCH_COMPLETE]


@pytest.mark.asyncio
async def test_statistics_window(tmp_path: Path) -> None:
    clock = _Clock(T0)
    audit = _logger(tmp_path, clock)

    await _log_update(audit, operator="alice")
    clock.advance(hours=1)
    await _log_update(audit, old_status="Среднее", new_status="Среднее", operator="bob")
    clock.advance(hours=1)
    await audit.log_status_update_error(car_name="Audi Q7", error="Vehicle 'Audi Q7' not found")
    clock.advance(hours=1)
    await audit.log_batch_start(batch_id="batch_x_1", total_vehicles=3)
    clock.advance(hours=1)
    await _log_update(audit, car_id=2, name="Audi RS6", operator="carol")
    clock.advance(hours=1)
    await _log_update(audit, car_id=2, name="Audi RS6", operator="carol")

    stats = await audit.statistics(T0, T0 + timedelta(hours=4))

    assert stats.total_updates == 4
    assert stats.successful_updates == 3
    assert stats.failed_updates == 1
    assert stats.status_transition_counts == {"Хорошее → Среднее": 2}
    assert stats.per_vehicle_counts == {"BMW 4-Series": 2, "Audi Q7": 1, "Audi RS6": 1}
    assert stats.per_operator_counts == {"alice": 1, "bob": 1, "system": 1, "carol": 1}


@pytest.mark.asyncio
async def test_unreadable_lines_are_skipped(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    audit = _logger(tmp_path)
    entry = await _log_update(audit)
    with audit.json_log_path.open("a", encoding="utf-8") as handle:
        handle.write("{not json\n\n")
    caplog.set_level(logging.WARNING, logger="pygarage.audit")

    entries = await audit.read_entries()

    assert [e.audit_id for e in entries] == [entry.audit_id]
    assert "Skipping unreadable audit line 2" in caplog.text


@pytest.mark.asyncio
async def test_undecodable_bytes_are_skipped(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    audit = _logger(tmp_path)
    entry = await _log_update(audit)
    with audit.json_log_path.open("ab") as handle:
        handle.write(b"\xff\xfe garbage\n")
    caplog.set_level(logging.WARNING, logger="pygarage.audit")

    history = await audit.vehicle_history(1)

    assert [e.audit_id for e in history] == [entry.audit_id]
    assert "Skipping unreadable audit line 2" in caplog.text


@pytest.mark.asyncio
async def test_unencodable_name_reaches_both_logs(tmp_path: Path) -> None:
    audit = _logger(tmp_path)

    await _log_update(audit, name="BMW\ud800 4-Series")

    assert audit.write_failures == 0
    text_lines = audit.text_log_path.read_text(encoding="utf-8").splitlines()
    json_lines = audit.json_log_path.read_text(encoding="utf-8").splitlines()
    assert len(text_lines) == len(json_lines) == 1
    assert "BMW\\ud800 4-Series" in text_lines[0]
    entries = await audit.read_entries()
    assert entries[0].car_name == "BMW? 4-Series"


# ------------------------------------------------------------------
# Retention
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_archive_moves_only_old_entries(tmp_path: Path) -> None:
    clock = _Clock(datetime(2025, 9, 1, tzinfo=UTC))
    audit = _logger(tmp_path, clock)
    old = await _log_update(audit)
    clock.now = datetime(2026, 2, 20, tzinfo=UTC)
    recent = await _log_update(audit, old_status="Среднее", new_status="Хорошее")
    await _log_update(audit, car_id=2, name="Audi RS6")
    with audit.json_log_path.open("a", encoding="utf-8") as handle:
        handle.write("garbage\n")
    clock.now = datetime(2026, 3, 1, tzinfo=UTC)

    result = await audit.archive(90)

    assert result.archived == 1
    assert result.retained == 3
    assert result.archive_path is not None
    assert result.archive_path.name.startswith("archived_20260301T")
    archived_lines = result.archive_path.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["auditId"] for line in archived_lines] == [old.audit_id]

    history = await audit.vehicle_history(1)
    assert [entry.audit_id for entry in history] == [recent.audit_id]
    assert "garbage" in audit.json_log_path.read_text(encoding="utf-8")
    assert not list(audit.log_dir.glob("*.tmp"))


@pytest.mark.asyncio
async def test_archive_keeps_undecodable_lines_verbatim(tmp_path: Path) -> None:
    clock = _Clock(datetime(2025, 9, 1, tzinfo=UTC))
    audit = _logger(tmp_path, clock)
    await _log_update(audit)
    with audit.json_log_path.open("ab") as handle:
        handle.write(b"\xff\xfe garbage\n")
    clock.now = datetime(2026, 3, 1, tzinfo=UTC)

    result = await audit.archive(90)

    assert result.archived == 1
    assert result.retained == 1
    assert audit.json_log_path.read_bytes() == b"\xff\xfe garbage\n"


@pytest.mark.asyncio
async def test_archive_with_nothing_to_move(tmp_path: Path) -> None:
    audit = _logger(tmp_path)
    await _log_update(audit)

    result = await audit.archive(30)

    assert result.archived == 0
    assert result.retained == 1
    assert result.archive_path is None
    assert not list(audit.log_dir.glob("archived_*"))


@pytest.mark.asyncio
async def test_archive_rejects_negative_days(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        await _logger(tmp_path).archive(-1)


@pytest.mark.asyncio
async def test_clear_all(tmp_path: Path) -> None:
    audit = _logger(tmp_path)
    await _log_update(audit)

    await audit.clear_all()

    assert audit.text_log_path.read_text(encoding="utf-8") == ""
    assert await audit.read_entries() == []


@pytest.mark.asyncio
async def test_unreadable_log_raises_audit_error(tmp_path: Path) -> None:
    audit = _logger(tmp_path)
    audit.json_log_path.mkdir(parents=True)

    with pytest.raises(GarageAuditError):
        await audit.read_entries()
