"""Append-only audit trail for status updates.

Every entry is written twice, as one human-readable line to the text log
and as one JSON object to the JSON-lines log, by a single writer guarded
by an :class:`asyncio.Lock` so both files see entries in the same order.
Writes are best-effort: a failing disk is reported on this module's
logger and never reaches the caller's operation.

Queries scan the JSON log only; archive files are never read back.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from pygarage._constants import (
    ARCHIVE_PREFIX,
    DEFAULT_ARCHIVE_DAYS,
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_OPERATOR,
    DEFAULT_REASON,
    DEFAULT_SOURCE,
    JSON_LOG_NAME,
    TEXT_LOG_NAME,
)
from pygarage._redact import redact_for_log
from pygarage.config import GarageConfig
from pygarage.exceptions import GarageAuditError
from pygarage.models._base import parse_timestamp
from pygarage.models.audit import ArchiveResult, AuditEntry, AuditEvent, AuditStatistics

_logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _to_base36(number: int) -> str:
    if number <= 0:
        return "0"
    digits: list[str] = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _random_base36(length: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def format_log_line(entry: AuditEntry) -> str:
    """Render ``[<ts>] <EVENT> <SUCCESS|ERROR> <auditId> - <details>``."""
    details: list[str] = []
    if entry.car_name:
        details.append(f"Vehicle: {entry.car_name} (ID: {entry.car_id})")
    if entry.old_status and entry.new_status:
        details.append(f"Status: {entry.old_status} → {entry.new_status}")
    if entry.batch_id:
        details.append(f"Batch: {entry.batch_id}")
    if entry.error:
        details.append(f"Error: {entry.error}")

    outcome = "SUCCESS" if entry.success else "ERROR"
    return f"[{entry.timestamp.isoformat()}] {entry.event.upper()} {outcome} {entry.audit_id} - {' | '.join(details)}"


def _atomic_write_lines(path: Path, lines: list[str]) -> None:
    tmp = path.with_name(f"{path.name}.tmp")
    with tmp.open("w", encoding="utf-8", errors="surrogateescape") as handle:
        for line in lines:
            handle.write(line + "\n")
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(tmp, path)


class AuditLogger:
    """Durable, append-only record of every attempted and completed update.

    Parameters
    ----------
    log_dir : Path or str
        Directory for the text log, the JSON log and archive files.
        Created on first write.
    source : str
        Default ``source`` for entries.
    operator : str
        Default ``operator`` for entries.
    clock : callable
        Returns the current aware UTC time; injectable for tests.
    on_write_error : callable or None
        Called with ``(entry, exc)`` when an entry could not be written.
    """

    def __init__(
        self,
        log_dir: Path | str = Path("logs"),
        *,
        text_log_name: str = TEXT_LOG_NAME,
        json_log_name: str = JSON_LOG_NAME,
        source: str = DEFAULT_SOURCE,
        operator: str = DEFAULT_OPERATOR,
        reason: str = DEFAULT_REASON,
        clock: Callable[[], datetime] = _utcnow,
        on_write_error: Callable[[AuditEntry, Exception], None] | None = None,
    ) -> None:
        self._log_dir = Path(log_dir)
        self._text_log = self._log_dir / text_log_name
        self._json_log = self._log_dir / json_log_name
        self._source = source
        self._operator = operator
        self._reason = reason
        self._clock = clock
        self._on_write_error = on_write_error
        self._lock = asyncio.Lock()
        self.write_failures = 0

    @classmethod
    def from_config(cls, config: GarageConfig, **kwargs: Any) -> AuditLogger:
        return cls(
            config.log_dir,
            text_log_name=config.text_log_name,
            json_log_name=config.json_log_name,
            source=config.source,
            operator=config.operator,
            reason=config.reason,
            **kwargs,
        )

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    @property
    def text_log_path(self) -> Path:
        return self._text_log

    @property
    def json_log_path(self) -> Path:
        return self._json_log

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    def _time_prefix(self) -> str:
        return _to_base36(int(self._clock().timestamp() * 1000))

    def generate_audit_id(self) -> str:
        return f"audit_{self._time_prefix()}_{_random_base36(9)}"

    def generate_batch_id(self) -> str:
        return f"batch_{self._time_prefix()}_{_random_base36(6)}"

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def _create_entry(
        self,
        event: AuditEvent,
        *,
        reason: str | None = None,
        source: str | None = None,
        operator: str | None = None,
        car_id: int | None = None,
        car_name: str | None = None,
        old_status: str | None = None,
        new_status: str | None = None,
        batch_id: str | None = None,
        success: bool = True,
        error: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry:
        return AuditEntry(
            audit_id=self.generate_audit_id(),
            timestamp=self._clock(),
            event=event,
            car_id=car_id,
            car_name=car_name,
            old_status=old_status,
            new_status=new_status,
            reason=reason or self._reason,
            source=source or self._source,
            operator=operator or self._operator,
            batch_id=batch_id,
            success=success,
            error=error,
            metadata=dict(metadata or {}),
        )

    def _append(self, text_line: bytes, json_line: bytes) -> None:
        self._log_dir.mkdir(parents=True, exist_ok=True)
        # Both files are opened before either is written.
        with self._text_log.open("ab") as text_handle, self._json_log.open("ab") as json_handle:
            text_handle.write(text_line)
            json_handle.write(json_line)

    async def _write(self, entry: AuditEntry) -> AuditEntry:
        _logger.debug(
            "Audit %s %s metadata=%s",
            entry.event,
            entry.audit_id,
            redact_for_log(entry.metadata),
        )

        async with self._lock:
            try:
                # Lone surrogates (e.g. from a JSON batch file) cannot be UTF-8 encoded.
                text_line = (format_log_line(entry) + "\n").encode("utf-8", errors="backslashreplace")
                json_line = (json.dumps(entry.to_json_dict(), ensure_ascii=False) + "\n").encode(
                    "utf-8", errors="replace"
                )
                await asyncio.to_thread(self._append, text_line, json_line)
            except (OSError, ValueError) as exc:
                self.write_failures += 1
                _logger.warning("Failed to write audit entry %s to %s: %s", entry.audit_id, self._log_dir, exc)
                if self._on_write_error is not None:
                    self._on_write_error(entry, exc)
        return entry

    async def log_status_update(
        self,
        *,
        car_id: int | None,
        car_name: str | None,
        old_status: str | None,
        new_status: str | None,
        reason: str | None = None,
        source: str | None = None,
        operator: str | None = None,
        batch_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry:
        """Record a successful update (or a successful no-op)."""
        entry = self._create_entry(
            AuditEvent.STATUS_UPDATE,
            reason=reason,
            source=source,
            operator=operator,
            car_id=car_id,
            car_name=car_name,
            old_status=old_status,
            new_status=new_status,
            batch_id=batch_id,
            metadata=metadata,
        )
        _logger.info("Audit %s: %s (%s) %s → %s", entry.audit_id, car_name, car_id, old_status, new_status)
        return await self._write(entry)

    async def log_status_update_error(
        self,
        *,
        car_name: str | None,
        error: str,
        car_id: int | None = None,
        old_status: str | None = None,
        attempted_status: str | None = None,
        reason: str | None = None,
        source: str | None = None,
        operator: str | None = None,
        batch_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry:
        """Record a failed update attempt."""
        entry = self._create_entry(
            AuditEvent.STATUS_UPDATE,
            reason=reason,
            source=source,
            operator=operator,
            car_id=car_id,
            car_name=car_name,
            old_status=old_status,
            new_status=attempted_status,
            batch_id=batch_id,
            success=False,
            error=error,
            metadata=metadata,
        )
        _logger.info("Audit %s: update of %s failed: %s", entry.audit_id, car_name, error)
        return await self._write(entry)

    async def log_batch_start(
        self,
        *,
        batch_id: str,
        total_vehicles: int,
        source: str | None = None,
        operator: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry:
        entry = self._create_entry(
            AuditEvent.BATCH_START,
            reason="Batch update started",
            source=source,
            operator=operator,
            batch_id=batch_id,
            metadata={"totalVehicles": total_vehicles, **(metadata or {})},
        )
        _logger.info("Audit %s: batch %s started with %d vehicles", entry.audit_id, batch_id, total_vehicles)
        return await self._write(entry)

    async def log_batch_complete(
        self,
        *,
        batch_id: str,
        total_vehicles: int,
        successful_updates: int,
        failed_updates: int,
        unchanged_vehicles: int,
        errors: list[str],
        processing_time: float,
        success: bool,
        error: str | None = None,
        cancelled: bool = False,
        source: str | None = None,
        operator: str | None = None,
    ) -> AuditEntry:
        entry = self._create_entry(
            AuditEvent.BATCH_COMPLETE,
            reason="Batch update completed",
            source=source,
            operator=operator,
            batch_id=batch_id,
            success=success,
            error=error,
            metadata={
                "totalVehicles": total_vehicles,
                "successfulUpdates": successful_updates,
                "failedUpdates": failed_updates,
                "unchangedVehicles": unchanged_vehicles,
                "processingTime": processing_time,
                "cancelled": cancelled,
                "errors": list(errors),
            },
        )
        _logger.info(
            "Audit %s: batch %s complete, updated=%d unchanged=%d failed=%d",
            entry.audit_id,
            batch_id,
            successful_updates,
            unchanged_vehicles,
            failed_updates,
        )
        return await self._write(entry)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def _scan(self) -> list[tuple[str, AuditEntry | None]]:
        """Return ``(raw line, parsed entry or None)`` for every non-blank line."""
        try:
            data = self._json_log.read_bytes()
        except FileNotFoundError:
            return []

        lines: list[tuple[str, AuditEntry | None]] = []
        for lineno, raw in enumerate(data.split(b"\n"), start=1):
            raw = raw.rstrip(b"\r")
            if not raw.strip():
                continue
            try:
                line = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                _logger.warning("Skipping unreadable audit line %d in %s: %s", lineno, self._json_log, exc)
                # surrogateescape keeps the original bytes for a rewrite.
                lines.append((raw.decode("utf-8", errors="surrogateescape"), None))
                continue
            try:
                lines.append((line, AuditEntry.model_validate_json(line)))
            except ValidationError as exc:
                _logger.warning("Skipping unreadable audit line %d in %s: %s", lineno, self._json_log, exc.errors()[:1])
                lines.append((line, None))
        return lines

    def _read_entries(self) -> list[AuditEntry]:
        return [entry for _, entry in self._scan() if entry is not None]

    async def read_entries(self) -> list[AuditEntry]:
        """Return every readable entry of the live JSON log, in file order."""
        async with self._lock:
            try:
                return await asyncio.to_thread(self._read_entries)
            except OSError as exc:
                raise GarageAuditError(f"Cannot read audit log {self._json_log}: {exc}") from exc

    async def vehicle_history(self, car_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> list[AuditEntry]:
        """Entries for one vehicle, newest first."""
        entries = [entry for entry in await self.read_entries() if entry.car_id == car_id]
        # Reverse first so equal timestamps also come out newest first.
        entries.reverse()
        entries.sort(key=lambda entry: entry.timestamp, reverse=True)
        return entries[:limit] if limit >= 0 else entries

    async def batch_history(self, batch_id: str) -> list[AuditEntry]:
        """Entries of one batch in bracket order (oldest first)."""
        entries = [entry for entry in await self.read_entries() if entry.batch_id == batch_id]
        entries.sort(key=lambda entry: entry.timestamp)
        return entries

    async def statistics(self, start: datetime, end: datetime) -> AuditStatistics:
        """Aggregate ``status_update`` events with ``start <= timestamp <= end``."""
        window_start = parse_timestamp(start)
        window_end = parse_timestamp(end)
        assert window_start is not None and window_end is not None  # noqa: S101

        total = successful = failed = 0
        transitions: dict[str, int] = {}
        per_vehicle: dict[str, int] = {}
        per_operator: dict[str, int] = {}

        for entry in await self.read_entries():
            if entry.event != AuditEvent.STATUS_UPDATE:
                continue
            if not window_start <= entry.timestamp <= window_end:
                continue

            total += 1
            if entry.success:
                successful += 1
            else:
                failed += 1
            if entry.success and entry.old_status and entry.new_status and entry.old_status != entry.new_status:
                key = f"{entry.old_status} → {entry.new_status}"
                transitions[key] = transitions.get(key, 0) + 1
            if entry.car_name:
                per_vehicle[entry.car_name] = per_vehicle.get(entry.car_name, 0) + 1
            per_operator[entry.operator] = per_operator.get(entry.operator, 0) + 1

        return AuditStatistics(
            total_updates=total,
            successful_updates=successful,
            failed_updates=failed,
            status_transition_counts=transitions,
            per_vehicle_counts=per_vehicle,
            per_operator_counts=per_operator,
            start=window_start,
            end=window_end,
        )

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def _archive(self, cutoff: datetime, now: datetime) -> ArchiveResult:
        lines = self._scan()
        archived: list[str] = []
        retained: list[str] = []
        for raw, entry in lines:
            # Unreadable lines stay in the live log.
            if entry is not None and entry.timestamp < cutoff:
                archived.append(raw)
            else:
                retained.append(raw)

        if not archived:
            return ArchiveResult(archived=0, retained=len(retained))

        archive_path = self._log_dir / f"{ARCHIVE_PREFIX}{now.strftime('%Y%m%dT%H%M%S%fZ')}.json"
        # Archive first: a crash before the rewrite duplicates entries, never loses them.
        _atomic_write_lines(archive_path, archived)
        _atomic_write_lines(self._json_log, retained)
        return ArchiveResult(archived=len(archived), retained=len(retained), archive_path=archive_path)

    async def archive(self, days_to_keep: int = DEFAULT_ARCHIVE_DAYS) -> ArchiveResult:
        """Move entries older than *days_to_keep* days into a timestamped archive file.

        Must not run while another process writes to the same log.
        """
        if days_to_keep < 0:
            raise ValueError(f"days_to_keep must be non-negative, got {days_to_keep}")

        now = self._clock()
        cutoff = now - timedelta(days=days_to_keep)
        async with self._lock:
            try:
                result = await asyncio.to_thread(self._archive, cutoff, now)
            except OSError as exc:
                raise GarageAuditError(f"Cannot archive audit log {self._json_log}: {exc}") from exc

        if result.archive_path is not None:
            _logger.info("Archived %d audit entries to %s", result.archived, result.archive_path)
        return result

    def _truncate(self) -> None:
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self._text_log.write_text("", encoding="utf-8")
        self._json_log.write_text("", encoding="utf-8")

    async def clear_all(self) -> None:
        """Irreversibly empty both live logs. For tests and resets only."""
        async with self._lock:
            try:
                await asyncio.to_thread(self._truncate)
            except OSError as exc:
                raise GarageAuditError(f"Cannot clear audit logs in {self._log_dir}: {exc}") from exc
        _logger.warning("All audit logs in %s cleared", self._log_dir)
