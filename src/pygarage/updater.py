"""Single and batch status updates.

Each requested item moves through
``Pending -> Matched|Unmatched -> Validated|Invalid -> Applied|Unchanged|Failed``
and every outcome is written to the audit trail exactly once. Only a
structurally invalid batch raises; everything else is reported inside
the returned :class:`UpdateResult` / :class:`BatchReport`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from pygarage._constants import REQUEST_CONTEXT_KEYS
from pygarage.audit import AuditLogger
from pygarage.config import GarageConfig
from pygarage.exceptions import GarageInputError, GarageStoreError
from pygarage.matching import NameMatcher, normalize_name
from pygarage.models.matching import MatchCandidate
from pygarage.models.results import (
    BatchPreview,
    BatchReport,
    BatchSummary,
    PreviewMatch,
    PreviewMiss,
    StatusUpdateRequest,
    UpdateResult,
)
from pygarage.models.vehicle import Vehicle
from pygarage.store.base import VehicleStore
from pygarage.validation import StatusValidator

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _require_sequence(requests: Any) -> Sequence[Any]:
    if not isinstance(requests, (list, tuple)):
        raise GarageInputError(f"Batch update requires a list of requests, got {type(requests).__name__}")
    return requests


def _parse_request(item: Any) -> StatusUpdateRequest:
    if isinstance(item, StatusUpdateRequest):
        return item
    return StatusUpdateRequest.model_validate(item)


def _raw_name(item: Any) -> str | None:
    if isinstance(item, StatusUpdateRequest):
        return item.car_name
    if isinstance(item, dict):
        for key in ("carName", "car_name", "name"):
            if isinstance(item.get(key), str):
                return item[key]
    return None


def _duplicate_names(names: Sequence[str]) -> list[str]:
    """Names that occur more than once after normalization, first spelling kept."""
    seen: dict[str, str] = {}
    duplicates: dict[str, str] = {}
    for name in names:
        key = normalize_name(name)
        if not key:
            continue
        if key in seen:
            duplicates.setdefault(key, seen[key])
        else:
            seen[key] = name
    return list(duplicates.values())


def _request_metadata(request_context: Mapping[str, Any] | None) -> dict[str, Any]:
    """Pick the request-context fields recorded with every audit entry.

    Keys match regardless of ``snake_case``/``camelCase`` spelling and are
    stored camelCased; unknown keys are dropped.
    """
    if not request_context:
        return {}
    wanted = {key.lower(): key for key in REQUEST_CONTEXT_KEYS}
    metadata: dict[str, Any] = {}
    for key, value in request_context.items():
        canonical = wanted.get(str(key).lower().replace("_", "").replace("-", ""))
        if canonical is not None and value is not None:
            metadata[canonical] = value
    return metadata


class StatusUpdater:
    """Apply operator status updates to a vehicle store.

    Concurrent calls in one process are serialized per vehicle by an
    :class:`asyncio.Lock`. With ``optimistic_locking`` enabled the status
    observed under that lock is passed to the store as ``expected_status``
    so writers in other processes surface as failed items rather than
    being overwritten.
    """

    def __init__(
        self,
        store: VehicleStore,
        audit: AuditLogger,
        *,
        matcher: NameMatcher | None = None,
        validator: StatusValidator | None = None,
        config: GarageConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config or GarageConfig()
        self._store = store
        self._audit = audit
        self._matcher = matcher or NameMatcher(
            match_threshold=self._config.match_threshold,
            suggestion_threshold=self._config.suggestion_threshold,
            max_suggestions=self._config.max_suggestions,
        )
        self._validator = validator or StatusValidator()
        self._clock = clock
        self._locks: dict[int, asyncio.Lock] = {}

    @property
    def store(self) -> VehicleStore:
        return self._store

    @property
    def matcher(self) -> NameMatcher:
        return self._matcher

    @property
    def validator(self) -> StatusValidator:
        return self._validator

    def _lock_for(self, vehicle_id: int) -> asyncio.Lock:
        lock = self._locks.get(vehicle_id)
        if lock is None:
            lock = self._locks[vehicle_id] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Single item
    # ------------------------------------------------------------------

    async def _fail(
        self,
        *,
        input_name: Any,
        status: Any,
        error: str,
        batch_id: str | None,
        operator: str | None,
        reason: str | None,
        vehicle: Vehicle | None = None,
        match: MatchCandidate | None = None,
        suggestions: Sequence[str] = (),
        warnings: Sequence[str] = (),
        request_meta: Mapping[str, Any] | None = None,
    ) -> UpdateResult:
        display_name = input_name if isinstance(input_name, str) else None
        metadata: dict[str, Any] = {"changed": False}
        if display_name is not None:
            metadata["inputName"] = display_name
        if suggestions:
            metadata["suggestions"] = list(suggestions)
        if warnings:
            metadata["warnings"] = list(warnings)
        metadata.update(request_meta or {})

        await self._audit.log_status_update_error(
            car_id=vehicle.id if vehicle is not None else None,
            car_name=vehicle.name if vehicle is not None else display_name,
            error=error,
            old_status=vehicle.status.value if vehicle is not None else None,
            attempted_status=status if isinstance(status, str) else None,
            reason=reason,
            operator=operator,
            batch_id=batch_id,
            metadata=metadata,
        )
        _logger.info("Update of %r failed: %s", input_name, error)
        return UpdateResult(
            success=False,
            car_name=display_name,
            car_id=vehicle.id if vehicle is not None else None,
            old_status=vehicle.status if vehicle is not None else None,
            error=error,
            suggestions=list(suggestions),
            warnings=list(warnings),
            match_type=match.match_type if match is not None else None,
            similarity=match.similarity if match is not None else None,
        )

    async def update_single(
        self,
        car_name: Any,
        status: Any,
        *,
        batch_id: str | None = None,
        operator: str | None = None,
        reason: str | None = None,
        request_context: Mapping[str, Any] | None = None,
    ) -> UpdateResult:
        """Resolve *car_name*, validate *status* and apply it to the store.

        Never raises for bad input or store failures; check
        ``result.success`` and ``result.error``. *request_context* may carry
        the caller's ``userAgent``, ``ipAddress``, ``sessionId`` and
        ``requestId``; they are recorded in the audit metadata.
        """
        request_meta = _request_metadata(request_context)
        fail_args: dict[str, Any] = {
            "input_name": car_name,
            "status": status,
            "batch_id": batch_id,
            "operator": operator,
            "reason": reason,
            "request_meta": request_meta,
        }

        name_check = self._validator.validate_name(car_name)
        if not name_check.is_valid:
            return await self._fail(error=name_check.error or "Invalid vehicle name", **fail_args)
        name = name_check.normalized_name or car_name
        warnings = list(name_check.warnings)
        for warning in name_check.warnings:
            _logger.warning("Vehicle name %r: %s", name, warning)

        try:
            vehicles = await self._store.list_all()
        except GarageStoreError as exc:
            return await self._fail(error=f"Could not load vehicles: {exc}", warnings=warnings, **fail_args)

        match = self._matcher.find_best(name, vehicles)
        if match is None:
            suggestions = self._matcher.suggest(name, vehicles)
            return await self._fail(
                error=f"Vehicle '{name}' not found",
                suggestions=suggestions,
                warnings=warnings,
                **fail_args,
            )

        duplicates = self._matcher.find_duplicates(name, vehicles)
        if len(duplicates) > 1:
            ids = ", ".join(str(vehicle.id) for vehicle in duplicates)
            warnings.append(f"Several vehicles are named '{name}' (IDs {ids}); updating ID {match.vehicle.id}")

        status_check = self._validator.validate_status(status)
        if not status_check.is_valid or status_check.normalized_status is None:
            return await self._fail(
                error=status_check.error or "Invalid status",
                vehicle=match.vehicle,
                match=match,
                warnings=warnings,
                **fail_args,
            )
        desired = status_check.normalized_status

        async with self._lock_for(match.vehicle.id):
            try:
                current = await self._store.get_by_id(match.vehicle.id)
            except GarageStoreError as exc:
                return await self._fail(
                    error=f"Could not load vehicle: {exc}",
                    vehicle=match.vehicle,
                    match=match,
                    warnings=warnings,
                    **fail_args,
                )
            if current is None:
                return await self._fail(
                    error=f"Vehicle with ID {match.vehicle.id} not found",
                    vehicle=match.vehicle,
                    match=match,
                    warnings=warnings,
                    **fail_args,
                )

            metadata: dict[str, Any] = {
                "inputName": name,
                "matchType": match.match_type.value,
                "similarity": match.similarity,
                **request_meta,
            }

            if current.status == desired:
                metadata["changed"] = False
                if warnings:
                    metadata["warnings"] = warnings
                await self._audit.log_status_update(
                    car_id=current.id,
                    car_name=current.name,
                    old_status=current.status.value,
                    new_status=desired.value,
                    reason=reason,
                    operator=operator,
                    batch_id=batch_id,
                    metadata=metadata,
                )
                return UpdateResult(
                    success=True,
                    changed=False,
                    car_name=current.name,
                    car_id=current.id,
                    old_status=current.status,
                    new_status=desired,
                    message="Status already set",
                    warnings=warnings,
                    match_type=match.match_type,
                    similarity=match.similarity,
                )

            transition = self._validator.validate_transition(current.status, desired)
            recommendations: list[str] = []
            if transition.is_downgrade and transition.warning:
                warnings.append(transition.warning)
            if transition.recommendation:
                recommendations.append(transition.recommendation)
            maintenance = self._validator.validate_maintenance(current, desired, self._clock())
            warnings.extend(maintenance.warnings)
            recommendations.extend(maintenance.recommendations)

            expected = current.status if self._config.optimistic_locking else None
            try:
                updated = await self._store.set_status(current.id, desired, expected_status=expected)
            except GarageStoreError as exc:
                return await self._fail(
                    error=str(exc),
                    vehicle=current,
                    match=match,
                    warnings=warnings,
                    **fail_args,
                )

            metadata["changed"] = True
            if warnings:
                metadata["warnings"] = warnings
            if recommendations:
                metadata["recommendations"] = recommendations
            await self._audit.log_status_update(
                car_id=updated.id,
                car_name=updated.name,
                old_status=current.status.value,
                new_status=updated.status.value,
                reason=reason,
                operator=operator,
                batch_id=batch_id,
                metadata=metadata,
            )

        _logger.info("Vehicle %s (%s): %s → %s", updated.name, updated.id, current.status, updated.status)
        return UpdateResult(
            success=True,
            changed=True,
            car_name=updated.name,
            car_id=updated.id,
            old_status=current.status,
            new_status=updated.status,
            message=f"Status changed: {current.status} → {updated.status}",
            warnings=warnings,
            match_type=match.match_type,
            similarity=match.similarity,
        )

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def update_batch(
        self,
        requests: Any,
        *,
        operator: str | None = None,
        reason: str | None = None,
        timeout: float | None = None,
        request_context: Mapping[str, Any] | None = None,
    ) -> BatchReport:
        """Apply a list of ``{carName, status}`` requests in input order.

        Parameters
        ----------
        requests : list or tuple
            :class:`StatusUpdateRequest` instances or mappings accepted by
            it. Malformed items become failed items.
        operator, reason : str or None
            Recorded on every audit entry of the batch.
        timeout : float or None
            Seconds after which no further item is started. Items already
            attempted are reported and ``cancelled`` is set.
        request_context : mapping or None
            Caller request fields recorded on every entry, see
            :meth:`update_single`.

        Raises
        ------
        GarageInputError
            If *requests* is not a list or tuple. Nothing is read or
            written in that case.
        """
        items = _require_sequence(requests)
        batch_id = self._audit.generate_batch_id()
        total = len(items)
        start_time = self._clock()
        started = time.monotonic()

        await self._audit.log_batch_start(
            batch_id=batch_id,
            total_vehicles=total,
            operator=operator,
            metadata=_request_metadata(request_context),
        )
        _logger.info("Batch %s: %d update(s) requested", batch_id, total)

        duplicates = _duplicate_names([name for name in map(_raw_name, items) if name is not None])
        if duplicates:
            _logger.warning("Batch %s updates these vehicles more than once: %s", batch_id, ", ".join(duplicates))

        successful: list[UpdateResult] = []
        failed: list[UpdateResult] = []
        unchanged: list[UpdateResult] = []
        errors: list[str] = []
        attempted = 0
        cancelled = False

        for index, item in enumerate(items, start=1):
            if timeout is not None and time.monotonic() - started >= timeout:
                cancelled = True
                _logger.warning("Batch %s timed out after %d of %d item(s)", batch_id, attempted, total)
                break
            attempted += 1

            try:
                request = _parse_request(item)
            except ValidationError as exc:
                result = await self._fail(
                    input_name=None,
                    status=None,
                    error=f"Malformed request at position {index}: {exc.errors()[0]['msg']}",
                    batch_id=batch_id,
                    operator=operator,
                    reason=reason,
                    request_meta=_request_metadata(request_context),
                )
            else:
                result = await self.update_single(
                    request.car_name,
                    request.status,
                    batch_id=batch_id,
                    operator=operator,
                    reason=reason,
                    request_context=request_context,
                )

            if not result.success:
                failed.append(result)
                errors.append(f"{result.car_name or f'item {index}'}: {result.error}")
            elif result.changed:
                successful.append(result)
            else:
                unchanged.append(result)

        end_time = self._clock()
        duration = max(0.0, (end_time - start_time).total_seconds())
        error = f"Timed out after {attempted} of {total} item(s)" if cancelled else None

        await self._audit.log_batch_complete(
            batch_id=batch_id,
            total_vehicles=total,
            successful_updates=len(successful),
            failed_updates=len(failed),
            unchanged_vehicles=len(unchanged),
            errors=errors,
            processing_time=duration,
            success=not cancelled,
            error=error,
            cancelled=cancelled,
            operator=operator,
        )

        return BatchReport(
            batch_id=batch_id,
            total=total,
            attempted=attempted,
            successful=successful,
            failed=failed,
            unchanged=unchanged,
            summary=BatchSummary(
                updated=len(successful),
                unchanged=len(unchanged),
                failed=len(failed),
                errors=errors,
            ),
            start_time=start_time,
            end_time=end_time,
            duration=duration,
            cancelled=cancelled,
        )

    async def preview_batch(self, requests: Any) -> BatchPreview:
        """Analyse a batch without touching the store or the audit trail.

        Store read errors propagate as :class:`GarageStoreError`.
        """
        items = _require_sequence(requests)
        vehicles = await self._store.list_all()

        distribution: dict[str, int] = {}
        invalid: list[str] = []
        matches: list[PreviewMatch] = []
        unmatched: list[PreviewMiss] = []
        names: list[str] = []

        for index, item in enumerate(items, start=1):
            try:
                request = _parse_request(item)
            except ValidationError:
                unmatched.append(PreviewMiss(input=f"item {index}: {item!r}"))
                continue
            names.append(request.car_name)

            status_check = self._validator.validate_status(request.status)
            if status_check.is_valid and status_check.normalized_status is not None:
                key = status_check.normalized_status.value
                distribution[key] = distribution.get(key, 0) + 1
            else:
                invalid.append(f"{request.car_name}: {request.status}")

            match = self._matcher.find_best(request.car_name, vehicles)
            if match is not None:
                matches.append(
                    PreviewMatch(
                        input=request.car_name,
                        matched=match.vehicle.name,
                        match_type=match.match_type,
                        similarity=match.similarity,
                    )
                )
            else:
                unmatched.append(
                    PreviewMiss(input=request.car_name, suggestions=self._matcher.suggest(request.car_name, vehicles))
                )

        unique = {normalize_name(name) for name in names if normalize_name(name)}
        return BatchPreview(
            total=len(items),
            unique_vehicles=len(unique),
            status_distribution=distribution,
            duplicates_in_list=_duplicate_names(names),
            matches=matches,
            unmatched=unmatched,
            invalid_statuses=invalid,
        )


def generate_report(report: BatchReport) -> str:
    """Render *report* as deterministic operator-facing text."""
    summary = report.summary
    lines = [
        f"Batch update report {report.batch_id}",
        f"Total: {report.total} | Attempted: {report.attempted} | Updated: {summary.updated} | "
        f"Unchanged: {summary.unchanged} | Failed: {summary.failed}",
        f"Duration: {report.duration:.2f}s",
    ]
    if report.cancelled:
        lines.append(f"Cancelled: {report.total - report.attempted} item(s) not attempted")

    if report.successful:
        lines += ["", "Updated:"]
        lines += [f"  - {item.car_name}: {item.old_status} → {item.new_status}" for item in report.successful]
    if report.unchanged:
        lines += ["", "Unchanged:"]
        lines += [f"  - {item.car_name}: {item.new_status} (already set)" for item in report.unchanged]
    if report.failed:
        lines += ["", "Failed:"]
        for item in report.failed:
            lines.append(f"  - {item.car_name or '<unknown>'}: {item.error}")
            if item.suggestions:
                lines.append(f"    Suggestions: {', '.join(item.suggestions)}")

    return "\n".join(lines)
