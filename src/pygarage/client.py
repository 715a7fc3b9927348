"""High-level async client for fleet status updates."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

import aiohttp

from pygarage.audit import AuditLogger
from pygarage.config import GarageConfig
from pygarage.exceptions import GarageConfigError
from pygarage.matching import NameMatcher
from pygarage.models.audit import ArchiveResult, AuditEntry, AuditStatistics
from pygarage.models.matching import MatchCandidate
from pygarage.models.results import BatchPreview, BatchReport, UpdateResult
from pygarage.models.validation import NameValidation, TransitionOutcome, ValidationOutcome
from pygarage.store.base import VehicleStore
from pygarage.store.http import HttpVehicleStore
from pygarage.store.sqlite import SqliteVehicleStore
from pygarage.updater import StatusUpdater, generate_report
from pygarage.validation import StatusValidator

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class GarageClient:
    """Async client tying together store, matcher, validator and audit trail.

    Usage::

        async with GarageClient(GarageConfig.from_env()) as client:
            report = await client.update_batch(
                [{"carName": "BMW 4-Series", "status": "среднее"}]
            )
            print(client.render_report(report))

    The store is chosen from the configuration (``store_url`` first, then
    ``sqlite_path``) unless one is passed in explicitly.
    """

    def __init__(
        self,
        config: GarageConfig | None = None,
        *,
        store: VehicleStore | None = None,
        audit: AuditLogger | None = None,
        session: aiohttp.ClientSession | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config or GarageConfig()
        self._clock = clock
        self._external_session = session is not None
        self._http_session = session
        self._explicit_store = store
        self._store: VehicleStore | None = store
        self._audit = audit or AuditLogger.from_config(self._config, clock=clock)
        self._matcher = NameMatcher(
            match_threshold=self._config.match_threshold,
            suggestion_threshold=self._config.suggestion_threshold,
            max_suggestions=self._config.max_suggestions,
        )
        self._validator = StatusValidator()
        self._updater: StatusUpdater | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> GarageClient:
        if self._store is None:
            self._store = await self._build_store()
        self._updater = StatusUpdater(
            self._store,
            self._audit,
            matcher=self._matcher,
            validator=self._validator,
            config=self._config,
            clock=self._clock,
        )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
        if not self._external_session:
            self._http_session = None
        self._store = self._explicit_store
        self._updater = None

    async def _build_store(self) -> VehicleStore:
        if self._config.store_url:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            _logger.debug("Using remote vehicle store at %s", self._config.store_url)
            return HttpVehicleStore(
                self._config.store_url,
                self._http_session,
                timeout=self._config.http_timeout,
            )
        if self._config.sqlite_path is not None:
            store = SqliteVehicleStore(self._config.sqlite_path, clock=self._clock)
            await store.initialize()
            return store
        raise GarageConfigError("No vehicle store configured: set store_url or sqlite_path")

    def _require_updater(self) -> StatusUpdater:
        if self._updater is None:
            raise RuntimeError("Client not initialized. Use 'async with GarageClient(...) as client:'")
        return self._updater

    @property
    def store(self) -> VehicleStore:
        return self._require_updater().store

    @property
    def audit(self) -> AuditLogger:
        return self._audit

    # ------------------------------------------------------------------
    # Matching and validation
    # ------------------------------------------------------------------

    async def resolve_vehicle(self, name: str, *, min_similarity: float | None = None) -> list[MatchCandidate]:
        """Rank store vehicles against a free-text *name*, best first."""
        updater = self._require_updater()
        vehicles = await updater.store.list_all()
        if min_similarity is None:
            min_similarity = self._config.suggestion_threshold
        return self._matcher.resolve(name, vehicles, min_similarity=min_similarity)

    def validate_status(self, raw: Any) -> ValidationOutcome:
        return self._validator.validate_status(raw)

    def validate_transition(self, old_status: Any, new_status: Any) -> TransitionOutcome:
        return self._validator.validate_transition(old_status, new_status)

    def validate_name(self, raw: Any) -> NameValidation:
        return self._validator.validate_name(raw)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    async def update_single(
        self,
        name: Any,
        status: Any,
        *,
        operator: str | None = None,
        reason: str | None = None,
        request_context: Mapping[str, Any] | None = None,
    ) -> UpdateResult:
        return await self._require_updater().update_single(
            name,
            status,
            operator=operator,
            reason=reason,
            request_context=request_context,
        )

    async def update_batch(
        self,
        requests: Any,
        *,
        operator: str | None = None,
        reason: str | None = None,
        timeout: float | None = None,
        request_context: Mapping[str, Any] | None = None,
    ) -> BatchReport:
        return await self._require_updater().update_batch(
            requests,
            operator=operator,
            reason=reason,
            timeout=timeout,
            request_context=request_context,
        )

    async def preview_batch(self, requests: Any) -> BatchPreview:
        return await self._require_updater().preview_batch(requests)

    @staticmethod
    def render_report(report: BatchReport) -> str:
        return generate_report(report)

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    async def vehicle_history(self, vehicle_id: int, limit: int = 50) -> list[AuditEntry]:
        return await self._audit.vehicle_history(vehicle_id, limit)

    async def batch_history(self, batch_id: str) -> list[AuditEntry]:
        return await self._audit.batch_history(batch_id)

    async def stats_between(self, start: datetime, end: datetime) -> AuditStatistics:
        return await self._audit.statistics(start, end)

    async def archive(self, days_to_keep: int | None = None) -> ArchiveResult:
        if days_to_keep is None:
            days_to_keep = self._config.archive_days
        return await self._audit.archive(days_to_keep)

    async def clear_all(self) -> None:
        await self._audit.clear_all()
