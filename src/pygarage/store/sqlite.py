"""SQLite-backed vehicle store over the ``garage`` table.

Each operation opens its own connection inside a worker thread
(``asyncio.to_thread``), so the event loop never blocks on disk I/O and
no connection is shared across threads.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable
from contextlib import closing
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

from pydantic import ValidationError

from pygarage.exceptions import GarageStoreError, InvalidStatusError, StatusConflictError, VehicleNotFoundError
from pygarage.models.status import VehicleStatus
from pygarage.models.vehicle import Vehicle

_logger = logging.getLogger(__name__)

T = TypeVar("T")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS garage (
    car_id INTEGER PRIMARY KEY,
    car_name TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'Хорошее' CHECK (status IN ('Среднее', 'Хорошее', 'Плохое')),
    last_maintenance DATETIME,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
)
"""
_COLUMNS = "car_id, car_name, status, last_maintenance"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SqliteVehicleStore:
    """Vehicle store persisted in a SQLite database file."""

    def __init__(self, path: Path | str, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._path = Path(path)
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        return conn

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as exc:
            raise GarageStoreError(f"SQLite error on {self._path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Schema and seeding
    # ------------------------------------------------------------------

    def _initialize(self) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(_SCHEMA)

    async def initialize(self) -> None:
        """Create the ``garage`` table if it does not exist."""
        await self._call(self._initialize)
        _logger.debug("SQLite vehicle store ready at %s", self._path)

    def _insert(self, vehicle: Vehicle) -> None:
        last = vehicle.last_maintenance.isoformat() if vehicle.last_maintenance is not None else None
        with closing(self._connect()) as conn, conn:
            conn.execute(
                f"INSERT INTO garage ({_COLUMNS}) VALUES (?, ?, ?, ?)",  # noqa: S608
                (vehicle.id, vehicle.name, vehicle.status.value, last),
            )

    async def add(self, vehicle: Vehicle) -> None:
        await self._call(self._insert, vehicle)

    # ------------------------------------------------------------------
    # Store interface
    # ------------------------------------------------------------------

    def _fetch_all(self) -> list[dict[str, Any]]:
        with closing(self._connect()) as conn:
            rows = conn.execute(f"SELECT {_COLUMNS} FROM garage ORDER BY car_id ASC").fetchall()  # noqa: S608
        return [dict(row) for row in rows]

    def _fetch_one(self, vehicle_id: int) -> dict[str, Any] | None:
        with closing(self._connect()) as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM garage WHERE car_id = ?",  # noqa: S608
                (vehicle_id,),
            ).fetchone()
        return dict(row) if row is not None else None

    def _update_status(
        self,
        vehicle_id: int,
        status: VehicleStatus,
        expected_status: VehicleStatus | None,
        now: str,
    ) -> dict[str, Any]:
        sql = "UPDATE garage SET status = ?, last_maintenance = ?, updated_at = ? WHERE car_id = ?"
        params: tuple[Any, ...] = (status.value, now, now, vehicle_id)
        if expected_status is not None:
            sql += " AND status = ?"
            params += (expected_status.value,)

        with closing(self._connect()) as conn, conn:
            cursor = conn.execute(sql, params)
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM garage WHERE car_id = ?",  # noqa: S608
                (vehicle_id,),
            ).fetchone()
            if row is None:
                raise VehicleNotFoundError(vehicle_id)
            if cursor.rowcount == 0:
                raise StatusConflictError(vehicle_id, str(expected_status), str(row["status"]))
            return dict(row)

    def _parse_row(self, row: dict[str, Any]) -> Vehicle:
        try:
            return Vehicle.model_validate(row)
        except ValidationError as exc:
            raise GarageStoreError(
                f"Invalid garage row {row.get('car_id')!r} in {self._path}: {exc.errors()[:1]}"
            ) from exc

    async def list_all(self) -> list[Vehicle]:
        """Every readable vehicle in id order; invalid rows are logged and skipped."""
        rows = await self._call(self._fetch_all)
        vehicles: list[Vehicle] = []
        for row in rows:
            try:
                vehicles.append(self._parse_row(row))
            except GarageStoreError as exc:
                _logger.warning("Skipping vehicle: %s", exc)
        return vehicles

    async def get_by_id(self, vehicle_id: int) -> Vehicle | None:
        row = await self._call(self._fetch_one, vehicle_id)
        return self._parse_row(row) if row is not None else None

    async def set_status(
        self,
        vehicle_id: int,
        status: VehicleStatus,
        *,
        expected_status: VehicleStatus | None = None,
    ) -> Vehicle:
        try:
            new_status = VehicleStatus(status)
        except ValueError:
            raise InvalidStatusError(status) from None

        now = self._clock().isoformat()
        row = await self._call(self._update_status, vehicle_id, new_status, expected_status, now)
        return self._parse_row(row)
