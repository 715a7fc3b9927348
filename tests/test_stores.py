from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import AsyncIterator
from contextlib import closing
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiohttp
import pytest
from aiohttp import test_utils, web

from pygarage.exceptions import (
    GarageStoreError,
    GarageTransportError,
    InvalidStatusError,
    StatusConflictError,
    VehicleNotFoundError,
)
from pygarage.models.status import VehicleStatus
from pygarage.models.vehicle import Vehicle
from pygarage.store import HttpVehicleStore, InMemoryVehicleStore, SqliteVehicleStore

NOW = datetime(2026, 2, 1, 9, 30, tzinfo=UTC)


def _clock() -> datetime:
    return NOW


def _fleet() -> list[Vehicle]:
    return [
        Vehicle(id=2, name="Audi RS6", status=VehicleStatus.AVERAGE),
        Vehicle(id=1, name="BMW 4-Series", status=VehicleStatus.GOOD),
    ]


# ------------------------------------------------------------------
# In-memory
# ------------------------------------------------------------------


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_list_all_in_id_order(self) -> None:
        store = InMemoryVehicleStore(_fleet())
        assert [vehicle.id for vehicle in await store.list_all()] == [1, 2]

    @pytest.mark.asyncio
    async def test_set_status_stamps_maintenance(self) -> None:
        store = InMemoryVehicleStore(_fleet(), clock=_clock)

        updated = await store.set_status(1, VehicleStatus.BAD, expected_status=VehicleStatus.GOOD)

        assert updated.status == VehicleStatus.BAD
        assert updated.last_maintenance == NOW
        assert (await store.get_by_id(1)) == updated
        assert store.write_count == 1

    @pytest.mark.asyncio
    async def test_conflict(self) -> None:
        store = InMemoryVehicleStore(_fleet())

        with pytest.raises(StatusConflictError) as excinfo:
            await store.set_status(2, VehicleStatus.BAD, expected_status=VehicleStatus.GOOD)

        assert excinfo.value.actual == "Среднее"
        assert store.write_count == 0

    @pytest.mark.asyncio
    async def test_not_found_and_invalid_status(self) -> None:
        store = InMemoryVehicleStore(_fleet())

        with pytest.raises(VehicleNotFoundError, match="Vehicle with ID 99 not found"):
            await store.set_status(99, VehicleStatus.BAD)
        with pytest.raises(InvalidStatusError):
            await store.set_status(1, "broken")  # type: ignore[arg-type]
        assert await store.get_by_id(99) is None


# ------------------------------------------------------------------
# SQLite
# ------------------------------------------------------------------


async def _sqlite_store(tmp_path: Path) -> SqliteVehicleStore:
    store = SqliteVehicleStore(tmp_path / "garage.db", clock=_clock)
    await store.initialize()
    for vehicle in _fleet():
        await store.add(vehicle)
    return store


class TestSqliteStore:
    @pytest.mark.asyncio
    async def test_roundtrip(self, tmp_path: Path) -> None:
        store = await _sqlite_store(tmp_path)

        vehicles = await store.list_all()

        assert [vehicle.name for vehicle in vehicles] == ["BMW 4-Series", "Audi RS6"]
        assert vehicles[0].status == VehicleStatus.GOOD
        assert await store.get_by_id(3) is None

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, tmp_path: Path) -> None:
        store = await _sqlite_store(tmp_path)
        await store.initialize()
        assert len(await store.list_all()) == 2

    @pytest.mark.asyncio
    async def test_compare_and_set(self, tmp_path: Path) -> None:
        store = await _sqlite_store(tmp_path)

        updated = await store.set_status(1, VehicleStatus.AVERAGE, expected_status=VehicleStatus.GOOD)

        assert updated.status == VehicleStatus.AVERAGE
        assert updated.last_maintenance == NOW
        with pytest.raises(StatusConflictError):
            await store.set_status(1, VehicleStatus.BAD, expected_status=VehicleStatus.GOOD)
        assert (await store.get_by_id(1)).status == VehicleStatus.AVERAGE  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_unconditional_update(self, tmp_path: Path) -> None:
        store = await _sqlite_store(tmp_path)
        updated = await store.set_status(2, VehicleStatus.BAD)
        assert updated.status == VehicleStatus.BAD

    @pytest.mark.asyncio
    async def test_not_found(self, tmp_path: Path) -> None:
        store = await _sqlite_store(tmp_path)
        with pytest.raises(VehicleNotFoundError):
            await store.set_status(42, VehicleStatus.BAD, expected_status=VehicleStatus.GOOD)

    @pytest.mark.asyncio
    async def test_invalid_status(self, tmp_path: Path) -> None:
        store = await _sqlite_store(tmp_path)
        with pytest.raises(InvalidStatusError):
            await store.set_status(1, "good")  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_duplicate_id_is_store_error(self, tmp_path: Path) -> None:
        store = await _sqlite_store(tmp_path)
        with pytest.raises(GarageStoreError, match="SQLite error"):
            await store.add(Vehicle(id=1, name="Lada Vesta", status=VehicleStatus.BAD))

    @pytest.mark.asyncio
    async def test_invalid_rows(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        store = await _sqlite_store(tmp_path)
        with closing(sqlite3.connect(store.path)) as conn, conn:
            conn.execute("INSERT INTO garage (car_id, car_name, status) VALUES (3, '  ', 'Плохое')")
            conn.execute(
                "INSERT INTO garage (car_id, car_name, status, last_maintenance) "
                "VALUES (4, 'Lada Vesta', 'Хорошее', 'last spring')"
            )
        caplog.set_level(logging.WARNING, logger="pygarage.store.sqlite")

        vehicles = await store.list_all()

        assert [vehicle.id for vehicle in vehicles] == [1, 2]
        assert caplog.text.count("Skipping vehicle") == 2
        with pytest.raises(GarageStoreError, match="Invalid garage row 4"):
            await store.get_by_id(4)
        with pytest.raises(GarageStoreError, match="Invalid garage row 3"):
            await store.set_status(3, VehicleStatus.GOOD)


# ------------------------------------------------------------------
# HTTP
# ------------------------------------------------------------------


@dataclass
class FakeFleetService:
    vehicles: dict[int, dict[str, Any]] = field(default_factory=dict)
    wrap_list: bool = False
    fail_list_status: int | None = None
    calls: list[str] = field(default_factory=list)

    @classmethod
    def seeded(cls, **kwargs: Any) -> FakeFleetService:
        service = cls(**kwargs)
        for vehicle in _fleet():
            service.vehicles[vehicle.id] = vehicle.to_json_dict()
        return service

    async def list_vehicles(self, request: web.Request) -> web.Response:
        self.calls.append("list")
        if self.fail_list_status is not None:
            return web.Response(status=self.fail_list_status, text="upstream broke")
        payload = list(self.vehicles.values())
        return web.json_response({"vehicles": payload} if self.wrap_list else payload)

    async def get_vehicle(self, request: web.Request) -> web.Response:
        vehicle = self.vehicles.get(int(request.match_info["vehicle_id"]))
        if vehicle is None:
            return web.json_response({"error": "not found"}, status=404)
        return web.json_response(vehicle)

    async def put_status(self, request: web.Request) -> web.Response:
        vehicle_id = int(request.match_info["vehicle_id"])
        body = await request.json()
        self.calls.append(f"put:{vehicle_id}:{body['status']}:{body['expectedStatus']}")
        vehicle = self.vehicles.get(vehicle_id)
        if vehicle is None:
            return web.json_response({"error": "not found"}, status=404)
        if body["status"] not in {status.value for status in VehicleStatus}:
            return web.json_response({"error": "invalid status"}, status=422)
        if body["expectedStatus"] is not None and body["expectedStatus"] != vehicle["status"]:
            return web.json_response({"status": vehicle["status"]}, status=409)
        vehicle = {**vehicle, "status": body["status"], "lastMaintenance": NOW.isoformat()}
        self.vehicles[vehicle_id] = vehicle
        return web.json_response(vehicle)

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/vehicles", self.list_vehicles)
        app.router.add_get("/vehicles/{vehicle_id}", self.get_vehicle)
        app.router.add_put("/vehicles/{vehicle_id}/status", self.put_status)
        return app


@contextlib.asynccontextmanager
async def _http_store(service: FakeFleetService) -> AsyncIterator[HttpVehicleStore]:
    server = test_utils.TestServer(service.app())
    await server.start_server()
    try:
        async with aiohttp.ClientSession() as session:
            yield HttpVehicleStore(f"http://{server.host}:{server.port}/", session, timeout=5.0)
    finally:
        await server.close()


class TestHttpStore:
    @pytest.mark.asyncio
    async def test_list_and_get(self) -> None:
        async with _http_store(FakeFleetService.seeded()) as store:
            vehicles = await store.list_all()
            assert [vehicle.id for vehicle in vehicles] == [1, 2]
            assert (await store.get_by_id(2)).name == "Audi RS6"  # type: ignore[union-attr]
            assert await store.get_by_id(9) is None

    @pytest.mark.asyncio
    async def test_wrapped_vehicle_list(self) -> None:
        async with _http_store(FakeFleetService.seeded(wrap_list=True)) as store:
            assert len(await store.list_all()) == 2

    @pytest.mark.asyncio
    async def test_set_status_sends_expected_status(self) -> None:
        service = FakeFleetService.seeded()
        async with _http_store(service) as store:
            updated = await store.set_status(1, VehicleStatus.BAD, expected_status=VehicleStatus.GOOD)

        assert updated.status == VehicleStatus.BAD
        assert updated.last_maintenance == NOW
        assert service.calls[-1] == "put:1:Плохое:Хорошее"

    @pytest.mark.asyncio
    async def test_error_mapping(self) -> None:
        async with _http_store(FakeFleetService.seeded()) as store:
            with pytest.raises(StatusConflictError) as excinfo:
                await store.set_status(2, VehicleStatus.BAD, expected_status=VehicleStatus.GOOD)
            assert excinfo.value.actual == "Среднее"

            with pytest.raises(VehicleNotFoundError):
                await store.set_status(9, VehicleStatus.BAD)

            with pytest.raises(InvalidStatusError):
                await store.set_status(1, "broken")  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_server_error_is_transport_error(self) -> None:
        async with _http_store(FakeFleetService.seeded(fail_list_status=503)) as store:
            with pytest.raises(GarageTransportError) as excinfo:
                await store.list_all()

        assert excinfo.value.status_code == 503
        assert excinfo.value.endpoint == "/vehicles"

    @pytest.mark.asyncio
    async def test_connection_failure_is_transport_error(self) -> None:
        async with aiohttp.ClientSession() as session:
            store = HttpVehicleStore("http://127.0.0.1:1", session, timeout=2.0)
            with pytest.raises(GarageTransportError):
                await store.list_all()
