"""In-memory vehicle store."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from pygarage.exceptions import InvalidStatusError, StatusConflictError, VehicleNotFoundError
from pygarage.models.status import VehicleStatus
from pygarage.models.vehicle import Vehicle


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemoryVehicleStore:
    """Dict-backed store, deterministic given the same clock.

    ``write_count`` counts applied status updates so callers can check that
    an operation left the store untouched.
    """

    def __init__(
        self,
        vehicles: Iterable[Vehicle] = (),
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._clock = clock
        self._vehicles: dict[int, Vehicle] = {vehicle.id: vehicle for vehicle in vehicles}
        self.write_count = 0

    def add(self, vehicle: Vehicle) -> None:
        self._vehicles[vehicle.id] = vehicle

    async def list_all(self) -> list[Vehicle]:
        return [self._vehicles[vehicle_id] for vehicle_id in sorted(self._vehicles)]

    async def get_by_id(self, vehicle_id: int) -> Vehicle | None:
        return self._vehicles.get(vehicle_id)

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

        current = self._vehicles.get(vehicle_id)
        if current is None:
            raise VehicleNotFoundError(vehicle_id)
        if expected_status is not None and current.status != expected_status:
            raise StatusConflictError(vehicle_id, str(expected_status), str(current.status))

        updated = current.model_copy(update={"status": new_status, "last_maintenance": self._clock()})
        self._vehicles[vehicle_id] = updated
        self.write_count += 1
        return updated
