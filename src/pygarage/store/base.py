"""Structural vehicle store interface."""

from __future__ import annotations

from typing import Protocol

from pygarage.models.status import VehicleStatus
from pygarage.models.vehicle import Vehicle


class VehicleStore(Protocol):
    """Store interface consumed by the update pipeline.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production back-ends concrete.
    """

    async def list_all(self) -> list[Vehicle]:
        """Return every vehicle ordered by id."""
        ...

    async def get_by_id(self, vehicle_id: int) -> Vehicle | None:
        ...

    async def set_status(
        self,
        vehicle_id: int,
        status: VehicleStatus,
        *,
        expected_status: VehicleStatus | None = None,
    ) -> Vehicle:
        """Atomically set the status of one vehicle and stamp ``last_maintenance``.

        When *expected_status* is given the update only applies if the stored
        status still equals it.

        Raises
        ------
        VehicleNotFoundError
            No vehicle with *vehicle_id*.
        InvalidStatusError
            *status* is not a canonical status.
        StatusConflictError
            The stored status differs from *expected_status*.
        """
        ...
