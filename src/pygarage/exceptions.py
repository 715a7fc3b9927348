"""Custom exception hierarchy for pygarage."""

from __future__ import annotations


class GarageError(Exception):
    """Base exception for all pygarage errors."""


class GarageConfigError(GarageError):
    """Invalid or missing configuration."""


class GarageInputError(GarageError):
    """Structurally invalid request (e.g. a batch that is not a list)."""


class GarageStoreError(GarageError):
    """Vehicle store failure."""


class VehicleNotFoundError(GarageStoreError):
    """The vehicle does not exist (or vanished between match and update)."""

    def __init__(self, vehicle_id: int) -> None:
        self.vehicle_id = vehicle_id
        super().__init__(f"Vehicle with ID {vehicle_id} not found")


class InvalidStatusError(GarageStoreError):
    """The store rejected a status value."""

    def __init__(self, status: object) -> None:
        self.status = status
        super().__init__(f"Invalid status: {status!r}")


class StatusConflictError(GarageStoreError):
    """Compare-and-set failed because the stored status changed.

    Raised when ``set_status`` is called with an ``expected_status`` that
    no longer matches the stored value, i.e. another operator updated the
    vehicle in the meantime.
    """

    def __init__(self, vehicle_id: int, expected: str, actual: str) -> None:
        self.vehicle_id = vehicle_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Status of vehicle {vehicle_id} changed concurrently (expected {expected!r}, found {actual!r})"
        )


class GarageTransportError(GarageStoreError):
    """HTTP-level failure talking to a remote store (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class GarageAuditError(GarageError):
    """Audit trail could not be read, archived or cleared.

    Writes never raise this; write failures are best-effort and only
    reported through logging.
    """
