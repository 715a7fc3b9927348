"""Remote vehicle store spoken to over HTTP/JSON.

Endpoints (relative to ``base_url``):

* ``GET /vehicles`` -> list of vehicles (or ``{"vehicles": [...]}``)
* ``GET /vehicles/{id}`` -> one vehicle, ``404`` when missing
* ``PUT /vehicles/{id}/status`` with ``{"status", "expectedStatus"}``
  -> updated vehicle; ``404`` missing, ``409`` conflict, ``422`` invalid
  status
"""

from __future__ import annotations

import json
import logging
from typing import Any

import aiohttp
from pydantic import ValidationError

from pygarage.exceptions import (
    GarageTransportError,
    InvalidStatusError,
    StatusConflictError,
    VehicleNotFoundError,
)
from pygarage.models.status import VehicleStatus
from pygarage.models.vehicle import Vehicle

_logger = logging.getLogger(__name__)


class HttpVehicleStore:
    """Vehicle store backed by a remote HTTP service."""

    def __init__(
        self,
        base_url: str,
        http_session: aiohttp.ClientSession,
        *,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        payload: dict[str, Any] | None = None,
    ) -> tuple[int, str]:
        url = f"{self._base_url}{endpoint}"
        _logger.debug("%s %s", method, url)

        try:
            async with self._http.request(method, url, json=payload, timeout=self._timeout) as resp:
                return resp.status, await resp.text()
        except aiohttp.ClientError as exc:
            raise GarageTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc
        except TimeoutError as exc:
            raise GarageTransportError(
                f"Request to {endpoint} timed out",
                endpoint=endpoint,
            ) from exc

    @staticmethod
    def _decode(endpoint: str, status: int, text: str) -> Any:
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise GarageTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            ) from exc

    @staticmethod
    def _unexpected(endpoint: str, status: int, text: str) -> GarageTransportError:
        return GarageTransportError(
            f"HTTP {status} from {endpoint}: {text[:200]}",
            status_code=status,
            endpoint=endpoint,
        )

    @staticmethod
    def _parse_vehicle(endpoint: str, status: int, data: Any) -> Vehicle:
        try:
            return Vehicle.model_validate(data)
        except ValidationError as exc:
            raise GarageTransportError(
                f"Invalid vehicle payload from {endpoint}: {exc.errors()[:1]}",
                status_code=status,
                endpoint=endpoint,
            ) from exc

    async def list_all(self) -> list[Vehicle]:
        endpoint = "/vehicles"
        status, text = await self._request("GET", endpoint)
        if status != 200:
            raise self._unexpected(endpoint, status, text)

        data = self._decode(endpoint, status, text)
        if isinstance(data, dict):
            data = data.get("vehicles", [])
        if not isinstance(data, list):
            raise GarageTransportError(
                f"Expected a vehicle list from {endpoint}",
                status_code=status,
                endpoint=endpoint,
            )
        vehicles = [self._parse_vehicle(endpoint, status, item) for item in data]
        return sorted(vehicles, key=lambda vehicle: vehicle.id)

    async def get_by_id(self, vehicle_id: int) -> Vehicle | None:
        endpoint = f"/vehicles/{vehicle_id}"
        status, text = await self._request("GET", endpoint)
        if status == 404:
            return None
        if status != 200:
            raise self._unexpected(endpoint, status, text)
        return self._parse_vehicle(endpoint, status, self._decode(endpoint, status, text))

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

        endpoint = f"/vehicles/{vehicle_id}/status"
        payload: dict[str, Any] = {
            "status": new_status.value,
            "expectedStatus": expected_status.value if expected_status is not None else None,
        }
        http_status, text = await self._request("PUT", endpoint, payload=payload)

        if http_status == 404:
            raise VehicleNotFoundError(vehicle_id)
        if http_status == 422:
            raise InvalidStatusError(new_status)
        if http_status == 409:
            try:
                body = json.loads(text) if text else {}
            except json.JSONDecodeError:
                body = {}
            actual = body.get("status", "unknown") if isinstance(body, dict) else "unknown"
            raise StatusConflictError(vehicle_id, str(expected_status), str(actual))
        if http_status != 200:
            raise self._unexpected(endpoint, http_status, text)

        return self._parse_vehicle(endpoint, http_status, self._decode(endpoint, http_status, text))
