"""Vehicle store layer.

The store is the canonical owner of vehicle status. The core only talks
to it through :class:`VehicleStore`; concrete back-ends live beside it.
"""

from pygarage.store.base import VehicleStore
from pygarage.store.http import HttpVehicleStore
from pygarage.store.memory import InMemoryVehicleStore
from pygarage.store.sqlite import SqliteVehicleStore

__all__ = [
    "HttpVehicleStore",
    "InMemoryVehicleStore",
    "SqliteVehicleStore",
    "VehicleStore",
]
