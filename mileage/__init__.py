"""
Vehicle mileage and maintenance ledger.

This package keeps per-vehicle distance and service counters consistent
with the trips and service events recorded against a record store:
- VehicleClass, ServiceKind: classification enums
- Trip, TripLedger: distance events and their running total
- MaintenanceLogEntry, MaintenanceLog: append-only service history
- Vehicle: aggregate combining ledger, log and derived counters
- is_due, threshold: stateless due-for-service evaluation
- ConsistencyCoordinator: compound writes with reload-driven recovery
- MemoryStore, YamlStore: record store implementations
"""

from .vehicle_class import VehicleClass
from .service_kind import ServiceKind
from .errors import (
    LedgerError,
    ValidationError,
    MalformedRowError,
    NotFoundError,
    DuplicateError,
    StoreError,
    PartialWriteWarning,
)
from .trip import Trip
from .trip_ledger import TripLedger, validate_distance
from .maintenance_entry import MaintenanceLogEntry
from .maintenance_log import MaintenanceLog
from .service_due import ServiceDue
from .vehicle import Vehicle
from .calculations import is_due, threshold, distance_since
from .decoding import decode_vehicle, to_float
from .store import RecordStore, MemoryStore
from .yaml_store import YamlStore
from .cache import VehicleCache
from .coordinator import ConsistencyCoordinator, MutationResult
from .config import Settings

__all__ = [
    "VehicleClass",
    "ServiceKind",
    "LedgerError",
    "ValidationError",
    "MalformedRowError",
    "NotFoundError",
    "DuplicateError",
    "StoreError",
    "PartialWriteWarning",
    "Trip",
    "TripLedger",
    "validate_distance",
    "MaintenanceLogEntry",
    "MaintenanceLog",
    "ServiceDue",
    "Vehicle",
    "is_due",
    "threshold",
    "distance_since",
    "decode_vehicle",
    "to_float",
    "RecordStore",
    "MemoryStore",
    "YamlStore",
    "VehicleCache",
    "ConsistencyCoordinator",
    "MutationResult",
    "Settings",
]
