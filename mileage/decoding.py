"""Decoding store rows into domain records, and encoding records into rows."""

import math
from datetime import date
from typing import Any, Dict, Optional

from .errors import MalformedRowError
from .maintenance_entry import MaintenanceLogEntry
from .service_kind import ServiceKind
from .trip import Trip
from .vehicle import Vehicle
from .vehicle_class import VehicleClass

VEHICLES = "vehicles"
TRIPS = "trips"
MAINTENANCE_LOGS = "maintenance_logs"


def to_float(value: Any, field: str = "value", strict: bool = False) -> float:
    """
    Normalize a stored numeric value to float.

    Stores may hand back numbers, string-encoded decimals or nothing at all.
    Missing, unparsable, non-finite or negative values become 0.0, or raise
    MalformedRowError in strict mode.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = math.nan
    if math.isfinite(number) and number >= 0:
        return number
    if strict:
        raise MalformedRowError(f"Invalid numeric {field}: {value!r}")
    return 0.0


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _require(row: Dict[str, Any], key: str, kind: str) -> Any:
    value = row.get(key)
    if value is None or value == "":
        raise MalformedRowError(f"{kind} row is missing '{key}': {row!r}")
    return value


def decode_trip(row: Dict[str, Any], strict: bool = False) -> Trip:
    """Decode a trips row."""
    return Trip(
        id=str(_require(row, "id", "trip")),
        vehicle_id=str(_require(row, "vehicle_id", "trip")),
        date=_to_text(row.get("date")) or "",
        distance=to_float(row.get("distance"), "distance", strict),
        label=row.get("name"),
    )


def decode_log_entry(row: Dict[str, Any], strict: bool = False) -> MaintenanceLogEntry:
    """Decode a maintenance_logs row."""
    service_type = _require(row, "service_type", "maintenance log")
    try:
        kind = ServiceKind(service_type)
    except ValueError:
        raise MalformedRowError(f"Unknown service type {service_type!r}") from None
    return MaintenanceLogEntry(
        id=str(_require(row, "id", "maintenance log")),
        vehicle_id=str(_require(row, "vehicle_id", "maintenance log")),
        kind=kind,
        timestamp=_to_text(row.get("date")) or "",
        mileage_at_service=to_float(
            row.get("mileage_at_service"), "mileage_at_service", strict
        ),
        notes=row.get("notes"),
    )


def decode_vehicle(row: Dict[str, Any], strict: bool = False) -> Vehicle:
    """
    Decode a vehicles row, with its nested trips and maintenance_logs when
    the row was queried with relations.
    """
    vehicle_type = _require(row, "type", "vehicle")
    try:
        vehicle_class = VehicleClass(vehicle_type)
    except ValueError:
        raise MalformedRowError(f"Unknown vehicle type {vehicle_type!r}") from None

    trips = [decode_trip(t, strict) for t in row.get(TRIPS) or []]
    history = [decode_log_entry(m, strict) for m in row.get(MAINTENANCE_LOGS) or []]

    return Vehicle(
        id=str(_require(row, "id", "vehicle")),
        owner_id=str(_require(row, "user_id", "vehicle")),
        vehicle_class=vehicle_class,
        plate_number=str(_require(row, "plate_number", "vehicle")),
        total_distance=to_float(row.get("total_distance"), "total_distance", strict),
        last_oil_service_distance=to_float(
            row.get(ServiceKind.OIL.counter_field),
            ServiceKind.OIL.counter_field,
            strict,
        ),
        last_maintenance_service_distance=to_float(
            row.get(ServiceKind.MAINTENANCE.counter_field),
            ServiceKind.MAINTENANCE.counter_field,
            strict,
        ),
        trips=trips,
        history=history,
    )


def vehicle_row(
    owner_id: str, vehicle_class: VehicleClass, plate_number: str
) -> Dict[str, Any]:
    """Row for a new vehicle with all counters at zero."""
    return {
        "user_id": owner_id,
        "type": vehicle_class.value,
        "plate_number": plate_number,
        "total_distance": 0,
        ServiceKind.OIL.counter_field: 0,
        ServiceKind.MAINTENANCE.counter_field: 0,
    }


def trip_row(
    vehicle_id: str, trip_date: str, distance: float, label: Optional[str]
) -> Dict[str, Any]:
    """Row for a new trip, omitting an absent label."""
    d: Dict[str, Any] = {
        "vehicle_id": vehicle_id,
        "date": trip_date,
        "distance": distance,
    }
    if label is not None:
        d["name"] = label
    return d


def log_row(
    vehicle_id: str,
    kind: ServiceKind,
    timestamp: str,
    mileage_at_service: float,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """Row for a new maintenance log entry, omitting absent notes."""
    d: Dict[str, Any] = {
        "vehicle_id": vehicle_id,
        "service_type": kind.value,
        "date": timestamp,
        "mileage_at_service": mileage_at_service,
    }
    if notes is not None:
        d["notes"] = notes
    return d
