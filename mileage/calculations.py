"""Helper functions for service due calculations."""

from typing import Dict, Tuple

from .service_kind import ServiceKind
from .vehicle_class import VehicleClass

# Distance between services, in the unit trips are recorded in.
THRESHOLDS: Dict[Tuple[ServiceKind, VehicleClass], float] = {
    (ServiceKind.OIL, VehicleClass.CAR): 5000,
    (ServiceKind.OIL, VehicleClass.MOTORCYCLE): 500,
    (ServiceKind.MAINTENANCE, VehicleClass.CAR): 5000,
    (ServiceKind.MAINTENANCE, VehicleClass.MOTORCYCLE): 1000,
}


def threshold(kind: ServiceKind, vehicle_class: VehicleClass) -> float:
    """Distance allowed between two services of a kind."""
    return THRESHOLDS[(kind, vehicle_class)]


def distance_since(total_distance: float, last_service_distance: float) -> float:
    """
    Distance driven since the last service.

    Never negative: a total below the last-service reading (possible after a
    clamped trip delete) counts as zero.
    """
    return max(0.0, total_distance - last_service_distance)


def is_due(
    kind: ServiceKind,
    vehicle_class: VehicleClass,
    total_distance: float,
    last_service_distance: float,
) -> bool:
    """Due when the distance since last service reaches the threshold."""
    driven = distance_since(total_distance, last_service_distance)
    return driven >= threshold(kind, vehicle_class)


def distance_remaining(
    kind: ServiceKind,
    vehicle_class: VehicleClass,
    total_distance: float,
    last_service_distance: float,
) -> float:
    """Distance left before due. Negative once past the threshold."""
    driven = distance_since(total_distance, last_service_distance)
    return threshold(kind, vehicle_class) - driven
