"""Vehicle class - the aggregate for trips, service history and counters."""

import math
from typing import Dict, List, Optional

from .calculations import distance_remaining, distance_since, is_due, threshold
from .maintenance_entry import MaintenanceLogEntry
from .maintenance_log import MaintenanceLog
from .service_due import ServiceDue
from .service_kind import ServiceKind
from .trip import Trip
from .trip_ledger import TripLedger
from .vehicle_class import VehicleClass


class Vehicle:
    """
    A vehicle with its trip ledger, maintenance log and derived counters.

    Derived fields:
    - total_distance: running sum of trip distances
    - last_oil_service_distance / last_maintenance_service_distance:
      total_distance at the time of the last service of that kind

    Trip mutations move only total_distance. Service mutations move only the
    matching counter. Every field stays >= 0.
    """

    def __init__(
        self,
        id: str,
        owner_id: str,
        vehicle_class: VehicleClass,
        plate_number: str,
        total_distance: float = 0,
        last_oil_service_distance: float = 0,
        last_maintenance_service_distance: float = 0,
        trips: Optional[List[Trip]] = None,
        history: Optional[List[MaintenanceLogEntry]] = None,
    ):
        self.id = id
        self.owner_id = owner_id
        self.vehicle_class = vehicle_class
        self.plate_number = plate_number
        self.total_distance = float(total_distance)
        self._last_service: Dict[ServiceKind, float] = {
            ServiceKind.OIL: float(last_oil_service_distance),
            ServiceKind.MAINTENANCE: float(last_maintenance_service_distance),
        }
        self.trips = TripLedger(trips)
        self.history = MaintenanceLog(history)
        self._check_invariants()

    def __repr__(self) -> str:
        return (
            f"Vehicle(id={self.id!r}, plate_number={self.plate_number!r}, "
            f"vehicle_class={self.vehicle_class.value}, "
            f"total_distance={self.total_distance})"
        )

    @property
    def last_oil_service_distance(self) -> float:
        return self._last_service[ServiceKind.OIL]

    @property
    def last_maintenance_service_distance(self) -> float:
        return self._last_service[ServiceKind.MAINTENANCE]

    def last_service_distance(self, kind: ServiceKind) -> float:
        """Counter value for a service kind."""
        return self._last_service[kind]

    def _check_invariants(self) -> None:
        assert self.total_distance >= 0, self.total_distance
        for kind, value in self._last_service.items():
            assert value >= 0, (kind, value)

    # -------------------------------------------------------------------------
    # Trip-driven mutations
    # -------------------------------------------------------------------------

    def total_after_adding(self, distance: float) -> float:
        """total_distance once a trip of this distance is added."""
        return self.total_distance + distance

    def total_after_removing(self, distance: float) -> float:
        """total_distance once a trip of this distance is removed, floored at 0."""
        return max(0.0, self.total_distance - distance)

    def apply_trip_added(self, trip: Trip) -> None:
        self.trips.append(trip)
        self.total_distance = self.total_after_adding(trip.distance)
        self._check_invariants()

    def apply_trip_removed(self, trip_id: str) -> Trip:
        """Drop a trip from the ledger and decrement the total."""
        trip = self.trips.remove(trip_id)
        self.total_distance = self.total_after_removing(trip.distance)
        self._check_invariants()
        return trip

    # -------------------------------------------------------------------------
    # Service-driven mutations
    # -------------------------------------------------------------------------

    def apply_service(self, kind: ServiceKind) -> float:
        """
        Reset a service counter to the current total distance.

        Returns the reading the counter was set to, which is also the
        mileage recorded in the maintenance log.
        """
        reading = self.total_distance
        self._last_service[kind] = reading
        self._check_invariants()
        return reading

    def apply_log_entry(self, entry: MaintenanceLogEntry) -> None:
        self.history.append(entry)

    def rederive(self) -> bool:
        """
        Recompute total_distance from the trip ledger.

        Returns True if the running total disagreed with the ledger.
        """
        ledger_total = self.trips.total()
        drifted = not math.isclose(ledger_total, self.total_distance, abs_tol=1e-9)
        self.total_distance = ledger_total
        self._check_invariants()
        return drifted

    # -------------------------------------------------------------------------
    # Due status
    # -------------------------------------------------------------------------

    def is_due(self, kind: ServiceKind) -> bool:
        return is_due(
            kind, self.vehicle_class, self.total_distance, self._last_service[kind]
        )

    @property
    def is_oil_due(self) -> bool:
        return self.is_due(ServiceKind.OIL)

    @property
    def is_maintenance_due(self) -> bool:
        return self.is_due(ServiceKind.MAINTENANCE)

    def calculate_service_due(self, kind: ServiceKind) -> ServiceDue:
        """Calculate due information for one service kind."""
        last = self._last_service[kind]
        return ServiceDue(
            kind=kind,
            is_due=self.is_due(kind),
            threshold=threshold(kind, self.vehicle_class),
            last_service_distance=last,
            distance_since_service=distance_since(self.total_distance, last),
            distance_remaining=distance_remaining(
                kind, self.vehicle_class, self.total_distance, last
            ),
        )

    def service_status(self) -> List[ServiceDue]:
        """Due information for every service kind."""
        return [self.calculate_service_due(kind) for kind in ServiceKind]
