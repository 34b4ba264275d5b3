"""VehicleCache - the coordinator's view of an owner's vehicles."""

from typing import Dict, Iterable, List, Optional, Set, Tuple

from .trip import Trip
from .vehicle import Vehicle


class VehicleCache:
    """
    Vehicles of one owner, keyed by id, in load order.

    A vehicle is marked stale when a compound write left its cached
    aggregate out of step with the store; stale vehicles are reloaded
    before they are read again.
    """

    def __init__(self):
        self._vehicles: Dict[str, Vehicle] = {}
        self._stale: Set[str] = set()
        self.loaded = False

    def __len__(self) -> int:
        return len(self._vehicles)

    def __contains__(self, vehicle_id: str) -> bool:
        return vehicle_id in self._vehicles

    def replace_all(self, vehicles: Iterable[Vehicle]) -> None:
        """Rebuild the cache from a full reload."""
        self._vehicles = {v.id: v for v in vehicles}
        self._stale.clear()
        self.loaded = True

    def clear(self) -> None:
        self._vehicles = {}
        self._stale.clear()
        self.loaded = False

    def put(self, vehicle: Vehicle) -> None:
        self._vehicles[vehicle.id] = vehicle
        self._stale.discard(vehicle.id)

    def get(self, vehicle_id: str) -> Optional[Vehicle]:
        return self._vehicles.get(vehicle_id)

    def remove(self, vehicle_id: str) -> None:
        self._vehicles.pop(vehicle_id, None)
        self._stale.discard(vehicle_id)

    def all(self) -> List[Vehicle]:
        return list(self._vehicles.values())

    def find_trip(self, trip_id: str) -> Optional[Tuple[Vehicle, Trip]]:
        """Locate a trip and the vehicle that owns it."""
        for vehicle in self._vehicles.values():
            trip = vehicle.trips.find(trip_id)
            if trip is not None:
                return vehicle, trip
        return None

    def mark_stale(self, vehicle_id: str) -> None:
        self._stale.add(vehicle_id)

    def is_stale(self, vehicle_id: str) -> bool:
        return vehicle_id in self._stale

    @property
    def stale_ids(self) -> List[str]:
        return sorted(self._stale)
