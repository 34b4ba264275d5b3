"""
Consistency coordinator.

Runs the compound operations (trip + aggregate, counter + log entry) against
a record store that only writes one entity at a time. When the second write
of a pair fails, the first is kept: the vehicle is marked stale and its
total distance is re-derived from the trip ledger on the next read.
"""

import asyncio
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Union

from .cache import VehicleCache
from .config import Settings
from .decoding import (
    MAINTENANCE_LOGS,
    TRIPS,
    VEHICLES,
    decode_vehicle,
    log_row,
    trip_row,
    vehicle_row,
)
from .errors import (
    UNIQUE_VIOLATION,
    DuplicateError,
    MalformedRowError,
    NotFoundError,
    PartialWriteWarning,
    StoreError,
    ValidationError,
)
from .logging_config import get_logger
from .maintenance_entry import MaintenanceLogEntry
from .service_due import ServiceDue
from .service_kind import ServiceKind
from .store import RecordStore
from .trip import Trip
from .trip_ledger import DEFAULT_TRIP_LABEL, normalize_date, validate_distance
from .vehicle import Vehicle
from .vehicle_class import VehicleClass

logger = get_logger(__name__)


@dataclass
class MutationResult:
    """
    Outcome of a compound operation.

    value is the created or removed record. warning is set when the primary
    write succeeded but a secondary write did not.
    """

    value: Any = None
    warning: Optional[PartialWriteWarning] = None

    @property
    def complete(self) -> bool:
        return self.warning is None


def coerce_vehicle_class(value: Union[VehicleClass, str]) -> VehicleClass:
    if isinstance(value, VehicleClass):
        return value
    for vehicle_class in VehicleClass:
        if str(value).strip().lower() == vehicle_class.value.lower():
            return vehicle_class
    raise ValidationError(f"Unknown vehicle class {value!r}")


def coerce_service_kind(value: Union[ServiceKind, str]) -> ServiceKind:
    if isinstance(value, ServiceKind):
        return value
    for kind in ServiceKind:
        if str(value).strip().lower() == kind.value.lower():
            return kind
    raise ValidationError(f"Unknown service kind {value!r}")


def _clean_plate(plate_number: str) -> str:
    plate = (plate_number or "").strip()
    if not plate:
        raise ValidationError("Plate number is required")
    return plate


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConsistencyCoordinator:
    """Owner-scoped entry point for every vehicle, trip and service operation."""

    def __init__(
        self,
        store: RecordStore,
        owner_id: str,
        cache: Optional[VehicleCache] = None,
        strict_decode: bool = False,
        heal_on_refresh: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self.owner_id = owner_id
        self.cache = cache if cache is not None else VehicleCache()
        self.strict_decode = strict_decode
        self.heal_on_refresh = heal_on_refresh
        self._clock = clock
        # In-flight reloads; None is the whole-owner reload.
        self._reloads: Dict[Optional[str], "asyncio.Future[Any]"] = {}
        # Writes started and still running, per vehicle; None counts
        # vehicle inserts, whose id is not known up front.
        self._write_generation: Counter = Counter()
        self._writes_in_flight: Counter = Counter()

    @classmethod
    def from_settings(
        cls, store: RecordStore, settings: Settings
    ) -> "ConsistencyCoordinator":
        return cls(
            store,
            settings.owner_id,
            strict_decode=settings.strict_decode,
            heal_on_refresh=settings.heal_on_refresh,
        )

    # =========================================================================
    # Reload and re-derive
    # =========================================================================

    @contextmanager
    def _writing(self, vehicle_id: Optional[str]) -> Iterator[None]:
        """Track a write so that a reload overlapping it is not trusted."""
        self._write_generation[vehicle_id] += 1
        self._writes_in_flight[vehicle_id] += 1
        try:
            yield
        finally:
            self._writes_in_flight[vehicle_id] -= 1
            if self._writes_in_flight[vehicle_id] <= 0:
                del self._writes_in_flight[vehicle_id]

    def _overlapping_writes(
        self, generation: Dict[Optional[str], int]
    ) -> List[Optional[str]]:
        """Keys written to since generation was taken, or still being written."""
        return [
            key
            for key, count in self._write_generation.items()
            if key in self._writes_in_flight or generation.get(key) != count
        ]

    async def _single_flight(
        self, key: Optional[str], factory: Callable[[], Awaitable[Any]]
    ) -> Any:
        """Run a reload, or join the one already running for the same key."""
        task = self._reloads.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._reloads[key] = task

            def _forget(done: "asyncio.Future[Any]") -> None:
                if self._reloads.get(key) is done:
                    del self._reloads[key]

            task.add_done_callback(_forget)
        else:
            logger.debug(f"joining reload in flight for {key or 'all vehicles'}")
        return await asyncio.shield(task)

    async def _decode_and_heal(self, row: Dict[str, Any]) -> Optional[Vehicle]:
        """Decode a vehicle row and re-derive its total from the trip ledger."""
        try:
            vehicle = decode_vehicle(row, strict=self.strict_decode)
        except MalformedRowError:
            if self.strict_decode:
                raise
            logger.error(f"Skipping malformed vehicle row {row.get('id')!r}")
            return None

        stored_total = vehicle.total_distance
        if vehicle.rederive():
            logger.warning(
                f"Vehicle {vehicle.id}: stored total {stored_total} disagrees with "
                f"trip ledger {vehicle.total_distance}, using ledger"
            )
            if self.heal_on_refresh:
                await self._write_back_total(vehicle)
        return vehicle

    async def _write_back_total(self, vehicle: Vehicle) -> None:
        try:
            await self._store.update(
                VEHICLES, vehicle.id, {"total_distance": vehicle.total_distance}
            )
        except (StoreError, NotFoundError) as e:
            logger.warning(f"Vehicle {vehicle.id}: could not store healed total: {e}")

    async def _reload_all(self) -> List[Vehicle]:
        logger.debug(f"reloading vehicles for owner {self.owner_id}")
        generation = dict(self._write_generation)
        rows = await self._store.query_by_owner(
            VEHICLES, self.owner_id, with_relations=True
        )
        vehicles = []
        for row in rows:
            vehicle = await self._decode_and_heal(row)
            if vehicle is not None:
                vehicles.append(vehicle)
        self.cache.replace_all(vehicles)

        for key in self._overlapping_writes(generation):
            if key is None:
                logger.debug("vehicle added during reload, cache needs another reload")
                self.cache.loaded = False
            else:
                logger.debug(f"vehicle {key} written during reload, marking stale")
                self.cache.mark_stale(key)
        logger.debug(f"loaded {len(vehicles)} vehicles")
        return vehicles

    async def _reload_vehicle(self, vehicle_id: str) -> Optional[Vehicle]:
        logger.debug(f"reloading vehicle {vehicle_id}")
        generation = dict(self._write_generation)
        rows = await self._store.query_by_owner(
            VEHICLES, self.owner_id, with_relations=True
        )
        row = next((r for r in rows if str(r.get("id")) == vehicle_id), None)
        vehicle = await self._decode_and_heal(row) if row is not None else None
        if vehicle is None:
            self.cache.remove(vehicle_id)
        else:
            self.cache.put(vehicle)
        if vehicle_id in self._overlapping_writes(generation):
            self.cache.mark_stale(vehicle_id)
        return vehicle

    async def refresh(self) -> List[Vehicle]:
        """Reload every vehicle and re-derive its total from its trips."""
        return await self._single_flight(None, self._reload_all)

    async def _ensure_fresh(self, vehicle_id: Optional[str] = None) -> None:
        if None in self._reloads or not self.cache.loaded:
            await self.refresh()
            return
        ids = [vehicle_id] if vehicle_id is not None else self.cache.stale_ids
        for vid in ids:
            if self.cache.is_stale(vid):
                await self._single_flight(vid, lambda vid=vid: self._reload_vehicle(vid))

    # =========================================================================
    # Reads
    # =========================================================================

    async def vehicles(self) -> List[Vehicle]:
        """All vehicles of the owner."""
        await self._ensure_fresh()
        return self.cache.all()

    async def get_vehicle(self, vehicle_id: str) -> Vehicle:
        await self._ensure_fresh(vehicle_id)
        vehicle = self.cache.get(vehicle_id)
        if vehicle is None:
            raise NotFoundError(f"Vehicle '{vehicle_id}' not found")
        return vehicle

    async def is_oil_due(self, vehicle_id: str) -> bool:
        return (await self.get_vehicle(vehicle_id)).is_oil_due

    async def is_maintenance_due(self, vehicle_id: str) -> bool:
        return (await self.get_vehicle(vehicle_id)).is_maintenance_due

    async def service_status(self, vehicle_id: str) -> List[ServiceDue]:
        return (await self.get_vehicle(vehicle_id)).service_status()

    # =========================================================================
    # Vehicles
    # =========================================================================

    async def add_vehicle(
        self, vehicle_class: Union[VehicleClass, str], plate_number: str
    ) -> Vehicle:
        """Create a vehicle with all counters at zero."""
        vehicle_class = coerce_vehicle_class(vehicle_class)
        plate = _clean_plate(plate_number)
        await self._ensure_fresh()
        with self._writing(None):
            try:
                vehicle_id = await self._store.insert(
                    VEHICLES, vehicle_row(self.owner_id, vehicle_class, plate)
                )
            except StoreError as e:
                if e.code == UNIQUE_VIOLATION:
                    raise DuplicateError(
                        f"Vehicle with plate number '{plate}' already exists"
                    ) from e
                raise

            vehicle = Vehicle(vehicle_id, self.owner_id, vehicle_class, plate)
            self.cache.put(vehicle)
        logger.info(f"Added {vehicle_class.value} {plate} ({vehicle_id})")
        return vehicle

    async def update_vehicle(
        self,
        vehicle_id: str,
        vehicle_class: Union[VehicleClass, str],
        plate_number: str,
    ) -> Vehicle:
        """Change a vehicle's class and plate number."""
        vehicle_class = coerce_vehicle_class(vehicle_class)
        plate = _clean_plate(plate_number)
        vehicle = await self.get_vehicle(vehicle_id)
        with self._writing(vehicle_id):
            try:
                await self._store.update(
                    VEHICLES,
                    vehicle_id,
                    {"type": vehicle_class.value, "plate_number": plate},
                )
            except StoreError as e:
                if e.code == UNIQUE_VIOLATION:
                    raise DuplicateError(
                        f"Vehicle with plate number '{plate}' already exists"
                    ) from e
                raise

            vehicle.vehicle_class = vehicle_class
            vehicle.plate_number = plate
        logger.info(f"Updated vehicle {vehicle_id}: {vehicle_class.value} {plate}")
        return vehicle

    async def delete_vehicle(self, vehicle_id: str) -> None:
        """Delete a vehicle with its trips and maintenance log."""
        await self.get_vehicle(vehicle_id)
        with self._writing(vehicle_id):
            try:
                await self._store.delete(VEHICLES, vehicle_id)
            except NotFoundError:
                # Already gone from the store
                self.cache.remove(vehicle_id)
                raise
            self.cache.remove(vehicle_id)
        logger.info(f"Deleted vehicle {vehicle_id}")

    # =========================================================================
    # Trips
    # =========================================================================

    async def add_trip(
        self,
        vehicle_id: str,
        trip_date: Union[date, str],
        distance: Any,
        label: Optional[str] = None,
    ) -> MutationResult:
        """
        Record a trip and add its distance to the vehicle's total.

        Returns a MutationResult holding the Trip. If the trip was stored but
        the total was not, the result carries a warning and the vehicle's
        total is re-derived on the next read.
        """
        distance = validate_distance(distance)
        trip_date = normalize_date(trip_date)
        label = label.strip() if label and label.strip() else DEFAULT_TRIP_LABEL
        vehicle = await self.get_vehicle(vehicle_id)

        with self._writing(vehicle_id):
            trip_id = await self._store.insert(
                TRIPS, trip_row(vehicle_id, trip_date, distance, label)
            )
            trip = Trip(trip_id, vehicle_id, trip_date, distance, label)

            new_total = vehicle.total_after_adding(distance)
            try:
                await self._store.update(
                    VEHICLES, vehicle_id, {"total_distance": new_total}
                )
            except (StoreError, NotFoundError) as e:
                return self._partial(
                    vehicle_id,
                    trip,
                    f"Trip saved but total distance was not updated: {e}",
                    e,
                )

            vehicle.apply_trip_added(trip)
        logger.info(
            f"Vehicle {vehicle_id}: trip {trip_id} +{distance}, "
            f"total {vehicle.total_distance}"
        )
        return MutationResult(trip)

    async def delete_trip(self, trip_id: str) -> MutationResult:
        """
        Delete a trip and subtract its distance from the vehicle's total,
        flooring the total at zero.
        """
        await self._ensure_fresh()
        found = self.cache.find_trip(trip_id)
        if found is None:
            raise NotFoundError(f"Trip '{trip_id}' not found")
        vehicle, trip = found

        with self._writing(vehicle.id):
            try:
                await self._store.delete(TRIPS, trip_id)
            except NotFoundError:
                self.cache.mark_stale(vehicle.id)
                raise

            new_total = vehicle.total_after_removing(trip.distance)
            try:
                await self._store.update(
                    VEHICLES, vehicle.id, {"total_distance": new_total}
                )
            except (StoreError, NotFoundError) as e:
                return self._partial(
                    vehicle.id,
                    trip,
                    f"Trip deleted but total distance was not updated: {e}",
                    e,
                )

            vehicle.apply_trip_removed(trip_id)
        logger.info(
            f"Vehicle {vehicle.id}: trip {trip_id} -{trip.distance}, "
            f"total {vehicle.total_distance}"
        )
        return MutationResult(trip)

    # =========================================================================
    # Service
    # =========================================================================

    async def _append_log(
        self,
        vehicle: Vehicle,
        kind: ServiceKind,
        reading: float,
        notes: Optional[str],
    ) -> MaintenanceLogEntry:
        timestamp = self._clock().isoformat()
        entry_id = await self._store.insert(
            MAINTENANCE_LOGS, log_row(vehicle.id, kind, timestamp, reading, notes)
        )
        entry = MaintenanceLogEntry(entry_id, vehicle.id, kind, timestamp, reading, notes)
        vehicle.apply_log_entry(entry)
        return entry

    async def record_service(
        self,
        vehicle_id: str,
        kind: Union[ServiceKind, str],
        current_total_distance: float,
        notes: Optional[str] = None,
    ) -> MaintenanceLogEntry:
        """Append a maintenance log entry with the given reading, verbatim."""
        kind = coerce_service_kind(kind)
        try:
            reading = float(current_total_distance)
        except (TypeError, ValueError):
            raise ValidationError(
                f"Reading must be a number, got {current_total_distance!r}"
            ) from None
        vehicle = await self.get_vehicle(vehicle_id)
        with self._writing(vehicle_id):
            entry = await self._append_log(vehicle, kind, reading, notes)
        logger.info(
            f"Vehicle {vehicle_id}: logged {kind.value} service at "
            f"{entry.mileage_at_service}"
        )
        return entry

    async def perform_service(
        self,
        vehicle_id: str,
        kind: Union[ServiceKind, str],
        notes: Optional[str] = None,
    ) -> MutationResult:
        """
        Reset a service counter to the current total distance and log it.

        The counter is written first; due status depends on it alone. If the
        log entry then fails, the reset stands and the result carries a
        warning with no entry.
        """
        kind = coerce_service_kind(kind)
        vehicle = await self.get_vehicle(vehicle_id)
        reading = vehicle.total_distance

        with self._writing(vehicle_id):
            await self._store.update(VEHICLES, vehicle_id, {kind.counter_field: reading})
            vehicle.apply_service(kind)

            try:
                entry = await self._append_log(vehicle, kind, reading, notes)
            except (StoreError, NotFoundError) as e:
                warning = PartialWriteWarning(
                    f"{kind.value} service recorded but the log entry was not saved: {e}",
                    e,
                )
                logger.warning(f"Vehicle {vehicle_id}: {warning}")
                return MutationResult(None, warning)

        logger.info(f"Vehicle {vehicle_id}: {kind.value} service at {reading}")
        return MutationResult(entry)

    def _partial(
        self, vehicle_id: str, value: Any, message: str, cause: Exception
    ) -> MutationResult:
        self.cache.mark_stale(vehicle_id)
        warning = PartialWriteWarning(message, cause)
        logger.warning(f"Vehicle {vehicle_id}: {message}")
        return MutationResult(value, warning)
