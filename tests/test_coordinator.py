#!/usr/bin/env python3
"""
Tests for ConsistencyCoordinator.

Includes integration tests for the compound operations:
1. Trip + total - a failed total update marks the vehicle stale, the next
   read re-derives the total from the trip ledger
2. Counter + log entry - a failed log entry keeps the counter reset and
   returns a warning
3. Plate uniqueness - duplicate plates raise DuplicateError
4. Reloads - concurrent refreshes share one store query
"""

import asyncio
import random
from datetime import datetime, timezone

import pytest

from mileage import (
    ConsistencyCoordinator,
    DuplicateError,
    MalformedRowError,
    MemoryStore,
    NotFoundError,
    PartialWriteWarning,
    ServiceKind,
    Settings,
    StoreError,
    ValidationError,
    VehicleClass,
)


class FlakyStore(MemoryStore):
    """MemoryStore that fails chosen (operation, collection) pairs."""

    def __init__(self, tables=None):
        super().__init__(tables)
        self.fail_on = set()
        self.queries = 0

    def _maybe_fail(self, operation, collection):
        if (operation, collection) in self.fail_on:
            raise StoreError(f"{operation} {collection}: connection reset")

    async def insert(self, collection, record):
        self._maybe_fail("insert", collection)
        return await super().insert(collection, record)

    async def update(self, collection, id, patch):
        self._maybe_fail("update", collection)
        await super().update(collection, id, patch)

    async def delete(self, collection, id):
        self._maybe_fail("delete", collection)
        await super().delete(collection, id)

    async def query_by_owner(self, collection, owner_id, with_relations=False):
        self.queries += 1
        await asyncio.sleep(0)
        return await super().query_by_owner(collection, owner_id, with_relations)


class SlowStore(MemoryStore):
    """MemoryStore whose writes and queries yield to the event loop."""

    def __init__(self, write_delay=0.01, query_delay=0.0):
        super().__init__()
        self.write_delay = write_delay
        self.query_delay = query_delay

    async def insert(self, collection, record):
        await asyncio.sleep(self.write_delay)
        return await super().insert(collection, record)

    async def update(self, collection, id, patch):
        await asyncio.sleep(self.write_delay)
        await super().update(collection, id, patch)

    async def query_by_owner(self, collection, owner_id, with_relations=False):
        rows = await super().query_by_owner(collection, owner_id, with_relations)
        await asyncio.sleep(self.query_delay)
        return rows


def fixed_clock():
    return datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def coordinator(store):
    return ConsistencyCoordinator(store, "owner-1", clock=fixed_clock)


async def stored_vehicle(store, vehicle_id):
    rows = await MemoryStore.query_by_owner(store, "vehicles", "owner-1")
    return next(r for r in rows if r["id"] == vehicle_id)


# =============================================================================
# Vehicles
# =============================================================================


class TestVehicles:
    """Tests for vehicle create/update/delete."""

    @pytest.mark.asyncio
    async def test_add_vehicle(self, coordinator, store):
        vehicle = await coordinator.add_vehicle("Car", "  ABC-123 ")
        assert vehicle.vehicle_class == VehicleClass.CAR
        assert vehicle.plate_number == "ABC-123"
        assert vehicle.total_distance == 0
        row = await stored_vehicle(store, vehicle.id)
        assert row["total_distance"] == 0
        assert row["last_oil_service_km"] == 0

    @pytest.mark.asyncio
    async def test_duplicate_plate(self, coordinator, store):
        await coordinator.add_vehicle(VehicleClass.CAR, "ABC-123")
        with pytest.raises(DuplicateError):
            await coordinator.add_vehicle(VehicleClass.MOTORCYCLE, "ABC-123")
        assert len(await coordinator.vehicles()) == 1
        assert len(await store.query_by_owner("vehicles", "owner-1")) == 1

    @pytest.mark.asyncio
    async def test_same_plate_other_owner(self, coordinator, store):
        await coordinator.add_vehicle("Car", "ABC-123")
        other = ConsistencyCoordinator(store, "owner-2")
        vehicle = await other.add_vehicle("Car", "ABC-123")
        assert vehicle.owner_id == "owner-2"

    @pytest.mark.asyncio
    async def test_other_store_failure_is_not_duplicate(self, coordinator, store):
        store.fail_on.add(("insert", "vehicles"))
        with pytest.raises(StoreError):
            await coordinator.add_vehicle("Car", "ABC-123")

    @pytest.mark.asyncio
    async def test_invalid_input(self, coordinator):
        with pytest.raises(ValidationError):
            await coordinator.add_vehicle("Truck", "ABC-123")
        with pytest.raises(ValidationError):
            await coordinator.add_vehicle("Car", "   ")

    @pytest.mark.asyncio
    async def test_update_vehicle(self, coordinator, store):
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        await coordinator.update_vehicle(vehicle.id, "motorcycle", "MOTO-1")
        reloaded = await coordinator.get_vehicle(vehicle.id)
        assert reloaded.vehicle_class == VehicleClass.MOTORCYCLE
        assert reloaded.plate_number == "MOTO-1"
        assert (await stored_vehicle(store, vehicle.id))["type"] == "Motorcycle"

    @pytest.mark.asyncio
    async def test_update_to_duplicate_plate(self, coordinator):
        await coordinator.add_vehicle("Car", "ABC-123")
        second = await coordinator.add_vehicle("Car", "XYZ-9")
        with pytest.raises(DuplicateError):
            await coordinator.update_vehicle(second.id, "Car", "ABC-123")
        assert (await coordinator.get_vehicle(second.id)).plate_number == "XYZ-9"

    @pytest.mark.asyncio
    async def test_delete_vehicle_cascades(self, coordinator, store):
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        await coordinator.add_trip(vehicle.id, "2025-01-10", 100)
        await coordinator.perform_service(vehicle.id, "Oil")

        await coordinator.delete_vehicle(vehicle.id)

        with pytest.raises(NotFoundError):
            await coordinator.get_vehicle(vehicle.id)
        assert await store.query_by_owner("trips", "owner-1") == []
        assert store._dump_tables()["maintenance_logs"] == []

    @pytest.mark.asyncio
    async def test_other_owners_vehicle_is_not_found(self, coordinator, store):
        other = ConsistencyCoordinator(store, "owner-2")
        theirs = await other.add_vehicle("Car", "ABC-123")
        with pytest.raises(NotFoundError):
            await coordinator.add_trip(theirs.id, "2025-01-10", 10)
        with pytest.raises(NotFoundError):
            await coordinator.delete_vehicle(theirs.id)

    @pytest.mark.asyncio
    async def test_delete_vehicle_already_gone(self, coordinator, store):
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        await MemoryStore.delete(store, "vehicles", vehicle.id)

        with pytest.raises(NotFoundError):
            await coordinator.delete_vehicle(vehicle.id)

        assert vehicle.id not in coordinator.cache
        assert await coordinator.vehicles() == []


# =============================================================================
# Trips
# =============================================================================


class TestTrips:
    """Tests for add_trip and delete_trip."""

    @pytest.mark.asyncio
    async def test_add_trip(self, coordinator, store):
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        result = await coordinator.add_trip(vehicle.id, "2025-01-10", "120.5", "Commute")

        assert result.complete
        trip = result.value
        assert trip.distance == 120.5
        assert trip.label == "Commute"
        assert (await coordinator.get_vehicle(vehicle.id)).total_distance == 120.5
        assert (await stored_vehicle(store, vehicle.id))["total_distance"] == 120.5

    @pytest.mark.asyncio
    async def test_default_label(self, coordinator):
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        result = await coordinator.add_trip(vehicle.id, "2025-01-10", 5)
        assert result.value.label == "Daily Commute"

    @pytest.mark.asyncio
    async def test_invalid_distance_touches_nothing(self, coordinator, store):
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        for bad in ("abc", -5, float("nan")):
            with pytest.raises(ValidationError):
                await coordinator.add_trip(vehicle.id, "2025-01-10", bad)
        assert await store.query_by_owner("trips", "owner-1") == []

    @pytest.mark.asyncio
    async def test_unknown_vehicle(self, coordinator):
        with pytest.raises(NotFoundError):
            await coordinator.add_trip("missing", "2025-01-10", 10)

    @pytest.mark.asyncio
    async def test_delete_trip(self, coordinator, store):
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        first = (await coordinator.add_trip(vehicle.id, "2025-01-10", 100)).value
        await coordinator.add_trip(vehicle.id, "2025-01-11", 40)

        result = await coordinator.delete_trip(first.id)

        assert result.complete
        assert result.value.id == first.id
        reloaded = await coordinator.get_vehicle(vehicle.id)
        assert reloaded.total_distance == 40
        assert [t.distance for t in reloaded.trips] == [40]

    @pytest.mark.asyncio
    async def test_delete_unknown_trip(self, coordinator):
        await coordinator.add_vehicle("Car", "ABC-123")
        with pytest.raises(NotFoundError):
            await coordinator.delete_trip("missing")

    @pytest.mark.asyncio
    async def test_delete_trip_clamps_total_at_zero(self, coordinator, store):
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        trip = (await coordinator.add_trip(vehicle.id, "2025-01-10", 300)).value
        cached = await coordinator.get_vehicle(vehicle.id)
        cached.total_distance = 200  # running total already below the trip

        await coordinator.delete_trip(trip.id)

        assert cached.total_distance == 0
        assert (await stored_vehicle(store, vehicle.id))["total_distance"] == 0

    @pytest.mark.asyncio
    async def test_trip_already_gone_from_store(self, coordinator, store):
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        trip = (await coordinator.add_trip(vehicle.id, "2025-01-10", 300)).value
        await MemoryStore.delete(store, "trips", trip.id)

        with pytest.raises(NotFoundError):
            await coordinator.delete_trip(trip.id)
        assert coordinator.cache.is_stale(vehicle.id)

    @pytest.mark.asyncio
    async def test_total_matches_ledger_after_any_sequence(self, coordinator):
        vehicle = await coordinator.add_vehicle("Motorcycle", "MOTO-1")
        rng = random.Random(7)
        trip_ids = []
        for _ in range(40):
            if trip_ids and rng.random() < 0.4:
                trip_id = trip_ids.pop(rng.randrange(len(trip_ids)))
                await coordinator.delete_trip(trip_id)
            else:
                distance = round(rng.uniform(0, 400), 1)
                result = await coordinator.add_trip(vehicle.id, "2025-01-10", distance)
                trip_ids.append(result.value.id)

        await coordinator.refresh()
        reloaded = await coordinator.get_vehicle(vehicle.id)
        assert reloaded.total_distance == pytest.approx(
            sum(t.distance for t in reloaded.trips)
        )
        assert reloaded.total_distance >= 0
        assert len(reloaded.trips) == len(trip_ids)


class TestTripPartialFailures:
    """Tests for trip writes where the total update fails."""

    @pytest.mark.asyncio
    async def test_trip_insert_failure_changes_nothing(self, coordinator, store):
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        store.fail_on.add(("insert", "trips"))
        with pytest.raises(StoreError):
            await coordinator.add_trip(vehicle.id, "2025-01-10", 300)
        assert (await coordinator.get_vehicle(vehicle.id)).total_distance == 0

    @pytest.mark.asyncio
    async def test_add_trip_total_failure_heals_on_next_read(self, coordinator, store):
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        store.fail_on.add(("update", "vehicles"))

        result = await coordinator.add_trip(vehicle.id, "2025-01-10", 300)

        assert not result.complete
        assert isinstance(result.warning, PartialWriteWarning)
        assert result.value.distance == 300
        assert coordinator.cache.is_stale(vehicle.id)

        store.fail_on.clear()
        reloaded = await coordinator.get_vehicle(vehicle.id)
        assert reloaded.total_distance == 300
        assert not coordinator.cache.is_stale(vehicle.id)
        assert (await stored_vehicle(store, vehicle.id))["total_distance"] == 300

    @pytest.mark.asyncio
    async def test_heal_write_back_failure_is_not_raised(self, coordinator, store):
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        store.fail_on.add(("update", "vehicles"))
        await coordinator.add_trip(vehicle.id, "2025-01-10", 300)

        reloaded = await coordinator.get_vehicle(vehicle.id)

        assert reloaded.total_distance == 300
        assert (await stored_vehicle(store, vehicle.id))["total_distance"] == 0

    @pytest.mark.asyncio
    async def test_delete_trip_total_failure_heals_on_refresh(self, coordinator, store):
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        keep = (await coordinator.add_trip(vehicle.id, "2025-01-10", 100)).value
        drop = (await coordinator.add_trip(vehicle.id, "2025-01-11", 250)).value
        store.fail_on.add(("update", "vehicles"))

        result = await coordinator.delete_trip(drop.id)

        assert result.warning is not None
        store.fail_on.clear()
        await coordinator.refresh()
        reloaded = await coordinator.get_vehicle(vehicle.id)
        assert reloaded.total_distance == keep.distance

    @pytest.mark.asyncio
    async def test_heal_disabled_keeps_store_untouched(self, store):
        coordinator = ConsistencyCoordinator(store, "owner-1", heal_on_refresh=False)
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        store.fail_on.add(("update", "vehicles"))
        await coordinator.add_trip(vehicle.id, "2025-01-10", 300)
        store.fail_on.clear()

        assert (await coordinator.get_vehicle(vehicle.id)).total_distance == 300
        assert (await stored_vehicle(store, vehicle.id))["total_distance"] == 0


# =============================================================================
# Service
# =============================================================================


class TestService:
    """Tests for perform_service and record_service."""

    @pytest.mark.asyncio
    async def test_new_car_scenario(self, coordinator, store):
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        await coordinator.add_trip(vehicle.id, "2025-01-10", 5200)

        assert (await coordinator.get_vehicle(vehicle.id)).total_distance == 5200
        assert await coordinator.is_oil_due(vehicle.id) is True
        assert await coordinator.is_maintenance_due(vehicle.id) is True

        result = await coordinator.perform_service(vehicle.id, ServiceKind.OIL)

        assert result.complete
        reloaded = await coordinator.get_vehicle(vehicle.id)
        assert reloaded.last_oil_service_distance == 5200
        assert await coordinator.is_oil_due(vehicle.id) is False
        assert await coordinator.is_maintenance_due(vehicle.id) is True
        assert (await stored_vehicle(store, vehicle.id))["last_oil_service_km"] == 5200

    @pytest.mark.asyncio
    async def test_log_entry_captures_reading(self, coordinator):
        vehicle = await coordinator.add_vehicle("Motorcycle", "MOTO-1")
        await coordinator.add_trip(vehicle.id, "2025-01-10", 1100)

        result = await coordinator.perform_service(vehicle.id, "maintenance", "chain")

        entry = result.value
        assert entry.kind == ServiceKind.MAINTENANCE
        assert entry.mileage_at_service == 1100
        assert entry.timestamp == "2025-01-15T09:30:00+00:00"
        assert entry.notes == "chain"

        # Later trips do not change the recorded reading
        await coordinator.add_trip(vehicle.id, "2025-01-12", 50)
        await coordinator.refresh()
        reloaded = await coordinator.get_vehicle(vehicle.id)
        assert reloaded.history.entries[0].mileage_at_service == 1100

    @pytest.mark.asyncio
    async def test_oil_service_is_not_due_regardless_of_prior_state(self, coordinator):
        vehicle = await coordinator.add_vehicle("Motorcycle", "MOTO-1")
        for distance in (0, 499, 1, 10000):
            await coordinator.add_trip(vehicle.id, "2025-01-10", distance)
            maintenance_before = await coordinator.is_maintenance_due(vehicle.id)
            await coordinator.perform_service(vehicle.id, "Oil")
            assert await coordinator.is_oil_due(vehicle.id) is False
            assert await coordinator.is_maintenance_due(vehicle.id) is maintenance_before

    @pytest.mark.asyncio
    async def test_log_failure_keeps_counter_reset(self, coordinator, store):
        vehicle = await coordinator.add_vehicle("Motorcycle", "MOTO-1")
        await coordinator.add_trip(vehicle.id, "2025-01-10", 600)
        store.fail_on.add(("insert", "maintenance_logs"))

        result = await coordinator.perform_service(vehicle.id, "Oil")

        assert result.value is None
        assert isinstance(result.warning, PartialWriteWarning)
        assert await coordinator.is_oil_due(vehicle.id) is False
        assert len((await coordinator.get_vehicle(vehicle.id)).history) == 0

        store.fail_on.clear()
        await coordinator.refresh()
        assert await coordinator.is_oil_due(vehicle.id) is False

    @pytest.mark.asyncio
    async def test_counter_failure_changes_nothing(self, coordinator, store):
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        await coordinator.add_trip(vehicle.id, "2025-01-10", 6000)
        store.fail_on.add(("update", "vehicles"))

        with pytest.raises(StoreError):
            await coordinator.perform_service(vehicle.id, "Oil")

        reloaded = await coordinator.get_vehicle(vehicle.id)
        assert reloaded.last_oil_service_distance == 0
        assert await coordinator.is_oil_due(vehicle.id) is True
        assert store._dump_tables()["maintenance_logs"] == []

    @pytest.mark.asyncio
    async def test_unknown_vehicle_or_kind(self, coordinator):
        with pytest.raises(NotFoundError):
            await coordinator.perform_service("missing", "Oil")
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        with pytest.raises(ValidationError):
            await coordinator.perform_service(vehicle.id, "Tyres")

    @pytest.mark.asyncio
    async def test_record_service_stores_reading_verbatim(self, coordinator):
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        await coordinator.add_trip(vehicle.id, "2025-01-10", 6000)

        entry = await coordinator.record_service(vehicle.id, "Oil", 1234.5)

        assert entry.mileage_at_service == 1234.5
        reloaded = await coordinator.get_vehicle(vehicle.id)
        assert reloaded.last_oil_service_distance == 0
        assert reloaded.history.last(ServiceKind.OIL) == entry

    @pytest.mark.asyncio
    async def test_record_service_unknown_vehicle(self, coordinator):
        with pytest.raises(NotFoundError):
            await coordinator.record_service("missing", "Oil", 10)


# =============================================================================
# Reloads
# =============================================================================


class TestRefresh:
    """Tests for refresh and reload behaviour."""

    @pytest.mark.asyncio
    async def test_refresh_rederives_totals(self):
        store = FlakyStore(
            {
                "vehicles": [
                    {
                        "id": "v1",
                        "user_id": "owner-1",
                        "type": "Car",
                        "plate_number": "ABC-123",
                        "total_distance": "9999",
                    }
                ],
                "trips": [
                    {"id": "t1", "vehicle_id": "v1", "date": "2025-01-10", "distance": "70.5"},
                    {"id": "t2", "vehicle_id": "v1", "date": "2025-01-11", "distance": 29.5},
                ],
            }
        )
        coordinator = ConsistencyCoordinator(store, "owner-1")

        vehicles = await coordinator.refresh()

        assert vehicles[0].total_distance == 100
        assert (await stored_vehicle(store, "v1"))["total_distance"] == 100

    @pytest.mark.asyncio
    async def test_rounding_is_not_drift(self):
        store = FlakyStore(
            {
                "vehicles": [
                    {
                        "id": "v1",
                        "user_id": "owner-1",
                        "type": "Car",
                        "plate_number": "ABC-123",
                        "total_distance": "0.3",
                    }
                ],
                "trips": [
                    {"id": "t1", "vehicle_id": "v1", "date": "2025-01-10", "distance": "0.1"},
                    {"id": "t2", "vehicle_id": "v1", "date": "2025-01-11", "distance": "0.2"},
                ],
            }
        )
        coordinator = ConsistencyCoordinator(store, "owner-1")

        await coordinator.refresh()

        assert (await stored_vehicle(store, "v1"))["total_distance"] == "0.3"

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_share_one_reload(self, coordinator, store):
        await coordinator.add_vehicle("Car", "ABC-123")
        store.queries = 0

        results = await asyncio.gather(
            coordinator.refresh(), coordinator.refresh(), coordinator.refresh()
        )

        assert store.queries == 1
        assert results[0] is results[1] is results[2]

        await coordinator.refresh()
        assert store.queries == 2

    @pytest.mark.asyncio
    async def test_different_vehicles_in_parallel(self, coordinator):
        car = await coordinator.add_vehicle("Car", "ABC-123")
        bike = await coordinator.add_vehicle("Motorcycle", "MOTO-1")

        await asyncio.gather(
            coordinator.add_trip(car.id, "2025-01-10", 100),
            coordinator.add_trip(bike.id, "2025-01-10", 600),
        )

        assert (await coordinator.get_vehicle(car.id)).total_distance == 100
        assert await coordinator.is_oil_due(bike.id) is True
        assert await coordinator.is_oil_due(car.id) is False

    @pytest.mark.asyncio
    async def test_malformed_row_skipped_when_lenient(self):
        store = FlakyStore(
            {
                "vehicles": [
                    {"id": "v1", "user_id": "owner-1", "type": "Truck", "plate_number": "T"},
                    {"id": "v2", "user_id": "owner-1", "type": "Car", "plate_number": "C"},
                ]
            }
        )
        coordinator = ConsistencyCoordinator(store, "owner-1")
        vehicles = await coordinator.refresh()
        assert [v.id for v in vehicles] == ["v2"]

    @pytest.mark.asyncio
    async def test_malformed_row_raises_when_strict(self):
        store = FlakyStore(
            {
                "vehicles": [
                    {
                        "id": "v1",
                        "user_id": "owner-1",
                        "type": "Car",
                        "plate_number": "C",
                        "total_distance": "lots",
                    },
                ]
            }
        )
        coordinator = ConsistencyCoordinator(store, "owner-1", strict_decode=True)
        with pytest.raises(MalformedRowError):
            await coordinator.refresh()

    @pytest.mark.asyncio
    async def test_from_settings(self, store):
        settings = Settings(owner_id="owner-9", strict_decode=True, heal_on_refresh=False)
        coordinator = ConsistencyCoordinator.from_settings(store, settings)
        assert coordinator.owner_id == "owner-9"
        assert coordinator.strict_decode is True
        assert coordinator.heal_on_refresh is False
        assert await coordinator.vehicles() == []


class TestReloadOverlappingWrites:
    """Tests for reloads that run while a write is in progress."""

    @pytest.mark.asyncio
    async def test_reload_during_add_trip(self):
        """A reload that reads the store before the trip lands is not trusted."""
        store = SlowStore(write_delay=0.01)
        coordinator = ConsistencyCoordinator(store, "owner-1")
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")

        await asyncio.gather(
            coordinator.add_trip(vehicle.id, "2025-01-10", 300),
            coordinator.refresh(),
        )

        reloaded = await coordinator.get_vehicle(vehicle.id)
        assert reloaded.total_distance == 300
        assert len(reloaded.trips) == 1
        assert await coordinator.is_oil_due(vehicle.id) is False

    @pytest.mark.asyncio
    async def test_add_trip_during_reload(self):
        """A trip added while a reload runs lands on the reloaded vehicle."""
        store = SlowStore(write_delay=0.001, query_delay=0.05)
        coordinator = ConsistencyCoordinator(store, "owner-1")
        vehicle = await coordinator.add_vehicle("Motorcycle", "MOTO-1")

        async def refresh_then_write():
            reload = asyncio.ensure_future(coordinator.refresh())
            await asyncio.sleep(0)
            await coordinator.add_trip(vehicle.id, "2025-01-10", 600)
            await reload

        await refresh_then_write()

        reloaded = await coordinator.get_vehicle(vehicle.id)
        assert reloaded.total_distance == 600
        assert await coordinator.is_oil_due(vehicle.id) is True

    @pytest.mark.asyncio
    async def test_reload_during_add_vehicle(self):
        store = SlowStore(write_delay=0.01)
        coordinator = ConsistencyCoordinator(store, "owner-1")
        await coordinator.refresh()

        added, _ = await asyncio.gather(
            coordinator.add_vehicle("Car", "ABC-123"),
            coordinator.refresh(),
        )

        assert [v.id for v in await coordinator.vehicles()] == [added.id]

    @pytest.mark.asyncio
    async def test_quiet_reload_leaves_nothing_stale(self):
        store = SlowStore(write_delay=0.001)
        coordinator = ConsistencyCoordinator(store, "owner-1")
        vehicle = await coordinator.add_vehicle("Car", "ABC-123")
        await coordinator.add_trip(vehicle.id, "2025-01-10", 10)

        await coordinator.refresh()

        assert coordinator.cache.stale_ids == []
        assert coordinator.cache.loaded
