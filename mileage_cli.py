#!/usr/bin/env python3
"""
CLI for vehicle mileage and maintenance tracking.

Commands:
  vehicles        - List vehicles with due flags
  add-vehicle     - Add a vehicle
  update-vehicle  - Change a vehicle's class and plate number
  delete-vehicle  - Delete a vehicle with its trips and history
  trips           - List a vehicle's trips
  add-trip        - Record a trip
  delete-trip     - Delete a trip
  service         - Perform a service (resets its counter)
  history         - View service history
  status          - Show what service is due
  refresh         - Reload and re-derive totals from trips
  check           - Validate the store file against the schema
"""

import argparse
import asyncio
import sys
from datetime import date
from pathlib import Path
from tabulate import tabulate
from typing import List, Optional

from mileage import (
    ConsistencyCoordinator,
    LedgerError,
    MaintenanceLogEntry,
    ServiceDue,
    Settings,
    Trip,
    Vehicle,
    YamlStore,
)
from mileage.logging_config import configure_logging
from mileage.schema import load_schema, validate_store_file

# =============================================================================
# Formatting helpers
# =============================================================================


def format_distance(distance: Optional[float]) -> str:
    """Format distance for display."""
    return f"{distance:,.0f}" if distance is not None else "-"


def format_due(due: bool) -> str:
    """Format a due flag for display."""
    return "DUE" if due else "ok"


def format_remaining(svc: ServiceDue) -> str:
    """Format remaining distance, negative once overdue."""
    if svc.distance_remaining < 0:
        return f"-{abs(svc.distance_remaining):,.0f}"
    return f"{svc.distance_remaining:,.0f}"


def truncate(text: Optional[str], max_len: int = 30) -> str:
    """Truncate text with ellipsis if too long."""
    if text is None:
        return "-"
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def make_vehicle_table(vehicles: List[Vehicle]) -> List[List[str]]:
    """Convert vehicles to table rows."""
    return [
        [
            v.plate_number,
            v.vehicle_class.value,
            format_distance(v.total_distance),
            format_due(v.is_oil_due),
            format_due(v.is_maintenance_due),
            v.id,
        ]
        for v in vehicles
    ]


def make_trip_table(trips: List[Trip]) -> List[List[str]]:
    """Convert trips to table rows."""
    return [
        [t.date, format_distance(t.distance), truncate(t.label), t.id] for t in trips
    ]


def make_history_table(entries: List[MaintenanceLogEntry]) -> List[List[str]]:
    """Convert maintenance log entries to table rows."""
    return [
        [
            e.timestamp[:10],
            e.kind.value,
            format_distance(e.mileage_at_service),
            truncate(e.notes),
        ]
        for e in entries
    ]


def make_status_table(services: List[ServiceDue]) -> List[List[str]]:
    """Convert service status list to table rows."""
    return [
        [
            svc.kind.value,
            format_distance(svc.last_service_distance),
            format_distance(svc.distance_since_service),
            format_distance(svc.threshold),
            format_remaining(svc),
            format_due(svc.is_due),
        ]
        for svc in services
    ]


def print_result(message: str, result) -> None:
    """Print a success message and any partial-write warning."""
    print(message)
    if result.warning is not None:
        print(f"Warning: {result.warning}")
        print("Run 'refresh' to reconcile.")


# =============================================================================
# Commands
# =============================================================================


async def cmd_vehicles(coordinator: ConsistencyCoordinator, args) -> int:
    """List vehicles with due flags."""
    vehicles = await coordinator.vehicles()
    if not vehicles:
        print("No vehicles found.")
        return 0
    headers = ["Plate", "Type", "Total", "Oil", "Maintenance", "ID"]
    print(tabulate(make_vehicle_table(vehicles), headers=headers, tablefmt="simple"))
    return 0


async def cmd_add_vehicle(coordinator: ConsistencyCoordinator, args) -> int:
    vehicle = await coordinator.add_vehicle(args.type, args.plate)
    print(f"Added {vehicle.vehicle_class.value} {vehicle.plate_number} ({vehicle.id})")
    return 0


async def cmd_update_vehicle(coordinator: ConsistencyCoordinator, args) -> int:
    vehicle = await coordinator.update_vehicle(args.vehicle_id, args.type, args.plate)
    print(f"Updated {vehicle.id}: {vehicle.vehicle_class.value} {vehicle.plate_number}")
    return 0


async def cmd_delete_vehicle(coordinator: ConsistencyCoordinator, args) -> int:
    await coordinator.delete_vehicle(args.vehicle_id)
    print(f"Deleted vehicle {args.vehicle_id} and all its trips.")
    return 0


async def cmd_trips(coordinator: ConsistencyCoordinator, args) -> int:
    """List a vehicle's trips in the order they were recorded."""
    vehicle = await coordinator.get_vehicle(args.vehicle_id)
    print(f"Vehicle: {vehicle.plate_number} ({vehicle.vehicle_class.value})")
    print(f"Total distance: {format_distance(vehicle.total_distance)}")
    print()
    if not len(vehicle.trips):
        print("No trips recorded.")
        return 0
    headers = ["Date", "Distance", "Label", "ID"]
    rows = make_trip_table(vehicle.trips.trips)
    print(tabulate(rows, headers=headers, tablefmt="simple"))
    return 0


async def cmd_add_trip(coordinator: ConsistencyCoordinator, args) -> int:
    trip_date = args.date or date.today().isoformat()
    result = await coordinator.add_trip(
        args.vehicle_id, trip_date, args.distance, args.label
    )
    trip = result.value
    print_result(
        f"Trip saved: {trip.date} {format_distance(trip.distance)} ({trip.id})", result
    )
    return 0


async def cmd_delete_trip(coordinator: ConsistencyCoordinator, args) -> int:
    result = await coordinator.delete_trip(args.trip_id)
    print_result(f"Trip deleted: {format_distance(result.value.distance)}", result)
    return 0


async def cmd_service(coordinator: ConsistencyCoordinator, args) -> int:
    """Perform a service, resetting its counter to the current total."""
    vehicle = await coordinator.get_vehicle(args.vehicle_id)
    print(f"Vehicle: {vehicle.plate_number}")
    print(f"Service: {args.kind}")
    print(f"Reading: {format_distance(vehicle.total_distance)}")
    print()

    if args.dry_run:
        print("(dry run - no changes made)")
        return 0

    result = await coordinator.perform_service(args.vehicle_id, args.kind, args.notes)
    print_result("Service recorded.", result)
    return 0


async def cmd_history(coordinator: ConsistencyCoordinator, args) -> int:
    """View service history, newest first."""
    vehicle = await coordinator.get_vehicle(args.vehicle_id)
    entries = vehicle.history.newest_first()
    if args.kind:
        entries = [e for e in entries if e.kind.value.lower() == args.kind]

    print(f"Vehicle: {vehicle.plate_number}")
    print(f"Total services: {len(vehicle.history)}")
    if args.kind:
        print(f"Showing: {len(entries)} (filtered)")
    print()

    if not entries:
        print("No maintenance records yet.")
        return 0
    headers = ["Date", "Service", "Mileage", "Notes"]
    print(tabulate(make_history_table(entries), headers=headers, tablefmt="simple"))
    return 0


async def cmd_status(coordinator: ConsistencyCoordinator, args) -> int:
    """Show what service is due."""
    vehicle = await coordinator.get_vehicle(args.vehicle_id)
    print(f"Vehicle: {vehicle.plate_number} ({vehicle.vehicle_class.value})")
    print(f"Total distance: {format_distance(vehicle.total_distance)}")
    print()
    headers = ["Service", "Last Done", "Since", "Interval", "Remaining", "Status"]
    print(
        tabulate(
            make_status_table(vehicle.service_status()),
            headers=headers,
            tablefmt="simple",
        )
    )
    return 0


async def cmd_refresh(coordinator: ConsistencyCoordinator, args) -> int:
    vehicles = await coordinator.refresh()
    print(f"Reloaded {len(vehicles)} vehicles.")
    return 0


COMMANDS = {
    "vehicles": cmd_vehicles,
    "add-vehicle": cmd_add_vehicle,
    "update-vehicle": cmd_update_vehicle,
    "delete-vehicle": cmd_delete_vehicle,
    "trips": cmd_trips,
    "add-trip": cmd_add_trip,
    "delete-trip": cmd_delete_trip,
    "service": cmd_service,
    "history": cmd_history,
    "status": cmd_status,
    "refresh": cmd_refresh,
}


def cmd_check(store_path: Path) -> int:
    """Validate the store file against the schema."""
    errors = validate_store_file(store_path, load_schema())
    if errors:
        print(f"FAIL: {store_path}")
        for error in errors:
            print(f"  {error}")
        return 1
    print(f"OK: {store_path}")
    return 0


async def run(args, settings: Settings) -> int:
    """Dispatch a parsed command against a YAML store."""
    store = YamlStore(args.store)
    coordinator = ConsistencyCoordinator.from_settings(store, settings)
    try:
        return await COMMANDS[args.command](coordinator, args)
    except LedgerError as e:
        print(f"Error: {e}")
        return 1


# =============================================================================
# Main
# =============================================================================


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Vehicle mileage and maintenance tracker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --store garage.yaml add-vehicle car ABC-123
  %(prog)s --store garage.yaml vehicles
  %(prog)s --store garage.yaml add-trip <vehicle-id> 42.5 --label "Commute"
  %(prog)s --store garage.yaml status <vehicle-id>
  %(prog)s --store garage.yaml service <vehicle-id> oil --notes "5W-30"
""",
    )
    parser.add_argument(
        "--store",
        type=Path,
        default=Path(settings.store_path) if settings.store_path else None,
        help="Path to the YAML store file (default: $MILEAGE_STORE)",
    )
    parser.add_argument(
        "--owner",
        type=str,
        default=settings.owner_id,
        help="Owner id (default: $MILEAGE_OWNER or 'local')",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("vehicles", help="List vehicles with due flags")

    add_vehicle_parser = subparsers.add_parser("add-vehicle", help="Add a vehicle")
    add_vehicle_parser.add_argument("type", choices=["car", "motorcycle"])
    add_vehicle_parser.add_argument("plate", type=str, help="Plate number")

    update_vehicle_parser = subparsers.add_parser(
        "update-vehicle", help="Change a vehicle's class and plate number"
    )
    update_vehicle_parser.add_argument("vehicle_id", type=str)
    update_vehicle_parser.add_argument("type", choices=["car", "motorcycle"])
    update_vehicle_parser.add_argument("plate", type=str, help="Plate number")

    delete_vehicle_parser = subparsers.add_parser(
        "delete-vehicle", help="Delete a vehicle with its trips and history"
    )
    delete_vehicle_parser.add_argument("vehicle_id", type=str)

    trips_parser = subparsers.add_parser("trips", help="List a vehicle's trips")
    trips_parser.add_argument("vehicle_id", type=str)

    add_trip_parser = subparsers.add_parser("add-trip", help="Record a trip")
    add_trip_parser.add_argument("vehicle_id", type=str)
    add_trip_parser.add_argument("distance", type=str, help="Distance driven")
    add_trip_parser.add_argument(
        "--date",
        type=str,
        help="Trip date in YYYY-MM-DD format (default: today)",
    )
    add_trip_parser.add_argument(
        "--label",
        type=str,
        help="Trip label (default: 'Daily Commute')",
    )

    delete_trip_parser = subparsers.add_parser("delete-trip", help="Delete a trip")
    delete_trip_parser.add_argument("trip_id", type=str)

    service_parser = subparsers.add_parser(
        "service", help="Perform a service (resets its counter)"
    )
    service_parser.add_argument("vehicle_id", type=str)
    service_parser.add_argument("kind", choices=["oil", "maintenance"])
    service_parser.add_argument("--notes", type=str, help="Notes about the service")
    service_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be recorded without saving",
    )

    history_parser = subparsers.add_parser("history", help="View service history")
    history_parser.add_argument("vehicle_id", type=str)
    history_parser.add_argument(
        "--kind",
        choices=["oil", "maintenance"],
        help="Only show one kind of service",
    )

    status_parser = subparsers.add_parser("status", help="Show what service is due")
    status_parser.add_argument("vehicle_id", type=str)

    subparsers.add_parser("refresh", help="Reload and re-derive totals from trips")
    subparsers.add_parser("check", help="Validate the store file against the schema")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    try:
        settings = Settings.from_env()
    except LedgerError as e:
        print(f"Error: {e}")
        return 1
    parser = build_parser(settings)
    args = parser.parse_args(argv)

    if args.store is None:
        print("Error: No store file given (use --store or set MILEAGE_STORE)")
        return 1

    configure_logging(settings.log_level, settings.log_file)
    settings.owner_id = args.owner

    if args.command == "check":
        return cmd_check(args.store)

    return asyncio.run(run(args, settings))


if __name__ == "__main__":
    sys.exit(main() or 0)
