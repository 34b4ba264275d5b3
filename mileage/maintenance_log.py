"""Maintenance log: the per-vehicle, append-only service history."""

from typing import Iterator, List, Optional

from .maintenance_entry import MaintenanceLogEntry
from .service_kind import ServiceKind


class MaintenanceLog:
    """
    Service entries of one vehicle, in the order they were recorded.

    Entries are never updated or removed. The log is for audit and display;
    due status is computed from the vehicle's counters, not from here.
    """

    def __init__(self, entries: Optional[List[MaintenanceLogEntry]] = None):
        self._entries: List[MaintenanceLogEntry] = list(entries or [])

    def __iter__(self) -> Iterator[MaintenanceLogEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> List[MaintenanceLogEntry]:
        return list(self._entries)

    def append(self, entry: MaintenanceLogEntry) -> None:
        self._entries.append(entry)

    def for_kind(self, kind: ServiceKind) -> List[MaintenanceLogEntry]:
        """All entries of one service kind."""
        return [e for e in self._entries if e.kind == kind]

    def last(self, kind: ServiceKind) -> Optional[MaintenanceLogEntry]:
        """Most recent entry of one service kind."""
        entries = self.for_kind(kind)
        if not entries:
            return None
        # Ties resolve to the entry recorded last.
        return max(reversed(entries), key=lambda e: e.timestamp)

    def newest_first(self) -> List[MaintenanceLogEntry]:
        """Entries for display, most recent first."""
        return list(reversed(self._entries))
