"""MaintenanceLogEntry record for services performed."""

from dataclasses import dataclass
from typing import Optional

from .service_kind import ServiceKind


@dataclass(frozen=True)
class MaintenanceLogEntry:
    """A record of service performed, with the odometer reading at the time."""

    id: str
    vehicle_id: str
    kind: ServiceKind
    timestamp: str
    mileage_at_service: float
    notes: Optional[str] = None
