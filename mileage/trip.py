"""Trip record for distance driven."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Trip:
    """A distance event on a vehicle. Immutable once created."""

    id: str
    vehicle_id: str
    date: str
    distance: float
    label: Optional[str] = None
