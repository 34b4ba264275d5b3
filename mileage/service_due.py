"""ServiceDue dataclass for calculated service status."""

from dataclasses import dataclass

from .service_kind import ServiceKind


@dataclass
class ServiceDue:
    """Calculated due information for one service kind on a vehicle."""

    kind: ServiceKind
    is_due: bool
    threshold: float
    last_service_distance: float
    distance_since_service: float
    distance_remaining: float

    @property
    def overdue_by(self) -> float:
        """Distance driven past the threshold, 0 when not due."""
        return max(0.0, -self.distance_remaining)
