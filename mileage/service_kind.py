"""ServiceKind enum for the kinds of service a vehicle receives."""

from enum import Enum


class ServiceKind(Enum):
    """Service kinds. Each kind has its own counter and threshold."""

    OIL = "Oil"
    MAINTENANCE = "Maintenance"

    @property
    def counter_field(self) -> str:
        """Name of the vehicles column holding the last-service distance."""
        return f"last_{self.value.lower()}_service_km"
