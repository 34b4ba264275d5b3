"""Trip ledger: the per-vehicle record of distance driven."""

import math
from datetime import date, datetime
from decimal import Decimal
from numbers import Real
from typing import Iterator, List, Optional, Union

from dateutil import parser as date_parser

from .errors import NotFoundError, ValidationError
from .trip import Trip

DEFAULT_TRIP_LABEL = "Daily Commute"


def validate_distance(value: Union[Real, str]) -> float:
    """Return distance as a float, or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"Distance must be a number, got {value!r}")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise ValidationError(f"Distance must be a number, got {value!r}") from None
    if not isinstance(value, (Real, Decimal)):
        raise ValidationError(f"Distance must be a number, got {value!r}")
    distance = float(value)
    if not math.isfinite(distance):
        raise ValidationError(f"Distance must be finite, got {distance}")
    if distance < 0:
        raise ValidationError(f"Distance cannot be negative, got {distance}")
    return distance


def normalize_date(value: Union[date, str]) -> str:
    """Return a trip date as YYYY-MM-DD, or raise ValidationError."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date_parser.isoparse(str(value)).date().isoformat()
    except (ValueError, OverflowError):
        raise ValidationError(f"Invalid trip date {value!r}") from None


class TripLedger:
    """
    Trips of one vehicle, in insertion order.

    The ledger is the source of truth for a vehicle's total distance; the
    aggregate's running total is re-derived from it on reload.
    """

    def __init__(self, trips: Optional[List[Trip]] = None):
        self._trips: List[Trip] = list(trips or [])

    def __iter__(self) -> Iterator[Trip]:
        return iter(self._trips)

    def __len__(self) -> int:
        return len(self._trips)

    @property
    def trips(self) -> List[Trip]:
        return list(self._trips)

    def find(self, trip_id: str) -> Optional[Trip]:
        for trip in self._trips:
            if trip.id == trip_id:
                return trip
        return None

    def append(self, trip: Trip) -> None:
        self._trips.append(trip)

    def remove(self, trip_id: str) -> Trip:
        """Remove and return a trip by id."""
        trip = self.find(trip_id)
        if trip is None:
            raise NotFoundError(f"Trip '{trip_id}' not found")
        self._trips.remove(trip)
        return trip

    def total(self) -> float:
        """Sum of all trip distances."""
        return sum((t.distance for t in self._trips), 0.0)
