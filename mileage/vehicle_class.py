"""VehicleClass enum for vehicle classification."""

from enum import Enum


class VehicleClass(Enum):
    """Vehicle classification. Values match the stored ``type`` column."""

    CAR = "Car"
    MOTORCYCLE = "Motorcycle"
