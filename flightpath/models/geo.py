"""
Geographic value types.

Coordinate, Route and ScheduleWindow are immutable once constructed.
Invariants are checked at construction so that downstream geodesy and
estimation code never has to re-validate its inputs.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence


@dataclass(frozen=True)
class Coordinate:
    """WGS84 position in decimal degrees."""
    latitude: float
    longitude: float

    def __post_init__(self):
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f'Latitude out of range: {self.latitude}')
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f'Longitude out of range: {self.longitude}')

    @classmethod
    def from_pair(cls, pair: Sequence[float]) -> 'Coordinate':
        """Build from a [latitude, longitude] pair as used in flight configs."""
        if pair is None or len(pair) != 2:
            raise ValueError(f'Expected [latitude, longitude], got {pair!r}')
        return cls(latitude=float(pair[0]), longitude=float(pair[1]))

    @staticmethod
    def is_valid(latitude, longitude) -> bool:
        """Check raw values without constructing a Coordinate."""
        if latitude is None or longitude is None:
            return False
        try:
            return -90.0 <= float(latitude) <= 90.0 and -180.0 <= float(longitude) <= 180.0
        except (TypeError, ValueError):
            return False

    def to_dict(self) -> dict:
        return {'latitude': self.latitude, 'longitude': self.longitude}


@dataclass(frozen=True)
class Route:
    """Origin and destination of a flight."""
    origin: Coordinate
    destination: Coordinate

    def to_dict(self) -> dict:
        return {
            'origin': self.origin.to_dict(),
            'destination': self.destination.to_dict(),
        }


@dataclass(frozen=True)
class ScheduleWindow:
    """
    Scheduled departure and arrival instants.

    Both must be timezone-aware and arrival must be strictly after
    departure, which guarantees a positive total duration.
    """
    departure: datetime
    arrival: datetime

    def __post_init__(self):
        if self.departure.tzinfo is None or self.arrival.tzinfo is None:
            raise ValueError('Schedule timestamps must carry a timezone offset')
        if self.arrival <= self.departure:
            raise ValueError(
                f'Arrival {self.arrival.isoformat()} is not after '
                f'departure {self.departure.isoformat()}'
            )

    @property
    def total_minutes(self) -> float:
        return (self.arrival - self.departure).total_seconds() / 60.0

    def to_dict(self) -> dict:
        return {
            'departure': self.departure.isoformat(),
            'arrival': self.arrival.isoformat(),
        }
