"""
Flight descriptors and lifecycle classification.

A FlightDescriptor is the static, read-only description of a scheduled
flight as loaded from configuration (see flightpath.services.flight_config).
The lifecycle status of a flight is derived from its schedule and the
current time by classify().
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from flightpath.models.geo import Coordinate, Route, ScheduleWindow


class FlightConfigError(ValueError):
    """Raised when a flight descriptor is malformed or violates an invariant."""

    def __init__(self, message: str, flight_id: Optional[str] = None):
        super().__init__(message)
        self.flight_id = flight_id


class Priority(str, Enum):
    """
    Update-frequency tier.

    - HIGH: fast cadence (30s by default)
    - MEDIUM: medium cadence (60s)
    - LOW: slow cadence (5 minutes)
    """
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'


class FlightStatus(str, Enum):
    """Three-state lifecycle derived from the schedule."""
    UPCOMING = 'upcoming'
    CURRENT = 'current'
    COMPLETED = 'completed'


@dataclass(frozen=True)
class Airport:
    """Airport endpoint of a route."""
    code: str
    city: str
    coordinate: Coordinate
    name: Optional[str] = None
    icao: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'code': self.code,
            'city': self.city,
            'name': self.name,
            'icao': self.icao,
            'coordinates': [self.coordinate.latitude, self.coordinate.longitude],
        }


@dataclass(frozen=True)
class FlightDescriptor:
    """
    Static configuration for one tracked flight.

    icao24 is the preferred telemetry lookup key (unique per airframe);
    callsign is the fallback and defaults to the flight number.
    """
    id: str
    origin: Airport
    destination: Airport
    schedule: ScheduleWindow
    flight_number: Optional[str] = None
    callsign: Optional[str] = None
    icao24: Optional[str] = None
    aircraft: Optional[str] = None
    airline: Optional[str] = None
    registration: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    tracking_enabled: bool = True

    @property
    def route(self) -> Route:
        return Route(origin=self.origin.coordinate, destination=self.destination.coordinate)

    @property
    def display_name(self) -> str:
        return self.flight_number or self.callsign or self.id

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'flight_number': self.flight_number,
            'callsign': self.callsign,
            'icao24': self.icao24,
            'from': self.origin.to_dict(),
            'to': self.destination.to_dict(),
            'schedule': self.schedule.to_dict(),
            'aircraft': self.aircraft,
            'airline': self.airline,
            'registration': self.registration,
            'priority': self.priority.value,
            'tracking_enabled': self.tracking_enabled,
        }


def classify(schedule: ScheduleWindow, now: datetime) -> FlightStatus:
    """
    Map the schedule and current time to a lifecycle status.

    The window is half-open: the departure instant is already CURRENT and
    the arrival instant is already COMPLETED, matching the estimator which
    reports 0% at departure and 100% at arrival.
    """
    if now < schedule.departure:
        return FlightStatus.UPCOMING
    if now >= schedule.arrival:
        return FlightStatus.COMPLETED
    return FlightStatus.CURRENT


def should_track(flight: FlightDescriptor, now: datetime) -> bool:
    """Enabled flights are tracked while upcoming or current."""
    return flight.tracking_enabled and classify(flight.schedule, now) != FlightStatus.COMPLETED
