"""
Tracking state for flights in the active set.

TrackingRecord is the central mutable entity: one per tracked flight,
owned and mutated exclusively by the FlightTracker. Everything handed
to callers is a copy produced by snapshot().

Design notes:
- Fields holding positions and telemetry are immutable values, so a
  shallow copy is a consistent snapshot.
- progress_percent follows the schedule clock while estimated and the
  remaining great-circle distance while live.
"""

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

from flightpath.models.flight import FlightDescriptor, FlightStatus
from flightpath.models.geo import Coordinate, Route, ScheduleWindow
from flightpath.models.telemetry import LiveTelemetryRecord


class ErrorKind(str, Enum):
    """Taxonomy of recoverable tracking errors."""
    CONFIGURATION_ERROR = 'CONFIGURATION_ERROR'
    API_ERROR = 'API_ERROR'
    NETWORK_ERROR = 'NETWORK_ERROR'
    FLIGHT_NOT_FOUND = 'FLIGHT_NOT_FOUND'
    INVALID_FLIGHT_DATA = 'INVALID_FLIGHT_DATA'


@dataclass(frozen=True)
class TrackingError:
    """One entry of the tracker's error log."""
    kind: ErrorKind
    message: str
    timestamp: datetime
    flight_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'type': self.kind.value,
            'message': self.message,
            'flight_id': self.flight_id,
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class FlightPath:
    """Great-circle path between the route endpoints."""
    coordinates: List[Coordinate]
    distance_km: float
    bearing_deg: float

    def to_dict(self) -> dict:
        return {
            'coordinates': [[c.latitude, c.longitude] for c in self.coordinates],
            'distance_km': round(self.distance_km, 1),
            'bearing': round(self.bearing_deg, 1),
        }


@dataclass
class TrackingRecord:
    """Current tracking state of one flight."""
    flight: FlightDescriptor
    route: Route
    schedule: ScheduleWindow
    path: FlightPath
    current_position: Coordinate
    progress_percent: float
    is_live: bool
    last_updated_at: datetime
    status: FlightStatus
    update_interval_seconds: float
    live_telemetry: Optional[LiveTelemetryRecord] = None

    # Derived on each update
    remaining_minutes: Optional[float] = None
    remaining_distance_km: Optional[float] = None
    estimated_arrival: Optional[datetime] = None

    @property
    def flight_id(self) -> str:
        return self.flight.id

    def snapshot(self) -> 'TrackingRecord':
        """Detached copy for read-only consumers."""
        return dataclasses.replace(self)

    def to_dict(self, include_path: bool = False) -> dict:
        """Convert to JSON-serializable dict for API responses."""
        data = {
            'id': self.flight.id,
            'flight': self.flight.to_dict(),
            'status': self.status.value,
            'position': self.current_position.to_dict(),
            'progress': round(self.progress_percent, 2),
            'is_live': self.is_live,
            'live_data': self.live_telemetry.to_dict() if self.live_telemetry else None,
            'remaining_minutes': (
                round(self.remaining_minutes, 1) if self.remaining_minutes is not None else None
            ),
            'remaining_distance_km': (
                round(self.remaining_distance_km, 1) if self.remaining_distance_km is not None else None
            ),
            'estimated_arrival': self.estimated_arrival.isoformat() if self.estimated_arrival else None,
            'distance_km': round(self.path.distance_km, 1),
            'bearing': round(self.path.bearing_deg, 1),
            'update_interval_seconds': self.update_interval_seconds,
            'last_updated': self.last_updated_at.isoformat(),
        }
        if include_path:
            data['path'] = self.path.to_dict()
        return data
