"""
Data models for FlightPath.

All state is in memory. Value types are immutable; TrackingRecord is
the only mutable entity and is owned by the FlightTracker.
"""

from flightpath.models.geo import Coordinate, Route, ScheduleWindow
from flightpath.models.flight import (
    Airport,
    FlightConfigError,
    FlightDescriptor,
    FlightStatus,
    Priority,
    classify,
    should_track,
)
from flightpath.models.telemetry import LiveTelemetryRecord
from flightpath.models.tracking import ErrorKind, FlightPath, TrackingError, TrackingRecord

__all__ = [
    'Coordinate',
    'Route',
    'ScheduleWindow',
    'Airport',
    'FlightConfigError',
    'FlightDescriptor',
    'FlightStatus',
    'Priority',
    'classify',
    'should_track',
    'LiveTelemetryRecord',
    'ErrorKind',
    'FlightPath',
    'TrackingError',
    'TrackingRecord',
]
