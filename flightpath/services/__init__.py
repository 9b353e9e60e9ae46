"""
Tracking services.

The FlightTracker reconciles live telemetry with schedule estimates;
the TrackerRunner drives it from a background event loop.
"""

from flightpath.services.error_log import ErrorLog
from flightpath.services.flight_config import load_flights, parse_flight, read_flights_file
from flightpath.services.tracker import FlightTracker, TrackingState
from flightpath.services.runner import TrackerRunner

__all__ = [
    'ErrorLog',
    'load_flights',
    'parse_flight',
    'read_flights_file',
    'FlightTracker',
    'TrackingState',
    'TrackerRunner',
]
