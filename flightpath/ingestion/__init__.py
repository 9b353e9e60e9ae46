"""
Telemetry ingestion for FlightPath.

Queries the OpenSky API for individual aircraft, validates and
normalizes state vectors, and caches results for a short window.
"""

from flightpath.ingestion.opensky_client import BoundingBox, OpenSkyClient, StateVector
from flightpath.ingestion.telemetry import (
    LookupOutcome,
    OpenSkyTelemetry,
    TelemetryLookup,
    TelemetrySource,
)

__all__ = [
    'BoundingBox',
    'OpenSkyClient',
    'StateVector',
    'LookupOutcome',
    'OpenSkyTelemetry',
    'TelemetryLookup',
    'TelemetrySource',
]
