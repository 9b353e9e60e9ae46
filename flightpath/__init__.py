"""
FlightPath Package.

Real-time flight position tracking that blends live OpenSky telemetry
with a schedule-derived great-circle estimate.

Modules:
    models/      Value types (Coordinate, Route, ScheduleWindow) and tracking records
    analytics/   Great-circle geodesy and the schedule-based position estimator
    ingestion/   OpenSky Network client and the cached telemetry adapter
    services/    Tracking reconciler, error log, flight configuration loading
    api/         REST endpoints exposing tracking snapshots and commands
    cache.py     Thread-safe time-to-live cache
    config.py    Centralized configuration from environment variables
"""

__version__ = '1.0.0'
