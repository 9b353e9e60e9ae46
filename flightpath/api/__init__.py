"""
API module for FlightPath.

Provides REST endpoints for:
- Flight tracking snapshots and per-flight commands
- Tracker control, status and the error log
"""

from flightpath.api.flights import flights_bp
from flightpath.api.tracking import tracking_bp

__all__ = ['flights_bp', 'tracking_bp']
