"""
Analytics module for FlightPath.

Great-circle geodesy (NumPy-vectorized path generation) and the
schedule-based position estimator used when live telemetry is missing.
"""

from flightpath.analytics.geodesy import (
    DegenerateRouteError,
    RemainingDistance,
    bearing,
    distance,
    distance_nautical_miles,
    generate_path,
    ground_speed_knots,
    interpolate,
    is_antipodal,
    remaining_distance,
)
from flightpath.analytics.estimator import (
    PositionEstimate,
    estimate,
    estimate_arrival,
    live_progress,
)

__all__ = [
    'DegenerateRouteError',
    'RemainingDistance',
    'bearing',
    'distance',
    'distance_nautical_miles',
    'generate_path',
    'ground_speed_knots',
    'interpolate',
    'is_antipodal',
    'remaining_distance',
    'PositionEstimate',
    'estimate',
    'estimate_arrival',
    'live_progress',
]
