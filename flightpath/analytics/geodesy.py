"""
Great-circle geodesy on a spherical Earth.

All functions are pure. Distances use the Haversine formula on a sphere
of radius 6371 km; intermediate points use spherical linear interpolation
(slerp) on unit vectors, so paths stay correct near the poles and across
the antimeridian where blending latitude/longitude linearly would not.

Degenerate inputs:
- Identical points have zero angular distance. interpolate() returns the
  start point and bearing() returns 0.0.
- Antipodal points are joined by infinitely many great circles, so the
  path and initial bearing are undefined. interpolate() and
  generate_path() raise DegenerateRouteError; bearing() returns whatever
  atan2 yields and callers must not rely on it.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import numpy as np

from flightpath.models.geo import Coordinate

EARTH_RADIUS_KM = 6371.0
KM_TO_NM = 0.539957

# Below this angular distance (radians) two points are treated as identical
ANGULAR_EPSILON = 1e-12
# Within this many radians of pi two points are treated as antipodal
ANTIPODAL_TOLERANCE = 1e-6


class DegenerateRouteError(ValueError):
    """Raised when a great circle between two points is not unique."""


@dataclass(frozen=True)
class RemainingDistance:
    """Distance and heading from a position to a destination."""
    km: float
    nm: float
    bearing: float


def angular_distance(a: Coordinate, b: Coordinate) -> float:
    """Central angle between two points in radians (Haversine)."""
    lat1_rad = math.radians(a.latitude)
    lat2_rad = math.radians(b.latitude)
    delta_lat = math.radians(b.latitude - a.latitude)
    delta_lon = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) *
        math.sin(delta_lon / 2) ** 2
    )
    # Clamp against rounding just above 1.0
    h = min(1.0, max(0.0, h))
    return 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def distance(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two points in kilometers."""
    return EARTH_RADIUS_KM * angular_distance(a, b)


def distance_nautical_miles(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in nautical miles."""
    return distance(a, b) * KM_TO_NM


def is_antipodal(a: Coordinate, b: Coordinate) -> bool:
    return math.pi - angular_distance(a, b) < ANTIPODAL_TOLERANCE


def bearing(a: Coordinate, b: Coordinate) -> float:
    """
    Initial great-circle heading from a toward b.

    Returns degrees in [0, 360), 0 = north, clockwise.
    """
    if angular_distance(a, b) < ANGULAR_EPSILON:
        return 0.0

    lat1_rad = math.radians(a.latitude)
    lat2_rad = math.radians(b.latitude)
    delta_lon = math.radians(b.longitude - a.longitude)

    y = math.sin(delta_lon) * math.cos(lat2_rad)
    x = (
        math.cos(lat1_rad) * math.sin(lat2_rad) -
        math.sin(lat1_rad) * math.cos(lat2_rad) * math.cos(delta_lon)
    )

    result = math.degrees(math.atan2(y, x)) % 360.0
    # -0.0 % 360 and tiny negatives can round up to exactly 360.0
    return 0.0 if result >= 360.0 else result


def interpolate(a: Coordinate, b: Coordinate, fraction: float) -> Coordinate:
    """
    Point a given fraction of the way along the great circle from a to b.

    fraction is clamped to [0, 1]. The endpoints are returned unchanged
    for fractions 0 and 1.
    """
    fraction = min(1.0, max(0.0, fraction))
    if fraction == 0.0:
        return a
    if fraction == 1.0:
        return b

    delta = angular_distance(a, b)
    if delta < ANGULAR_EPSILON:
        return a
    if math.pi - delta < ANTIPODAL_TOLERANCE:
        raise DegenerateRouteError(
            f'No unique great circle between antipodal points {a} and {b}'
        )

    sin_delta = math.sin(delta)
    weight_a = math.sin((1 - fraction) * delta) / sin_delta
    weight_b = math.sin(fraction * delta) / sin_delta

    lat1_rad = math.radians(a.latitude)
    lon1_rad = math.radians(a.longitude)
    lat2_rad = math.radians(b.latitude)
    lon2_rad = math.radians(b.longitude)

    x = weight_a * math.cos(lat1_rad) * math.cos(lon1_rad) + weight_b * math.cos(lat2_rad) * math.cos(lon2_rad)
    y = weight_a * math.cos(lat1_rad) * math.sin(lon1_rad) + weight_b * math.cos(lat2_rad) * math.sin(lon2_rad)
    z = weight_a * math.sin(lat1_rad) + weight_b * math.sin(lat2_rad)

    return Coordinate(
        latitude=math.degrees(math.atan2(z, math.hypot(x, y))),
        longitude=math.degrees(math.atan2(y, x)),
    )


def generate_path(a: Coordinate, b: Coordinate, n: int = 100) -> List[Coordinate]:
    """
    Evenly spaced points along the great circle from a to b.

    Returns exactly n points; the first is a and the last is b. The
    interpolation is vectorized with NumPy, which matters for the
    100-point paths generated for every tracked flight.
    """
    if n < 2:
        raise ValueError(f'A path needs at least 2 points, got {n}')

    delta = angular_distance(a, b)
    if delta < ANGULAR_EPSILON:
        return [a] * (n - 1) + [b]
    if math.pi - delta < ANTIPODAL_TOLERANCE:
        raise DegenerateRouteError(
            f'No unique great circle between antipodal points {a} and {b}'
        )

    fractions = np.linspace(0.0, 1.0, n)
    sin_delta = math.sin(delta)
    weight_a = np.sin((1.0 - fractions) * delta) / sin_delta
    weight_b = np.sin(fractions * delta) / sin_delta

    lat1_rad, lon1_rad = np.radians(a.latitude), np.radians(a.longitude)
    lat2_rad, lon2_rad = np.radians(b.latitude), np.radians(b.longitude)

    x = weight_a * np.cos(lat1_rad) * np.cos(lon1_rad) + weight_b * np.cos(lat2_rad) * np.cos(lon2_rad)
    y = weight_a * np.cos(lat1_rad) * np.sin(lon1_rad) + weight_b * np.cos(lat2_rad) * np.sin(lon2_rad)
    z = weight_a * np.sin(lat1_rad) + weight_b * np.sin(lat2_rad)

    lats = np.degrees(np.arctan2(z, np.hypot(x, y)))
    lons = np.degrees(np.arctan2(y, x))

    points = [Coordinate(latitude=float(lat), longitude=float(lon)) for lat, lon in zip(lats, lons)]
    points[0] = a
    points[-1] = b
    return points


def remaining_distance(position: Coordinate, destination: Coordinate) -> RemainingDistance:
    """Distance (km and nm) and bearing from the current position to the destination."""
    km = distance(position, destination)
    return RemainingDistance(
        km=km,
        nm=km * KM_TO_NM,
        bearing=bearing(position, destination),
    )


def ground_speed_knots(
    a: Coordinate, time_a: datetime,
    b: Coordinate, time_b: datetime,
) -> Optional[float]:
    """
    Average ground speed between two timestamped positions.

    Returns None when both timestamps are equal.
    """
    hours = abs((time_b - time_a).total_seconds()) / 3600.0
    if hours == 0:
        return None
    return distance(a, b) / hours * KM_TO_NM
