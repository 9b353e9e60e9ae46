"""
Schedule-based position estimation.

When no live telemetry is available a flight's position is estimated by
assuming constant progress along the great circle between the scheduled
departure and arrival instants. The estimate is deterministic in time:
for a fixed route and schedule, later instants never yield lower progress.

Live progress uses a different model (remaining great-circle distance
over total route distance), so progress can jump when telemetry is
acquired or lost mid-flight.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from flightpath.analytics.geodesy import distance, interpolate
from flightpath.models.geo import Coordinate, Route, ScheduleWindow


@dataclass(frozen=True)
class PositionEstimate:
    """Estimated position and progress at one instant."""
    position: Coordinate
    progress_percent: float
    elapsed_minutes: float
    remaining_minutes: float
    total_minutes: float


def estimate(route: Route, schedule: ScheduleWindow, now: datetime) -> PositionEstimate:
    """
    Estimate position and progress from the schedule.

    - now <= departure: 0%, at the origin
    - now >= arrival: 100%, at the destination
    - otherwise: linear in time, interpolated along the great circle
    """
    total_seconds = (schedule.arrival - schedule.departure).total_seconds()
    elapsed_seconds = (now - schedule.departure).total_seconds()

    if now <= schedule.departure:
        fraction = 0.0
        position = route.origin
    elif now >= schedule.arrival:
        fraction = 1.0
        position = route.destination
    else:
        fraction = min(1.0, max(0.0, elapsed_seconds / total_seconds))
        position = interpolate(route.origin, route.destination, fraction)

    return PositionEstimate(
        position=position,
        progress_percent=fraction * 100.0,
        elapsed_minutes=max(0.0, elapsed_seconds / 60.0),
        remaining_minutes=max(0.0, (total_seconds - elapsed_seconds) / 60.0),
        total_minutes=total_seconds / 60.0,
    )


def live_progress(total_km: float, remaining_km: float) -> float:
    """
    Progress from measured remaining distance, clamped to [0, 100].

    A zero-length route is complete by definition.
    """
    if total_km <= 0:
        return 100.0
    progress = (total_km - remaining_km) / total_km * 100.0
    return min(100.0, max(0.0, progress))


def estimate_arrival(
    position: Coordinate,
    destination: Coordinate,
    ground_speed_mps: float,
    now: datetime,
) -> Optional[datetime]:
    """
    Arrival time assuming the current ground speed is held to the destination.

    Returns None when the aircraft is not moving.
    """
    if ground_speed_mps is None or ground_speed_mps <= 0:
        return None
    remaining_m = distance(position, destination) * 1000.0
    return now + timedelta(seconds=remaining_m / ground_speed_mps)
