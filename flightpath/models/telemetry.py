"""
LiveTelemetryRecord - normalized live position report for one aircraft.

Instances are produced by the telemetry adapter (see
flightpath.ingestion.telemetry) from raw OpenSky state vectors. Units
are SI: meters, meters per second, degrees.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from flightpath.models.geo import Coordinate


@dataclass(frozen=True)
class LiveTelemetryRecord:
    """Canonical position/velocity/heading record."""
    position: Coordinate
    altitude_m: float
    ground_speed_mps: float
    heading_deg: float
    on_ground: bool
    source_timestamp: datetime
    airframe_id: str
    callsign: str
    origin_country: Optional[str] = None
    vertical_rate_mps: Optional[float] = None
    squawk: Optional[str] = None

    # -------------------------------------------------------------------------
    # Display helpers - convert to human-friendly units
    # -------------------------------------------------------------------------

    @property
    def altitude_ft(self) -> int:
        return int(self.altitude_m * 3.28084)

    @property
    def speed_kts(self) -> int:
        return int(self.ground_speed_mps * 1.94384)

    def to_dict(self) -> dict:
        return {
            'position': self.position.to_dict(),
            'altitude_m': self.altitude_m,
            'altitude_ft': self.altitude_ft,
            'ground_speed_mps': self.ground_speed_mps,
            'speed_kts': self.speed_kts,
            'heading': self.heading_deg,
            'vertical_rate_mps': self.vertical_rate_mps,
            'on_ground': self.on_ground,
            'icao24': self.airframe_id,
            'callsign': self.callsign,
            'origin_country': self.origin_country,
            'squawk': self.squawk,
            'source_timestamp': self.source_timestamp.isoformat(),
        }
