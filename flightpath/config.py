"""
Configuration management for FlightPath.

Every tunable is read from the environment (or a .env file) once at
import and exposed through the module-level `config` object.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _parse_bool(value: Optional[str], default: bool) -> bool:
    """Parse 'true'/'false' style flags, falling back to default when unset."""
    if value is None or value.strip() == '':
        return default
    return value.strip().lower() in {'1', 'true', 'yes', 'on'}


@dataclass(frozen=True)
class OpenSkyConfig:
    """Credentials, endpoint and request pacing for OpenSky."""
    username: Optional[str] = os.getenv('OPENSKY_USERNAME') or None
    password: Optional[str] = os.getenv('OPENSKY_PASSWORD') or None
    base_url: str = os.getenv('OPENSKY_API_BASE_URL', 'https://opensky-network.org/api')
    timeout_seconds: float = float(os.getenv('OPENSKY_TIMEOUT_SECONDS', '10'))

    @property
    def is_authenticated(self) -> bool:
        return bool(self.username and self.password)

    @property
    def rate_limit_seconds(self) -> float:
        # OpenSky allows credentialed clients twice the request rate
        return 5.0 if self.is_authenticated else 10.0


@dataclass(frozen=True)
class TrackingConfig:
    """Reconciler cadence, telemetry caching and feature flags."""
    # Update intervals per priority tier (seconds)
    high_priority_interval: float = float(os.getenv('FLIGHT_UPDATE_INTERVAL_HIGH', '30'))
    medium_priority_interval: float = float(os.getenv('FLIGHT_UPDATE_INTERVAL_MEDIUM', '60'))
    low_priority_interval: float = float(os.getenv('FLIGHT_UPDATE_INTERVAL_LOW', '300'))

    telemetry_cache_seconds: float = float(os.getenv('TELEMETRY_CACHE_SECONDS', '10'))
    telemetry_call_timeout_seconds: float = float(os.getenv('TELEMETRY_CALL_TIMEOUT_SECONDS', '20'))

    enable_live_tracking: bool = _parse_bool(os.getenv('ENABLE_REAL_TIME_TRACKING'), True)

    flights_file: str = os.getenv('FLIGHTS_CONFIG_PATH', 'flights.json')

    error_log_size: int = 100
    path_points: int = 100

    def interval_for(self, priority) -> float:
        """Update interval in seconds for a priority tier (medium if unknown)."""
        value = getattr(priority, 'value', priority)
        if value == 'high':
            return self.high_priority_interval
        if value == 'low':
            return self.low_priority_interval
        return self.medium_priority_interval


@dataclass(frozen=True)
class AppConfig:
    """Everything the app reads from the environment."""
    opensky: OpenSkyConfig
    tracking: TrackingConfig

    # Flask settings
    secret_key: str
    debug: bool


def load_config() -> AppConfig:
    """Assemble the settings from the current environment."""
    return AppConfig(
        opensky=OpenSkyConfig(),
        tracking=TrackingConfig(),
        secret_key=os.getenv('SECRET_KEY', 'dev-key-change-in-prod'),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
    )


# Singleton instance
config = load_config()
