"""
REST client for the OpenSky Network /states/all endpoint.

Covers basic-auth credentials, filtering by airframe address or by
geographic box, a minimum spacing between requests, and parsing of the
state vectors in the response.

Each state vector arrives as a positional array whose slots are listed,
in order, in _STATE_FIELDS below (positions in degrees, altitudes in
meters, velocity in m/s, timestamps in Unix seconds). Trailing slots may
be absent on older feeds. Some mirrors serve keyed objects with the same
field names instead; StateVector.parse() handles both.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Optional, List, Tuple, Any, Mapping

import requests
from requests.auth import HTTPBasicAuth

from flightpath.config import config

logger = logging.getLogger(__name__)

_STATE_FIELDS = (
    'icao24', 'callsign', 'origin_country', 'time_position', 'last_contact',
    'longitude', 'latitude', 'baro_altitude', 'on_ground', 'velocity',
    'true_track', 'vertical_rate', 'sensors', 'geo_altitude', 'squawk',
    'spi', 'position_source',
)


@dataclass
class BoundingBox:
    """Latitude/longitude window, sent as the lamin/lamax/lomin/lomax query params."""
    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float

    @classmethod
    def from_center_radius(
        cls,
        center_lat: float,
        center_lon: float,
        radius_km: float
    ) -> 'BoundingBox':
        """
        Box enclosing a circle of radius_km around a point.

        One degree of latitude is taken as 111 km; the longitude span widens
        with latitude and is clamped to the valid range near the poles.
        """
        lat_delta = radius_km / 111.0
        lon_delta = radius_km / (111.0 * max(abs(math.cos(math.radians(center_lat))), 0.0001))

        return cls(
            lat_min=max(-90.0, center_lat - lat_delta),
            lat_max=min(90.0, center_lat + lat_delta),
            lon_min=max(-180.0, center_lon - lon_delta),
            lon_max=min(180.0, center_lon + lon_delta),
        )

    def to_params(self) -> dict:
        return {
            'lamin': self.lat_min,
            'lamax': self.lat_max,
            'lomin': self.lon_min,
            'lomax': self.lon_max,
        }


@dataclass
class StateVector:
    """
    One aircraft state as reported by OpenSky.

    Any field other than icao24 may be None when the transponder did not
    report it. No validity filtering happens here.
    """
    icao24: str
    callsign: Optional[str]
    origin_country: Optional[str]
    time_position: Optional[int]
    last_contact: Optional[int]
    longitude: Optional[float]
    latitude: Optional[float]
    baro_altitude: Optional[float]
    on_ground: bool
    velocity: Optional[float]
    true_track: Optional[float]
    vertical_rate: Optional[float]
    geo_altitude: Optional[float]
    squawk: Optional[str]
    spi: bool
    position_source: Optional[int]

    @classmethod
    def parse(cls, raw: Any) -> Optional['StateVector']:
        """Parse either wire shape; None if unrecognized or malformed."""
        if isinstance(raw, Mapping):
            return cls.from_mapping(raw)
        if isinstance(raw, (list, tuple)):
            return cls.from_array(raw)
        return None

    @classmethod
    def from_array(cls, arr: List[Any]) -> Optional['StateVector']:
        """Positional wire shape; None when shorter than 12 slots or lacking icao24."""
        if not arr or len(arr) < 12:
            return None
        padded = list(arr) + [None] * (len(_STATE_FIELDS) - len(arr))
        return cls.from_mapping(dict(zip(_STATE_FIELDS, padded)))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Optional['StateVector']:
        """Parse a keyed state vector object."""
        icao24 = data.get('icao24')
        if not icao24 or not isinstance(icao24, str):
            return None

        callsign = data.get('callsign')
        if isinstance(callsign, str):
            callsign = callsign.strip() or None
        else:
            callsign = None

        return cls(
            icao24=icao24.strip().lower(),
            callsign=callsign,
            origin_country=data.get('origin_country'),
            time_position=_to_int(data.get('time_position')),
            last_contact=_to_int(data.get('last_contact')),
            longitude=_to_float(data.get('longitude')),
            latitude=_to_float(data.get('latitude')),
            baro_altitude=_to_float(data.get('baro_altitude')),
            on_ground=bool(data.get('on_ground')),
            velocity=_to_float(data.get('velocity')),
            true_track=_to_float(data.get('true_track')),
            vertical_rate=_to_float(data.get('vertical_rate')),
            geo_altitude=_to_float(data.get('geo_altitude')),
            squawk=data.get('squawk'),
            spi=bool(data.get('spi')),
            position_source=_to_int(data.get('position_source')),
        )

    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class OpenSkyClient:
    """
    Thin wrapper over a requests.Session for /states/all.

    The minimum request spacing is shared by every thread using the client.
    Without credentials OpenSky allows roughly one request per 10 seconds.
    """

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        base_url: str = 'https://opensky-network.org/api',
        timeout: float = 10.0,
        min_interval: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.auth = None
        if username and password:
            self.auth = HTTPBasicAuth(username, password)
            logger.info('OpenSky client initialized with authentication')
        else:
            logger.warning('OpenSky client running without authentication (lower rate limits)')

        self.session = session or requests.Session()
        self.last_request_time: float = 0
        if min_interval is None:
            min_interval = 5.0 if self.auth else 10.0
        self._min_interval = min_interval
        self._rate_lock = threading.Lock()

    @classmethod
    def from_config(cls) -> 'OpenSkyClient':
        """Client with credentials, endpoint and spacing from the environment."""
        return cls(
            username=config.opensky.username,
            password=config.opensky.password,
            base_url=config.opensky.base_url,
            timeout=config.opensky.timeout_seconds,
            min_interval=config.opensky.rate_limit_seconds,
        )

    def _wait_for_rate_limit(self) -> None:
        """Sleep off the rest of the minimum spacing. Caller holds _rate_lock."""
        elapsed = time.monotonic() - self.last_request_time
        if self.last_request_time and elapsed < self._min_interval:
            sleep_time = self._min_interval - elapsed
            logger.debug(f'Rate limiting: sleeping {sleep_time:.1f}s')
            time.sleep(sleep_time)

    def get_states(
        self,
        bbox: Optional[BoundingBox] = None,
        icao24: Optional[List[str]] = None,
    ) -> Tuple[int, List[StateVector]]:
        """
        One snapshot of /states/all, optionally narrowed.

        Args:
            bbox: Restrict to aircraft inside this box
            icao24: Restrict to these airframe addresses

        Returns:
            (server time of the snapshot, parsed states). States are not
            filtered for validity.

        Raises:
            requests.RequestException when the request or status fails
            ValueError when the body is not a JSON object
        """
        url = f'{self.base_url}/states/all'
        params = {}

        if bbox:
            params.update(bbox.to_params())

        if icao24:
            # One icao24 parameter per address
            params['icao24'] = [i.lower() for i in icao24]

        logger.debug(f'Fetching states: {url} params={params}')

        with self._rate_lock:
            self._wait_for_rate_limit()
            try:
                response = self.session.get(
                    url,
                    params=params,
                    auth=self.auth,
                    timeout=self.timeout,
                )
            finally:
                self.last_request_time = time.monotonic()

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            if e.response is not None and e.response.status_code == 429:
                logger.warning('OpenSky rate limit exceeded')
            else:
                logger.error(f'OpenSky API error: {response.status_code}')
            raise

        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f'Unexpected OpenSky payload type: {type(data).__name__}')

        api_time = data.get('time') or int(time.time())
        states_raw = data.get('states') or []

        logger.debug(f'Received {len(states_raw)} state vectors from OpenSky')

        states = []
        for raw in states_raw:
            sv = StateVector.parse(raw)
            if sv:
                states.append(sv)

        return api_time, states
