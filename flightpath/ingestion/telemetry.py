"""
Telemetry adapter - live position lookups for individual aircraft.

Wraps the OpenSky client with:
- Lookup by ICAO24 airframe address (preferred, unique), batched across flights
- Lookup by callsign (fallback; case-insensitive exact match after trim)
- Validation of raw state vectors (position, callsign, airborne)
- Normalization into LiveTelemetryRecord
- A short-lived cache bounding the call volume against OpenSky
- Area queries (box or radius) for aircraft near a point

Failure policy:
Upstream problems (connection loss, timeouts, HTTP errors, malformed
payloads) are logged and reported as an unsuccessful TelemetryLookup;
nothing raises past this module. by_airframe_id() and by_callsign()
collapse every unsuccessful outcome to None.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Protocol, Tuple

import requests

from flightpath.analytics.geodesy import distance
from flightpath.cache import TTLCache
from flightpath.config import config
from flightpath.ingestion.opensky_client import BoundingBox, OpenSkyClient, StateVector
from flightpath.models.geo import Coordinate
from flightpath.models.telemetry import LiveTelemetryRecord

logger = logging.getLogger(__name__)

# Consecutive transport failures before connectivity is considered lost
CONNECTIVITY_FAILURE_THRESHOLD = 3

_ALL_STATES_KEY = 'states:all'
_AIRFRAME_STATES_KEY = 'states:airframes'


class LookupOutcome(str, Enum):
    """Result classification of one telemetry lookup."""
    FOUND = 'found'
    NOT_FOUND = 'not_found'
    INVALID = 'invalid'
    ERROR = 'error'
    UNREACHABLE = 'unreachable'


@dataclass(frozen=True)
class TelemetryLookup:
    """Outcome of a lookup; record is set only when outcome is FOUND."""
    key: str
    outcome: LookupOutcome
    record: Optional[LiveTelemetryRecord] = None
    detail: Optional[str] = None
    from_cache: bool = False

    @property
    def found(self) -> bool:
        return self.record is not None

    @property
    def failed(self) -> bool:
        """True when the source could not answer (as opposed to answering 'no')."""
        return self.outcome in (LookupOutcome.ERROR, LookupOutcome.UNREACHABLE)


class TelemetrySource(Protocol):
    """What the tracker needs from a telemetry adapter."""

    connectivity_lost: bool

    def watch_airframes(self, icao24s: Iterable[str]) -> None:
        ...

    def lookup_airframe(self, icao24: str) -> TelemetryLookup:
        ...

    def lookup_callsign(self, callsign: str) -> TelemetryLookup:
        ...

    def flights_in_bounds(self, bbox: BoundingBox) -> List[LiveTelemetryRecord]:
        ...

    def flights_near(self, center: Coordinate, radius_km: float) -> List[LiveTelemetryRecord]:
        ...


def validate_state(sv: StateVector) -> Optional[str]:
    """
    Check a state vector is usable for in-transit tracking.

    Returns a reason string if invalid, None if valid.
    """
    if not sv.has_position():
        return 'missing position'
    if not Coordinate.is_valid(sv.latitude, sv.longitude):
        return f'position out of range ({sv.latitude}, {sv.longitude})'
    if not sv.callsign:
        return 'blank callsign'
    if sv.on_ground:
        return 'aircraft on ground'
    return None


def to_record(sv: StateVector, api_time: Optional[int] = None) -> LiveTelemetryRecord:
    """Normalize a validated state vector into a LiveTelemetryRecord."""
    altitude = sv.baro_altitude if sv.baro_altitude is not None else sv.geo_altitude
    seen = sv.last_contact or sv.time_position or api_time
    source_timestamp = (
        datetime.fromtimestamp(seen, tz=timezone.utc) if seen else datetime.now(timezone.utc)
    )
    return LiveTelemetryRecord(
        position=Coordinate(latitude=sv.latitude, longitude=sv.longitude),
        altitude_m=altitude or 0.0,
        ground_speed_mps=sv.velocity or 0.0,
        heading_deg=(sv.true_track or 0.0) % 360.0,
        on_ground=sv.on_ground,
        source_timestamp=source_timestamp,
        airframe_id=sv.icao24,
        callsign=sv.callsign,
        origin_country=sv.origin_country,
        vertical_rate_mps=sv.vertical_rate,
        squawk=sv.squawk,
    )


def normalize_callsign(callsign: str) -> str:
    return (callsign or '').strip().upper()


class OpenSkyTelemetry:
    """
    Cached live telemetry lookups against OpenSky.

    The cache is shared by all flights, and each request serves many
    lookups:
    - Airframe lookups are batched. One request asks for every watched
      icao24 address, and the snapshot answers all of them for the
      validity window. OpenSky spaces requests 5-10 s apart, so one
      request per airframe would queue flights behind each other.
    - Callsign lookups need the full state list, since OpenSky cannot
      filter by callsign. That snapshot is cached and shared the same way.
    """

    def __init__(
        self,
        client: Optional[OpenSkyClient] = None,
        cache: Optional[TTLCache] = None,
    ):
        self.client = client or OpenSkyClient.from_config()
        self.cache = cache or TTLCache(ttl_seconds=config.tracking.telemetry_cache_seconds)

        # Per-key locks so concurrent lookups of one key share a single fetch
        self._key_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        # Airframes included in every batched request
        self._watched: FrozenSet[str] = frozenset()

        self._consecutive_failures = 0
        self._state_lock = threading.Lock()

        # Statistics
        self._requests = 0
        self._errors = 0

    @classmethod
    def from_config(cls) -> 'OpenSkyTelemetry':
        return cls(client=OpenSkyClient.from_config())

    # -------------------------------------------------------------------------
    # Public lookups
    # -------------------------------------------------------------------------

    def by_airframe_id(self, icao24: str) -> Optional[LiveTelemetryRecord]:
        return self.lookup_airframe(icao24).record

    def by_callsign(self, callsign: str) -> Optional[LiveTelemetryRecord]:
        return self.lookup_callsign(callsign).record

    def watch_airframes(self, icao24s: Iterable[str]) -> None:
        """Replace the set of airframes requested together in each batch."""
        watched = frozenset(i.strip().lower() for i in icao24s if i and i.strip())
        with self._locks_guard:
            self._watched = watched
        logger.debug(f'Watching {len(watched)} airframes')

    def lookup_airframe(self, icao24: str) -> TelemetryLookup:
        """Look up the current airborne state of one airframe."""
        icao24 = (icao24 or '').strip().lower()
        key = f'icao24:{icao24}'
        if not icao24:
            return TelemetryLookup(key, LookupOutcome.NOT_FOUND, detail='empty icao24')

        cached = self.cache.get(key)
        if cached is not None:
            return TelemetryLookup(key, LookupOutcome.FOUND, record=cached, from_cache=True)

        try:
            api_time, states = self._airframe_states(icao24)
        except (requests.exceptions.RequestException, ValueError) as e:
            return self._failed_lookup(key, e)

        matches = [sv for sv in states if sv.icao24 == icao24]
        return self._resolve(key, matches, api_time)

    def lookup_callsign(self, callsign: str) -> TelemetryLookup:
        """Look up an airborne aircraft broadcasting this callsign."""
        target = normalize_callsign(callsign)
        key = f'callsign:{target}'
        if not target:
            return TelemetryLookup(key, LookupOutcome.NOT_FOUND, detail='empty callsign')

        cached = self.cache.get(key)
        if cached is not None:
            return TelemetryLookup(key, LookupOutcome.FOUND, record=cached, from_cache=True)

        try:
            api_time, states = self._all_states()
        except (requests.exceptions.RequestException, ValueError) as e:
            return self._failed_lookup(key, e)

        matches = [sv for sv in states if normalize_callsign(sv.callsign) == target]
        return self._resolve(key, matches, api_time)

    def flights_in_bounds(self, bbox: BoundingBox) -> List[LiveTelemetryRecord]:
        """
        All valid airborne aircraft inside a bounding box.

        Not cached. An upstream failure is logged and yields an empty list.
        """
        try:
            api_time, states = self._fetch(bbox=bbox)
        except (requests.exceptions.RequestException, ValueError) as e:
            self._failed_lookup(f'bbox:{bbox.lat_min},{bbox.lon_min},{bbox.lat_max},{bbox.lon_max}', e)
            return []
        return [to_record(sv, api_time) for sv in states if validate_state(sv) is None]

    def flights_near(self, center: Coordinate, radius_km: float) -> List[LiveTelemetryRecord]:
        """All valid airborne aircraft within radius_km (great-circle) of a point."""
        bbox = BoundingBox.from_center_radius(center.latitude, center.longitude, radius_km)
        # The box overshoots the circle at its corners
        return [
            record for record in self.flights_in_bounds(bbox)
            if distance(center, record.position) <= radius_km
        ]

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def _all_states(self) -> Tuple[int, List[StateVector]]:
        """Full state list, shared by callsign lookups within the cache window."""
        cached = self.cache.get(_ALL_STATES_KEY)
        if cached is not None:
            return cached

        with self._lock_for(_ALL_STATES_KEY):
            cached = self.cache.get(_ALL_STATES_KEY)
            if cached is not None:
                return cached
            snapshot = self._fetch()
            self.cache.set(_ALL_STATES_KEY, snapshot)
            return snapshot

    def _airframe_states(self, icao24: str) -> Tuple[int, List[StateVector]]:
        """
        Batched state list covering icao24 and every watched airframe.

        A cached batch answers any airframe it was requested for; an
        airframe outside it triggers a new batch that includes it.
        """
        with self._lock_for(_AIRFRAME_STATES_KEY):
            cached = self.cache.get(_AIRFRAME_STATES_KEY)
            if cached is not None:
                covered, api_time, states = cached
                if icao24 in covered:
                    return api_time, states

            with self._locks_guard:
                covered = self._watched | {icao24}
            api_time, states = self._fetch(icao24=sorted(covered))
            self.cache.set(_AIRFRAME_STATES_KEY, (covered, api_time, states))
            return api_time, states

    def _fetch(self, **kwargs) -> Tuple[int, List[StateVector]]:
        return self._call(self.client.get_states, **kwargs)

    def _call(self, fn, *args, **kwargs) -> Tuple[int, List[StateVector]]:
        """Invoke the client, maintaining connectivity and request statistics."""
        with self._state_lock:
            self._requests += 1
        try:
            result = fn(*args, **kwargs)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout):
            with self._state_lock:
                self._consecutive_failures += 1
                self._errors += 1
            raise
        except Exception:
            with self._state_lock:
                # The source answered, so the network path is fine
                self._consecutive_failures = 0
                self._errors += 1
            raise
        with self._state_lock:
            self._consecutive_failures = 0
        return result

    def _resolve(
        self,
        key: str,
        matches: List[StateVector],
        api_time: Optional[int],
    ) -> TelemetryLookup:
        if not matches:
            logger.debug(f'No state vector for {key}')
            return TelemetryLookup(key, LookupOutcome.NOT_FOUND)

        reasons = []
        for sv in matches:
            reason = validate_state(sv)
            if reason is None:
                record = to_record(sv, api_time)
                self.cache.set(key, record)
                return TelemetryLookup(key, LookupOutcome.FOUND, record=record)
            reasons.append(reason)

        detail = ', '.join(sorted(set(reasons)))
        logger.debug(f'Filtered state vectors for {key}: {detail}')
        return TelemetryLookup(key, LookupOutcome.INVALID, detail=detail)

    def _failed_lookup(self, key: str, error: Exception) -> TelemetryLookup:
        if isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
            logger.warning(f'OpenSky unreachable for {key}: {error}')
            return TelemetryLookup(key, LookupOutcome.UNREACHABLE, detail=str(error))
        logger.error(f'OpenSky lookup failed for {key}: {error}')
        return TelemetryLookup(key, LookupOutcome.ERROR, detail=str(error))

    def clear_cache(self) -> None:
        self.cache.clear()

    @property
    def connectivity_lost(self) -> bool:
        with self._state_lock:
            return self._consecutive_failures >= CONNECTIVITY_FAILURE_THRESHOLD

    @property
    def cache_stats(self) -> dict:
        return self.cache.stats

    @property
    def stats(self) -> dict:
        with self._state_lock:
            return {
                'requests': self._requests,
                'errors': self._errors,
                'consecutive_failures': self._consecutive_failures,
                'connectivity_lost': self._consecutive_failures >= CONNECTIVITY_FAILURE_THRESHOLD,
                'cache': self.cache.stats,
            }
