from datetime import datetime, timedelta, timezone

import pytest

from flightpath.ingestion.opensky_client import StateVector
from flightpath.ingestion.telemetry import LookupOutcome, TelemetryLookup, to_record

ORD = (41.9742, -87.9073)
NRT = (35.7647, 140.3864)

DEPARTURE = datetime.fromisoformat('2025-06-25T12:30:00-05:00')
ARRIVAL = datetime.fromisoformat('2025-06-26T15:15:00+09:00')


@pytest.fixture
def anyio_backend():
    return 'asyncio'


def flight_entry(**overrides) -> dict:
    """Chicago O'Hare -> Tokyo Narita descriptor in dashboard config format."""
    entry = {
        'id': 'ord-nrt',
        'flightNumber': 'UA881',
        'callsign': 'UAL881',
        'icao24': 'A1B2C3',
        'from': {'code': 'ORD', 'city': 'Chicago', 'coordinates': list(ORD)},
        'to': {'code': 'NRT', 'city': 'Tokyo', 'coordinates': list(NRT)},
        'departure': '2025-06-25T12:30:00-05:00',
        'arrival': '2025-06-26T15:15:00+09:00',
        'aircraft': 'Boeing 787-9',
        'airline': 'United Airlines',
        'priority': 'high',
        'trackingEnabled': True,
    }
    entry.update(overrides)
    return entry


def state_array(
    icao24='a1b2c3',
    callsign='UAL881  ',
    latitude=55.0,
    longitude=-160.0,
    on_ground=False,
    velocity=250.0,
    last_contact=1750900000,
):
    """Raw OpenSky REST state vector."""
    return [
        icao24, callsign, 'United States', last_contact - 1, last_contact,
        longitude, latitude, 11000.0, on_ground, velocity, 285.0, 0.0,
        None, 11200.0, '2301', False, 0,
    ]


def live_record(**kwargs):
    """LiveTelemetryRecord built the way the adapter builds it."""
    return to_record(StateVector.from_array(state_array(**kwargs)))


class FakeClock:
    """Settable timezone-aware clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeTelemetry:
    """
    In-memory telemetry source.

    Responses are keyed by icao24/callsign and may be a TelemetryLookup,
    a LiveTelemetryRecord (reported as found) or an exception to raise.
    """

    def __init__(self):
        self.airframes = {}
        self.callsigns = {}
        self.calls = []
        self.watched = []
        self.area = []
        self.connectivity_lost = False

    def _respond(self, kind, key, table):
        self.calls.append((kind, key))
        lookup_key = f'{kind}:{key}'
        response = table.get(key)
        if response is None:
            return TelemetryLookup(lookup_key, LookupOutcome.NOT_FOUND)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, TelemetryLookup):
            return response
        return TelemetryLookup(lookup_key, LookupOutcome.FOUND, record=response)

    def lookup_airframe(self, icao24):
        return self._respond('icao24', icao24, self.airframes)

    def lookup_callsign(self, callsign):
        return self._respond('callsign', callsign, self.callsigns)

    def watch_airframes(self, icao24s):
        self.watched = list(icao24s)

    def flights_in_bounds(self, bbox):
        self.calls.append(('bbox', bbox))
        return list(self.area)

    def flights_near(self, center, radius_km):
        self.calls.append(('near', (center.latitude, center.longitude, radius_km)))
        return list(self.area)


@pytest.fixture
def clock():
    return FakeClock(DEPARTURE + (ARRIVAL - DEPARTURE) / 2)


@pytest.fixture
def telemetry():
    return FakeTelemetry()
