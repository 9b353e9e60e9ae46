import pytest
import requests

from flightpath.cache import TTLCache
from flightpath.ingestion.opensky_client import BoundingBox, StateVector
from flightpath.ingestion.telemetry import (
    LookupOutcome,
    OpenSkyTelemetry,
    to_record,
    validate_state,
)
from flightpath.models import Coordinate

from conftest import state_array


class FakeClient:
    """Stands in for OpenSkyClient; replies from a queue."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def _next(self):
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        api_time, raw = reply
        return api_time, [StateVector.parse(r) for r in raw]

    def get_states(self, bbox=None, icao24=None):
        self.calls.append({'bbox': bbox, 'icao24': icao24})
        return self._next()


class Ticker:

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_adapter(*replies, ttl=10):
    client = FakeClient(*replies)
    ticker = Ticker()
    adapter = OpenSkyTelemetry(client=client, cache=TTLCache(ttl_seconds=ttl, clock=ticker))
    return adapter, client, ticker


class TestValidation:

    def test_valid_airborne_state(self):
        assert validate_state(StateVector.from_array(state_array())) is None

    @pytest.mark.parametrize('overrides, reason', [
        ({'latitude': None}, 'missing position'),
        ({'latitude': 91.0}, 'out of range'),
        ({'callsign': '   '}, 'blank callsign'),
        ({'on_ground': True}, 'on ground'),
    ])
    def test_rejections(self, overrides, reason):
        assert reason in validate_state(StateVector.from_array(state_array(**overrides)))

    def test_to_record(self):
        record = to_record(StateVector.from_array(state_array()))
        assert record.position == Coordinate(55.0, -160.0)
        assert record.altitude_m == 11000.0
        assert record.ground_speed_mps == 250.0
        assert record.heading_deg == 285.0
        assert record.callsign == 'UAL881'
        assert record.airframe_id == 'a1b2c3'
        assert record.source_timestamp.timestamp() == 1750900000
        assert record.speed_kts == int(250.0 * 1.94384)

    def test_to_record_falls_back_to_geo_altitude(self):
        raw = state_array()
        raw[7] = None
        assert to_record(StateVector.from_array(raw)).altitude_m == 11200.0


class TestAirframeLookup:

    def test_found(self):
        adapter, client, _ = make_adapter((1750900000, [state_array()]))

        result = adapter.lookup_airframe('A1B2C3')

        assert result.outcome == LookupOutcome.FOUND
        assert result.record.airframe_id == 'a1b2c3'
        assert client.calls == [{'bbox': None, 'icao24': ['a1b2c3']}]

    def test_cached_within_window(self):
        adapter, client, ticker = make_adapter((1750900000, [state_array()]))

        adapter.lookup_airframe('a1b2c3')
        ticker.now += 5
        second = adapter.lookup_airframe('a1b2c3')

        assert second.from_cache
        assert len(client.calls) == 1

        ticker.now += 10
        third = adapter.lookup_airframe('a1b2c3')
        assert not third.from_cache
        assert len(client.calls) == 2

    def test_not_found(self):
        adapter, _, _ = make_adapter((1, []))
        result = adapter.lookup_airframe('ffffff')
        assert result.outcome == LookupOutcome.NOT_FOUND
        assert adapter.by_airframe_id('ffffff') is None

    def test_on_ground_is_invalid_and_not_cached(self):
        adapter, client, ticker = make_adapter((1, [state_array(on_ground=True)]))

        result = adapter.lookup_airframe('a1b2c3')
        assert result.outcome == LookupOutcome.INVALID
        assert 'on ground' in result.detail

        # Answered again from the batch snapshot, never from the record cache
        second = adapter.lookup_airframe('a1b2c3')
        assert second.outcome == LookupOutcome.INVALID
        assert not second.from_cache
        assert len(client.calls) == 1

        ticker.now += 11
        adapter.lookup_airframe('a1b2c3')
        assert len(client.calls) == 2

    def test_http_error_is_reported_not_raised(self):
        adapter, _, _ = make_adapter(requests.exceptions.HTTPError('503 Server Error'))
        result = adapter.lookup_airframe('a1b2c3')
        assert result.outcome == LookupOutcome.ERROR
        assert result.failed
        assert not adapter.connectivity_lost

    def test_empty_key(self):
        adapter, client, _ = make_adapter((1, []))
        assert adapter.lookup_airframe('  ').outcome == LookupOutcome.NOT_FOUND
        assert client.calls == []


class TestCallsignLookup:

    def test_case_insensitive_trimmed_match(self):
        adapter, _, _ = make_adapter((1, [state_array(callsign='UAL881  ')]))
        record = adapter.by_callsign(' ual881 ')
        assert record is not None
        assert record.callsign == 'UAL881'

    def test_no_partial_match(self):
        adapter, _, _ = make_adapter((1, [state_array(callsign='UAL8810')]))
        assert adapter.lookup_callsign('UAL881').outcome == LookupOutcome.NOT_FOUND

    def test_all_states_snapshot_is_shared(self):
        states = [
            state_array(icao24='aaaaaa', callsign='UAL881'),
            state_array(icao24='bbbbbb', callsign='JAL9'),
        ]
        adapter, client, _ = make_adapter((1, states))

        assert adapter.by_callsign('UAL881').airframe_id == 'aaaaaa'
        assert adapter.by_callsign('JAL9').airframe_id == 'bbbbbb'
        assert adapter.lookup_callsign('NONE1').outcome == LookupOutcome.NOT_FOUND
        assert len(client.calls) == 1

    def test_first_valid_match_wins(self):
        states = [
            state_array(icao24='aaaaaa', callsign='UAL881', on_ground=True),
            state_array(icao24='bbbbbb', callsign='UAL881'),
        ]
        adapter, _, _ = make_adapter((1, states))
        assert adapter.by_callsign('UAL881').airframe_id == 'bbbbbb'


class TestConnectivity:

    def test_unreachable_after_repeated_transport_failures(self):
        adapter, _, _ = make_adapter(requests.exceptions.ConnectionError('down'))

        for _ in range(2):
            result = adapter.lookup_airframe('a1b2c3')
            assert result.outcome == LookupOutcome.UNREACHABLE
        assert not adapter.connectivity_lost

        adapter.lookup_airframe('a1b2c3')
        assert adapter.connectivity_lost
        assert adapter.stats['consecutive_failures'] == 3

    def test_success_resets_failures(self):
        adapter, client, _ = make_adapter(
            requests.exceptions.Timeout('slow'),
            requests.exceptions.Timeout('slow'),
            requests.exceptions.Timeout('slow'),
            (1, [state_array()]),
        )
        for _ in range(3):
            adapter.lookup_airframe('a1b2c3')
        assert adapter.connectivity_lost

        assert adapter.lookup_airframe('a1b2c3').found
        assert not adapter.connectivity_lost


class TestBatching:

    def test_watched_airframes_share_one_request(self):
        states = [state_array(icao24='aaaaaa'), state_array(icao24='bbbbbb', callsign='JAL9')]
        adapter, client, _ = make_adapter((1, states))
        adapter.watch_airframes(['BBBBBB', 'aaaaaa', ''])

        assert adapter.lookup_airframe('aaaaaa').found
        assert adapter.lookup_airframe('bbbbbb').found
        assert client.calls == [{'bbox': None, 'icao24': ['aaaaaa', 'bbbbbb']}]

    def test_unwatched_airframe_triggers_new_batch(self):
        adapter, client, _ = make_adapter((1, [state_array(icao24='aaaaaa')]))
        adapter.watch_airframes(['aaaaaa'])

        adapter.lookup_airframe('aaaaaa')
        assert adapter.lookup_airframe('cccccc').outcome == LookupOutcome.NOT_FOUND

        assert len(client.calls) == 2
        assert client.calls[1]['icao24'] == ['aaaaaa', 'cccccc']

    def test_absent_from_batch_is_not_found(self):
        adapter, client, _ = make_adapter((1, [state_array(icao24='aaaaaa')]))
        adapter.watch_airframes(['aaaaaa', 'bbbbbb'])

        assert adapter.lookup_airframe('bbbbbb').outcome == LookupOutcome.NOT_FOUND
        assert adapter.lookup_airframe('aaaaaa').found
        assert len(client.calls) == 1


class TestAreaQueries:

    def test_flights_in_bounds_filters_invalid_states(self):
        states = [
            state_array(icao24='aaaaaa'),
            state_array(icao24='bbbbbb', on_ground=True),
        ]
        adapter, client, _ = make_adapter((1, states))
        bbox = BoundingBox(lat_min=50.0, lat_max=60.0, lon_min=-170.0, lon_max=-150.0)

        records = adapter.flights_in_bounds(bbox)

        assert [r.airframe_id for r in records] == ['aaaaaa']
        assert client.calls == [{'bbox': bbox, 'icao24': None}]

    def test_flights_in_bounds_error_yields_empty_list(self):
        adapter, _, _ = make_adapter(requests.exceptions.HTTPError('429 Too Many Requests'))
        bbox = BoundingBox(lat_min=50.0, lat_max=60.0, lon_min=-170.0, lon_max=-150.0)

        assert adapter.flights_in_bounds(bbox) == []
        assert adapter.stats['errors'] == 1

    def test_flights_near_uses_enclosing_box(self):
        adapter, client, _ = make_adapter((1, [state_array(icao24='aaaaaa')]))

        records = adapter.flights_near(Coordinate(55.0, -160.0), 200.0)

        assert [r.airframe_id for r in records] == ['aaaaaa']
        assert client.calls[0]['bbox'] == BoundingBox.from_center_radius(55.0, -160.0, 200.0)

    def test_flights_near_drops_box_corners(self):
        # Second aircraft sits inside the 111 km box but about 150 km from center
        states = [
            state_array(icao24='aaaaaa', latitude=0.5, longitude=0.5),
            state_array(icao24='bbbbbb', latitude=0.95, longitude=0.95),
        ]
        adapter, _, _ = make_adapter((1, states))

        records = adapter.flights_near(Coordinate(0.0, 0.0), 111.0)

        assert [r.airframe_id for r in records] == ['aaaaaa']

    def test_flights_near_swallows_transport_errors(self):
        adapter, _, _ = make_adapter(requests.exceptions.ConnectionError('down'))
        assert adapter.flights_near(Coordinate(55.0, -160.0), 50.0) == []
