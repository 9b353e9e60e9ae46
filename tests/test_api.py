from datetime import datetime, timedelta, timezone

import pytest

from flightpath.app import create_app
from flightpath.config import TrackingConfig

from conftest import FakeTelemetry, flight_entry, live_record


def scheduled_entry(**overrides):
    """Flight in the air right now by the wall clock."""
    now = datetime.now(timezone.utc)
    entry = flight_entry(
        departure=(now - timedelta(hours=2)).isoformat(),
        arrival=(now + timedelta(hours=10)).isoformat(),
    )
    entry.update(overrides)
    return entry


@pytest.fixture
def telemetry():
    fake = FakeTelemetry()
    fake.airframes['a1b2c3'] = live_record()
    return fake


@pytest.fixture
def app(telemetry):
    flights = [
        scheduled_entry(),
        scheduled_entry(id='lhr-jfk', icao24='abcdef', callsign='BAW117', priority='low'),
        scheduled_entry(id='broken', arrival='2020-01-01T00:00:00Z'),
    ]
    app = create_app(
        flights=flights,
        telemetry=telemetry,
        tracking_config=TrackingConfig(enable_live_tracking=True, telemetry_call_timeout_seconds=5),
    )
    app.config['TESTING'] = True
    yield app
    app.config['TRACKER_RUNNER'].stop()


@pytest.fixture
def client(app):
    return app.test_client()


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json() == {'status': 'ok'}


def test_unknown_route(client):
    response = client.get('/api/nowhere')
    assert response.status_code == 404
    assert response.get_json() == {'error': 'Not found'}


class TestFlightsApi:

    def test_list_flights(self, client):
        data = client.get('/api/flights').get_json()

        assert data['count'] == 2
        assert {f['id'] for f in data['flights']} == {'ord-nrt', 'lhr-jfk'}
        assert 'query_time_ms' in data
        assert 'path' not in data['flights'][0]

    def test_live_only(self, client):
        data = client.get('/api/flights?live_only=true').get_json()
        assert [f['id'] for f in data['flights']] == ['ord-nrt']
        assert data['flights'][0]['is_live'] is True
        assert data['flights'][0]['live_data']['callsign'] == 'UAL881'

    def test_include_path(self, client):
        data = client.get('/api/flights?include_path=true').get_json()
        assert len(data['flights'][0]['path']['coordinates']) == 100

    def test_get_flight(self, client):
        data = client.get('/api/flights/lhr-jfk').get_json()

        assert data['id'] == 'lhr-jfk'
        assert data['is_live'] is False
        assert data['status'] == 'current'
        assert data['update_interval_seconds'] == 300
        assert [e['type'] for e in data['errors']] == ['FLIGHT_NOT_FOUND']

    def test_get_unknown_flight(self, client):
        response = client.get('/api/flights/nope')
        assert response.status_code == 404
        assert 'not being tracked' in response.get_json()['error']

    def test_path(self, client):
        data = client.get('/api/flights/ord-nrt/path').get_json()
        assert data['coordinates'][0] == [41.9742, -87.9073]
        assert data['coordinates'][-1] == [35.7647, 140.3864]
        assert data['distance_km'] > 10000

    def test_refresh(self, client, telemetry):
        telemetry.calls.clear()
        response = client.post('/api/flights/ord-nrt/refresh')

        assert response.status_code == 200
        assert response.get_json()['is_live'] is True
        assert telemetry.calls == [('icao24', 'a1b2c3')]

    def test_refresh_all(self, client):
        data = client.post('/api/flights/refresh').get_json()
        assert data['count'] == 2

    def test_stop_and_start(self, client):
        response = client.post('/api/flights/ord-nrt/stop')
        assert response.get_json() == {'id': 'ord-nrt', 'stopped': True}
        assert client.get('/api/flights/ord-nrt').status_code == 404
        assert client.post('/api/flights/ord-nrt/stop').status_code == 404

        response = client.post('/api/flights/ord-nrt/start')
        assert response.status_code == 200
        assert response.get_json()['id'] == 'ord-nrt'

    def test_start_untrackable(self, client):
        assert client.post('/api/flights/broken/start').status_code == 409
        assert client.post('/api/flights/nope/start').status_code == 409


class TestTrackingApi:

    def test_status(self, client):
        data = client.get('/api/tracking/status').get_json()

        assert data['status'] == 'healthy'
        assert data['tracking']['total_flights'] == 2
        assert data['tracking']['live_flights'] == 1
        assert data['config']['intervals']['low'] == 300

    def test_errors(self, client):
        data = client.get('/api/tracking/errors?limit=100').get_json()
        kinds = [e['type'] for e in data['errors']]

        assert 'CONFIGURATION_ERROR' in kinds
        assert 'FLIGHT_NOT_FOUND' in kinds
        assert data['count'] == len(kinds)

    def test_errors_bad_limit(self, client):
        assert client.get('/api/tracking/errors?limit=lots').status_code == 400

    def test_clear_errors(self, client):
        assert client.delete('/api/tracking/errors').get_json() == {'cleared': True}
        assert client.get('/api/tracking/errors').get_json()['count'] == 0

    def test_stop_and_restart(self, client):
        assert client.post('/api/tracking/stop').get_json() == {'is_tracking': False}
        assert client.get('/api/flights').get_json()['count'] == 0
        assert client.get('/api/tracking/status').get_json()['status'] == 'degraded'

        data = client.post('/api/tracking/start').get_json()
        assert data == {'is_tracking': True, 'total_flights': 2}


class TestNearbyApi:

    def test_around_point(self, client, telemetry):
        telemetry.area = [live_record()]

        response = client.get('/api/flights/nearby?lat=55&lon=-160&radius_km=250')
        data = response.get_json()

        assert response.status_code == 200
        assert data['count'] == 1
        assert data['aircraft'][0]['icao24'] == 'a1b2c3'
        assert 'query_time_ms' in data
        assert telemetry.calls[-1] == ('near', (55.0, -160.0, 250.0))

    def test_default_radius(self, client, telemetry):
        client.get('/api/flights/nearby?lat=55&lon=-160')
        assert telemetry.calls[-1] == ('near', (55.0, -160.0, 100.0))

    def test_inside_box(self, client, telemetry):
        telemetry.area = [live_record(), live_record(icao24='bbbbbb', callsign='JAL9')]

        data = client.get('/api/flights/nearby?lamin=50&lamax=60&lomin=-170&lomax=-150').get_json()

        assert data['count'] == 2
        kind, bbox = telemetry.calls[-1]
        assert kind == 'bbox'
        assert (bbox.lat_min, bbox.lat_max, bbox.lon_min, bbox.lon_max) == (50.0, 60.0, -170.0, -150.0)

    def test_empty_when_upstream_has_nothing(self, client, telemetry):
        data = client.get('/api/flights/nearby?lat=0&lon=0').get_json()
        assert data['aircraft'] == []
        assert data['count'] == 0

    @pytest.mark.parametrize('query', [
        '',
        'lat=55',
        'lat=north&lon=-160',
        'lat=95&lon=-160',
        'lat=55&lon=-160&radius_km=0',
        'lat=55&lon=-160&radius_km=501',
        'lamin=50&lamax=60&lomin=-170',
        'lamin=60&lamax=50&lomin=-170&lomax=-150',
        'lamin=50&lamax=60&lomin=-190&lomax=-150',
    ])
    def test_bad_parameters(self, client, telemetry, query):
        calls = len(telemetry.calls)
        response = client.get(f'/api/flights/nearby?{query}')
        assert response.status_code == 400
        assert 'error' in response.get_json()
        assert len(telemetry.calls) == calls
