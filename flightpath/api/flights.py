"""
Flight tracking API endpoints.

Provides endpoints for:
- GET  /api/flights                 - Snapshots of all tracked flights
- GET  /api/flights/nearby          - Live aircraft around a point or inside a box
- GET  /api/flights/<id>            - Single flight snapshot
- GET  /api/flights/<id>/path       - Great-circle path for map display
- POST /api/flights/refresh         - Refresh every tracked flight now
- POST /api/flights/<id>/refresh    - Refresh one flight now
- POST /api/flights/<id>/start      - Start tracking one configured flight
- POST /api/flights/<id>/stop       - Stop tracking one flight
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from flightpath.ingestion.opensky_client import BoundingBox
from flightpath.models.geo import Coordinate

logger = logging.getLogger(__name__)

flights_bp = Blueprint('flights', __name__, url_prefix='/api/flights')

MAX_NEARBY_RADIUS_KM = 500.0


def _runner():
    return current_app.config['TRACKER_RUNNER']


def _not_tracked(flight_id: str):
    return jsonify({'error': f'Flight {flight_id} is not being tracked'}), 404


@flights_bp.route('', methods=['GET'])
def list_flights():
    """
    List all tracked flights.

    Query parameters:
    - live_only: boolean, only flights positioned by live telemetry (default false)
    - include_path: boolean, include path coordinates (default false)

    Response includes query timing for latency awareness.
    """
    start_time = time.perf_counter()

    live_only = request.args.get('live_only', 'false').lower() == 'true'
    include_path = request.args.get('include_path', 'false').lower() == 'true'

    runner = _runner()
    records = runner.call(runner.tracker.snapshots)
    if live_only:
        records = [r for r in records if r.is_live]

    records.sort(key=lambda r: r.schedule.departure)
    flights = [r.to_dict(include_path=include_path) for r in records]

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'flights': flights,
        'count': len(flights),
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })


def _float_arg(name: str, default=None) -> float:
    raw = request.args.get(name)
    if raw is None:
        if default is None:
            raise ValueError(f'Missing parameter: {name}')
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f'Invalid {name}: {raw!r}') from None


@flights_bp.route('/nearby', methods=['GET'])
def nearby_aircraft():
    """
    Live airborne aircraft near a point or inside a box.

    Query parameters, one of:
    - lat, lon, radius_km: circle around a point (radius default 100, max 500)
    - lamin, lamax, lomin, lomax: bounding box in degrees

    Upstream failures yield an empty list rather than an error.
    """
    start_time = time.perf_counter()
    box_params = ('lamin', 'lamax', 'lomin', 'lomax')
    telemetry = _runner().tracker.telemetry

    bbox = None
    try:
        if any(p in request.args for p in box_params):
            bbox = BoundingBox(
                lat_min=_float_arg('lamin'),
                lat_max=_float_arg('lamax'),
                lon_min=_float_arg('lomin'),
                lon_max=_float_arg('lomax'),
            )
            if not (Coordinate.is_valid(bbox.lat_min, bbox.lon_min)
                    and Coordinate.is_valid(bbox.lat_max, bbox.lon_max)):
                raise ValueError('Bounding box out of range')
            if bbox.lat_min >= bbox.lat_max or bbox.lon_min >= bbox.lon_max:
                raise ValueError('Bounding box minimums must be below maximums')
        else:
            center = Coordinate(latitude=_float_arg('lat'), longitude=_float_arg('lon'))
            radius_km = _float_arg('radius_km', 100.0)
            if not 0 < radius_km <= MAX_NEARBY_RADIUS_KM:
                raise ValueError(f'radius_km must be in (0, {MAX_NEARBY_RADIUS_KM:.0f}]')
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    if bbox is not None:
        records = telemetry.flights_in_bounds(bbox)
    else:
        records = telemetry.flights_near(center, radius_km)

    aircraft = [r.to_dict() for r in records]
    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'aircraft': aircraft,
        'count': len(aircraft),
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })


@flights_bp.route('/<flight_id>', methods=['GET'])
def get_flight(flight_id: str):
    """Snapshot of one tracked flight plus its recent errors."""
    runner = _runner()
    record = runner.call(runner.tracker.snapshot, flight_id)
    if record is None:
        return _not_tracked(flight_id)

    errors = runner.call(runner.tracker.errors.for_flight, flight_id)
    data = record.to_dict()
    data['errors'] = [e.to_dict() for e in errors[-10:]]
    return jsonify(data)


@flights_bp.route('/<flight_id>/path', methods=['GET'])
def get_flight_path(flight_id: str):
    """Path coordinates, total distance and initial bearing."""
    runner = _runner()
    record = runner.call(runner.tracker.snapshot, flight_id)
    if record is None:
        return _not_tracked(flight_id)
    return jsonify({'id': flight_id, **record.path.to_dict()})


@flights_bp.route('/refresh', methods=['POST'])
def refresh_all_flights():
    runner = _runner()
    records = runner.run(runner.tracker.refresh_all())
    return jsonify({
        'flights': [r.to_dict() for r in records],
        'count': len(records),
        'timestamp': datetime.now(timezone.utc).isoformat(),
    })


@flights_bp.route('/<flight_id>/refresh', methods=['POST'])
def refresh_flight(flight_id: str):
    runner = _runner()
    record = runner.run(runner.tracker.refresh_flight(flight_id))
    if record is None:
        return _not_tracked(flight_id)
    return jsonify(record.to_dict())


@flights_bp.route('/<flight_id>/start', methods=['POST'])
def start_flight(flight_id: str):
    runner = _runner()
    record = runner.run(runner.tracker.start_flight(flight_id))
    if record is None:
        return jsonify({'error': f'Flight {flight_id} cannot be tracked'}), 409
    return jsonify(record.to_dict())


@flights_bp.route('/<flight_id>/stop', methods=['POST'])
def stop_flight(flight_id: str):
    runner = _runner()
    stopped = runner.run(runner.tracker.stop_flight(flight_id))
    if not stopped:
        return _not_tracked(flight_id)
    logger.info(f'Tracking stopped for {flight_id} via API')
    return jsonify({'id': flight_id, 'stopped': True})
