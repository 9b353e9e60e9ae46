"""
Tracking control and status API endpoints.

Provides endpoints for:
- GET    /api/tracking/status - Tracker statistics and configuration
- POST   /api/tracking/start  - Start tracking all eligible flights
- POST   /api/tracking/stop   - Stop all tracking
- GET    /api/tracking/errors - Recent tracking errors
- DELETE /api/tracking/errors - Clear the error log
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from flightpath.config import config

logger = logging.getLogger(__name__)

tracking_bp = Blueprint('tracking', __name__, url_prefix='/api/tracking')


def _runner():
    return current_app.config['TRACKER_RUNNER']


@tracking_bp.route('/status', methods=['GET'])
def get_status():
    """
    Get tracker health and status information.

    Returns:
    - Flight counts (tracked, live, active)
    - Error log size
    - Telemetry request and cache statistics
    - Cadence configuration
    """
    start_time = time.perf_counter()

    runner = _runner()
    stats = runner.call(lambda: runner.tracker.stats)

    telemetry = stats.get('telemetry') or {}
    degraded = (not stats['is_tracking']) or telemetry.get('connectivity_lost', False)

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'status': 'degraded' if degraded else 'healthy',
        'tracking': stats,
        'config': {
            'intervals': {
                'high': runner.tracker.settings.high_priority_interval,
                'medium': runner.tracker.settings.medium_priority_interval,
                'low': runner.tracker.settings.low_priority_interval,
            },
            'telemetry_cache_seconds': runner.tracker.settings.telemetry_cache_seconds,
            'opensky_authenticated': config.opensky.is_authenticated,
        },
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })


@tracking_bp.route('/start', methods=['POST'])
def start_tracking():
    runner = _runner()
    runner.run(runner.tracker.start())
    stats = runner.call(lambda: runner.tracker.stats)
    return jsonify({'is_tracking': True, 'total_flights': stats['total_flights']})


@tracking_bp.route('/stop', methods=['POST'])
def stop_tracking():
    runner = _runner()
    runner.run(runner.tracker.stop())
    return jsonify({'is_tracking': False})


@tracking_bp.route('/errors', methods=['GET'])
def list_errors():
    """
    Recent tracking errors, oldest first.

    Query parameters:
    - limit: int, max entries to return (default 10, max 100)
    """
    try:
        limit = min(int(request.args.get('limit', 10)), 100)
    except ValueError:
        return jsonify({'error': 'limit must be an integer'}), 400

    runner = _runner()
    errors = runner.call(runner.tracker.recent_errors, limit)
    return jsonify({
        'errors': [e.to_dict() for e in errors],
        'count': len(errors),
    })


@tracking_bp.route('/errors', methods=['DELETE'])
def clear_errors():
    runner = _runner()
    runner.call(runner.tracker.clear_errors)
    logger.info('Error log cleared via API')
    return jsonify({'cleared': True})
