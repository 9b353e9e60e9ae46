"""
FlightPath Flask Application.

Web entry point. create_app() wires together:
- Flight configuration
- Flight tracker on a background event loop
- API routes

Usage:
    python -m flightpath.app

Or with gunicorn (single worker; the tracker lives in-process):
    gunicorn -w 1 'flightpath.app:create_app()'
"""

import logging
import os
from typing import Any, Iterable, Optional

from flask import Flask
from flask_cors import CORS

from flightpath.config import TrackingConfig, config
from flightpath.api import flights_bp, tracking_bp
from flightpath.ingestion import TelemetrySource
from flightpath.services import FlightTracker, TrackerRunner, read_flights_file

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger(__name__)


def create_app(
    flights: Optional[Iterable[Any]] = None,
    telemetry: Optional[TelemetrySource] = None,
    tracking_config: Optional[TrackingConfig] = None,
    start_tracking: bool = True,
) -> Flask:
    """
    Build the Flask app and start its tracker loop.

    Args:
        flights: Flight descriptors; read from FLIGHTS_CONFIG_PATH if None
        telemetry: Telemetry source; OpenSky adapter from config if None
        tracking_config: Tracker settings; from environment if None
        start_tracking: Whether to start tracking immediately.
                        Set to False for testing.

    Returns:
        The app; its TrackerRunner is in app.config['TRACKER_RUNNER'].
    """
    app = Flask(__name__)

    # Configuration
    app.config['SECRET_KEY'] = config.secret_key

    # Dashboard is served from another origin
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    settings = tracking_config or config.tracking
    if flights is None:
        flights = read_flights_file(settings.flights_file)

    tracker = FlightTracker(flights=flights, telemetry=telemetry, tracking_config=settings)
    runner = TrackerRunner(tracker)
    runner.start()
    app.config['TRACKER_RUNNER'] = runner

    if start_tracking:
        runner.run(tracker.start())
        logger.info(f'Tracking started for {len(runner.call(tracker.snapshots))} flights')
    else:
        runner.call(tracker.load_flights)

    # Register API blueprints
    app.register_blueprint(flights_bp)
    app.register_blueprint(tracking_bp)

    @app.route('/health')
    def health():
        """Liveness check; does not touch the tracker."""
        return {'status': 'ok'}

    # -------------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------------

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500

    return app


def run_development_server():
    """Serve with the Flask dev server on $PORT (default 5000)."""
    app = create_app()

    port = int(os.environ.get('PORT', 5000))

    logger.info(f'Starting FlightPath on http://localhost:{port}')

    app.run(
        host='0.0.0.0',
        port=port,
        debug=config.debug,
        use_reloader=False,  # Reloader would start a second tracker loop
    )


if __name__ == '__main__':
    run_development_server()
