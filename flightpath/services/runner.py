"""
Background event loop for the flight tracker.

The tracker is asyncio-based while Flask request handlers are plain
threads. TrackerRunner owns a dedicated event loop running in a daemon
thread and lets handlers submit tracker commands to it, so all tracker
state is only ever touched from the loop thread.
"""

import asyncio
import logging
import threading
from typing import Any, Callable, Coroutine, Optional

from flightpath.services.tracker import FlightTracker

logger = logging.getLogger(__name__)


class TrackerRunner:
    """
    Runs a FlightTracker on its own event loop thread.

    Args:
        tracker: The tracker to drive
        call_timeout: Seconds to wait for a submitted command
    """

    def __init__(self, tracker: FlightTracker, call_timeout: Optional[float] = None):
        self.tracker = tracker
        if call_timeout is None:
            # Worst case for a refresh: both lookups time out
            call_timeout = tracker.settings.telemetry_call_timeout_seconds * 2 + 5
        self.call_timeout = call_timeout

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the event loop in a background thread."""
        if self.running:
            logger.warning('Tracker loop already running')
            return

        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run_loop,
            name='flight-tracker-loop',
            daemon=True,
        )
        self._thread.start()
        logger.info('Tracker event loop started')

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_forever()
        finally:
            pending = asyncio.all_tasks(self._loop)
            for task in pending:
                task.cancel()
            if pending:
                self._loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            self._loop.close()

    def run(self, coro: Coroutine) -> Any:
        """Run a coroutine on the tracker loop and wait for its result."""
        if not self.running:
            coro.close()
            raise RuntimeError('Tracker loop is not running')
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout=self.call_timeout)

    def call(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a plain tracker method on the loop thread."""
        async def _invoke():
            return fn(*args, **kwargs)
        return self.run(_invoke())

    def stop(self) -> None:
        """Stop tracking, then the loop and its thread."""
        if not self.running:
            return
        try:
            self.run(self.tracker.stop())
        except Exception as e:
            logger.error(f'Error stopping tracker: {e}')
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
        logger.info('Tracker event loop stopped')
