"""
Flight tracker - reconciles live telemetry with schedule estimates.

This is the orchestration core. For every configured flight it decides
whether to trust live telemetry or fall back to the schedule estimate,
derives progress, refreshes the flight at its priority cadence, and
keeps a bounded error log.

Per-flight lifecycle:
    INACTIVE -> INITIALIZING   flight enabled and not completed
    INITIALIZING -> TRACKING   first position resolved, cadence scheduled
    TRACKING -> INACTIVE       flight completed or tracking stopped

Update cycle (each cadence tick and each manual refresh):
1. Look up telemetry by ICAO24, then by callsign
2. Valid record -> live: position from telemetry, progress from the
   remaining great-circle distance
3. Otherwise -> estimated: position and progress from the schedule
4. Any exception -> API_ERROR logged, estimated position used

Concurrency model:
Runs on one asyncio event loop. Each tracked flight owns one task that
sleeps for its interval and then updates. Flights update independently;
a flight never has two updates running at once (a tick that finds the
previous update still running is skipped, manual refreshes wait their
turn). Telemetry calls are blocking HTTP requests, so they run in worker
threads under a timeout. A flight stopped while its lookup is in flight
has the result discarded.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from flightpath.analytics.estimator import estimate, estimate_arrival, live_progress
from flightpath.analytics.geodesy import (
    bearing,
    distance,
    generate_path,
    ground_speed_knots,
)
from flightpath.config import TrackingConfig, config
from flightpath.ingestion.telemetry import (
    LookupOutcome,
    OpenSkyTelemetry,
    TelemetryLookup,
    TelemetrySource,
)
from flightpath.models.flight import FlightDescriptor, FlightStatus, classify, should_track
from flightpath.models.telemetry import LiveTelemetryRecord
from flightpath.models.tracking import ErrorKind, FlightPath, TrackingError, TrackingRecord
from flightpath.services.error_log import ErrorLog
from flightpath.services.flight_config import load_flights

logger = logging.getLogger(__name__)

KNOTS_TO_MPS = 0.514444


class TrackingState(str, Enum):
    """Per-flight tracker state."""
    INACTIVE = 'inactive'
    INITIALIZING = 'initializing'
    TRACKING = 'tracking'


@dataclass
class _TrackedFlight:
    """Tracker-private bookkeeping for one flight in the active set."""
    descriptor: FlightDescriptor
    state: TrackingState = TrackingState.INITIALIZING
    record: Optional[TrackingRecord] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    task: Optional[asyncio.Task] = None


class FlightTracker:
    """
    Owns the tracking records of all active flights.

    Args:
        flights: Raw descriptor mappings or FlightDescriptor objects
        telemetry: Telemetry source (OpenSky adapter built from config if None)
        tracking_config: Cadence, timeout and feature-flag settings
        clock: Source of the current time (timezone-aware)
    """

    def __init__(
        self,
        flights: Iterable[Union[Mapping[str, Any], FlightDescriptor]] = (),
        telemetry: Optional[TelemetrySource] = None,
        tracking_config: Optional[TrackingConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = tracking_config or config.tracking
        self.telemetry = telemetry if telemetry is not None else OpenSkyTelemetry.from_config()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.errors = ErrorLog(max_entries=self.settings.error_log_size, clock=self._clock)

        self._flight_entries = list(flights)
        self._descriptors: Dict[str, FlightDescriptor] = {}
        self._flights: Dict[str, _TrackedFlight] = {}
        self._loaded = False
        self._is_tracking = False
        self._network_down = False

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def load_flights(self) -> List[FlightDescriptor]:
        """
        Parse configured flights, logging each rejected descriptor.

        Returns the valid descriptors; they become available to
        start_flight() even if not tracked right away. start() and
        start_flight() parse only once, so a stop/start cycle does not
        log the same rejections again.
        """
        flights, errors = load_flights(self._flight_entries)
        for error in errors:
            self.errors.append(ErrorKind.CONFIGURATION_ERROR, str(error), error.flight_id)
        self._descriptors = {f.id: f for f in flights}
        self._loaded = True
        return flights

    @property
    def configured_flights(self) -> List[FlightDescriptor]:
        return list(self._descriptors.values())

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start tracking all enabled upcoming or current flights."""
        if self._is_tracking:
            logger.debug('Flight tracking already started')
            return

        self._is_tracking = True
        logger.info('Starting flight tracking service')

        if not self._loaded:
            self.load_flights()

        now = self._clock()
        flights = [f for f in self.configured_flights if should_track(f, now)]
        self._sync_watchlist(flights)
        await asyncio.gather(*(self._initialize_flight(f) for f in flights))

        logger.info(f'Initialized tracking for {len(self._flights)} of {len(flights)} flights')

    async def stop(self) -> None:
        """Stop all tracking; every record leaves the active set."""
        if not self._is_tracking:
            return

        logger.info('Stopping flight tracking service')
        for flight_id in list(self._flights):
            self._deactivate(flight_id)

        self._is_tracking = False
        logger.info('Flight tracking stopped')

    async def start_flight(self, flight_id: str) -> Optional[TrackingRecord]:
        """
        Start tracking one configured flight.

        Returns its snapshot, or None if unknown, disabled or completed.
        """
        if flight_id in self._flights:
            return self.snapshot(flight_id)

        if not self._loaded:
            self.load_flights()

        descriptor = self._descriptors.get(flight_id)
        if descriptor is None:
            logger.warning(f'Cannot start unknown flight {flight_id}')
            return None
        if not should_track(descriptor, self._clock()):
            logger.info(f'Flight {flight_id} is disabled or completed, not tracking')
            return None

        self._sync_watchlist([descriptor])
        await self._initialize_flight(descriptor)
        return self.snapshot(flight_id)

    async def stop_flight(self, flight_id: str) -> bool:
        """Stop tracking one flight. Returns False if it was not tracked."""
        return self._deactivate(flight_id)

    async def refresh_flight(self, flight_id: str) -> Optional[TrackingRecord]:
        """Update one flight now, waiting for any running update to finish."""
        tracked = self._flights.get(flight_id)
        if tracked is None or tracked.record is None:
            return None

        async with tracked.lock:
            await self._update(tracked)
        return self.snapshot(flight_id)

    async def refresh_all(self) -> List[TrackingRecord]:
        """Update every tracked flight concurrently."""
        results = await asyncio.gather(*(self.refresh_flight(fid) for fid in list(self._flights)))
        return [r for r in results if r is not None]

    def clear_errors(self) -> None:
        self.errors.clear()

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @property
    def is_tracking(self) -> bool:
        return self._is_tracking

    def snapshots(self) -> List[TrackingRecord]:
        return [t.record.snapshot() for t in self._flights.values() if t.record is not None]

    def snapshot(self, flight_id: str) -> Optional[TrackingRecord]:
        tracked = self._flights.get(flight_id)
        if tracked is None or tracked.record is None:
            return None
        return tracked.record.snapshot()

    def status(self, flight_id: str) -> Optional[FlightStatus]:
        """Lifecycle status of any configured flight, tracked or not."""
        descriptor = self._descriptors.get(flight_id)
        if descriptor is None:
            return None
        return classify(descriptor.schedule, self._clock())

    def tracking_state(self, flight_id: str) -> TrackingState:
        tracked = self._flights.get(flight_id)
        return tracked.state if tracked else TrackingState.INACTIVE

    def recent_errors(self, limit: int = 10) -> List[TrackingError]:
        return self.errors.recent(limit)

    @property
    def stats(self) -> dict:
        records = self.snapshots()
        now = self._clock()
        last_update = max((r.last_updated_at for r in records), default=None)
        telemetry_stats = getattr(self.telemetry, 'stats', None)
        return {
            'total_flights': len(records),
            'live_flights': sum(1 for r in records if r.is_live),
            'active_flights': sum(1 for r in records if should_track(r.flight, now)),
            'configured_flights': len(self._descriptors),
            'last_update': last_update.isoformat() if last_update else None,
            'errors': len(self.errors),
            'is_tracking': self._is_tracking,
            'live_tracking_enabled': self.settings.enable_live_tracking,
            'telemetry': telemetry_stats,
        }

    # -------------------------------------------------------------------------
    # Lifecycle internals
    # -------------------------------------------------------------------------

    async def _initialize_flight(self, descriptor: FlightDescriptor) -> None:
        tracked = _TrackedFlight(descriptor=descriptor)
        self._flights[descriptor.id] = tracked

        try:
            tracked.record = self._new_record(descriptor)
            async with tracked.lock:
                await self._update(tracked)
        except Exception as e:
            self._flights.pop(descriptor.id, None)
            self.errors.append(
                ErrorKind.CONFIGURATION_ERROR,
                f'Failed to initialize flight {descriptor.id}: {e}',
                descriptor.id,
            )
            return

        if self._flights.get(descriptor.id) is not tracked:
            # Stopped while initializing
            return

        tracked.task = asyncio.create_task(
            self._run_updates(descriptor.id),
            name=f'track-{descriptor.id}',
        )
        tracked.task.add_done_callback(self._log_task_exit)
        tracked.state = TrackingState.TRACKING
        logger.info(
            f'Initialized flight {descriptor.id} ({descriptor.display_name}), '
            f'updates every {tracked.record.update_interval_seconds:.0f}s'
        )

    def _new_record(self, descriptor: FlightDescriptor) -> TrackingRecord:
        """Record positioned by the schedule estimate, before any telemetry."""
        route = descriptor.route
        now = self._clock()
        est = estimate(route, descriptor.schedule, now)
        path = FlightPath(
            coordinates=generate_path(route.origin, route.destination, self.settings.path_points),
            distance_km=distance(route.origin, route.destination),
            bearing_deg=bearing(route.origin, route.destination),
        )
        return TrackingRecord(
            flight=descriptor,
            route=route,
            schedule=descriptor.schedule,
            path=path,
            current_position=est.position,
            progress_percent=est.progress_percent,
            is_live=False,
            last_updated_at=now,
            status=classify(descriptor.schedule, now),
            update_interval_seconds=self.settings.interval_for(descriptor.priority),
            remaining_minutes=est.remaining_minutes,
            remaining_distance_km=distance(est.position, route.destination),
            estimated_arrival=descriptor.schedule.arrival,
        )

    async def _run_updates(self, flight_id: str) -> None:
        """Cadence loop for one flight; ends when the flight leaves the active set."""
        while True:
            tracked = self._flights.get(flight_id)
            if tracked is None:
                return
            await asyncio.sleep(tracked.record.update_interval_seconds)

            tracked = self._flights.get(flight_id)
            if tracked is None:
                return
            if not should_track(tracked.descriptor, self._clock()):
                logger.info(f'Flight {flight_id} completed, stopping updates')
                self._deactivate(flight_id, cancel_task=False)
                return
            if tracked.lock.locked():
                logger.debug(f'Previous update for {flight_id} still running, skipping tick')
                continue

            async with tracked.lock:
                await self._update(tracked)

    def _deactivate(self, flight_id: str, cancel_task: bool = True) -> bool:
        tracked = self._flights.pop(flight_id, None)
        if tracked is None:
            return False
        tracked.state = TrackingState.INACTIVE
        if cancel_task and tracked.task is not None and not tracked.task.done():
            tracked.task.cancel()
        self._sync_watchlist()
        logger.info(f'Stopped tracking flight {flight_id}')
        return True

    def _log_task_exit(self, task: asyncio.Task) -> None:
        """Surface a cadence loop that died instead of letting it end silently."""
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f'Update loop {task.get_name()} crashed: {error!r}')

    def _sync_watchlist(self, extra: Iterable[FlightDescriptor] = ()) -> None:
        """Tell the telemetry source which airframes to request together."""
        if not self.settings.enable_live_tracking:
            return
        descriptors = [t.descriptor for t in self._flights.values()] + list(extra)
        self.telemetry.watch_airframes(sorted({d.icao24 for d in descriptors if d.icao24}))

    # -------------------------------------------------------------------------
    # Update cycle
    # -------------------------------------------------------------------------

    async def _update(self, tracked: _TrackedFlight) -> None:
        """One reconcile cycle. Always leaves the record with a position."""
        descriptor = tracked.descriptor
        live: Optional[LiveTelemetryRecord] = None

        try:
            live = await self._resolve_live(descriptor)
        except Exception as e:
            self.errors.append(
                ErrorKind.API_ERROR,
                f'Failed to update live data for flight {descriptor.id}: {e}',
                descriptor.id,
            )

        if self._flights.get(descriptor.id) is not tracked:
            logger.debug(f'Flight {descriptor.id} no longer tracked, discarding update')
            return

        record = tracked.record
        now = self._clock()
        if live is not None:
            try:
                self._apply_live(record, live, now)
                return
            except Exception as e:
                self.errors.append(
                    ErrorKind.API_ERROR,
                    f'Failed to apply live data for flight {descriptor.id}: {e}',
                    descriptor.id,
                )

        try:
            self._apply_estimate(record, now)
        except Exception as e:
            # Record keeps its previous position
            self.errors.append(
                ErrorKind.API_ERROR,
                f'Failed to estimate position for flight {descriptor.id}: {e}',
                descriptor.id,
            )

    async def _resolve_live(self, descriptor: FlightDescriptor) -> Optional[LiveTelemetryRecord]:
        """
        Try the airframe address, then the callsign.

        Logs one error entry when neither produced a record.
        """
        if not self.settings.enable_live_tracking:
            return None

        lookups: List[TelemetryLookup] = []
        if descriptor.icao24:
            lookup = await self._lookup(self.telemetry.lookup_airframe, descriptor.icao24)
            if lookup.record is not None:
                self._check_connectivity()
                return lookup.record
            lookups.append(lookup)

        if descriptor.callsign:
            lookup = await self._lookup(self.telemetry.lookup_callsign, descriptor.callsign)
            if lookup.record is not None:
                self._check_connectivity()
                return lookup.record
            lookups.append(lookup)

        self._check_connectivity()
        if lookups:
            self._report_missing(descriptor, lookups)
        return None

    async def _lookup(self, fn: Callable[[str], TelemetryLookup], key: str) -> TelemetryLookup:
        timeout = self.settings.telemetry_call_timeout_seconds
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, key), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f'Telemetry lookup for {key} timed out after {timeout:.0f}s')
            return TelemetryLookup(key, LookupOutcome.ERROR, detail=f'timed out after {timeout:.0f}s')

    def _report_missing(self, descriptor: FlightDescriptor, lookups: List[TelemetryLookup]) -> None:
        details = '; '.join(
            f'{l.key}: {l.outcome.value}' + (f' ({l.detail})' if l.detail else '')
            for l in lookups
        )
        if any(l.failed for l in lookups):
            kind = ErrorKind.API_ERROR
            message = f'Telemetry lookup failed for flight {descriptor.id}: {details}'
        elif any(l.outcome == LookupOutcome.INVALID for l in lookups):
            kind = ErrorKind.INVALID_FLIGHT_DATA
            message = f'Unusable telemetry for flight {descriptor.id}: {details}'
        else:
            kind = ErrorKind.FLIGHT_NOT_FOUND
            message = f'No live data for flight {descriptor.id}: {details}'
        self.errors.append(kind, message, descriptor.id)

    def _check_connectivity(self) -> None:
        """Log NETWORK_ERROR once per outage reported by the telemetry source."""
        lost = bool(getattr(self.telemetry, 'connectivity_lost', False))
        if lost and not self._network_down:
            self.errors.append(ErrorKind.NETWORK_ERROR, 'Connection to telemetry source lost')
        elif not lost and self._network_down:
            logger.info('Connection to telemetry source restored')
        self._network_down = lost

    def _apply_live(self, record: TrackingRecord, live: LiveTelemetryRecord, now: datetime) -> None:
        destination = record.route.destination
        remaining_km = distance(live.position, destination)

        speed_mps = live.ground_speed_mps
        previous = record.live_telemetry
        if speed_mps <= 0 and previous is not None:
            observed_kts = ground_speed_knots(
                previous.position, previous.source_timestamp,
                live.position, live.source_timestamp,
            )
            if observed_kts:
                speed_mps = observed_kts * KNOTS_TO_MPS

        arrival = estimate_arrival(live.position, destination, speed_mps, now)

        record.current_position = live.position
        record.progress_percent = live_progress(record.path.distance_km, remaining_km)
        record.remaining_distance_km = remaining_km
        record.estimated_arrival = arrival
        record.remaining_minutes = (arrival - now).total_seconds() / 60.0 if arrival else None
        record.is_live = True
        record.live_telemetry = live
        record.status = classify(record.schedule, now)
        record.last_updated_at = now

        logger.debug(f'Updated live data for flight {record.flight_id}: {record.progress_percent:.1f}% complete')

    def _apply_estimate(self, record: TrackingRecord, now: datetime) -> None:
        est = estimate(record.route, record.schedule, now)

        record.current_position = est.position
        record.progress_percent = est.progress_percent
        record.remaining_minutes = est.remaining_minutes
        record.remaining_distance_km = distance(est.position, record.route.destination)
        record.estimated_arrival = record.schedule.arrival
        record.is_live = False
        record.live_telemetry = None
        record.status = classify(record.schedule, now)
        record.last_updated_at = now

        logger.debug(f'Updated estimated position for flight {record.flight_id}: {record.progress_percent:.1f}% complete')
