"""
Flight configuration loading.

Parses the static list of flight descriptors (JSON file or in-memory
mappings) into FlightDescriptor objects. Each descriptor is validated
independently: a malformed entry raises FlightConfigError for that entry
only, and load_flights() collects those errors so the remaining flights
still load.

Accepted keys follow the dashboard config format (camelCase) with
snake_case aliases:

    {
      "id": "ord-nrt",
      "flightNumber": "UA881", "callsign": "UAL881", "icao24": "a1b2c3",
      "from": {"code": "ORD", "city": "Chicago", "coordinates": [41.9742, -87.9073]},
      "to":   {"code": "NRT", "city": "Tokyo",   "coordinates": [35.7647, 140.3864]},
      "departure": "2025-06-25T12:30:00-05:00",
      "arrival":   "2025-06-26T15:15:00+09:00",
      "priority": "high", "trackingEnabled": true
    }
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from flightpath.analytics.geodesy import angular_distance, is_antipodal, ANGULAR_EPSILON
from flightpath.models.flight import Airport, FlightConfigError, FlightDescriptor, Priority
from flightpath.models.geo import Coordinate, ScheduleWindow

logger = logging.getLogger(__name__)


def _get(data: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    """First present key among camelCase/snake_case aliases."""
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return default


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _parse_timestamp(raw: Any, field_name: str, flight_id: str) -> datetime:
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, str) and raw.strip():
        text = raw.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            value = datetime.fromisoformat(text)
        except ValueError as e:
            raise FlightConfigError(f'Invalid {field_name} timestamp {raw!r}: {e}', flight_id) from e
    else:
        raise FlightConfigError(f'Missing {field_name} timestamp', flight_id)

    if value.tzinfo is None:
        raise FlightConfigError(f'{field_name} timestamp {raw!r} has no timezone offset', flight_id)
    return value


def _parse_airport(raw: Any, field_name: str, flight_id: str) -> Airport:
    if not isinstance(raw, Mapping):
        raise FlightConfigError(f'Missing {field_name} airport', flight_id)

    code = _optional_str(raw.get('code'))
    if not code:
        raise FlightConfigError(f'{field_name} airport has no code', flight_id)

    pair = _get(raw, 'coordinates', 'coordinate')
    try:
        coordinate = Coordinate.from_pair(pair)
    except (TypeError, ValueError) as e:
        raise FlightConfigError(f'Invalid {field_name} coordinates {pair!r}: {e}', flight_id) from e

    return Airport(
        code=code.upper(),
        city=_optional_str(raw.get('city')) or code.upper(),
        coordinate=coordinate,
        name=_optional_str(raw.get('name')),
        icao=_optional_str(raw.get('icao')),
    )


def _parse_priority(raw: Any, flight_id: str) -> Priority:
    if raw is None:
        return Priority.MEDIUM
    if isinstance(raw, Priority):
        return raw
    try:
        return Priority(str(raw).strip().lower())
    except ValueError as e:
        raise FlightConfigError(f'Unknown priority {raw!r}', flight_id) from e


def parse_flight(data: Mapping[str, Any]) -> FlightDescriptor:
    """
    Parse and validate one flight descriptor.

    Raises:
        FlightConfigError if the descriptor is malformed, the schedule is
        not strictly increasing, or the route endpoints are identical or
        antipodal (no usable great circle).
    """
    if not isinstance(data, Mapping):
        raise FlightConfigError(f'Flight descriptor must be a mapping, got {type(data).__name__}')

    flight_id = _optional_str(data.get('id'))
    if not flight_id:
        raise FlightConfigError('Flight descriptor has no id')

    origin = _parse_airport(_get(data, 'from', 'origin'), 'origin', flight_id)
    destination = _parse_airport(_get(data, 'to', 'destination'), 'destination', flight_id)

    distance = angular_distance(origin.coordinate, destination.coordinate)
    if distance < ANGULAR_EPSILON:
        raise FlightConfigError('Origin and destination are the same point', flight_id)
    if is_antipodal(origin.coordinate, destination.coordinate):
        raise FlightConfigError('Origin and destination are antipodal; route is undefined', flight_id)

    departure = _parse_timestamp(data.get('departure'), 'departure', flight_id)
    arrival = _parse_timestamp(data.get('arrival'), 'arrival', flight_id)
    try:
        schedule = ScheduleWindow(departure=departure, arrival=arrival)
    except ValueError as e:
        raise FlightConfigError(str(e), flight_id) from e

    flight_number = _optional_str(_get(data, 'flightNumber', 'flight_number'))
    icao24 = _optional_str(data.get('icao24'))

    return FlightDescriptor(
        id=flight_id,
        origin=origin,
        destination=destination,
        schedule=schedule,
        flight_number=flight_number,
        callsign=_optional_str(data.get('callsign')) or flight_number,
        icao24=icao24.lower() if icao24 else None,
        aircraft=_optional_str(data.get('aircraft')),
        airline=_optional_str(data.get('airline')),
        registration=_optional_str(data.get('registration')),
        priority=_parse_priority(data.get('priority'), flight_id),
        tracking_enabled=bool(_get(data, 'trackingEnabled', 'tracking_enabled', default=True)),
    )


def load_flights(
    entries: Iterable[Union[Mapping[str, Any], FlightDescriptor]],
) -> Tuple[List[FlightDescriptor], List[FlightConfigError]]:
    """
    Parse every entry, isolating failures.

    Already-built FlightDescriptor objects pass through. Duplicate ids
    after the first are rejected.

    Returns (valid descriptors in input order, errors).
    """
    flights: List[FlightDescriptor] = []
    errors: List[FlightConfigError] = []
    seen = set()

    for entry in entries:
        try:
            flight = entry if isinstance(entry, FlightDescriptor) else parse_flight(entry)
        except FlightConfigError as e:
            errors.append(e)
            continue

        if flight.id in seen:
            errors.append(FlightConfigError(f'Duplicate flight id {flight.id!r}', flight.id))
            continue

        seen.add(flight.id)
        flights.append(flight)

    logger.info(f'Loaded {len(flights)} flight descriptors ({len(errors)} rejected)')
    return flights, errors


def read_flights_file(path: Union[str, Path]) -> List[Mapping[str, Any]]:
    """
    Read raw flight descriptors from a JSON file.

    The file holds either a list of descriptors or {"flights": [...]}.
    A missing file yields an empty list.
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f'Flight configuration file {path} not found, no flights configured')
        return []

    with path.open(encoding='utf-8') as f:
        data = json.load(f)

    if isinstance(data, Mapping):
        data = data.get('flights', [])
    if not isinstance(data, list):
        raise ValueError(f'{path}: expected a list of flights')

    logger.info(f'Read {len(data)} flight entries from {path}')
    return data
