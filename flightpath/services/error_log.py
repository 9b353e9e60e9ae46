"""
Bounded tracking error log.

Append-only ring buffer of TrackingError entries: once full, each new
entry evicts the oldest. The log is advisory; nothing reads it to make
tracking decisions.
"""

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Callable, List, Optional

from flightpath.config import config
from flightpath.models.tracking import ErrorKind, TrackingError

logger = logging.getLogger(__name__)


class ErrorLog:
    """Most recent tracking errors, oldest first."""

    def __init__(
        self,
        max_entries: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.max_entries = max_entries or config.tracking.error_log_size
        self._entries = deque(maxlen=self.max_entries)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def append(
        self,
        kind: ErrorKind,
        message: str,
        flight_id: Optional[str] = None,
    ) -> TrackingError:
        error = TrackingError(
            kind=kind,
            message=message,
            flight_id=flight_id,
            timestamp=self._clock(),
        )
        self._entries.append(error)

        suffix = f' (Flight: {flight_id})' if flight_id else ''
        logger.error(f'Flight tracking error [{kind.value}]: {message}{suffix}')
        return error

    def recent(self, limit: int = 10) -> List[TrackingError]:
        """Up to `limit` most recent entries, oldest first."""
        if limit <= 0:
            return []
        entries = list(self._entries)
        return entries[-limit:]

    def all(self) -> List[TrackingError]:
        return list(self._entries)

    def for_flight(self, flight_id: str) -> List[TrackingError]:
        return [e for e in self._entries if e.flight_id == flight_id]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
