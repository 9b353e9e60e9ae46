"""
In-memory time-to-live cache.

Bounds the call volume against the telemetry source: a lookup answered
within the validity window is served from memory without a network call,
and the first lookup after expiry goes back to the source.

Each entry keeps its value and insertion time; expiry is an explicit
check against the cache clock rather than a background sweeper. Expired
entries are dropped lazily on read.

Thread-safe: lookups run in worker threads, one per in-flight flight
update, all sharing a single cache.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Optional

from flightpath.config import config

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cached value with its insertion time."""
    value: Any
    inserted_at: float
    ttl_seconds: float

    def age(self, now: float) -> float:
        return now - self.inserted_at

    def is_expired(self, now: float) -> bool:
        return self.age(now) >= self.ttl_seconds


class TTLCache:
    """
    Thread-safe key/value cache with a fixed validity window.

    Args:
        ttl_seconds: Validity window for new entries
        max_entries: Capacity; the oldest 10% are evicted when exceeded
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_entries: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.tracking.telemetry_cache_seconds
        self.max_entries = max_entries
        self._clock = clock

        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.RLock()

        # Statistics
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        """
        Get a cached value.

        Returns None if not cached or expired.
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if not entry.is_expired(now):
                    self._hits += 1
                    return entry.value
                # Expired
                del self._entries[key]
            self._misses += 1
        return None

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(
                value=value,
                inserted_at=self._clock(),
                ttl_seconds=self.ttl_seconds,
            )
            if len(self._entries) > self.max_entries:
                self._evict_oldest()

    def _evict_oldest(self) -> None:
        """Remove oldest entries when over capacity."""
        entries = sorted(self._entries.items(), key=lambda item: item[1].inserted_at)
        # Remove oldest 10%
        to_remove = max(1, len(entries) // 10)
        for key, _ in entries[:to_remove]:
            del self._entries[key]
        logger.debug(f'Cache over capacity, evicted {to_remove} entries')

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> List[Hashable]:
        with self._lock:
            return list(self._entries.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    @property
    def stats(self) -> dict:
        """Get cache statistics."""
        with self._lock:
            lookups = self._hits + self._misses
            return {
                'entries': len(self._entries),
                'keys': [str(k) for k in self._entries],
                'hits': self._hits,
                'misses': self._misses,
                'hit_rate': self._hits / lookups if lookups > 0 else 0,
                'ttl_seconds': self.ttl_seconds,
            }
