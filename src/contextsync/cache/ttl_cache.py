"""Time-to-live cache for expensive context fields.

Entries expire lazily: an expired entry is treated as absent (and dropped) the
next time it is read, there is no background sweep. Keys are composite
strings such as ``highlights_3_17`` (field, buffer, revision) so that a
changed discriminant naturally misses the old entry.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

__all__ = [
    "TTLCache",
    "CacheEntry",
    "CacheConfig",
    "CacheStats",
    "Clock",
]

LOGGER = logging.getLogger(__name__)

# Monotonic clock in integer nanoseconds.
Clock = Callable[[], int]


# -----------------------------------------------------------------------------
# Cache Configuration
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class CacheConfig:
    """Configuration for the TTL cache.

    Attributes:
        max_entries: Upper bound on stored entries; least recently used go first.
        track_stats: Whether to track cache statistics.
    """

    max_entries: int = 512
    track_stats: bool = True


# -----------------------------------------------------------------------------
# Cache Entry
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class CacheEntry:
    """A cached value and the clock reading at which it was stored.

    Entries are immutable; ``set`` swaps in a new entry so a reader never sees
    a new value paired with an old timestamp.
    """

    key: str
    value: Any
    stored_ns: int

    def age_ms(self, now_ns: int) -> float:
        return (now_ns - self.stored_ns) / 1_000_000

    def is_fresh(self, now_ns: int, ttl_ms: float) -> bool:
        if ttl_ms <= 0:
            return False
        return now_ns - self.stored_ns < ttl_ms * 1_000_000


# -----------------------------------------------------------------------------
# Cache Statistics
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class CacheStats:
    """Statistics for cache operations."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    invalidations: int = 0

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        total = self.total_requests
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for logging."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "invalidations": self.invalidations,
            "total_requests": self.total_requests,
            "hit_rate": self.hit_rate,
        }


# -----------------------------------------------------------------------------
# TTL Cache
# -----------------------------------------------------------------------------


class TTLCache:
    """Key/value store with per-read TTL, prefix invalidation and an LRU bound.

    The TTL is supplied by the reader rather than the writer, so the same entry
    can be fresh for one field policy and stale for another.

    Example:
        >>> cache = TTLCache()
        >>> cache.set("git_info", {"branch": "main"})
        >>> cache.get("git_info", ttl_ms=10_000)
        {'branch': 'main'}
    """

    def __init__(self, config: CacheConfig | None = None, *, clock: Clock | None = None) -> None:
        self._config = config or CacheConfig()
        self._clock = clock or time.monotonic_ns
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.RLock()
        self._stats = CacheStats() if self._config.track_stats else None

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def stats(self) -> CacheStats | None:
        """Cache statistics (None if tracking disabled)."""
        return self._stats

    def lookup(self, key: str, ttl_ms: float) -> CacheEntry | None:
        """Return the fresh entry for ``key``, or None when missing or expired.

        Unlike :meth:`get` this distinguishes a cached ``None`` from a miss.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._count("misses")
                return None

            if not entry.is_fresh(self._clock(), ttl_ms):
                del self._entries[key]
                self._count("expirations")
                self._count("misses")
                LOGGER.debug("Cache entry expired for %s", key)
                return None

            self._entries.move_to_end(key)
            self._count("hits")
            return entry

    def get(self, key: str, ttl_ms: float) -> Any | None:
        """Return the cached value if it is younger than ``ttl_ms``."""
        entry = self.lookup(key, ttl_ms)
        return None if entry is None else entry.value

    def set(self, key: str, value: Any, *, family: str | None = None) -> None:
        """Store ``value`` under ``key`` stamped with the current clock.

        Args:
            key: Composite cache key.
            value: Value to store; ``None`` is a legitimate cached result.
            family: Optional key prefix; other entries sharing it are superseded
                so stale discriminant keys do not accumulate.
        """
        with self._lock:
            if family:
                superseded = [
                    existing
                    for existing in self._entries
                    if existing != key and existing.startswith(family)
                ]
                for existing in superseded:
                    del self._entries[existing]
                if superseded:
                    LOGGER.debug("Superseded %d cache entries in %s", len(superseded), family)

            self._entries[key] = CacheEntry(key=key, value=value, stored_ns=self._clock())
            self._entries.move_to_end(key)

            while len(self._entries) > max(1, self._config.max_entries):
                evicted, _ = self._entries.popitem(last=False)
                self._count("evictions")
                LOGGER.debug("Evicted cache entry for %s", evicted)

    def clear(self, key_or_prefix: str) -> int:
        """Remove every entry whose key equals or starts with ``key_or_prefix``.

        Returns:
            The number of entries removed.
        """
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(key_or_prefix)]
            for key in doomed:
                del self._entries[key]
            if doomed:
                self._count("invalidations", len(doomed))
                LOGGER.debug("Cleared %d cache entries for %s", len(doomed), key_or_prefix)
            return len(doomed)

    def clear_all(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._count("invalidations", count)
            return count

    def get_or_load(
        self,
        key: str,
        ttl_ms: float,
        loader: Callable[[], Any],
        *,
        family: str | None = None,
    ) -> Any:
        """Cache-aside helper: return the fresh value or compute and store it."""
        entry = self.lookup(key, ttl_ms)
        if entry is not None:
            return entry.value
        value = loader()
        self.set(key, value, family=family)
        return value

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries.keys())

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _count(self, name: str, amount: int = 1) -> None:
        if self._stats is not None:
            setattr(self._stats, name, getattr(self._stats, name) + amount)
