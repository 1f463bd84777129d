"""TTL cache and buffer-driven invalidation."""

from .invalidation import (
    BUFFER_SCOPED_FAMILIES,
    BufferClosedEvent,
    BufferEvent,
    BufferSavedEvent,
    CacheInvalidator,
    InvalidationBus,
)
from .ttl_cache import CacheConfig, CacheEntry, CacheStats, Clock, TTLCache

__all__ = [
    "TTLCache",
    "CacheConfig",
    "CacheEntry",
    "CacheStats",
    "Clock",
    "InvalidationBus",
    "CacheInvalidator",
    "BufferEvent",
    "BufferSavedEvent",
    "BufferClosedEvent",
    "BUFFER_SCOPED_FAMILIES",
]
