"""
In-memory TTL cache with an injected clock.

Holds the per-workspace team roster. main.py builds one instance per process
and hands it to the services that need it; tests drive expiry with a fake
clock instead of sleeping.
"""
import logging
import time
from collections import OrderedDict
from threading import Lock
from typing import Optional, Any, Dict, Callable, NamedTuple

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600


class CacheEntry(NamedTuple):
    value: Any
    expires_at: float


class TTLCache:
    """
    Thread-safe key/value cache.

    Entries expire `ttl_seconds` after they were set, measured on `clock`.
    When `max_size` is reached the least recently written entry is evicted.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = Lock()
        self._stats = {"hits": 0, "misses": 0, "evictions": 0, "invalidations": 0}

    def get(self, key: str) -> Optional[Any]:
        """The cached value, or None when missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at <= self._clock():
                del self._entries[key]
                entry = None
            self._stats["misses" if entry is None else "hits"] += 1
            return None if entry is None else entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None):
        ttl = self.ttl_seconds if ttl is None else ttl
        with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
                self._stats["evictions"] += 1
            self._entries[key] = CacheEntry(value, self._clock() + ttl)

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        """Cached value, or the result of `loader()` which is then cached."""
        value = self.get(key)
        if value is None:
            value = loader()
            self.set(key, value)
        return value

    def delete(self, key: str):
        with self._lock:
            if self._entries.pop(key, None) is not None:
                self._stats["invalidations"] += 1

    def clear(self):
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._stats["invalidations"] += 1
        logger.info(f"Roster cache cleared: {count} entries invalidated")

    def cleanup_expired(self):
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Dropped {len(expired)} expired cache entries")

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._stats["hits"] + self._stats["misses"]
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                **self._stats,
                "hit_rate_percent": round(self._stats["hits"] / lookups * 100, 2) if lookups else 0,
                "ttl_seconds": self.ttl_seconds,
            }
