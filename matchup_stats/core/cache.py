"""
In-process TTL cache used in front of the stats store on the live read path.
"""

import threading
import time
from typing import Any, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

import structlog

logger = structlog.get_logger(__name__)

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Simple TTL cache with thread-safe operations."""

    def __init__(
        self,
        maxsize: int = 1000,
        ttl: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize TTL cache.

        Args:
            maxsize: Maximum number of entries
            ttl: Default time to live in seconds
            clock: Monotonic time source, replaceable in tests
        """
        self.maxsize = maxsize
        self.ttl = ttl
        self._clock = clock
        self.cache: Dict[Hashable, Tuple[V, float]] = {}
        self.lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> Optional[V]:
        """
        Get value from cache if not expired.

        Returns:
            Cached value if exists and not expired, None otherwise
        """
        with self.lock:
            entry = self.cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            value, expiry = entry
            if self._clock() < expiry:
                self._hits += 1
                return value

            del self.cache[key]
            self._misses += 1
            logger.debug("Cache expired", key=str(key))
            return None

    def set(self, key: Hashable, value: V, ttl: Optional[float] = None) -> None:
        """
        Set value in cache.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Override of the default TTL for this entry
        """
        lifetime = self.ttl if ttl is None else ttl
        if lifetime <= 0:
            return

        with self.lock:
            # Oldest insertion goes first when full
            if len(self.cache) >= self.maxsize and key not in self.cache:
                oldest_key = next(iter(self.cache))
                del self.cache[oldest_key]
                logger.debug("Cache eviction", key=str(oldest_key), reason="full")

            self.cache[key] = (value, self._clock() + lifetime)

    def invalidate(self, key: Hashable) -> None:
        """Drop a single entry if present."""
        with self.lock:
            self.cache.pop(key, None)

    def clear(self) -> None:
        """Clear all entries from cache."""
        with self.lock:
            count = len(self.cache)
            self.cache.clear()
            self._hits = 0
            self._misses = 0
            logger.info("Cache cleared", entries_removed=count)

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self.lock:
            total = self._hits + self._misses
            return {
                "size": len(self.cache),
                "maxsize": self.maxsize,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total > 0 else 0.0,
            }

    def __len__(self) -> int:
        return len(self.cache)
