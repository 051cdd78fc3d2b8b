"""In-memory TTL cache with request coalescing for document content."""

import logging
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger('blockshare.sources.cache')


class ContentCache:
    """
    Caches loader results per key for ``ttl_seconds``.

    Concurrent callers asking for the same missing key share one loader call:
    the first caller loads, the others wait on its future. Failed loads are
    not cached.
    """

    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._in_flight: Dict[str, Future] = {}
        self._lock = threading.Lock()
        self.stats = {
            'hits': 0,
            'misses': 0,
            'coalesced': 0,
        }

    def _fresh(self, key: str) -> Optional[Tuple[float, Any]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry[0] > self.ttl_seconds:
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._fresh(key)
            return entry[1] if entry else None

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        """
        Return the cached value for ``key`` or load it exactly once.

        Args:
            key: Cache key, usually a document id
            loader: Zero-argument callable producing the value

        Returns:
            Cached or freshly loaded value

        Raises:
            Whatever ``loader`` raised, for the loading caller and all waiters
        """
        with self._lock:
            entry = self._fresh(key)
            if entry is not None:
                self.stats['hits'] += 1
                logger.debug(f"Content cache hit: {key}")
                return entry[1]

            pending = self._in_flight.get(key)
            if pending is None:
                pending = Future()
                self._in_flight[key] = pending
                owner = True
                self.stats['misses'] += 1
            else:
                owner = False
                self.stats['coalesced'] += 1

        if not owner:
            logger.debug(f"Waiting on in-flight load: {key}")
            return pending.result()

        try:
            value = loader()
        except BaseException as e:
            with self._lock:
                self._in_flight.pop(key, None)
            pending.set_exception(e)
            raise

        with self._lock:
            self._entries[key] = (self._clock(), value)
            self._in_flight.pop(key, None)
        pending.set_result(value)
        return value

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one key, or everything when ``key`` is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ['ContentCache']
