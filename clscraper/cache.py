"""
Time-boxed response cache shared by concurrent fetches.
"""
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from .config import config

CacheKey = Tuple[str, str]


@dataclass
class CacheEntry:
    value: Any
    stored_at: float


class ResponseCache:
    """
    Map of (url, method) -> response with a fixed time-to-live.

    Expired entries are only dropped when they are looked up. ``max_entries``
    bounds the count by discarding the oldest insertion; ``None`` leaves it
    unbounded.
    """

    def __init__(
        self,
        ttl_seconds: float = config.CACHE_TTL_SECONDS,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key(url: str, method: str = "GET") -> CacheKey:
        return (url, method.upper())

    def get(self, url: str, method: str = "GET") -> Optional[Any]:
        k = self.key(url, method)
        with self._lock:
            entry = self._entries.get(k)
            if entry is None:
                return None
            if self._clock() - entry.stored_at >= self.ttl_seconds:
                del self._entries[k]
                return None
            return entry.value

    def set(self, url: str, method: str, value: Any) -> None:
        k = self.key(url, method)
        with self._lock:
            self._entries.pop(k, None)
            self._entries[k] = CacheEntry(value=value, stored_at=self._clock())
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    oldest = next(iter(self._entries))
                    del self._entries[oldest]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# Process-wide cache used when a fetcher is not given its own
shared_cache = ResponseCache()
