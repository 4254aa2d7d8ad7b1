"""
In-memory cache with TTL, keyed by timeframe.
Holds the latest AnalysisResult per timeframe and answers whether a timeframe is
due for re-analysis.
"""

import time
from typing import Any, Callable, Dict, Optional, Tuple


class TimeframeCache:
    """Time-to-live cache backed by a plain dict."""

    def __init__(
        self,
        default_ttl: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize cache.

        Args:
            default_ttl: Default time-to-live in seconds
            clock: seconds source (monotonic by default; injectable for tests)
        """
        self.default_ttl = default_ttl
        self._clock = clock
        self._store: Dict[str, Tuple[Any, float, float]] = {}

    def get(self, key: str) -> Optional[Any]:
        """Value if still within its TTL, else None. Expired entries are kept for get_stale."""
        entry = self._store.get(key)
        if entry is None:
            return None
        value, stored_at, ttl = entry
        if self._clock() - stored_at < ttl:
            return value
        return None

    def get_stale(self, key: str) -> Optional[Any]:
        """Last stored value regardless of age."""
        entry = self._store.get(key)
        return entry[0] if entry else None

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if ttl is None:
            ttl = self.default_ttl
        self._store[key] = (value, self._clock(), ttl)

    def age(self, key: str) -> Optional[float]:
        """Seconds since the entry was stored, or None."""
        entry = self._store.get(key)
        if entry is None:
            return None
        return self._clock() - entry[1]

    def is_fresh(self, key: str) -> bool:
        entry = self._store.get(key)
        return entry is not None and self._clock() - entry[1] < entry[2]

    def invalidate(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._store
