"""
Small in-process cache with a time-to-live and an injectable clock
"""
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple

logger = logging.getLogger(__name__)


class TTLCache:
    """
    Key/value cache whose entries expire ttl_seconds after they are stored.

    The clock is injectable so expiry can be driven from tests; it must be
    monotonic and return seconds.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic, max_entries: int = 1024):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return default
        return value

    def set(self, key: Hashable, value: Any) -> None:
        if key not in self._entries and len(self._entries) >= self.max_entries:
            # Drop the oldest entry
            oldest = min(self._entries, key=lambda k: self._entries[k][0])
            del self._entries[oldest]
        self._entries[key] = (self._clock(), value)

    def age(self, key: Hashable) -> Optional[float]:
        """Seconds since the entry was stored, or None if absent/expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        age = self._clock() - entry[0]
        return age if age < self.ttl_seconds else None

    def __contains__(self, key: Hashable) -> bool:
        return self.age(key) is not None

    def clear(self) -> None:
        self._entries.clear()

    async def get_or_fetch(self, key: Hashable, fallback_func: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return the cached value, or await fallback_func and cache its result.
        None results are not cached so a failing source is retried next time.
        """
        if key in self:
            return self.get(key)
        result = await fallback_func()
        if result is not None:
            self.set(key, result)
        return result
