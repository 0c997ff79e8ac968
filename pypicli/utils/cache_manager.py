"""Provides an in-memory cache with per-entry Time-To-Live.

The statistics commands use this cache to avoid repeating identical
pypistats.org requests within one process. Entries are read-only snapshots of
API responses; nothing else is shared between requests.
"""
import time
from typing import Any, Callable, Dict, Optional, Tuple

ONE_HOUR = 60 * 60
ONE_DAY = 24 * ONE_HOUR
FIVE_MINUTES = 5 * 60


class CacheManager:
    """A dictionary-backed cache whose entries expire after a TTL.

    Each entry stores the time it was written and its TTL in seconds. Expired
    entries are removed lazily, the next time they are read.

    Attributes:
        default_ttl (int): The TTL used when `set` is called without one.
    """

    def __init__(self, default_ttl: int = ONE_HOUR, clock: Callable[[], float] = time.monotonic) -> None:
        """Initializes the CacheManager.

        Args:
            default_ttl (int): The TTL in seconds for entries stored without
                an explicit one. Defaults to one hour.
            clock (Callable[[], float]): Source of the current time in
                seconds. Defaults to `time.monotonic`.
        """
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float, float]] = {}

    def get(self, key: str) -> Optional[Any]:
        """Retrieves an item from the cache if it exists and is not expired.

        Args:
            key (str): The unique key identifying the cached item.

        Returns:
            Optional[Any]: The cached value, or None if it is missing or
            expired.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at, ttl = entry
        if self._clock() - stored_at > ttl:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Saves an item to the cache.

        Args:
            key (str): The unique key for the item.
            value (Any): The value to cache.
            ttl (Optional[float]): Seconds until the item expires. Defaults
                to `default_ttl`.
        """
        self._entries[key] = (value, self._clock(), self.default_ttl if ttl is None else ttl)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Removes every entry from the cache."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
