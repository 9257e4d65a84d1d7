"""In-process availability cache.

Keeps values in a dictionary with an optional time-to-live. Suitable for a
single process; a shared deployment should use the Redis adapter.
"""

import logging
import time

from innkeeper.core.ports import AvailabilityCachePort

logger = logging.getLogger(__name__)


class MemoryAvailabilityCache(AvailabilityCachePort):
    """Dictionary-backed cache with optional expiry."""

    def __init__(self, ttl_seconds: float | None = None):
        """Initialize the cache.

        Args:
            ttl_seconds: Lifetime of each entry. None keeps entries until
                they are invalidated or overwritten.
        """
        self.ttl_seconds = ttl_seconds
        self._entries: dict[str, tuple[int, float | None]] = {}

    async def get(self, key: str) -> int | None:
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def put(self, key: str, value: int) -> None:
        expires_at = None
        if self.ttl_seconds is not None:
            expires_at = time.monotonic() + self.ttl_seconds
        self._entries[key] = (value, expires_at)

    async def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._entries.clear()
