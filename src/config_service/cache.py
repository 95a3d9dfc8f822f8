"""Derived cache for the configuration service.

Holds values derived from the configuration document (startup snapshot,
computed tool list). There is no merge logic: entries are set, read and
invalidated as a whole, and callers must tolerate a miss.
"""

from datetime import datetime, timedelta
from typing import Any, Optional

from shared.logging import get_logger
from shared.models import CacheKeys

logger = get_logger(__name__)


class DerivedCache:
    """
    In-process key-value cache with a per-entry time-to-live.

    Methods are coroutines so a shared backend can replace this one
    without touching callers.
    """

    def __init__(self, ttl_seconds: int = 300) -> None:
        """
        Initialize the cache.

        Args:
            ttl_seconds: Default time-to-live for entries
        """
        self.ttl = timedelta(seconds=ttl_seconds)
        self._entries: dict[str, tuple[Any, datetime]] = {}

    async def get(self, key: CacheKeys | str) -> Optional[Any]:
        """Get a value, or None on a miss or an expired entry."""
        key = CacheKeys(key).value
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if datetime.utcnow() >= expires_at:
            del self._entries[key]
            logger.debug("Cache entry expired", key=key)
            return None

        return value

    async def set(
        self,
        key: CacheKeys | str,
        value: Any,
        ttl_seconds: Optional[int] = None
    ) -> None:
        """Store a value under ``key``."""
        key = CacheKeys(key).value
        ttl = timedelta(seconds=ttl_seconds) if ttl_seconds is not None else self.ttl
        self._entries[key] = (value, datetime.utcnow() + ttl)
        logger.debug("Cache entry set", key=key)

    async def delete(self, key: CacheKeys | str) -> bool:
        """
        Invalidate one entry.

        Returns:
            True if an entry was removed
        """
        key = CacheKeys(key).value
        removed = self._entries.pop(key, None) is not None
        logger.debug("Cache entry invalidated", key=key, removed=removed)
        return removed

    async def invalidate_all(self) -> None:
        """Invalidate every key derived from the server definitions."""
        for key in CacheKeys:
            await self.delete(key)
