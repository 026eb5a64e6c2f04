"""
In-memory TTL cache sitting in front of the upstream provider.

Entries are visible only while now <= expires_at. Stale entries are dropped
lazily on get() and proactively by sweep(), which run_sweeper() calls on a
fixed interval so keys that are never requested again still get freed.
Not thread-safe; all access happens on the event loop thread.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from optionsentinel.core.clock import SystemClock

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: str
    value: Any
    expires_at: float


class ExpiringCache:

    def __init__(self, clock=None) -> None:
        self.clock = clock or SystemClock()
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock.now() > entry.expires_at:
            self._entries.pop(key, None)
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        self._entries[key] = CacheEntry(key, value, self.clock.now() + ttl)

    def sweep(self) -> int:
        """Remove every expired entry. Returns how many were dropped."""
        now = self.clock.now()
        stale = [k for k, e in self._entries.items() if now > e.expires_at]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def stats(self) -> Dict[str, Any]:
        now = self.clock.now()
        live = {k: e for k, e in self._entries.items() if now <= e.expires_at}
        return {
            "size": len(live),
            "entries": [
                {"key": k, "ttlRemaining": round(e.expires_at - now, 1)}
                for k, e in live.items()
            ],
        }

    def __len__(self) -> int:
        return len(self._entries)


async def run_sweeper(cache: ExpiringCache, interval: float) -> None:
    """Sweep the cache forever, every `interval` seconds."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = cache.sweep()
            if removed:
                logger.debug("cache sweep removed %d stale entries, %d left", removed, len(cache))
        except Exception:
            logger.exception("cache sweep failed")
