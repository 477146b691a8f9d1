"""In-memory TTL cache for trend predictions."""

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from cedear_advisor.config import CACHE_MAX_ENTRIES, DEFAULT_CACHE_TTL_MINUTES

logger = logging.getLogger(__name__)


class PredictionCache:
    """Key/value cache whose entries expire after a per-entry TTL.

    Not locked: concurrent readers may recompute the same entry, the TTL bounds
    how stale a served value can be.
    """

    def __init__(
        self,
        default_ttl_seconds: float = DEFAULT_CACHE_TTL_MINUTES * 60,
        max_entries: int = CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl_seconds = default_ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}  # key -> (value, expires_at)
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            logger.debug(f"Cache miss: {key}")
            return None

        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            self.misses += 1
            logger.debug(f"Cache entry expired: {key}")
            return None

        self.hits += 1
        return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if key not in self._entries and len(self._entries) >= self.max_entries:
            self._evict_oldest()
        self._entries[key] = (value, self._clock() + ttl)

    def _evict_oldest(self) -> None:
        # Entry closest to expiry goes first
        oldest = min(self._entries, key=lambda k: self._entries[k][1])
        del self._entries[oldest]

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear_by_prefix(self, prefix: str) -> int:
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def get_stats(self) -> Dict[str, int]:
        return {
            'hits': self.hits,
            'misses': self.misses,
            'entries': len(self._entries),
        }
