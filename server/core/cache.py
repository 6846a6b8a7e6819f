"""In-process fallback cache with TTL expiry.

Holds the last successful result of every named operation so the gateway
can keep serving data while the upstream connection is degraded. Entries
expire lazily on read; the cleanup service sweeps the rest.
"""

import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.logging import get_logger, log_cache_operation
from models.data_access import CacheEntry, CacheEntryInfo, CacheStats

logger = get_logger(__name__)

DEFAULT_TTL = 5 * 60  # seconds

Clock = Callable[[], float]


class FallbackCache:
    """TTL-keyed store mapping an operation key to its last good result.

    No eviction policy beyond TTL expiry: callers are expected to use a
    stable, finite key space. All map access is serialized by one lock so
    timers running on other threads cannot interleave ``get``/``set``.
    """

    def __init__(self, default_ttl: float = DEFAULT_TTL, clock: Optional[Clock] = None):
        self.default_ttl = default_ttl
        self._clock = clock or time.time
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def get(self, key: str) -> Tuple[Any, bool]:
        """Return ``(value, True)`` for a valid entry, ``(None, False)`` otherwise.

        An expired entry is evicted as a side effect of the read.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                log_cache_operation(logger, "get", key, hit=False)
                return None, False

            if not entry.is_valid(self._clock()):
                del self._entries[key]
                log_cache_operation(logger, "get", key, hit=False, expired=True)
                return None, False

            log_cache_operation(logger, "get", key, hit=True)
            return entry.data, True

    def peek(self, key: str) -> Optional[CacheEntry]:
        """Return the raw entry without validity checks or eviction."""
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, value: Any, ttl: Optional[float] = None,
            version: Optional[int] = None) -> bool:
        """Store ``value`` under ``key`` with ``stored_at = now``.

        When ``version`` is given and the current entry was written by a
        newer call, the write is rejected and ``False`` is returned.
        """
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            current = self._entries.get(key)
            if version is not None and current is not None and current.version > version:
                log_cache_operation(logger, "set", key, rejected=True,
                                    version=version, current_version=current.version)
                return False

            self._entries[key] = CacheEntry(
                key=key,
                data=value,
                stored_at=self._clock(),
                ttl=ttl,
                version=version if version is not None else 0,
            )
        log_cache_operation(logger, "set", key, ttl=ttl)
        return True

    def invalidate(self, key: str) -> bool:
        """Remove one entry."""
        with self._lock:
            deleted = self._entries.pop(key, None) is not None
        log_cache_operation(logger, "invalidate", key, deleted=deleted)
        return deleted

    def invalidate_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with ``prefix``."""
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for k in keys:
                del self._entries[k]
        log_cache_operation(logger, "invalidate_prefix", prefix, deleted=len(keys))
        return len(keys)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Fallback cache cleared", entries=count)
        return count

    def cleanup_expired(self) -> int:
        """Evict every expired entry. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if not e.is_valid(now)]
            for k in expired:
                del self._entries[k]
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            now = self._clock()
            ages = [e.age_ms(now) for e in self._entries.values()]

        if not ages:
            return CacheStats()

        return CacheStats(
            count=len(ages),
            oldest_age_ms=max(ages),
            average_age_ms=sum(ages) / len(ages),
        )

    def entries(self) -> List[CacheEntryInfo]:
        """Age and remaining lifetime of every stored entry, in milliseconds."""
        with self._lock:
            now = self._clock()
            return [
                CacheEntryInfo(
                    key=key,
                    age_ms=entry.age_ms(now),
                    expires_in_ms=(entry.expires_at - now) * 1000,
                )
                for key, entry in self._entries.items()
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries
