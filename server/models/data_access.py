"""Data-access layer models.

Plain dataclasses shared by the fallback cache, the health monitor and the
performance recorder. All models are JSON-serializable through ``to_dict``
so the router can return them as-is.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class CacheEntry:
    """Last successful result of a named operation.

    An entry is valid while ``now < stored_at + ttl``. ``version`` is the
    ticket of the call that produced it; writes carrying an older ticket are
    rejected by the cache.
    """
    key: str
    data: Any
    stored_at: float          # seconds (cache clock)
    ttl: float                # seconds
    version: int = 0

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at

    def age_ms(self, now: float) -> float:
        return max(0.0, (now - self.stored_at) * 1000)


@dataclass
class CacheStats:
    count: int = 0
    oldest_age_ms: float = 0.0
    average_age_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CacheEntryInfo:
    key: str
    age_ms: float
    expires_in_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CacheInfo:
    total_entries: int
    entries: List[CacheEntryInfo] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_entries": self.total_entries,
            "entries": [e.to_dict() for e in self.entries],
        }


@dataclass(frozen=True)
class HealthSnapshot:
    """Connection pool reading. Never stored, always freshly computed."""
    health_score: int
    pending_connections: int
    available_connections: int
    total_connections: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class QueryMetric:
    operation_name: str
    collection: str
    execution_time_ms: float  # fractional ms from perf_counter, not rounded
    timestamp: float          # seconds (recorder clock)
    is_slow: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PerformanceStats:
    total: int = 0
    slow_count: int = 0
    avg_execution_ms: float = 0.0
    slowest: List[QueryMetric] = field(default_factory=list)
    by_collection: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "slow_count": self.slow_count,
            "avg_execution_ms": self.avg_execution_ms,
            "slowest": [m.to_dict() for m in self.slowest],
            "by_collection": dict(self.by_collection),
        }


@dataclass
class ConnectionStatus:
    is_healthy: bool
    is_in_fallback: bool
    cache_stats: CacheStats
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_healthy": self.is_healthy,
            "is_in_fallback": self.is_in_fallback,
            "cache_stats": self.cache_stats.to_dict(),
            "message": self.message,
        }


class SubscriptionState(str, Enum):
    """Polling subscription lifecycle.

    State transitions:
        IDLE -> LOADING -> READY | ERRORED -> LOADING (refetch) -> ...
        any -> CLOSED (unsubscribe, terminal)
    """
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERRORED = "errored"
    CLOSED = "closed"


@dataclass
class SubscriptionSnapshot:
    cache_key: str
    state: SubscriptionState
    data: Any = None
    loading: bool = False
    error: Optional[str] = None
    last_updated: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["state"] = self.state.value
        return result
