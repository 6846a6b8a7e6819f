"""Connection health scoring and process health reporting.

The health monitor gates every live read: when the pool looks degraded the
gateway serves cached data instead of touching the upstream connection.
"""
import time
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

import psutil

from core.logging import get_logger
from models.data_access import HealthSnapshot

if TYPE_CHECKING:
    from core.cache import FallbackCache
    from services.performance import PerformanceRecorder

logger = get_logger(__name__)

HEALTH_SCORE_THRESHOLD = 70

StatsProvider = Callable[[], Optional[HealthSnapshot]]

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


def get_memory_mb() -> float:
    """Get current process memory usage in MB."""
    try:
        return psutil.Process().memory_info().rss / (1024 * 1024)
    except psutil.Error:
        return 0.0


def get_cpu_percent() -> float:
    """Get current process CPU usage percentage (non-blocking)."""
    try:
        return psutil.Process().cpu_percent(interval=None)
    except psutil.Error:
        return 0.0


def compute_health_score(connected: bool, last_error: Optional[str],
                         connection_attempts: int, pending: int, total: int) -> int:
    """Composite 0-100 score from pool state and error history."""
    score = 100
    if not connected:
        score -= 50
    if last_error:
        score -= 30
    if connection_attempts > 5:
        score -= 20
    if pending > total * 0.5:
        score -= 25
    return max(0, score)


def health_label(score: int) -> str:
    if score > 90:
        return "Excellent"
    if score > 70:
        return "Good"
    if score > 50:
        return "Fair"
    return "Poor"


class HealthMonitor:
    """Boolean health verdict over live pool statistics.

    A connection is healthy iff its score is above the threshold, nothing is
    waiting for a connection and at least one connection is available. Any
    failure to read the statistics counts as unhealthy.
    """

    def __init__(self, stats_provider: StatsProvider,
                 score_threshold: int = HEALTH_SCORE_THRESHOLD):
        self._stats_provider = stats_provider
        self.score_threshold = score_threshold

    def snapshot(self) -> Optional[HealthSnapshot]:
        """Read a fresh snapshot, or ``None`` if the pool cannot be queried."""
        try:
            return self._stats_provider()
        except Exception as e:
            logger.warning("Failed to read connection pool stats", error=str(e))
            return None

    def is_healthy(self) -> bool:
        snapshot = self.snapshot()
        if snapshot is None:
            return False

        healthy = (
            snapshot.health_score > self.score_threshold
            and snapshot.pending_connections == 0
            and snapshot.available_connections > 0
        )
        if not healthy:
            logger.debug("Connection unhealthy",
                         health_score=snapshot.health_score,
                         pending=snapshot.pending_connections,
                         available=snapshot.available_connections)
        return healthy


def get_health_status(
    monitor: HealthMonitor,
    cache: "FallbackCache",
    recorder: "PerformanceRecorder",
) -> Dict[str, Any]:
    """Get comprehensive health status for /health endpoint.

    Returns:
        Dict containing status, uptime, resource usage, pool and cache state.
    """
    snapshot = monitor.snapshot()
    healthy = monitor.is_healthy()
    perf = recorder.stats()

    return {
        "status": "healthy" if healthy else "degraded",
        "uptime_seconds": round(get_uptime(), 1),
        "memory_mb": round(get_memory_mb(), 1),
        "cpu_percent": round(get_cpu_percent(), 1),
        "pool": snapshot.to_dict() if snapshot else None,
        "performance_label": health_label(snapshot.health_score) if snapshot else "Poor",
        "cache": cache.stats().to_dict(),
        "queries": {
            "total": perf.total,
            "slow": perf.slow_count,
            "avg_execution_ms": round(perf.avg_execution_ms, 2),
        },
    }
