"""Query performance recorder.

Keeps a bounded ring buffer of per-operation latency samples and derives
aggregate statistics and advisory recommendations from it.
"""

import time
from collections import Counter, deque
from typing import Callable, Deque, List, Optional

from core.logging import get_logger, log_query_metric
from models.data_access import PerformanceStats, QueryMetric

logger = get_logger(__name__)

MAX_METRICS = 1000
SLOW_THRESHOLD_MS = 100
SLOWEST_LIMIT = 10

SLOW_RATIO_LIMIT = 0.1
AVG_EXECUTION_LIMIT_MS = 50
COLLECTION_SHARE_LIMIT = 0.3


class PerformanceRecorder:
    """Ring buffer of QueryMetric samples.

    Once ``max_metrics`` samples are held, each new sample silently drops the
    oldest one.
    """

    def __init__(self, max_metrics: int = MAX_METRICS,
                 slow_threshold_ms: float = SLOW_THRESHOLD_MS,
                 clock: Optional[Callable[[], float]] = None):
        self.max_metrics = max_metrics
        self.slow_threshold_ms = slow_threshold_ms
        self._clock = clock or time.time
        self._metrics: Deque[QueryMetric] = deque(maxlen=max_metrics)

    def record(self, metric: QueryMetric) -> None:
        self._metrics.append(metric)

    def track(self, operation_name: str, collection: str,
              execution_time_ms: float) -> QueryMetric:
        """Build, record and log a metric for one real execution."""
        metric = QueryMetric(
            operation_name=operation_name,
            collection=collection,
            execution_time_ms=execution_time_ms,
            timestamp=self._clock(),
            is_slow=execution_time_ms > self.slow_threshold_ms,
        )
        self.record(metric)
        log_query_metric(logger, operation_name, collection,
                         round(execution_time_ms, 2), metric.is_slow)
        return metric

    def _window(self, window_ms: Optional[float]) -> List[QueryMetric]:
        if window_ms is None:
            return list(self._metrics)
        cutoff = self._clock() - window_ms / 1000
        return [m for m in self._metrics if m.timestamp > cutoff]

    def stats(self, window_ms: Optional[float] = None) -> PerformanceStats:
        """Aggregate the samples recorded within the last ``window_ms``."""
        metrics = self._window(window_ms)
        if not metrics:
            return PerformanceStats()

        total_time = sum(m.execution_time_ms for m in metrics)
        # sorted() is stable, ties keep insertion order
        slowest = sorted(metrics, key=lambda m: m.execution_time_ms, reverse=True)[:SLOWEST_LIMIT]

        return PerformanceStats(
            total=len(metrics),
            slow_count=sum(1 for m in metrics if m.is_slow),
            avg_execution_ms=total_time / len(metrics),
            slowest=slowest,
            by_collection=dict(Counter(m.collection for m in metrics)),
        )

    def recommendations(self) -> List[str]:
        stats = self.stats()
        recommendations: List[str] = []
        if stats.total == 0:
            return recommendations

        if stats.slow_count / stats.total > SLOW_RATIO_LIMIT:
            recommendations.append(
                "High percentage of slow queries detected. "
                "Consider adding indexes for frequently queried fields."
            )

        if stats.avg_execution_ms > AVG_EXECUTION_LIMIT_MS:
            recommendations.append(
                "Average query execution time is high. "
                "Review query patterns and consider query optimization."
            )

        for collection, count in stats.by_collection.items():
            share = count / stats.total
            if share > COLLECTION_SHARE_LIMIT:
                recommendations.append(
                    f"Collection '{collection}' is heavily queried "
                    f"({share * 100:.1f}% of queries). Consider caching or query optimization."
                )

        return recommendations

    def slow_queries(self, collection: Optional[str] = None, limit: int = 20) -> List[QueryMetric]:
        """Slowest flagged samples, optionally restricted to one collection."""
        queries = [m for m in self._metrics if m.is_slow]
        if collection:
            queries = [m for m in queries if m.collection == collection]
        return sorted(queries, key=lambda m: m.execution_time_ms, reverse=True)[:limit]

    def clear_older_than(self, hours: float = 24) -> int:
        """Drop samples older than ``hours``. Returns the number removed."""
        cutoff = self._clock() - hours * 3600
        kept = [m for m in self._metrics if m.timestamp > cutoff]
        removed = len(self._metrics) - len(kept)
        if removed:
            self._metrics = deque(kept, maxlen=self.max_metrics)
        return removed

    def export(self) -> List[QueryMetric]:
        return list(self._metrics)

    def __len__(self) -> int:
        return len(self._metrics)
