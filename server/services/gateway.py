"""Data-access gateway.

Wraps a named remote operation with a health gate, a write-through
fallback cache and latency recording. Degraded service is reached either
pre-emptively (the pool is known to be unhealthy) or reactively (the
operation raised); both paths resolve through the same recovery chain:

    valid cache entry -> caller fallback -> error

The error is ``NoCachedDataAvailable`` on the health path and the original
operation exception on the failure path.
"""

import inspect
import itertools
import threading
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar, Union

from core.cache import FallbackCache
from core.health import HealthMonitor
from core.logging import get_logger, log_execution_time
from models.data_access import ConnectionStatus
from services.exceptions import ConnectionUnhealthy, NoCachedDataAvailable
from services.performance import PerformanceRecorder

logger = get_logger(__name__)

T = TypeVar("T")

Operation = Callable[[], Union[Awaitable[T], T]]


def collection_for(name: str) -> str:
    """Collection tag for a metric: the key prefix before the first ``:``."""
    return name.split(":", 1)[0]


class DataAccessGateway:
    """Decides per call whether to execute, serve cache, or fail.

    Cache writes for one key are ordered by ticket, not completion time: a
    slow call that started earlier cannot overwrite the result of a call
    issued after it.
    """

    def __init__(self, health: HealthMonitor, cache: FallbackCache,
                 recorder: PerformanceRecorder, ttl: Optional[float] = None):
        self.health = health
        self.cache = cache
        self.recorder = recorder
        self.ttl = ttl
        self._tickets: Dict[str, "itertools.count[int]"] = {}
        self._tickets_lock = threading.Lock()

    def _next_ticket(self, name: str) -> int:
        with self._tickets_lock:
            counter = self._tickets.setdefault(name, itertools.count(1))
            return next(counter)

    async def execute_with_fallback(
        self,
        name: str,
        operation: Operation,
        fallback: Optional[T] = None,
        *,
        collection: Optional[str] = None,
        commit: Optional[Callable[[], bool]] = None,
    ) -> T:
        """Run ``operation`` or serve cached/fallback data for ``name``.

        Args:
            name: Operation identifier, also the cache key
            operation: Zero-arg callable returning the result or an awaitable
            fallback: Value used when neither live nor cached data is available
            collection: Metric tag, defaults to the key prefix
            commit: Checked before writing the result to the cache; a false
                answer returns the result without caching it

        Raises:
            NoCachedDataAvailable: unhealthy connection and nothing to serve
            Exception: the operation's own error when nothing can be served
        """
        try:
            if not self.health.is_healthy():
                raise ConnectionUnhealthy(name)
            ticket = self._next_ticket(name)
            result = await self._timed(name, operation, collection or collection_for(name))
        except ConnectionUnhealthy:
            logger.warning("Connection unstable, using cached data", operation=name)
            return self._recover(name, fallback, None)
        except Exception as e:
            logger.error("Operation failed", operation=name, error=str(e),
                         error_type=type(e).__name__)
            return self._recover(name, fallback, e)

        if commit is not None and not commit():
            logger.debug("Discarding result of cancelled request", operation=name)
            return result

        if self.cache.set(name, result, self.ttl, version=ticket):
            logger.debug("Cached result", operation=name)
        else:
            logger.info("Ignoring out-of-order result", operation=name, ticket=ticket)
        return result

    async def _timed(self, name: str, operation: Operation, collection: str) -> Any:
        start = time.perf_counter()
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self.recorder.track(name, collection, elapsed_ms)
            log_execution_time(logger, name, elapsed_ms, collection=collection)

    def _recover(self, name: str, fallback: Optional[T], error: Optional[BaseException]) -> T:
        value, found = self.cache.get(name)
        if found:
            logger.warning("Serving cached/stale data", operation=name)
            return value

        if fallback is not None:
            logger.warning("Serving provided fallback data", operation=name)
            return fallback

        if error is not None:
            raise error
        raise NoCachedDataAvailable(name)

    def is_in_fallback(self) -> bool:
        return not self.health.is_healthy()

    def get_connection_status(self) -> ConnectionStatus:
        healthy = self.health.is_healthy()
        message = "Database connection healthy"
        if not healthy:
            message = "Using fallback mode - database connection unstable"

        return ConnectionStatus(
            is_healthy=healthy,
            is_in_fallback=not healthy,
            cache_stats=self.cache.stats(),
            message=message,
        )
