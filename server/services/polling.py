"""Polling client: periodic refresh of remote resources.

Each subscription owns at most one recurring timer task. Ticks go through
the data-access gateway, so a degraded connection keeps serving the last
good value (stale-while-revalidate) instead of blanking the subscriber.
"""

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from core.cache import FallbackCache
from core.logging import get_logger
from models.data_access import CacheInfo, SubscriptionSnapshot, SubscriptionState
from services.gateway import DataAccessGateway

logger = get_logger(__name__)

REFRESH_INTERVAL_MS = 30 * 1000

Fetcher = Callable[[str, Dict[str, Any]], Awaitable[Any]]


def make_cache_key(endpoint: str, params: Optional[Dict[str, Any]] = None) -> str:
    """Deterministic dedup key, e.g. ``animals:{"limit":10}``."""
    encoded = json.dumps(params or {}, sort_keys=True, separators=(",", ":"), default=str)
    return f"{endpoint}:{encoded}"


class Subscription:
    """Live view of one polled resource.

    Attributes mirror what a UI binds to: ``data``, ``loading``, ``error``
    and ``last_updated``. Silent timer ticks never flip ``loading`` so the
    previous value stays visible while a refresh is in flight.
    """

    def __init__(self, client: "PollingClient", endpoint: str, params: Dict[str, Any],
                 refresh_interval_ms: int, enabled: bool):
        self._client = client
        self.endpoint = endpoint
        self.params = params
        self.cache_key = make_cache_key(endpoint, params)
        self.refresh_interval_ms = refresh_interval_ms
        self.enabled = enabled

        self.state = SubscriptionState.IDLE
        self.data: Any = None
        self.loading = False
        self.error: Optional[str] = None
        self.last_updated: Optional[float] = None

        self._timer: Optional[asyncio.Task] = None
        self._tick_fetch: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self.state is not SubscriptionState.CLOSED

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    async def refetch(self) -> None:
        """Force an immediate fetch regardless of timer phase."""
        await self._fetch(silent=False)

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        self._arm()

    def set_refresh_interval(self, refresh_interval_ms: int) -> None:
        self.refresh_interval_ms = refresh_interval_ms
        self._arm()

    def unsubscribe(self) -> None:
        """Cancel the timer. In-flight results are discarded on arrival."""
        if not self.active:
            return
        self._cancel_timer()
        if self._tick_fetch is not None:
            # only this subscriber's wait; the shared request is shielded
            self._tick_fetch.cancel()
            self._tick_fetch = None
        self.state = SubscriptionState.CLOSED
        self.loading = False
        self._client._forget(self)
        logger.debug("Unsubscribed", cache_key=self.cache_key)

    def snapshot(self) -> SubscriptionSnapshot:
        return SubscriptionSnapshot(
            cache_key=self.cache_key,
            state=self.state,
            data=self.data,
            loading=self.loading,
            error=self.error,
            last_updated=self.last_updated,
        )

    async def _fetch(self, silent: bool) -> None:
        if not self.active:
            return
        if not silent:
            self.loading = True
            self.state = SubscriptionState.LOADING

        try:
            result = await self._client._request(self)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self.active:
                return
            self.error = str(e) or type(e).__name__
            self.state = SubscriptionState.ERRORED
            logger.error("Polling fetch failed", endpoint=self.endpoint,
                         cache_key=self.cache_key, error=self.error)
        else:
            if not self.active:
                return
            self.data = result
            self.error = None
            self.last_updated = time.time()
            self.state = SubscriptionState.READY
        finally:
            if self.active:
                self.loading = False

    def _arm(self) -> None:
        """Tear down the current timer and start exactly one new one if due."""
        self._cancel_timer()
        if self.active and self.enabled and self.refresh_interval_ms > 0:
            self._timer = asyncio.create_task(self._tick_loop())

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _tick_loop(self) -> None:
        """Fire every interval on a fixed schedule.

        Each refresh runs in its own task, so re-arming the timer never
        cancels a fetch that is already under way. A tick that lands while
        the previous refresh is still running is skipped.
        """
        loop = asyncio.get_running_loop()
        interval = self.refresh_interval_ms / 1000
        next_tick = loop.time() + interval
        while self.active:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            next_tick += interval
            if self._tick_fetch is not None and not self._tick_fetch.done():
                logger.debug("Refresh still running, skipping tick", cache_key=self.cache_key)
                continue
            # _fetch captures errors; the schedule continues after failures
            self._tick_fetch = asyncio.create_task(self._fetch(silent=True))


class PollingClient:
    """Schedules subscriptions and coalesces identical in-flight requests."""

    def __init__(self, gateway: DataAccessGateway, cache: FallbackCache, fetcher: Fetcher,
                 default_refresh_interval_ms: int = REFRESH_INTERVAL_MS):
        self.gateway = gateway
        self.cache = cache
        self.fetcher = fetcher
        self.default_refresh_interval_ms = default_refresh_interval_ms
        self._subscriptions: Set[Subscription] = set()
        self._inflight: Dict[str, asyncio.Task] = {}
        self._waiters: Dict[str, Set[Subscription]] = {}

    async def subscribe(self, endpoint: str, params: Optional[Dict[str, Any]] = None,
                        refresh_interval_ms: Optional[int] = None,
                        enabled: bool = True) -> Subscription:
        """Create a subscription, run its initial fetch and arm its timer."""
        if refresh_interval_ms is None:
            refresh_interval_ms = self.default_refresh_interval_ms
        subscription = Subscription(self, endpoint, dict(params or {}),
                                    refresh_interval_ms, enabled)
        self._subscriptions.add(subscription)
        logger.debug("Subscribed", cache_key=subscription.cache_key,
                     interval_ms=refresh_interval_ms, enabled=enabled)

        await subscription._fetch(silent=False)
        subscription._arm()
        return subscription

    @property
    def subscriptions(self) -> Set[Subscription]:
        return set(self._subscriptions)

    def inflight_keys(self) -> Set[str]:
        return set(self._inflight)

    async def _request(self, subscription: Subscription) -> Any:
        """Join the in-flight request for the key or start a new one."""
        key = subscription.cache_key
        task = self._inflight.get(key)
        if task is None or task.done():
            self._waiters[key] = set()
            task = asyncio.create_task(self._run(key, subscription.endpoint, subscription.params))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._release(k, t))
        else:
            logger.debug("Joining in-flight request", cache_key=key)
        self._waiters[key].add(subscription)

        # shield: a cancelled waiter must not cancel the shared request
        return await asyncio.shield(task)

    async def _run(self, key: str, endpoint: str, params: Dict[str, Any]) -> Any:
        return await self.gateway.execute_with_fallback(
            key,
            lambda: self.fetcher(endpoint, params),
            collection=endpoint,
            commit=lambda: self._has_live_waiter(key),
        )

    def _has_live_waiter(self, key: str) -> bool:
        return any(s.active for s in self._waiters.get(key, ()))

    def _release(self, key: str, task: asyncio.Task) -> None:
        if not task.cancelled():
            task.exception()  # waiters may all be gone; mark the error as retrieved
        if self._inflight.get(key) is task:
            del self._inflight[key]
            self._waiters.pop(key, None)

    def _forget(self, subscription: Subscription) -> None:
        self._subscriptions.discard(subscription)

    def clear_cache(self, endpoint: Optional[str] = None,
                    params: Optional[Dict[str, Any]] = None) -> int:
        """Clear one entry, every entry of an endpoint, or the whole cache."""
        if endpoint is None:
            return self.cache.clear()
        if params is not None:
            return int(self.cache.invalidate(make_cache_key(endpoint, params)))
        return self.cache.invalidate_prefix(endpoint)

    def get_cache_info(self) -> CacheInfo:
        entries = self.cache.entries()
        return CacheInfo(total_entries=len(entries), entries=entries)

    def close(self) -> None:
        """Cancel every subscription."""
        for subscription in list(self._subscriptions):
            subscription.unsubscribe()
        logger.info("Polling client closed")
