"""Shared fixtures: fake clock, fake pool statistics, wired components."""

import asyncio
from typing import Callable, Optional

import pytest

from core.cache import FallbackCache
from core.cleanup import CleanupService
from core.config import Settings
from core.database import Database
from core.health import HealthMonitor
from models.data_access import HealthSnapshot
from services.data_access import DataAccessService
from services.gateway import DataAccessGateway
from services.performance import PerformanceRecorder
from services.polling import PollingClient
from services.rate_limit import RateLimiter
from services.resources import ResourceClient

HEALTHY = HealthSnapshot(health_score=100, pending_connections=0,
                         available_connections=19, total_connections=20)
DEGRADED = HealthSnapshot(health_score=20, pending_connections=3,
                          available_connections=0, total_connections=20)


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePool:
    """Switchable pool-statistics provider."""

    def __init__(self, snapshot: Optional[HealthSnapshot] = HEALTHY):
        self.snapshot = snapshot
        self.error: Optional[Exception] = None

    def __call__(self) -> Optional[HealthSnapshot]:
        if self.error is not None:
            raise self.error
        return self.snapshot

    def degrade(self) -> None:
        self.snapshot = DEGRADED

    def recover(self) -> None:
        self.snapshot = HEALTHY


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def pool():
    return FakePool()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        api_base_url="http://livestock.test",
        cleanup_interval=1,
    )


@pytest.fixture
def monitor(pool):
    return HealthMonitor(pool)


@pytest.fixture
def cache(clock):
    return FallbackCache(default_ttl=300, clock=clock)


@pytest.fixture
def recorder(clock):
    return PerformanceRecorder(max_metrics=1000, slow_threshold_ms=100, clock=clock)


@pytest.fixture
def gateway(monitor, cache, recorder):
    return DataAccessGateway(monitor, cache, recorder)


@pytest.fixture
def service(settings, monitor, cache, recorder, gateway, clock):
    async def no_fetch(endpoint, params):
        raise AssertionError("unexpected remote fetch")

    polling = PollingClient(gateway, cache, no_fetch, default_refresh_interval_ms=0)
    limiter = RateLimiter(clock=clock)
    return DataAccessService(
        settings=settings,
        database=Database(settings),
        health=monitor,
        cache=cache,
        recorder=recorder,
        gateway=gateway,
        polling=polling,
        resources=ResourceClient(settings),
        cleanup=CleanupService(cache, recorder, limiter, settings),
    )
