"""Public data-access interface consumed by the UI layer."""

from typing import Any, Dict, List, Optional

from core.cache import FallbackCache
from core.cleanup import CleanupService
from core.config import Settings
from core.database import Database
from core.health import HealthMonitor, get_health_status, set_startup_time
from core.logging import get_logger
from models.data_access import CacheInfo, ConnectionStatus, PerformanceStats
from services.gateway import DataAccessGateway, Operation
from services.performance import PerformanceRecorder
from services.polling import PollingClient, Subscription
from services.resources import ResourceClient

logger = get_logger(__name__)


class DataAccessService:
    """Facade over the gateway, polling client and their shared stores."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        health: HealthMonitor,
        cache: FallbackCache,
        recorder: PerformanceRecorder,
        gateway: DataAccessGateway,
        polling: PollingClient,
        resources: ResourceClient,
        cleanup: CleanupService,
    ):
        self.settings = settings
        self.database = database
        self.health = health
        self.cache = cache
        self.recorder = recorder
        self.gateway = gateway
        self.polling = polling
        self.resources = resources
        self.cleanup = cleanup

    async def startup(self) -> None:
        set_startup_time()
        await self.database.startup()
        await self.database.start_monitoring()
        if self.settings.cleanup_enabled:
            await self.cleanup.start()
        logger.info("Data access layer started",
                    healthy=self.health.is_healthy(),
                    cache_ttl=self.cache.default_ttl)

    async def shutdown(self) -> None:
        self.polling.close()
        await self.cleanup.stop()
        await self.resources.close()
        await self.database.shutdown()
        logger.info("Data access layer stopped")

    async def execute_with_fallback(self, name: str, operation: Operation,
                                    fallback: Any = None) -> Any:
        return await self.gateway.execute_with_fallback(name, operation, fallback)

    def get_connection_status(self) -> ConnectionStatus:
        return self.gateway.get_connection_status()

    async def subscribe(self, endpoint: str, params: Optional[Dict[str, Any]] = None,
                        refresh_interval_ms: Optional[int] = None,
                        enabled: bool = True) -> Subscription:
        return await self.polling.subscribe(endpoint, params, refresh_interval_ms, enabled)

    def clear_cache(self, endpoint: Optional[str] = None,
                    params: Optional[Dict[str, Any]] = None) -> int:
        return self.polling.clear_cache(endpoint, params)

    def get_cache_info(self) -> CacheInfo:
        return self.polling.get_cache_info()

    def get_performance_stats(self, window_ms: Optional[float] = None) -> PerformanceStats:
        return self.recorder.stats(window_ms)

    def get_performance_recommendations(self) -> List[str]:
        return self.recorder.recommendations()

    def health_report(self) -> Dict[str, Any]:
        return get_health_status(self.health, self.cache, self.recorder)
