"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from core.cache import FallbackCache
from core.cleanup import CleanupService
from core.health import HealthMonitor
from services.data_access import DataAccessService
from services.gateway import DataAccessGateway
from services.performance import PerformanceRecorder
from services.polling import PollingClient
from services.rate_limit import RateLimiter
from services.resources import ResourceClient


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Database (its pool statistics feed the health monitor)
    database = providers.Singleton(
        Database,
        settings=settings
    )

    health_monitor = providers.Singleton(
        HealthMonitor,
        stats_provider=database.provided.pool_snapshot,
        score_threshold=settings.provided.health_score_threshold,
    )

    # Process-wide stores
    fallback_cache = providers.Singleton(
        FallbackCache,
        default_ttl=settings.provided.fallback_cache_ttl,
    )

    performance_recorder = providers.Singleton(
        PerformanceRecorder,
        max_metrics=settings.provided.max_metrics,
        slow_threshold_ms=settings.provided.slow_query_threshold_ms,
    )

    rate_limiter = providers.Singleton(
        RateLimiter,
        max_requests=settings.provided.rate_limit_requests,
        window_seconds=settings.provided.rate_limit_window,
    )

    # Services
    gateway = providers.Singleton(
        DataAccessGateway,
        health=health_monitor,
        cache=fallback_cache,
        recorder=performance_recorder,
    )

    resource_client = providers.Singleton(
        ResourceClient,
        settings=settings
    )

    polling_client = providers.Singleton(
        PollingClient,
        gateway=gateway,
        cache=fallback_cache,
        fetcher=resource_client,
        default_refresh_interval_ms=settings.provided.default_refresh_interval_ms,
    )

    cleanup_service = providers.Singleton(
        CleanupService,
        cache=fallback_cache,
        recorder=performance_recorder,
        rate_limiter=rate_limiter,
        settings=settings
    )

    data_access = providers.Singleton(
        DataAccessService,
        settings=settings,
        database=database,
        health=health_monitor,
        cache=fallback_cache,
        recorder=performance_recorder,
        gateway=gateway,
        polling=polling_client,
        resources=resource_client,
        cleanup=cleanup_service,
    )


# Global container instance
container = Container()
