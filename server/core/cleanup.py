"""Periodic cleanup service for the in-process data-access stores.

Owns a single background task with an explicit ``start()``/``stop()``
lifecycle. All configuration from Settings (environment variables).
"""
import asyncio
from typing import Optional, TYPE_CHECKING

from core.logging import get_logger

if TYPE_CHECKING:
    from core.config import Settings
    from core.cache import FallbackCache
    from services.performance import PerformanceRecorder
    from services.rate_limit import RateLimiter

logger = get_logger(__name__)


class CleanupService:
    """Background cleanup to keep in-memory stores bounded.

    Periodically removes:
    - Expired fallback cache entries
    - Query metrics older than the configured age
    - Expired rate-limit windows
    """

    def __init__(
        self,
        cache: "FallbackCache",
        recorder: "PerformanceRecorder",
        rate_limiter: "RateLimiter",
        settings: "Settings"
    ):
        self.cache = cache
        self.recorder = recorder
        self.rate_limiter = rate_limiter
        self.settings = settings
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the cleanup service background task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._cleanup_loop())
        logger.info(
            "Cleanup service started",
            interval=self.settings.cleanup_interval,
            metrics_max_age_hours=self.settings.metrics_max_age_hours
        )

    async def stop(self) -> None:
        """Stop the cleanup service and wait for the task to finish."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Cleanup service stopped")

    async def _cleanup_loop(self) -> None:
        """Main cleanup loop - runs at configured interval."""
        while self._running:
            await asyncio.sleep(self.settings.cleanup_interval)
            try:
                self._run_cleanup()
            except Exception as e:
                logger.error("Cleanup failed", error=str(e))

    def _run_cleanup(self) -> dict:
        results = {
            'expired_cache': self.cache.cleanup_expired(),
            'old_metrics': self.recorder.clear_older_than(self.settings.metrics_max_age_hours),
            'expired_rate_limits': self.rate_limiter.cleanup_expired(),
        }

        # Only log if something was cleaned up
        if sum(results.values()) > 0:
            logger.info("Cleanup completed", **results)
        return results

    async def run_once(self) -> dict:
        """Run cleanup once and return results. Useful for testing."""
        return self._run_cleanup()
