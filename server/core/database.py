"""Async database service with SQLAlchemy 2.0.

Owns the connection pool whose statistics drive the health monitor.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import QueuePool

from core.config import Settings
from core.health import compute_health_score
from core.logging import get_logger
from models.data_access import HealthSnapshot

logger = get_logger(__name__)

MAX_PENDING_ESTIMATE = 3


class Database:
    """Async database service tracking connection health."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine: Optional[AsyncEngine] = None
        self.async_session: Optional[async_sessionmaker] = None
        self.connected = False
        self.last_error: Optional[str] = None
        self.connection_attempts = 0
        self.consecutive_failures = 0
        self.last_health_check = 0.0
        self._monitoring = False
        self._monitor_task: Optional[asyncio.Task] = None

    @property
    def monitoring(self) -> bool:
        return self._monitoring

    async def startup(self):
        """Initialize database connection and verify it with a ping."""
        logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

        engine_kwargs = {"echo": self.settings.database_echo}
        if not self.settings.uses_sqlite:
            engine_kwargs.update(
                pool_size=self.settings.database_pool_size,
                max_overflow=self.settings.database_max_overflow,
                pool_pre_ping=True,
            )

        self.engine = create_async_engine(self.settings.database_url, **engine_kwargs)
        self.async_session = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        if await self.ping():
            logger.info("Database initialized successfully")
        else:
            logger.warning("Database started in degraded state", error=self.last_error)

    async def start_monitoring(self) -> None:
        """Start pinging the database every ``health_check_interval`` seconds.

        Keeps ``connected``/``last_error`` current so pool snapshots track
        outages and recoveries after startup. Each ping opens a fresh
        connection, which is also how a lost database is reconnected.
        """
        if self._monitoring:
            return
        self._monitoring = True
        self._monitor_task = asyncio.create_task(self._monitor_loop())
        logger.info("Database health monitoring started",
                    interval=self.settings.health_check_interval)

    async def stop_monitoring(self) -> None:
        self._monitoring = False
        if self._monitor_task:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None
            logger.info("Database health monitoring stopped")

    async def _monitor_loop(self) -> None:
        while self._monitoring:
            await asyncio.sleep(self.settings.health_check_interval)
            was_connected = self.connected
            if await self.ping():
                if not was_connected:
                    logger.info("Database connection restored")
            elif was_connected:
                logger.warning("Database connection lost", error=self.last_error)

    async def shutdown(self):
        """Close database connections."""
        await self.stop_monitoring()
        if self.engine:
            await self.engine.dispose()
            self.connected = False
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> bool:
        """Run ``SELECT 1`` and update the connection error history."""
        if not self.engine:
            raise RuntimeError("Database not initialized")

        self.connection_attempts += 1
        self.last_health_check = time.time()
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            self.connected = False
            self.last_error = str(e)
            self.consecutive_failures += 1
            logger.error("Database ping failed", error=str(e),
                         consecutive_failures=self.consecutive_failures)
            return False

        self.connected = True
        self.last_error = None
        self.connection_attempts = 0
        self.consecutive_failures = 0
        return True

    def pool_snapshot(self) -> HealthSnapshot:
        """Current pool statistics with a composite health score.

        Raises:
            RuntimeError: if the engine has not been started.
        """
        if not self.engine:
            raise RuntimeError("Database not initialized")

        pool = self.engine.sync_engine.pool
        if isinstance(pool, QueuePool):
            # capacity is the fixed pool plus the overflow it may open;
            # negative max_overflow means unbounded and adds nothing here
            total = pool.size() + max(0, pool._max_overflow)
            available = max(0, total - pool.checkedout()) if self.connected else 0
        else:
            # Null/static pools hand out a single logical connection
            total = 1 if self.connected else 0
            available = total

        pending = min(MAX_PENDING_ESTIMATE, self.consecutive_failures)
        score = compute_health_score(
            connected=self.connected,
            last_error=self.last_error,
            connection_attempts=self.connection_attempts,
            pending=pending,
            total=total,
        )
        return HealthSnapshot(
            health_score=score,
            pending_connections=pending,
            available_connections=available,
            total_connections=total,
        )
