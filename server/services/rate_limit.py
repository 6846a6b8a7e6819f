"""Fixed-window request rate limiter.

Expired windows are not removed on their own; the cleanup service calls
``cleanup_expired`` on its schedule.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class _Window:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float


class RateLimiter:
    def __init__(self, max_requests: int = 100, window_seconds: float = 3600,
                 clock: Optional[Callable[[], float]] = None):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock or time.time
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def check(self, identifier: str) -> RateLimitResult:
        """Count one request for ``identifier`` and report whether it is allowed."""
        with self._lock:
            now = self._clock()
            window = self._windows.get(identifier)

            if window is None or now > window.reset_at:
                window = _Window(count=1, reset_at=now + self.window_seconds)
                self._windows[identifier] = window
                return RateLimitResult(True, self.max_requests - 1, window.reset_at)

            if window.count >= self.max_requests:
                logger.warning("Rate limit exceeded", identifier=identifier)
                return RateLimitResult(False, 0, window.reset_at)

            window.count += 1
            return RateLimitResult(True, self.max_requests - window.count, window.reset_at)

    def cleanup_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [k for k, w in self._windows.items() if now > w.reset_at]
            for k in expired:
                del self._windows[k]
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)
