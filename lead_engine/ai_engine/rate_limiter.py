"""
lead_engine/ai_engine/rate_limiter.py — Local budget for completion calls.

Sliding-window counter shared by every concurrent caller of one adapter.
Requests over budget are refused locally instead of being sent.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    At most `max_requests` acquisitions per `window_seconds`.

    The check-and-record step runs under a threading.Lock, so it stays atomic
    whether callers are OS threads or asyncio tasks sharing one loop.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests <= 0:
            raise ValueError("max_requests must be > 0")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._calls: deque[float] = deque()
        self._lock = threading.Lock()

    def _evict(self, now: float) -> None:
        window_start = now - self.window_seconds
        while self._calls and self._calls[0] <= window_start:
            self._calls.popleft()

    def try_acquire(self) -> bool:
        """Record one request if the budget allows it. Returns False when over budget."""
        with self._lock:
            now = self._clock()
            self._evict(now)
            if len(self._calls) >= self.max_requests:
                logger.warning(
                    "AI rate limit reached (%d requests / %.0fs); request refused locally.",
                    self.max_requests, self.window_seconds,
                )
                return False
            self._calls.append(now)
            return True

    @property
    def remaining(self) -> int:
        with self._lock:
            self._evict(self._clock())
            return self.max_requests - len(self._calls)
