"""Sliding-window rate limiter shared by all outbound requests.

Scan workers run in threads, so the limiter is guarded by a lock and
blocks the caller until a slot is free.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """Allow at most ``max_requests`` acquisitions per ``time_window`` seconds."""

    def __init__(
        self,
        max_requests: int,
        time_window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize rate limiter.

        Args:
            max_requests: Maximum requests allowed in the time window.
            time_window: Time window in seconds.
            clock: Monotonic clock, injectable for tests.
            sleep: Sleep function, injectable for tests.
        """
        if max_requests < 1:
            raise ValueError(f"max_requests must be positive, got {max_requests}")
        self.max_requests = max_requests
        self.time_window = time_window
        self._clock = clock
        self._sleep = sleep
        self._requests: deque[float] = deque()
        self._lock = threading.Lock()

    @classmethod
    def per_minute(cls, requests_per_minute: int) -> "RateLimiter":
        return cls(requests_per_minute, 60.0)

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """Block until a request slot is available.

        Args:
            timeout: Maximum seconds to wait (None waits indefinitely).

        Returns:
            True if a slot was acquired, False on timeout.
        """
        start = self._clock()
        while True:
            with self._lock:
                now = self._clock()
                self._cleanup(now)
                if len(self._requests) < self.max_requests:
                    self._requests.append(now)
                    return True
                wait = self._requests[0] + self.time_window - now

            if timeout is not None and now - start + wait > timeout:
                logger.warning("Rate limiter timed out after %.1fs", now - start)
                return False

            logger.debug("Rate limit reached, waiting %.3fs", wait)
            self._sleep(max(0.001, wait))

    def _cleanup(self, now: float) -> None:
        cutoff = now - self.time_window
        while self._requests and self._requests[0] <= cutoff:
            self._requests.popleft()

    @property
    def in_window(self) -> int:
        """Requests counted in the current window."""
        with self._lock:
            self._cleanup(self._clock())
            return len(self._requests)

    def reset(self) -> None:
        with self._lock:
            self._requests.clear()
