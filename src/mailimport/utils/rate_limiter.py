"""
Sliding-window rate limiter for Gmail API calls.
"""

from __future__ import annotations
import time
import threading
from collections import deque
from typing import Optional
from mailimport.logging import logger


class RateLimiter:
    """
    Allows at most `max_calls` calls per `time_window_seconds`.

    Thread-safe; the scheduler thread and CLI calls may share one instance.
    """

    def __init__(self, max_calls: int, time_window_seconds: float = 60):
        """
        Args:
            max_calls: Maximum number of calls allowed in the time window
            time_window_seconds: Window length in seconds (default: 60)
        """
        if max_calls < 1:
            raise ValueError(f"max_calls must be positive, got {max_calls}")
        self.max_calls = max_calls
        self.time_window = time_window_seconds
        self.call_times: deque[float] = deque()
        self._lock = threading.Lock()

    def _evict(self, now: float) -> None:
        while self.call_times and (now - self.call_times[0]) > self.time_window:
            self.call_times.popleft()

    def acquire(self, blocking: bool = True, timeout: Optional[float] = None) -> bool:
        """
        Take a call slot.

        Args:
            blocking: If True, wait until a slot frees up
            timeout: Maximum seconds to wait (None = no limit)

        Returns:
            True if a slot was taken, False on non-blocking refusal or timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                now = time.monotonic()
                self._evict(now)
                if len(self.call_times) < self.max_calls:
                    self.call_times.append(now)
                    return True
                wait_time = self.time_window - (now - self.call_times[0]) + 0.05

            if not blocking:
                logger.warning(
                    f"Rate limit exceeded: {self.max_calls} calls in the last {self.time_window}s"
                )
                return False
            if deadline is not None and time.monotonic() + wait_time > deadline:
                logger.warning(f"Rate limit wait ({wait_time:.2f}s) exceeds timeout ({timeout}s)")
                return False

            logger.debug(f"Rate limit reached, waiting {wait_time:.2f}s...")
            time.sleep(wait_time)

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        pass
