"""Sliding-window rate limiter for Microsoft Graph requests."""

import logging
import time
from collections import deque
from collections.abc import Callable
from threading import Lock

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """
    Bound outbound API calls to a trailing time window.

    Guarantees that no trailing window of ``window_seconds`` contains more
    than ``max_requests`` completed acquisitions.

    Features:
    - Keeps an ordered log of release times instead of refilling tokens
    - Reserves a release slot under the lock, sleeps outside it
    - Thread-safe for concurrent downloads
    """

    def __init__(
        self,
        max_requests: int = 600,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the rate limiter.

        Args:
            max_requests: Maximum calls allowed within any trailing window
            window_seconds: Length of the trailing window (seconds)
            clock: Monotonic time source
            sleep: Blocking sleep function
        """
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep

        self.lock = Lock()
        self._timestamps: deque[float] = deque()
        self.total_wait = 0.0
        self.last_wait = 0.0

    def acquire(self) -> float:
        """Block until a request may be sent. Returns seconds waited."""
        with self.lock:
            now = self._clock()
            cutoff = now - self.window_seconds
            while self._timestamps and self._timestamps[0] <= cutoff:
                self._timestamps.popleft()

            if len(self._timestamps) >= self.max_requests:
                # The new call may go once the call max_requests positions
                # earlier has left the window.
                anchor = self._timestamps[len(self._timestamps) - self.max_requests]
                release_at = anchor + self.window_seconds
            else:
                release_at = now

            self._timestamps.append(release_at)
            wait = max(0.0, release_at - now)
            self.last_wait = wait
            self.total_wait += wait

        if wait > 0:
            logger.debug("Rate limit window full, waiting %.2fs", wait)
            self._sleep(wait)
        return wait

    @property
    def in_window(self) -> int:
        """Number of acquisitions still inside the trailing window."""
        with self.lock:
            cutoff = self._clock() - self.window_seconds
            return sum(1 for t in self._timestamps if t > cutoff)

    @property
    def is_throttled(self) -> bool:
        """True if the most recent acquisition had to wait."""
        return self.last_wait > 0

    def reset(self) -> None:
        """Forget all recorded acquisitions."""
        with self.lock:
            self._timestamps.clear()
            self.total_wait = 0.0
            self.last_wait = 0.0
