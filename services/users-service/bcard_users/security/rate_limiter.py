"""In-memory sliding window limiter for login and registration requests."""

from __future__ import annotations

import math
import time
from collections import defaultdict, deque
from threading import Lock
from typing import Callable, Deque


class SlidingWindowRateLimiter:
    """Thread-safe sliding window limiter keyed by login email or client address."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_requests = max_requests
        self._window = window_seconds
        self._clock = clock
        self._events: defaultdict[str, Deque[float]] = defaultdict(deque)
        self._lock = Lock()

    def allow(self, key: str) -> bool:
        """Record a request for ``key`` and return ``False`` once the window is full."""
        now = self._clock()
        with self._lock:
            queue = self._prune(key, now)
            if len(queue) >= self._max_requests:
                return False
            queue.append(now)
            return True

    def retry_after(self, key: str) -> int:
        """Seconds until ``key`` may be allowed again (0 when it already is)."""
        now = self._clock()
        with self._lock:
            queue = self._prune(key, now)
            if len(queue) < self._max_requests:
                return 0
            return max(1, math.ceil(self._window - (now - queue[0])))

    def _prune(self, key: str, now: float) -> Deque[float]:
        queue = self._events[key]
        while queue and now - queue[0] >= self._window:
            queue.popleft()
        return queue
