import math
import threading
import time
from collections import defaultdict, deque
from typing import Callable

from services.errors import RateLimitError


class RateLimiter:
    """Sliding-window limiter: at most `limit` calls per `window_seconds` per caller key."""

    def __init__(self, limit: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock
        self._calls: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def _prune(self, calls: deque[float], now: float) -> None:
        while calls and calls[0] <= now - self.window_seconds:
            calls.popleft()

    def check(self, key: str) -> int:
        """Record a call for key and return the calls left, or raise RateLimitError."""
        with self._lock:
            now = self.clock()
            calls = self._calls[key]
            self._prune(calls, now)
            if not calls and self.limit <= 0:
                raise RateLimitError(math.ceil(self.window_seconds))
            if len(calls) >= self.limit:
                retry_after = max(1, math.ceil(calls[0] + self.window_seconds - now))
                raise RateLimitError(retry_after)
            calls.append(now)
            return self.limit - len(calls)

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._calls.clear()
            else:
                self._calls.pop(key, None)
