"""Sliding-window rate limiter shared by the price-fetch worker threads."""

import threading
import time
from collections import deque

from etf_frontier.config import SETTINGS


class RateLimiter:
    """Allow at most *calls_per_minute* calls in any rolling 60-second window."""

    WINDOW_SECONDS = 60.0

    def __init__(self, calls_per_minute: int = 60):
        if calls_per_minute <= 0:
            raise ValueError("calls_per_minute must be positive")
        self.calls_per_minute = int(calls_per_minute)
        self._calls: deque[float] = deque(maxlen=self.calls_per_minute)
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> "RateLimiter":
        return cls(SETTINGS.get("market_data", {}).get("calls_per_minute", 120))

    def wait(self) -> float:
        """Block until another call fits in the window; returns seconds slept."""
        with self._lock:
            slept = 0.0
            if len(self._calls) == self.calls_per_minute:
                # Full window: the oldest call has to age out first
                remaining = self.WINDOW_SECONDS - (time.monotonic() - self._calls[0])
                if remaining > 0:
                    time.sleep(remaining)
                    slept = remaining
            self._calls.append(time.monotonic())
            return slept
