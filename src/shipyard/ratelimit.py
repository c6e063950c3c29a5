"""Fixed-window request limiter keyed by requester identity.

State is process-local and never persisted; it is backpressure, not a
correctness mechanism.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

Clock = Callable[[], float]


@dataclass(slots=True)
class _Window:
    started_at: float
    count: int


class RateLimiter:
    def __init__(
        self,
        *,
        window_seconds: float = 30.0,
        max_requests: int = 6,
        clock: Clock = time.monotonic,
    ) -> None:
        if window_seconds <= 0 or max_requests <= 0:
            raise ValueError("Rate limit window and quota must be positive.")
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        """Count one request for ``key``; ``False`` once the quota is spent."""
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now - window.started_at > self.window_seconds:
                self._windows[key] = _Window(started_at=now, count=1)
                return True
            if window.count >= self.max_requests:
                return False
            window.count += 1
            return True

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)


__all__ = ["Clock", "RateLimiter"]
