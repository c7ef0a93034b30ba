"""Sliding-window admission control for the upstream shortening quota.

Flow Diagram — try_acquire()
============================
::
    ┌─────────────┐
    │ try_acquire │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Prune stamps │
    │ older than   │
    │ window_ms    │
    └──────┬──────┘
    FULL?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Record  │  │ Return  │
│ now,    │  │ False   │
│ True    │  │ (no rec)│
└─────────┘  └─────────┘

Key Behaviours
===============
- Never blocks or sleeps: a denied caller falls back immediately.
- The window is pruned on every call, so it never holds stale stamps.
- ``status()`` is a pure read and records nothing.
- All state is guarded by a lock; safe to share across request handlers.
"""

import threading
import time
from collections import deque
from collections.abc import Callable

from linkgate.models import RateLimitStatus

__all__ = ["RateLimiter"]


class RateLimiter:
    def __init__(
        self,
        max_requests: int,
        window_ms: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 0:
            raise ValueError("max_requests must be non-negative")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._clock = clock
        self._timestamps: deque[float] = deque()
        self._lock = threading.Lock()

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def _prune(self, now_ms: float) -> None:
        while self._timestamps and now_ms - self._timestamps[0] >= self.window_ms:
            self._timestamps.popleft()

    def try_acquire(self) -> bool:
        with self._lock:
            now_ms = self._now_ms()
            self._prune(now_ms)
            if len(self._timestamps) >= self.max_requests:
                return False
            self._timestamps.append(now_ms)
            return True

    def status(self) -> RateLimitStatus:
        with self._lock:
            now_ms = self._now_ms()
            live = [stamp for stamp in self._timestamps if now_ms - stamp < self.window_ms]
            next_reset = 0
            if live:
                next_reset = max(0, int(round(live[0] + self.window_ms - now_ms)))
            return RateLimitStatus(
                requests_in_window=len(live),
                max_requests=self.max_requests,
                window_ms=self.window_ms,
                can_make_request=len(live) < self.max_requests,
                next_reset_in_ms=next_reset,
            )

    def reset(self) -> None:
        with self._lock:
            self._timestamps.clear()
