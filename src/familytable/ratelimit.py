"""Fixed-window attempt limiter.

State lives on the limiter instance, so separate processes and test runs
never share counters. Swap the instance for a shared backend if several
workers must agree.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from familytable.config import settings


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_seconds: float
    message: str = "Too many requests. Please slow down."


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_in: float


@dataclass
class _Entry:
    count: int
    reset_at: float


TWO_FACTOR_ATTEMPTS = RateLimitConfig(
    max_requests=settings.two_factor_max_attempts,
    window_seconds=settings.two_factor_attempt_window_seconds,
    message="Too many verification attempts. Please wait before trying again.",
)


class RateLimiter:
    def __init__(self, config: RateLimitConfig, clock: Callable[[], float] = time.monotonic) -> None:
        self.config = config
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._next_purge = clock() + config.window_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def check(self, identifier: str) -> RateLimitResult:
        """Count one attempt for ``identifier`` and say whether it is allowed."""
        now = self._clock()
        with self._lock:
            # sweep stale windows at most once per window length
            if now >= self._next_purge:
                self._purge(now)
                self._next_purge = now + self.config.window_seconds

            entry = self._entries.get(identifier)
            if entry is None or entry.reset_at <= now:
                self._entries[identifier] = _Entry(count=1, reset_at=now + self.config.window_seconds)
                return RateLimitResult(True, self.config.max_requests - 1, self.config.window_seconds)

            reset_in = entry.reset_at - now
            if entry.count >= self.config.max_requests:
                return RateLimitResult(False, 0, reset_in)

            entry.count += 1
            return RateLimitResult(True, self.config.max_requests - entry.count, reset_in)

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._entries.pop(identifier, None)

    def purge_expired(self) -> int:
        """Drop expired windows. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            return self._purge(now)

    def _purge(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if e.reset_at <= now]
        for k in expired:
            del self._entries[k]
        return len(expired)
