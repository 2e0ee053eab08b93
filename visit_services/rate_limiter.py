"""
FixedWindowRateLimiter -- per-key request budget for the request boundary.

Responsibility:
    Counts requests per key inside fixed windows.  Every window carries an
    explicit expiry; ``purge_expired`` drops windows past it, so the counter
    store never grows without bound.

Architecture position:
    Services -- lives outside the kernel.  Time comes from an injected
    ``Clock`` so tests can step through window boundaries deterministically.

Failure modes:
    - RateLimitExceededError once a key exceeds its rule inside a window.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from visit_config.schema import RateLimitRule
from visit_kernel.domain.clock import Clock, SystemClock
from visit_kernel.exceptions import RateLimitExceededError
from visit_kernel.logging_config import get_logger

logger = get_logger("services.rate_limiter")


@dataclass
class _Window:
    expires_at: datetime
    count: int = 0


class FixedWindowRateLimiter:
    """In-process fixed-window counters keyed by caller."""

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, rule: RateLimitRule) -> int:
        """
        Count one request for ``key``.

        Returns:
            Requests remaining in the current window.

        Raises:
            RateLimitExceededError: If the request exceeds ``rule.limit``.
        """
        now = self._clock.now()
        with self._lock:
            window = self._windows.get(key)
            if window is None or window.expires_at <= now:
                window = _Window(
                    expires_at=now + timedelta(seconds=rule.window_seconds),
                )
                self._windows[key] = window
            if window.count >= rule.limit:
                retry_after = math.ceil((window.expires_at - now).total_seconds())
                logger.warning(
                    "rate_limit_exceeded",
                    extra={"key": key, "limit": rule.limit, "retry_after": retry_after},
                )
                raise RateLimitExceededError(key, rule.limit, max(retry_after, 1))
            window.count += 1
            return rule.limit - window.count

    def purge_expired(self) -> int:
        """Drop windows whose TTL has passed; returns how many were removed."""
        now = self._clock.now()
        with self._lock:
            stale = [k for k, w in self._windows.items() if w.expires_at <= now]
            for key in stale:
                del self._windows[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._windows)
