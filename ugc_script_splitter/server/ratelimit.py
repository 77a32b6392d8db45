"""In-memory fixed-window rate limiter for generation routes.

WHY: Every generation request fans out into many paid upstream model
calls. A single client hammering the API can burn through the quota and
the rate limit of the upstream account, so generation routes are capped
per client address.

HOW: RateLimiter keeps one (window_start, count) pair per client key.
hit() starts a new window when the old one has expired, otherwise
increments the count and reports whether the request is allowed.
The FastAPI dependency enforce_rate_limit() raises HTTP 429 when it is not.

RULES:
- All mutations are protected by threading.Lock for thread safety
- Window and limit come from config (RATE_LIMIT_WINDOW_S, RATE_LIMIT_MAX_REQUESTS)
- Client key is the request's client host ("unknown" when absent)
- Expired windows are pruned once more than prune_threshold keys are tracked
- reset() clears all windows (used by tests)
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

_DEFAULT_PRUNE_THRESHOLD = 1024


class RateLimiter:
    """Thread-safe fixed-window request counter keyed by client.

    RULES:
    - max_requests <= 0 disables limiting
    - clock is injectable for tests (defaults to time.monotonic)
    """

    def __init__(
        self,
        max_requests: int,
        window_s: float,
        clock: Optional[Callable[[], float]] = None,
        prune_threshold: int = _DEFAULT_PRUNE_THRESHOLD,
    ) -> None:
        self.max_requests = max_requests
        self.window_s = window_s
        self.prune_threshold = prune_threshold
        self._clock = clock or time.monotonic
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> bool:
        """Record one request for key. Returns True if it is allowed."""
        if self.max_requests <= 0:
            return True

        now = self._clock()
        with self._lock:
            start, count = self._windows.get(key, (now, 0))
            if now - start >= self.window_s:
                start, count = now, 0
            count += 1
            self._windows[key] = (start, count)
            if len(self._windows) > self.prune_threshold:
                self._prune(now)

        if count > self.max_requests:
            logger.warning("Rate limit exceeded for %s (%d/%d)", key, count, self.max_requests)
            return False
        return True

    def retry_after(self, key: str) -> int:
        """Seconds until key's current window resets (at least 1)."""
        with self._lock:
            start, _ = self._windows.get(key, (self._clock(), 0))
        remaining = self.window_s - (self._clock() - start)
        return max(1, int(remaining + 0.999))

    def _prune(self, now: float) -> None:
        """Drop windows that have expired. Caller holds the lock."""
        expired = [k for k, (start, _) in self._windows.items() if now - start >= self.window_s]
        for k in expired:
            del self._windows[k]
        if expired:
            logger.debug("Pruned %d expired rate-limit windows", len(expired))

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._windows)

    def reset(self) -> None:
        """Forget all windows."""
        with self._lock:
            self._windows.clear()

    def describe(self) -> str:
        return f"{self.max_requests} requests / {self.window_s:g}s"
