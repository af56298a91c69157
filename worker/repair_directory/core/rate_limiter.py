"""Client-side throttling for the summarization provider's per-minute ceilings."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed one-minute window over request count and token count.

    ``reserve`` either admits the call immediately or sleeps until the current
    window has elapsed, then starts a fresh window. Callers share one instance;
    the read-modify-write of the window state happens under a lock.
    """

    def __init__(
        self,
        max_requests: int = 45,
        max_tokens: int = 35000,
        window_seconds: float = 60.0,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        if max_requests < 1 or max_tokens < 1:
            raise ValueError("rate limit ceilings must be positive")
        self.max_requests = max_requests
        self.max_tokens = max_tokens
        self.window_seconds = window_seconds
        self._clock = clock or time.monotonic
        self._sleep = sleep or time.sleep
        self._lock = threading.Lock()
        self.request_count = 0
        self.token_count = 0
        self.window_start = self._clock()

    def _reset(self, now: float) -> None:
        self.request_count = 0
        self.token_count = 0
        self.window_start = now

    def reserve(self, estimated_tokens: int) -> float:
        """Account for one call costing ``estimated_tokens``; return seconds waited."""
        estimated_tokens = max(int(estimated_tokens), 0)
        waited = 0.0
        with self._lock:
            now = self._clock()
            if now - self.window_start >= self.window_seconds:
                self._reset(now)

            over_requests = self.request_count + 1 > self.max_requests
            over_tokens = self.token_count + estimated_tokens > self.max_tokens
            if over_requests or over_tokens:
                waited = max(self.window_seconds - (now - self.window_start), 0.0)
                logger.info(
                    "Rate limit reached (requests=%d/%d tokens=%d/%d); waiting %.1fs",
                    self.request_count,
                    self.max_requests,
                    self.token_count,
                    self.max_tokens,
                    waited,
                )
                if waited > 0:
                    self._sleep(waited)
                self._reset(self._clock())

            self.request_count += 1
            self.token_count += estimated_tokens
        return waited
