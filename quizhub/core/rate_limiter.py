"""
In-memory sliding-window rate limiter.

Tracks request timestamps per key and refuses once a key has used up its
allowance inside the window. Single process only.
"""

import logging
import time
from collections import defaultdict
from threading import Lock
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock or time.monotonic
        self._timestamps: Dict[str, List[float]] = defaultdict(list)
        self._lock = Lock()

    def _cleanup(self, key: str, now: float) -> None:
        cutoff = now - self.window_seconds
        self._timestamps[key] = [t for t in self._timestamps[key] if t > cutoff]

    def hit(self, key: str) -> bool:
        """Record a request for ``key``; False when the limit is already reached."""
        with self._lock:
            now = self._clock()
            self._cleanup(key, now)
            if len(self._timestamps[key]) >= self.max_requests:
                logger.warning(f"[Rate limit] limit hit for {key}")
                return False
            self._timestamps[key].append(now)
            return True

    def retry_after(self, key: str) -> int:
        with self._lock:
            stamps = self._timestamps.get(key) or []
            if not stamps:
                return 0
            wait = stamps[0] + self.window_seconds - self._clock()
            return max(int(wait) + 1, 0)

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._timestamps.clear()
            else:
                self._timestamps.pop(key, None)
