"""In-memory sliding-window limiter used to slow down password guessing."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque


class InMemoryRateLimiter:
    """Count attempts per key over a sliding window.

    Only failed log-in attempts are recorded, so a student who types the
    password correctly is never throttled. Keys whose window is empty are
    dropped, so memory follows the callers seen in the last window.
    """

    def __init__(self, max_attempts: int, window_seconds: int = 60):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._hits: defaultdict[str, deque] = defaultdict(deque)
        self._lock = threading.Lock()

    def _prune(self, q: deque, now: float) -> None:
        cutoff = now - self.window_seconds
        while q and q[0] < cutoff:
            q.popleft()

    def _sweep(self, now: float) -> None:
        for key in list(self._hits):
            q = self._hits[key]
            self._prune(q, now)
            if not q:
                del self._hits[key]

    def retry_after(self, key: str) -> int:
        """Seconds until `key` may try again; 0 when it is not blocked."""
        if self.max_attempts <= 0:
            return 0
        now = time.monotonic()
        with self._lock:
            q = self._hits.get(key)
            if q is None:
                return 0
            self._prune(q, now)
            if not q:
                del self._hits[key]
                return 0
            if len(q) < self.max_attempts:
                return 0
            return max(1, int(self.window_seconds - (now - q[0])))

    def record_failure(self, key: str) -> None:
        now = time.monotonic()
        with self._lock:
            self._sweep(now)
            self._hits[key].append(now)

    def reset(self, key: str) -> None:
        with self._lock:
            self._hits.pop(key, None)
