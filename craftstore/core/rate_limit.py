import time
from collections import deque
from threading import Lock
from typing import Callable, Deque, Dict, Optional

from craftstore.core.errors import TooManyRequestsError


class RateLimiter:
    """Sliding-window attempt counter for login endpoints.

    Keys combine the role, the client address and the submitted email, so one
    noisy client cannot lock other people out of their accounts. Keys whose
    window has emptied are dropped, at the latest one window after their last
    attempt.
    """

    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._attempts: Dict[str, Deque[float]] = {}
        self._lock = Lock()
        self._next_sweep = clock() + window_seconds

    def wait_time(self, key: str) -> float:
        """Count an attempt for ``key``; return 0 if allowed, else seconds until the next slot."""
        now = self._clock()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            window = self._prune(key, now)
            if window is not None and len(window) >= self.max_requests:
                return max(self.window_seconds - (now - window[0]), 0.0)
            if window is None:
                window = self._attempts[key] = deque()
            window.append(now)
            return 0.0

    def check(self, key: str) -> None:
        retry_after = self.wait_time(key)
        if retry_after:
            raise TooManyRequestsError("Too many login attempts. Please try again later.", retry_after=retry_after)

    def reset(self, key: str) -> None:
        with self._lock:
            self._attempts.pop(key, None)

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._attempts)

    def _prune(self, key: str, now: float) -> Optional[Deque[float]]:
        window = self._attempts.get(key)
        if window is None:
            return None
        while window and now - window[0] >= self.window_seconds:
            window.popleft()
        if not window:
            del self._attempts[key]
            return None
        return window

    def _sweep(self, now: float) -> None:
        for key in list(self._attempts):
            self._prune(key, now)
        self._next_sweep = now + self.window_seconds
