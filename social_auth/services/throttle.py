"""In-process sliding-window throttle for login-notification emails.

Best-effort anti-spam only: state lives in memory and is lost on restart.
One instance is built at startup and handed to the email service.
"""

import time
from collections import deque
from typing import Callable, Deque, Dict, Hashable

import structlog

logger = structlog.get_logger(__name__)


class LoginEmailThrottle:
    """At most ``max_per_window`` sends per key within ``window_seconds``.

    Only keys with a send inside the current window are kept.
    ``try_acquire`` and ``release`` contain no await points, so under
    asyncio the check-and-reserve is atomic without a lock.
    """

    def __init__(
        self,
        window_seconds: float = 300.0,
        max_per_window: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_per_window < 1:
            raise ValueError("max_per_window must be at least 1")
        self.window_seconds = window_seconds
        self.max_per_window = max_per_window
        self._clock = clock
        self._sent: Dict[Hashable, Deque[float]] = {}

    def _evict_expired(self, now: float) -> None:
        """Drop stamps older than the window and forget keys left empty."""
        for key in list(self._sent):
            stamps = self._sent[key]
            while stamps and now - stamps[0] >= self.window_seconds:
                stamps.popleft()
            if not stamps:
                del self._sent[key]

    def try_acquire(self, key: Hashable) -> bool:
        """Reserve a send slot. Returns False when the quota is exhausted."""
        now = self._clock()
        self._evict_expired(now)
        stamps = self._sent.get(key)
        if stamps is not None and len(stamps) >= self.max_per_window:
            return False
        self._sent.setdefault(key, deque()).append(now)
        return True

    def release(self, key: Hashable) -> None:
        """Give back the most recent slot, e.g. after a failed send."""
        stamps = self._sent.get(key)
        if stamps:
            stamps.pop()
            if not stamps:
                del self._sent[key]

    def __len__(self) -> int:
        return len(self._sent)
