"""
Rate Limiter — fixed-window request quota per chat session.

Protects the completion budget: each session may issue at most
`max_requests` turns per `window_seconds`. The window starts on the first
request and resets once it has fully elapsed, so bursts straddling a window
boundary are allowed.

State lives in process memory. A multi-instance deployment needs a shared
counter store behind the same interface.
"""

import math
import threading
import time
from typing import Callable, Dict, Optional

from app_config import RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SECONDS
from chat_logger import get_logger
from models import RateWindowEntry

logger = get_logger()


class RateLimiter:
    """Per-session fixed-window counter."""

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._entries: Dict[str, RateWindowEntry] = {}
        self._lock = threading.Lock()

    def check(self, session_id: str) -> bool:
        """
        Record a request for `session_id` and return whether it is allowed.

        Rejected requests do not increment the counter, so the stored count
        never exceeds `max_requests`.
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(session_id)

            if entry is None or now - entry.window_start > self.window_seconds:
                self._entries[session_id] = RateWindowEntry(
                    session_id=session_id, count=1, window_start=now,
                )
                return True

            if entry.count >= self.max_requests:
                logger.warning(
                    f"Rate limit hit | session={session_id} | count={entry.count} | "
                    f"window_seconds={self.window_seconds}"
                )
                return False

            entry.count += 1
            return True

    def retry_after(self, session_id: str) -> int:
        """Whole seconds until the session's current window rolls over (0 if none)."""
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return 0
            remaining = entry.window_start + self.window_seconds - self._clock()
        return max(0, math.ceil(remaining))

    def get_entry(self, session_id: str) -> Optional[RateWindowEntry]:
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            return RateWindowEntry(entry.session_id, entry.count, entry.window_start)

    def reset(self, session_id: Optional[str] = None) -> None:
        """Forget one session's window, or every window when no id is given."""
        with self._lock:
            if session_id is None:
                self._entries.clear()
            else:
                self._entries.pop(session_id, None)
