"""Sliding-window rate limiter."""

import math
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

from meal_planner.domain.errors import RateLimitError


@dataclass
class RateLimiter:
    """Allow at most ``max_calls`` within any trailing ``time_window_seconds``."""

    max_calls: int
    time_window_seconds: float
    provider: str = "fatsecret"
    clock: Callable[[], float] = time.monotonic
    _calls: deque[float] = field(default_factory=deque, repr=False)

    def check_limit(self) -> bool:
        """Record a call, or raise RateLimitError when the window is full."""
        now = self.clock()
        self._discard_expired(now)
        if len(self._calls) >= self.max_calls:
            wait = self.time_window_seconds - (now - self._calls[0])
            retry_after = max(math.ceil(wait), 0)
            raise RateLimitError(
                f"Rate limit exceeded. Please wait {retry_after} seconds.",
                provider=self.provider,
                retry_after=retry_after,
            )
        self._calls.append(now)
        return True

    def get_remaining_calls(self) -> int:
        """Calls still allowed in the current window."""
        self._discard_expired(self.clock())
        return self.max_calls - len(self._calls)

    def _discard_expired(self, now: float) -> None:
        while self._calls and now - self._calls[0] >= self.time_window_seconds:
            self._calls.popleft()
