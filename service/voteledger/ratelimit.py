# per-identity fixed-window rate limiting (process local)
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass
class RateLimitWindow:
    count: int
    window_start: float


class RateLimiter:
    """
    Fixed-window counter keyed by identity token.

    State lives on the instance, not in the module, so every application
    (and every test) owns its own windows. It is not shared between
    processes: each instance enforces its own limit.
    """

    def __init__(
        self,
        capacity: int = 10,
        window: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.capacity = capacity
        self.window = window
        self._clock = clock
        self._windows: Dict[str, RateLimitWindow] = {}

    def _current(self, identity: str) -> RateLimitWindow:
        now = self._clock()
        win = self._windows.get(identity)
        if win is None or now - win.window_start > self.window:
            win = RateLimitWindow(count=0, window_start=now)
            self._windows[identity] = win
        return win

    def allow(self, identity: str) -> bool:
        """
        Count one attempt. Returns False (without counting) once the
        identity has used up its capacity for the current window.
        """
        win = self._current(identity)
        if win.count >= self.capacity:
            return False
        win.count += 1
        return True

    def remaining(self, identity: str) -> int:
        win = self._windows.get(identity)
        if win is None or self._clock() - win.window_start > self.window:
            return self.capacity
        return max(0, self.capacity - win.count)

    def retry_after(self, identity: str) -> int:
        """Whole seconds until the identity's window resets."""
        win = self._windows.get(identity)
        if win is None:
            return 0
        left = self.window - (self._clock() - win.window_start)
        return max(0, math.ceil(left))

    def reset(self) -> None:
        self._windows.clear()
