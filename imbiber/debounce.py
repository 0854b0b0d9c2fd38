"""
Per-key cooldown gate for rate limiting repeated operations.

State lives in memory only; a restart clears every cooldown.
"""

from typing import Callable, Optional

from imbiber.cache import HOUR_MS, now_ms


class Debouncer:
    """Answers whether an operation keyed by ``key`` may run again."""

    def __init__(self, cooldown_ms: int = HOUR_MS, clock: Optional[Callable[[], int]] = None):
        self.cooldown_ms = cooldown_ms
        self.clock = clock or now_ms
        self._last_call: dict[str, int] = {}

    def can_proceed(self, key: str) -> bool:
        return self.get_remaining_time(key) == 0

    def get_remaining_time(self, key: str) -> int:
        """Milliseconds until ``can_proceed`` turns true; 0 when already allowed."""
        last_call = self._last_call.get(key)
        if last_call is None:
            return 0
        return max(0, self.cooldown_ms - (self.clock() - last_call))

    def mark_called(self, key: str) -> None:
        self._last_call[key] = self.clock()

    def reset(self, key: str) -> None:
        self._last_call.pop(key, None)
