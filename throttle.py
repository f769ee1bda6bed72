"""Per-user command cooldown."""
from typing import Dict

from errors import Throttled


class ThrottleGate:
    """Simple per-key debounce: one allowed call per window, no burst allowance.

    `now` is any monotonic clock reading in seconds (handlers use time.monotonic()).
    """

    def __init__(self, window_seconds: float):
        self.window_seconds = window_seconds
        self._ready_at: Dict[int, float] = {}

    def check_and_arm(self, chat_user_id: int, now: float) -> None:
        ready_at = self._ready_at.get(chat_user_id)
        if ready_at is not None and now < ready_at:
            raise Throttled(ready_at - now)
        # Drop expired entries
        self._ready_at = {user: t for user, t in self._ready_at.items() if t > now}
        self._ready_at[chat_user_id] = now + self.window_seconds

    def __len__(self) -> int:
        return len(self._ready_at)
