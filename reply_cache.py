"""Short-lived LRU cache of formatted /status replies, keyed by Last.fm username."""
from collections import OrderedDict
from typing import Generic, Optional, Tuple, TypeVar

V = TypeVar("V")


class ResponseCache(Generic[V]):
    def __init__(self, ttl_seconds: float, max_entries: int = 128):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, Tuple[V, float]]" = OrderedDict()

    def get(self, username: str, now: float) -> Optional[V]:
        key = username.lower()
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if now >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def put(self, username: str, value: V, now: float, ttl: Optional[float] = None) -> None:
        key = username.lower()
        self._entries[key] = (value, now + (self.ttl_seconds if ttl is None else ttl))
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)
