"""Small thread-safe key/value cache whose entries expire after a fixed time.

Used for pending "waiting for a receipt" sessions keyed by ``user:channel``.
Expired entries are dropped lazily on access and in bulk by ``prune()``.
"""

import threading
import time
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar


V = TypeVar('V')


def session_key(user_id: str, channel_id: str) -> str:
    return f"{user_id}:{channel_id}"


class TTLCache(Generic[V]):
    """Dictionary-like cache with a per-entry time to live.

    Args:
        ttl: Seconds an entry stays valid after it was set
        clock: Monotonic time source, replaceable in tests
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._items: Dict[str, Tuple[float, V]] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: V) -> None:
        with self._lock:
            self._items[key] = (self._clock() + self.ttl, value)

    def get(self, key: str) -> Optional[V]:
        """Return the value for key, or None if missing or expired."""
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            expires_at, value = item
            if self._clock() >= expires_at:
                del self._items[key]
                return None
            return value

    def pop(self, key: str) -> Optional[V]:
        """Remove and return the value for key if it is still valid."""
        with self._lock:
            item = self._items.pop(key, None)
        if item is None or self._clock() >= item[0]:
            return None
        return item[1]

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def prune(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (expires_at, _) in self._items.items() if now >= expires_at]
            for key in expired:
                del self._items[key]
        return len(expired)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
