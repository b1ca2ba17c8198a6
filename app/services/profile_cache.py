"""
Profile Cache - bounded, time-boxed cache of principal profiles.

Owned by the service that reads principals; entries are dropped explicitly
whenever a role, status or company change is written.
"""

from collections import OrderedDict
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from app.models.principal import Principal


class ProfileCache:

    def __init__(
        self,
        max_entries: int = 1024,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Principal]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, principal_id: str) -> Optional[Principal]:
        with self._lock:
            entry = self._entries.get(principal_id)
            if entry is None:
                self.misses += 1
                return None

            stored_at, principal = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[principal_id]
                self.misses += 1
                return None

            self._entries.move_to_end(principal_id)
            self.hits += 1
            return principal

    def set(self, principal: Principal) -> None:
        with self._lock:
            self._entries[principal.id] = (self._clock(), principal)
            self._entries.move_to_end(principal.id)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def invalidate(self, principal_id: str) -> None:
        with self._lock:
            self._entries.pop(principal_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, int]:
        return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}
