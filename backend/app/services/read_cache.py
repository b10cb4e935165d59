from __future__ import annotations

import json
from collections import OrderedDict
from collections.abc import Callable
from threading import Lock
from time import monotonic
from typing import Any, TypeVar

T = TypeVar("T")


class ReadCache:
    """Bounded LRU with a flat TTL, shared by request threads."""

    def __init__(
        self,
        *,
        ttl_seconds: float,
        max_entries: int,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._ttl_seconds = max(0.0, ttl_seconds)
        self._max_entries = max(1, max_entries)
        self._clock = clock
        self._lock = Lock()
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()

    @staticmethod
    def make_key(namespace: str, **arguments: Any) -> str:
        return f"{namespace}:{json.dumps(arguments, sort_keys=True, default=str)}"

    def get_or_load(self, key: str, loader: Callable[[], T]) -> T:
        if self._ttl_seconds <= 0:
            return loader()

        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                expires_at, value = entry
                if expires_at > now:
                    self._entries.move_to_end(key)
                    return value
                del self._entries[key]

        # Loaded outside the lock; concurrent misses may both hit storage.
        value = loader()
        with self._lock:
            self._entries[key] = (self._clock() + self._ttl_seconds, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
        return value

    def invalidate(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
