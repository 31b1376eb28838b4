from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional, Tuple

from ..config import SETTINGS

# One display frame; requests inside this window always coalesce
FRAME_INTERVAL = 0.016

CacheEntry = Tuple[float, bytes]


class ResponseCache:
    """Small TTL cache for rendered PNGs, keyed by source and settings.

    Acts as the frame gate in front of the pipeline: repeated requests for
    the same frame within the TTL are served without re-rendering.
    """

    def __init__(
        self,
        ttl: Optional[float] = None,
        max_entries: int = 16,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._ttl = ttl
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def ttl(self) -> float:
        ttl = SETTINGS.cache_ttl if self._ttl is None else self._ttl
        return max(FRAME_INTERVAL, ttl)

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._entries.get(key)
            if not entry:
                return None
            timestamp, data = entry
            if self._clock() - timestamp > self.ttl:
                self._entries.pop(key, None)
                return None
            return data

    def put(self, key: str, data: bytes) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self._max_entries:
                oldest = min(self._entries.items(), key=lambda item: item[1][0])[0]
                self._entries.pop(oldest, None)
            self._entries[key] = (self._clock(), data)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


CACHE = ResponseCache()

# Last successfully rendered PNG per cache key, newest last
LAST_GOOD_LIMIT = 16
_last_good: Dict[str, bytes] = {}
_last_good_lock = threading.Lock()


def remember_last_good(key: str, data: bytes) -> None:
    with _last_good_lock:
        _last_good.pop(key, None)
        _last_good[key] = data
        while len(_last_good) > LAST_GOOD_LIMIT:
            _last_good.pop(next(iter(_last_good)))


def last_good_png(key: str) -> Optional[bytes]:
    with _last_good_lock:
        return _last_good.get(key)


def forget_last_good() -> None:
    with _last_good_lock:
        _last_good.clear()
