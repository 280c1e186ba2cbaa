# cardlistings/cache.py
"""In-process TTL cache that is passed to its users instead of living globally.

The lifecycle manager receives one of these and invalidates a listing's entry
after every successful transition; the tier source keeps account tiers in
another. The clock is injectable so expiry can be tested without sleeping.
"""
import os
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

_MISSING = object()


def ttl_from_env(name: str, default: int, minimum: int = 1, maximum: int = 86400) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        value = int(raw) if raw else int(default)
    except ValueError:
        value = int(default)
    return max(minimum, min(maximum, value))


class TTLCache:
    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}
        self.stats = {"hits": 0, "misses": 0, "sets": 0, "invalidations": 0}

    def get(self, key: Hashable, default: Any = None) -> Any:
        value = self._lookup(key, allow_stale=False)
        return default if value is _MISSING else value

    def get_stale(self, key: Hashable, default: Any = None) -> Any:
        """Return a value even if its TTL has passed (used as a fallback on errors)."""
        value = self._lookup(key, allow_stale=True)
        return default if value is _MISSING else value

    def _lookup(self, key, allow_stale):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats["misses"] += 1
                return _MISSING
            stored_at, value = entry
            if not allow_stale and self._clock() - stored_at >= self.ttl_seconds:
                self.stats["misses"] += 1
                return _MISSING
            self.stats["hits"] += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)
            self.stats["sets"] += 1

    def invalidate(self, key: Hashable) -> bool:
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            if removed:
                self.stats["invalidations"] += 1
            return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self._lookup(key, allow_stale=False) is not _MISSING

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def get_or_load(cache: Optional[TTLCache], key: Hashable, loader: Callable[[], Any]) -> Any:
    if cache is None:
        return loader()
    value = cache.get(key, _MISSING)
    if value is _MISSING:
        value = loader()
        cache.set(key, value)
    return value
