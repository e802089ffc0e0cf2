from __future__ import annotations

import threading
import time
from typing import Any, Callable


class TTLCache:
    """
    In-memory read-through cache: key -> (value, expiry).

    Each provider client receives its own instance at construction. `None` is a valid cached
    value (negative results), so lookups report presence separately from the value.

    Expired entries are dropped when they are looked up, and every `purge_every` inserts the
    whole cache is swept so keys that are never read again do not accumulate.
    """

    def __init__(
        self,
        default_ttl_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        stats: dict[str, int] | None = None,
        purge_every: int = 256,
    ):
        self.default_ttl_s = float(default_ttl_s)
        self.purge_every = max(1, int(purge_every))
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._sets_since_purge = 0
        self._lock = threading.Lock()
        self.stats = stats if stats is not None else {}
        self.stats.setdefault("cache_hit", 0)
        self.stats.setdefault("cache_miss", 0)
        self.stats.setdefault("cache_expired", 0)

    def lookup(self, key: str) -> tuple[bool, Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats["cache_miss"] += 1
                return False, None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                self.stats["cache_expired"] += 1
                self.stats["cache_miss"] += 1
                return False, None
            self.stats["cache_hit"] += 1
            return True, value

    def set(self, key: str, value: Any, ttl_s: float | None = None) -> None:
        ttl = self.default_ttl_s if ttl_s is None else float(ttl_s)
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)
            self._sets_since_purge += 1
            if self._sets_since_purge >= self.purge_every:
                self._purge_locked()

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        with self._lock:
            return self._purge_locked()

    def _purge_locked(self) -> int:
        self._sets_since_purge = 0
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        self.stats["cache_expired"] += len(expired)
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for _, expires_at in self._entries.values() if expires_at > now)

    @staticmethod
    def format_stats(stats: dict[str, Any] | None) -> str:
        if not stats:
            return "cache hit=0 miss=0 expired=0"
        return (
            f"cache hit={int(stats.get('cache_hit', 0) or 0)} "
            f"miss={int(stats.get('cache_miss', 0) or 0)} "
            f"expired={int(stats.get('cache_expired', 0) or 0)}"
        )
