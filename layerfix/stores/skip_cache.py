"""In-memory memo of layers known to leave a given content unchanged."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Callable, Optional, Protocol, Tuple

DEFAULT_TTL = 300.0
DEFAULT_MAX_ENTRIES = 10_000


def fingerprint(content: str) -> str:
    """Cheap 32-bit rolling hash (``h * 31 + c``) suffixed with the length."""
    value = 0
    for char in content:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    return f"{value:08x}-{len(content)}"


class CacheService(Protocol):
    """What the pipeline needs from a skip cache."""

    def fingerprint(self, content: str) -> str:
        ...

    def should_skip(self, content_hash: str, layer_id: int) -> bool:
        ...

    def mark_skippable(self, content_hash: str, layer_id: int) -> None:
        ...


class SkipCache:
    """Remembers ``(content hash, layer)`` pairs for which a layer was a no-op.

    Entries expire after ``ttl`` seconds and the oldest entries are evicted
    beyond ``max_entries``. Safe to share between worker threads.
    """

    def __init__(
        self,
        *,
        ttl: float = DEFAULT_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._ttl = ttl
        self._max_entries = max_entries
        self._clock = clock or time.monotonic
        self._entries: "OrderedDict[Tuple[str, int], float]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def fingerprint(self, content: str) -> str:
        return fingerprint(content)

    def should_skip(self, content_hash: str, layer_id: int) -> bool:
        key = (content_hash, layer_id)
        with self._lock:
            stored_at = self._entries.get(key)
            if stored_at is not None and self._clock() - stored_at < self._ttl:
                self.hits += 1
                return True
            if stored_at is not None:
                del self._entries[key]
            self.misses += 1
            return False

    def mark_skippable(self, content_hash: str, layer_id: int) -> None:
        key = (content_hash, layer_id)
        with self._lock:
            self._entries[key] = self._clock()
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def prune(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, stored_at in self._entries.items() if now - stored_at >= self._ttl]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["CacheService", "DEFAULT_MAX_ENTRIES", "DEFAULT_TTL", "SkipCache", "fingerprint"]
