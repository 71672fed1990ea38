"""
Response cache.

Bounded, time-expiring key/value store. Entries are evicted least-recently-used
once the cache is full, or when their TTL passes, whichever comes first.

The cache is never authoritative: losing it only costs repeated provider calls.
"""

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """Single cached value with its expiry, in clock seconds."""
    key: str
    value: T
    inserted_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class ResponseCache(Generic[T]):
    """Thread-safe LRU cache with a fixed TTL per entry.

    Expiry is lazy: an expired entry is removed the next time it is looked up.
    ``sweep_expired`` can be called periodically to reclaim memory sooner.
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl_ms: int = 300000,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_size <= 0:
            raise ValueError("max_size must be > 0")
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be > 0")

        self.max_size = max_size
        self.ttl_seconds = ttl_ms / 1000.0
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry[T]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[T]:
        """Return the cached value, or None on a miss or an expired entry."""
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            self._entries.move_to_end(key)
            return entry.value

    def set(self, key: str, value: T) -> None:
        """Insert or replace a value, evicting the least recently used entry if full."""
        now = self._clock()
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                inserted_at=now,
                expires_at=now + self.ttl_seconds
            )
            while len(self._entries) > self.max_size:
                evicted_key, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cache entry %s", evicted_key[:12])

    def has(self, key: str) -> bool:
        """Check for a live entry without touching its recency."""
        with self._lock:
            return self._live_entry(key) is not None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def sweep_expired(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def _live_entry(self, key: str) -> Optional[CacheEntry[T]]:
        # Caller must hold the lock
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry


def make_cache_key(messages: Sequence[Dict[str, Any]], options: Dict[str, Any]) -> str:
    """Derive a stable cache key from the request messages and model options.

    The tenant is not part of the key, so identical prompts are
    answered from the same entry for every tenant.

    Args:
        messages: Chat messages as sent to the provider
        options: Resolved model options

    Returns:
        Hex SHA-256 digest of the canonical JSON serialization
    """
    payload = json.dumps(
        {"messages": list(messages), "options": options},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
