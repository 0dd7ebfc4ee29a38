"""
Storekeeper — Memory Cache Backend

In-memory cache implementation with optional LRU entry cap and TTL support.
Thread-safe and suitable for single-process deployments.
"""

import logging
import threading
from collections import OrderedDict
from collections.abc import Iterable, Mapping
from typing import Any

from ...errors import CacheOperationError
from ..codec import Codec
from ..expiration import is_expired, now_ms
from ..interface import DEFAULT_TTL, MISSING, CacheStore

logger = logging.getLogger(__name__)


class MemoryCacheBackend(CacheStore):
    """
    In-memory cache backend.

    Features:
    - Per-key TTL with opportunistic delete of expired entries on read
    - LRU eviction when max_size entries are stored (None = unbounded)
    - Thread-safe operations
    - O(1) get/set/delete operations

    Without a codec, values are stored by reference: mutating an object after
    set() changes the cached entry. Pass a codec to store encoded copies.
    """

    def __init__(
        self,
        max_size: int | None = 1000,
        default_ttl: int = DEFAULT_TTL,
        namespace: str = "storekeeper",
        codec: Codec | None = None,
    ):
        """
        Initialize memory cache backend.

        Args:
            max_size: Maximum number of entries (LRU eviction when exceeded)
            default_ttl: Default TTL in seconds (0 = no expiry)
            namespace: Cache key namespace/prefix
            codec: Optional value codec (None = store values by reference)
        """
        super().__init__(default_ttl)
        self.max_size = max_size
        self.namespace = namespace
        self.codec = codec

        # Cache storage: key -> (value, expires_at)
        self._cache: OrderedDict[str, tuple[Any, int]] = OrderedDict()

        # Stats
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._evictions = 0

        self._lock = threading.RLock()

    def _make_key(self, key: str) -> str:
        """Create namespaced cache key."""
        return f"{self.namespace}:{key}"

    def _lookup(self, cache_key: str) -> Any:
        """Live value for a namespaced key or MISSING. Caller holds the lock."""
        entry = self._cache.get(cache_key)
        if entry is None:
            self._misses += 1
            return MISSING

        value, expiry = entry
        if is_expired(expiry):
            del self._cache[cache_key]
            self._misses += 1
            return MISSING

        # Mark as recently used
        self._cache.move_to_end(cache_key)
        self._hits += 1
        return value if self.codec is None else self.codec.deserialize(value)

    def _encode(self, key: str, value: Any) -> Any:
        if self.codec is None:
            return value
        try:
            return self.codec.serialize(value)
        except Exception as e:
            raise CacheOperationError(
                f"Value for key '{key}' cannot be serialized with the {self.codec.name} codec",
                details={"key": key, "value_type": type(value).__name__, "error": str(e)},
            ) from e

    def _store(self, cache_key: str, value: Any, expiry: int) -> None:
        """Write an entry, evicting the LRU one at capacity. Caller holds the lock."""
        if cache_key not in self._cache and self.max_size and len(self._cache) >= self.max_size:
            evicted_key, _ = self._cache.popitem(last=False)
            self._evictions += 1
            logger.debug("Evicted key from memory cache: %s", evicted_key)

        self._cache[cache_key] = (value, expiry)
        self._cache.move_to_end(cache_key)
        self._sets += 1

    def has(self, key: str) -> bool:
        """Check if key exists and is not expired."""
        with self._lock:
            cache_key = self._make_key(key)
            entry = self._cache.get(cache_key)
            if entry is None:
                return False

            if is_expired(entry[1]):
                del self._cache[cache_key]
                return False

            return True

    def get(self, key: str, default: Any = None) -> Any:
        """Retrieve value from cache."""
        with self._lock:
            value = self._lookup(self._make_key(key))

        return default if value is MISSING else value

    def set(self, key: str, value: Any, ttl: int | None = None) -> "MemoryCacheBackend":
        """Store value in cache."""
        expiry = self._expires_at(ttl)
        payload = self._encode(key, value)

        with self._lock:
            self._store(self._make_key(key), payload, expiry)

        return self

    def delete(self, key: str) -> "MemoryCacheBackend":
        """Delete key from cache."""
        with self._lock:
            if self._cache.pop(self._make_key(key), None) is not None:
                self._deletes += 1

        return self

    def clear(self) -> "MemoryCacheBackend":
        """Clear all entries from cache."""
        with self._lock:
            size = len(self._cache)
            self._cache.clear()

        logger.info("Cleared %d entries from memory cache namespace '%s'", size, self.namespace)
        return self

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0

            return {
                "backend": "memory",
                "size": len(self._cache),
                "max_size": self.max_size,
                "default_ttl": self.default_ttl,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(hit_rate, 2),
                "sets": self._sets,
                "deletes": self._deletes,
                "evictions": self._evictions,
                "namespace": self.namespace,
                "codec": self.codec.name if self.codec else None,
            }

    def close(self) -> None:
        """Close cache and release resources."""
        # Nothing to release; entries stay until the process exits
        logger.debug("Memory cache backend closed for namespace '%s'", self.namespace)

    # ------------ Batch operations ------------

    def get_multiple(self, keys: Iterable[str], default: Any = None) -> dict[str, Any]:
        """Retrieve multiple values under a single lock acquisition."""
        result: dict[str, Any] = {}

        with self._lock:
            for key in keys:
                value = self._lookup(self._make_key(key))
                result[key] = default if value is MISSING else value

        return result

    def set_multiple(self, values: Mapping[str, Any], ttl: int | None = None) -> "MemoryCacheBackend":
        """Store multiple values with one expiry instant."""
        expiry = self._expires_at(ttl)
        payloads = {key: self._encode(key, value) for key, value in values.items()}

        with self._lock:
            for key, payload in payloads.items():
                self._store(self._make_key(key), payload, expiry)

        return self

    def delete_multiple(self, keys: Iterable[str]) -> "MemoryCacheBackend":
        """Delete multiple keys."""
        with self._lock:
            for key in keys:
                if self._cache.pop(self._make_key(key), None) is not None:
                    self._deletes += 1

        return self

    # ------------ Numeric combinators ------------

    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """Atomic within this process: read and write happen under one lock."""
        with self._lock:
            return super().increment(key, amount, ttl)

    def increment_float(self, key: str, amount: float = 1.0, ttl: int | None = None) -> float:
        with self._lock:
            return super().increment_float(key, amount, ttl)

    def purge_expired(self) -> int:
        """
        Drop every expired entry.

        Returns:
            Number of entries removed
        """
        now = now_ms()
        with self._lock:
            expired = [k for k, (_, expiry) in self._cache.items() if is_expired(expiry, now)]
            for cache_key in expired:
                del self._cache[cache_key]

        return len(expired)
