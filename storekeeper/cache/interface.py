"""
Storekeeper — Cache Store Interface

Defines the contract every cache backend implements. Batch, convenience and
numeric operations have default implementations built on the primitives;
backends override them when they can do better (one query, one round-trip,
a native atomic primitive).

Expiration semantics are shared by all backends (see expiration.py):
- ttl=None uses the store's default TTL
- ttl=0 stores the entry forever
- a negative effective TTL raises InvalidConfigurationError
- an expired entry is indistinguishable from an absent one
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from ..errors import CacheOperationError
from .expiration import NEVER_EXPIRES, expires_at, normalize_ttl
from .locks import KeyedLock

DEFAULT_TTL = 300

# Marker for "no live entry", distinct from a stored None
MISSING: Any = object()


class CacheStore(ABC):
    """
    Abstract base class for cache backends.

    All cache implementations must implement this interface to ensure
    consistent behavior across different backends (memory, SQLite, file, Redis).
    Write and delete operations return the store itself so calls can be chained.
    """

    def __init__(self, default_ttl: int = DEFAULT_TTL):
        """
        Args:
            default_ttl: Default TTL in seconds (0 = no expiry)

        Raises:
            InvalidConfigurationError: If default_ttl is negative
        """
        self.default_ttl = normalize_ttl(default_ttl, 0)
        self._fetch_locks = KeyedLock()

    # ------------ Primitives ------------

    @abstractmethod
    def has(self, key: str) -> bool:
        """
        Check if a live entry exists.

        Backends without native expiry delete an expired entry before
        returning False.
        """
        pass

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """
        Retrieve a value from the cache.

        Args:
            key: Cache key
            default: Returned when the key is absent or expired

        Returns:
            Cached value, or default
        """
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int | None = None) -> "CacheStore":
        """
        Store a value, overwriting any existing entry.

        Args:
            key: Cache key
            value: Value to cache (must be encodable by the store's codec)
            ttl: Time-to-live in seconds (None = use default, 0 = no expiry)

        Raises:
            InvalidConfigurationError: If the effective TTL is negative
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> "CacheStore":
        """Delete a key, whether or not it has expired."""
        pass

    @abstractmethod
    def clear(self) -> "CacheStore":
        """Remove every entry in the store."""
        pass

    @abstractmethod
    def get_stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache statistics (backend, hits, misses, ...)
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """
        Close the cache backend and release resources.

        Should be called during graceful shutdown.
        """
        pass

    # ------------ Batch operations ------------

    def has_multiple(self, keys: Iterable[str]) -> bool:
        """True iff every key has a live entry."""
        return all(self.has(key) for key in keys)

    def get_multiple(self, keys: Iterable[str], default: Any = None) -> dict[str, Any]:
        """
        Retrieve multiple values.

        Returns:
            One entry per requested key, in request order; default for keys
            that are absent or expired
        """
        return {key: self.get(key, default) for key in keys}

    def set_multiple(self, values: Mapping[str, Any], ttl: int | None = None) -> "CacheStore":
        """Store multiple values with the same TTL."""
        self._normalize_ttl(ttl)
        for key, value in values.items():
            self.set(key, value, ttl)
        return self

    def set_forever(self, key: str, value: Any) -> "CacheStore":
        """Store a value that never expires."""
        return self.set(key, value, NEVER_EXPIRES)

    def set_multiple_forever(self, values: Mapping[str, Any]) -> "CacheStore":
        """Store multiple values that never expire."""
        return self.set_multiple(values, NEVER_EXPIRES)

    def delete_multiple(self, keys: Iterable[str]) -> "CacheStore":
        """Delete multiple keys."""
        for key in keys:
            self.delete(key)
        return self

    # ------------ Combinators ------------

    def fetch(self, key: str, producer: Callable[[], Any], ttl: int | None = None) -> Any:
        """
        Return the live value for key, computing and storing it when absent.

        The producer runs at most once per absent key among callers in this
        process: concurrent callers wait on a per-key lock and then read the
        stored value. Callers in other processes are not coordinated.

        Args:
            key: Cache key
            producer: Zero-argument callable computing the value
            ttl: TTL for the stored value (None = use default)

        Returns:
            The cached or freshly produced value
        """
        self._normalize_ttl(ttl)

        value = self.get(key, MISSING)
        if value is not MISSING:
            return value

        with self._fetch_locks.hold(key):
            value = self.get(key, MISSING)
            if value is not MISSING:
                return value

            value = producer()
            self.set(key, value, ttl)
            return value

    def add(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """
        Store a value only when the key has no live entry.

        Returns:
            True if the value was stored
        """
        if self.has(key):
            return False
        self.set(key, value, ttl)
        return True

    def pull(self, key: str, default: Any = None) -> Any:
        """Return the value for key and delete it."""
        value = self.get(key, MISSING)
        if value is MISSING:
            return default
        self.delete(key)
        return value

    def touch(self, key: str, ttl: int | None = None) -> bool:
        """
        Restart the expiry clock of a live entry.

        Returns:
            True if the entry was live and has been re-stamped
        """
        value = self.get(key, MISSING)
        if value is MISSING:
            return False
        self.set(key, value, ttl)
        return True

    # ------------ Numeric combinators (read-modify-write, not atomic) ------------

    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """
        Add amount to the integer stored under key (absent counts as 0).

        Returns:
            The new value
        """
        value = self._to_number(key, self.get(key, 0), int) + int(amount)
        self.set(key, value, ttl)
        return value

    def decrement(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """Subtract amount from the integer stored under key."""
        return self.increment(key, -int(amount), ttl)

    def increment_float(self, key: str, amount: float = 1.0, ttl: int | None = None) -> float:
        """Add amount to the float stored under key (absent counts as 0.0)."""
        value = self._to_number(key, self.get(key, 0.0), float) + float(amount)
        self.set(key, value, ttl)
        return value

    def decrement_float(self, key: str, amount: float = 1.0, ttl: int | None = None) -> float:
        """Subtract amount from the float stored under key."""
        return self.increment_float(key, -float(amount), ttl)

    # ------------ Helpers ------------

    def _normalize_ttl(self, ttl: int | None) -> int:
        """Effective TTL for a write (raises on negative)."""
        return normalize_ttl(ttl, self.default_ttl)

    def _expires_at(self, ttl: int | None) -> int:
        """Absolute expiry instant for a write."""
        return expires_at(self._normalize_ttl(ttl))

    @staticmethod
    def _to_number(key: str, value: Any, kind: type) -> Any:
        """Coerce a stored value for the numeric combinators."""
        try:
            return kind(value)
        except (TypeError, ValueError) as e:
            raise CacheOperationError(
                f"Value stored under '{key}' is not numeric",
                details={"key": key, "value_type": type(value).__name__},
            ) from e
