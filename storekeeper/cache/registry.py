"""
Storekeeper — Cache Store Registry

Directory of named cache stores with one default. A registration is either a
ready CacheStore or a zero-argument factory producing one. Factories are
invoked on first access, at most once, and replaced by the instance they
return, so every later lookup yields the same object.

The registry is itself a CacheStore: every operation is forwarded to the
default store, and store(name) gives named access.

Default store policy:
- register(..., default=True) sets the default when none is set, is a no-op
  when the default already names the same store, and raises
  InvalidConfigurationError when another default is already set.
- set_default_store(name) switches the default explicitly; the name must be
  registered.
"""

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Union

from ..errors import InvalidConfigurationError, NotConfiguredError
from .interface import CacheStore

logger = logging.getLogger(__name__)

StoreFactory = Callable[[], CacheStore]
StoreRegistration = Union[CacheStore, StoreFactory]


class CacheRegistry(CacheStore):
    """Lazy registry of named cache stores, usable as a drop-in CacheStore."""

    def __init__(self) -> None:
        super().__init__()
        self._stores: dict[str, StoreRegistration] = {}
        self._default_name: str | None = None
        self._lock = threading.RLock()

    # ------------ Registration ------------

    def register(
        self,
        name: str,
        store: StoreRegistration,
        default: bool = False,
    ) -> "CacheRegistry":
        """
        Register a store instance or a factory under name.

        Re-registering a name replaces its previous registration.

        Args:
            name: Store name
            store: CacheStore instance, or zero-argument callable returning one
            default: Also make this the default store

        Raises:
            InvalidConfigurationError: If the registration is malformed or
                another default store is already set
        """
        if not isinstance(name, str) or not name:
            raise InvalidConfigurationError(
                "Cache store name must be a non-empty string",
                details={"name": repr(name)},
            )

        if not isinstance(store, CacheStore) and not callable(store):
            raise InvalidConfigurationError(
                f"Cache store '{name}' must be a CacheStore or a factory returning one",
                details={"name": name, "type": type(store).__name__},
            )

        with self._lock:
            if default and self._default_name not in (None, name):
                raise InvalidConfigurationError(
                    f"Cannot make '{name}' the default cache store: '{self._default_name}' already is",
                    details={"name": name, "default": self._default_name},
                )

            self._stores[name] = store
            if default:
                self._default_name = name

        logger.debug(
            "Registered cache store '%s'",
            name,
            extra={"cache_name": name, "lazy": not isinstance(store, CacheStore), "default": default},
        )
        return self

    def set_default_store(self, name: str) -> "CacheRegistry":
        """
        Point the default at a registered store.

        Raises:
            NotConfiguredError: If name is not registered
        """
        with self._lock:
            if name not in self._stores:
                raise NotConfiguredError(
                    f"Cache store '{name}' was not defined",
                    details={"name": name, "registered": list(self._stores)},
                )
            self._default_name = name

        return self

    @property
    def default_store_name(self) -> str | None:
        return self._default_name

    def has_store(self, name: str) -> bool:
        return name in self._stores

    def store_names(self) -> list[str]:
        """List registered store names in registration order."""
        return list(self._stores)

    def is_resolved(self, name: str) -> bool:
        """True if name is registered and its instance has been created."""
        return isinstance(self._stores.get(name), CacheStore)

    # ------------ Resolution ------------

    def store(self, name: str | None = None) -> CacheStore:
        """
        Resolve a store by name, or the default store when name is omitted.

        Raises:
            NotConfiguredError: If no default is set or name is unknown
            InvalidConfigurationError: If a factory returns something that is
                not a CacheStore
        """
        name = name or self._default_name
        if not name:
            raise NotConfiguredError("Default cache store was not defined")

        registration = self._stores.get(name)
        if registration is None:
            raise NotConfiguredError(
                f"Cache store '{name}' was not defined",
                details={"name": name, "registered": list(self._stores)},
            )

        if isinstance(registration, CacheStore):
            return registration

        with self._lock:
            # Another thread may have resolved it while we waited
            registration = self._stores.get(name)
            if isinstance(registration, CacheStore):
                return registration
            if registration is None:
                raise NotConfiguredError(f"Cache store '{name}' was not defined", details={"name": name})

            logger.debug("Resolving cache store '%s'", name, extra={"cache_name": name})
            instance = registration()

            if not isinstance(instance, CacheStore):
                raise InvalidConfigurationError(
                    f"Cache store '{name}' must be an instance of CacheStore",
                    details={"name": name, "type": type(instance).__name__},
                )

            self._stores[name] = instance

        logger.info(
            "Cache store '%s' resolved (%s)",
            name,
            type(instance).__name__,
            extra={"cache_name": name, "backend": type(instance).__name__},
        )
        return instance

    # ------------ CacheStore (forwarded to the default store) ------------

    def has(self, key: str) -> bool:
        return self.store().has(key)

    def has_multiple(self, keys: Iterable[str]) -> bool:
        return self.store().has_multiple(keys)

    def get(self, key: str, default: Any = None) -> Any:
        return self.store().get(key, default)

    def get_multiple(self, keys: Iterable[str], default: Any = None) -> dict[str, Any]:
        return self.store().get_multiple(keys, default)

    def set(self, key: str, value: Any, ttl: int | None = None) -> "CacheRegistry":
        self.store().set(key, value, ttl)
        return self

    def set_multiple(self, values: Mapping[str, Any], ttl: int | None = None) -> "CacheRegistry":
        self.store().set_multiple(values, ttl)
        return self

    def set_forever(self, key: str, value: Any) -> "CacheRegistry":
        self.store().set_forever(key, value)
        return self

    def set_multiple_forever(self, values: Mapping[str, Any]) -> "CacheRegistry":
        self.store().set_multiple_forever(values)
        return self

    def delete(self, key: str) -> "CacheRegistry":
        self.store().delete(key)
        return self

    def delete_multiple(self, keys: Iterable[str]) -> "CacheRegistry":
        self.store().delete_multiple(keys)
        return self

    def clear(self) -> "CacheRegistry":
        self.store().clear()
        return self

    def fetch(self, key: str, producer: Callable[[], Any], ttl: int | None = None) -> Any:
        return self.store().fetch(key, producer, ttl)

    def add(self, key: str, value: Any, ttl: int | None = None) -> bool:
        return self.store().add(key, value, ttl)

    def pull(self, key: str, default: Any = None) -> Any:
        return self.store().pull(key, default)

    def touch(self, key: str, ttl: int | None = None) -> bool:
        return self.store().touch(key, ttl)

    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        return self.store().increment(key, amount, ttl)

    def decrement(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        return self.store().decrement(key, amount, ttl)

    def increment_float(self, key: str, amount: float = 1.0, ttl: int | None = None) -> float:
        return self.store().increment_float(key, amount, ttl)

    def decrement_float(self, key: str, amount: float = 1.0, ttl: int | None = None) -> float:
        return self.store().decrement_float(key, amount, ttl)

    def get_stats(self) -> dict[str, Any]:
        """Stats of the default store plus the registry layout."""
        stats = dict(self.store().get_stats())
        stats["registry"] = {
            "default": self._default_name,
            "stores": self.store_names(),
            "resolved": [name for name in self._stores if self.is_resolved(name)],
        }
        return stats

    # ------------ Lifecycle ------------

    def close(self) -> None:
        """
        Close every resolved store. Unresolved factories are left untouched.

        Errors from one store are logged and the remaining stores are still
        closed; the first error is re-raised at the end.
        """
        with self._lock:
            resolved = [(name, s) for name, s in self._stores.items() if isinstance(s, CacheStore)]

        if not resolved:
            logger.debug("No cache instances to close")
            return

        logger.info("Closing %d cache instance(s)...", len(resolved))

        first_error: Exception | None = None
        for name, instance in resolved:
            try:
                instance.close()
                logger.info("Closed cache instance: %s", name)
            except Exception as e:
                logger.error(
                    "Error closing cache instance '%s': %s",
                    name,
                    e,
                    extra={"cache_name": name, "error": str(e)},
                    exc_info=True,
                )
                if first_error is None:
                    first_error = e

        if first_error is not None:
            raise first_error

    def reset(self) -> None:
        """
        Forget every registration and the default without closing anything.

        Warning: Only use this in testing contexts.
        """
        with self._lock:
            count = len(self._stores)
            self._stores.clear()
            self._default_name = None

        logger.debug("Reset cache registry, cleared %d registration(s)", count)
