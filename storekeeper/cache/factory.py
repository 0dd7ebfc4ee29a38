"""
Storekeeper — Cache Factory

Builds cache backends from configuration and owns the process-wide registry.

Key points:
- create_cache(config) builds one backend from a CacheConfig
- get_registry() lazily builds a CacheRegistry whose default store is the
  configured backend, registered as a factory so nothing connects until first use
- Select the backend with CACHE_BACKEND=memory|sqlite|file|redis
  (defaults to redis when REDIS_URL is set, memory otherwise)

Examples:
    from storekeeper.cache import get_cache, get_registry

    cache = get_cache()                 # default store
    cache.set("key", "value", ttl=60)

    registry = get_registry()
    registry.register("sessions", lambda: create_cache(CacheConfig(backend=CacheBackend.SQLITE)))
    registry.store("sessions").set_forever("token", "abc")
"""

from __future__ import annotations

import logging
import threading

from ..config import CacheBackend, CacheConfig, get_config
from ..errors import InvalidConfigurationError
from .backends.file import FileCacheBackend
from .backends.memory import MemoryCacheBackend
from .backends.sqlite import SQLiteCacheBackend
from .codec import Codec, get_codec
from .interface import CacheStore
from .registry import CacheRegistry

logger = logging.getLogger(__name__)

_registry: CacheRegistry | None = None
_registry_lock = threading.Lock()


def _codec_for(config: CacheConfig) -> Codec | None:
    """Configured codec, or None to let the backend pick its default."""
    return get_codec(config.codec) if config.codec else None


def _create_redis_cache(config: CacheConfig) -> CacheStore:
    """Construct a redis cache backend with lazy import."""
    if not config.redis_url:
        raise InvalidConfigurationError(
            "REDIS_URL must be set when CACHE_BACKEND=redis",
            details={"env": "REDIS_URL", "backend": "redis"},
        )

    # Lazy import to avoid loading the redis client when another backend is used
    try:
        from .backends.redis import RedisCacheBackend
    except ImportError as e:
        logger.error(
            "Redis backend selected but redis client is not installed",
            extra={"package": "redis>=5.0.0", "error": str(e)},
        )
        raise InvalidConfigurationError(
            "Redis backend selected but redis client is unavailable. Install with: pip install 'redis>=5.0.0'",
            details={"package": "redis>=5.0.0", "error": str(e), "backend": "redis"},
        ) from e

    return RedisCacheBackend(
        redis_url=config.redis_url,
        namespace=config.namespace,
        default_ttl=config.ttl_seconds,
        max_connections=config.redis_max_connections,
        socket_timeout=config.redis_socket_timeout,
        codec=_codec_for(config),
    )


def create_cache(config: CacheConfig | None = None) -> CacheStore:
    """
    Create a cache backend instance based on configuration.

    Args:
        config: Cache configuration (uses global config if not provided)

    Returns:
        Configured cache backend instance

    Raises:
        InvalidConfigurationError: If the configuration is invalid or the backend unavailable
    """
    if config is None:
        config = get_config().cache

    backend = CacheBackend(config.backend)
    logger.info("Creating cache backend: %s", backend.value, extra={"backend": backend.value})

    if backend == CacheBackend.MEMORY:
        return MemoryCacheBackend(
            max_size=config.max_size,
            default_ttl=config.ttl_seconds,
            namespace=config.namespace,
            codec=_codec_for(config),
        )

    if backend == CacheBackend.SQLITE:
        return SQLiteCacheBackend(
            db_path=config.sqlite_path,
            default_ttl=config.ttl_seconds,
            codec=_codec_for(config),
            table=config.sqlite_table,
        )

    if backend == CacheBackend.FILE:
        if not config.file_path:
            raise InvalidConfigurationError(
                "CACHE_FILE_PATH must be set when CACHE_BACKEND=file",
                details={"env": "CACHE_FILE_PATH", "backend": "file"},
            )
        return FileCacheBackend(
            path=config.file_path,
            default_ttl=config.ttl_seconds,
            codec=_codec_for(config),
        )

    if backend == CacheBackend.REDIS:
        return _create_redis_cache(config)

    raise InvalidConfigurationError(
        f"Unknown cache backend: {config.backend}",
        details={"backend": str(config.backend), "supported": [b.value for b in CacheBackend]},
    )


def get_registry(config: CacheConfig | None = None) -> CacheRegistry:
    """
    Get the process-wide registry, building it on first access.

    The configured backend is registered under its backend name
    (e.g. "memory") as the default store.

    Args:
        config: Cache configuration used only when the registry is first built
    """
    global _registry

    if _registry is not None:
        return _registry

    with _registry_lock:
        if _registry is None:
            if config is None:
                config = get_config().cache
            default_config = config

            registry = CacheRegistry()
            name = CacheBackend(default_config.backend).value
            registry.register(name, lambda: create_cache(default_config), default=True)
            logger.debug("Cache registry created with default store '%s'", name)
            _registry = registry

    return _registry


def get_cache(name: str | None = None) -> CacheStore:
    """
    Get a cache store by name, or the default store.

    Raises:
        NotConfiguredError: If name is not registered
    """
    return get_registry().store(name)


def close_all_caches() -> None:
    """
    Close all resolved cache instances and release resources.

    Should be called during graceful shutdown.
    """
    if _registry is None:
        logger.debug("No cache instances to close")
        return

    _registry.close()


def list_cache_instances() -> list[str]:
    """List all registered cache store names."""
    if _registry is None:
        return []

    return _registry.store_names()


def reset_cache_registry() -> None:
    """
    Drop the process-wide registry without closing its stores.

    Used for testing and hot-reload scenarios; use close_all_caches() for cleanup.

    Warning: Only use this in testing contexts.
    """
    global _registry

    with _registry_lock:
        _registry = None

    logger.debug("Reset cache registry")
