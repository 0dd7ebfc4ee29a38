"""
Storekeeper — Cache Module

Provides caching functionality with pluggable backends.

- interface.py: CacheStore contract every backend implements
- expiration.py: shared TTL/expiry policy
- registry.py: lazy registry of named stores with a default
- factory.py: builds backends from configuration, owns the process-wide registry
- backends/: memory, SQLite, file and Redis implementations

Usage:
    from storekeeper.cache import get_cache

    cache = get_cache()
    cache.set("key", "value", ttl=3600)
    value = cache.get("key")
"""

from .codec import Codec, JsonCodec, PickleCodec, get_codec
from .expiration import NEVER_EXPIRES, expires_at, is_expired, normalize_ttl, now_ms
from .factory import (
    close_all_caches,
    create_cache,
    get_cache,
    get_registry,
    list_cache_instances,
    reset_cache_registry,
)
from .interface import CacheStore
from .registry import CacheRegistry

__all__ = [
    # Factory functions
    "create_cache",
    "get_cache",
    "get_registry",
    "close_all_caches",
    "list_cache_instances",
    "reset_cache_registry",
    # Contract and registry
    "CacheStore",
    "CacheRegistry",
    # Expiration policy
    "NEVER_EXPIRES",
    "normalize_ttl",
    "expires_at",
    "is_expired",
    "now_ms",
    # Codecs
    "Codec",
    "PickleCodec",
    "JsonCodec",
    "get_codec",
]
