"""
Storekeeper — Uniform Caching Facade

One contract for storing, retrieving and expiring key-addressed values across
interchangeable backends (memory, file, SQLite, Redis).
"""

__version__ = "1.0.0"

from .cache import CacheRegistry, CacheStore, get_cache, get_registry

__all__ = ["CacheRegistry", "CacheStore", "get_cache", "get_registry"]
