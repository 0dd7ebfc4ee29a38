"""
Storekeeper — Configuration Module

Provides typed configuration loading and validation.
"""

from .loader import configure_logging, get_config, load_config, reload_config
from .schemas import (
    CacheBackend,
    CacheConfig,
    CodecName,
    Environment,
    LogLevel,
    StorekeeperConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "get_config",
    "reload_config",
    "configure_logging",
    # Main config
    "StorekeeperConfig",
    # Enums
    "Environment",
    "CacheBackend",
    "CodecName",
    "LogLevel",
    # Config sections
    "CacheConfig",
]
