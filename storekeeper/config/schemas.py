"""
Storekeeper — Configuration Schemas

Defines typed configuration models using Pydantic for validation and type safety.
All configuration is read from environment variables (see loader.py).
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Environment(str, Enum):
    """Runtime environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class CacheBackend(str, Enum):
    """Supported cache backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"
    FILE = "file"
    REDIS = "redis"


class CodecName(str, Enum):
    """Supported value codecs."""

    PICKLE = "pickle"
    JSON = "json"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CacheConfig(BaseModel):
    """Cache configuration."""

    backend: CacheBackend = Field(default=CacheBackend.MEMORY, description="Cache backend to use")
    ttl_seconds: int = Field(default=300, ge=0, description="Default TTL in seconds (0 = no expiry)")
    max_size: int | None = Field(default=1000, ge=1, description="Max cache entries (memory backend, None = unbounded)")
    namespace: str = Field(default="storekeeper", description="Cache key namespace/prefix")
    codec: CodecName | None = Field(
        default=None,
        description="Value codec (default: pickle for sqlite/file, json for redis)",
    )

    # SQLite-specific settings (only used when backend=sqlite)
    sqlite_path: str = Field(default=":memory:", description="SQLite database file")
    sqlite_table: str = Field(default="Cache", pattern=r"^[A-Za-z_][A-Za-z0-9_]*$", description="SQLite cache table")

    # File-specific settings (only used when backend=file)
    file_path: str | None = Field(default=None, validate_default=True, description="Directory holding cache files")

    # Redis-specific settings (only used when backend=redis)
    redis_url: str | None = Field(default=None, validate_default=True, description="Redis connection URL")
    redis_max_connections: int = Field(default=10, ge=1, description="Redis connection pool size")
    redis_socket_timeout: int = Field(default=5, ge=1, description="Redis socket timeout in seconds")

    @field_validator("file_path")
    @classmethod
    def validate_file_path(cls, v: str | None, info: Any) -> str | None:
        """Ensure file_path is provided when backend is file."""
        if info.data.get("backend") == CacheBackend.FILE and not v:
            raise ValueError("file_path is required when cache backend is 'file'")
        return v

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: str | None, info: Any) -> str | None:
        """Ensure redis_url is provided when backend is redis."""
        if info.data.get("backend") == CacheBackend.REDIS and not v:
            raise ValueError("redis_url is required when cache backend is 'redis'")
        return v


class StorekeeperConfig(BaseModel):
    """Root configuration for Storekeeper."""

    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Runtime environment")
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")

    cache: CacheConfig = Field(default_factory=CacheConfig)

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)
