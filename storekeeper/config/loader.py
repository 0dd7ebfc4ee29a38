"""
Storekeeper — Configuration Loader

Loads and validates configuration from environment variables and .env files.
Provides a singleton configuration instance for the process.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from ..errors import InvalidConfigurationError
from .schemas import CacheBackend, StorekeeperConfig

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_config_instance: StorekeeperConfig | None = None


def _max_size() -> int | None:
    """CACHE_MAX_SIZE: unset keeps the default of 1000, 0 means unbounded."""
    value = os.getenv("CACHE_MAX_SIZE")
    if not value:
        return 1000

    size = int(value)
    return None if size == 0 else size


def load_config(
    env_file: str | None = None,
    reload: bool = False,
) -> StorekeeperConfig:
    """
    Load configuration from environment variables and .env file.

    Args:
        env_file: Path to .env file (default: .env in the working directory)
        reload: Force reload even if config already loaded

    Returns:
        Validated StorekeeperConfig instance

    Raises:
        InvalidConfigurationError: If configuration is invalid
    """
    global _config_instance

    if _config_instance is not None and not reload:
        return _config_instance

    env_path = Path(env_file) if env_file else Path.cwd() / ".env"

    if env_path.exists():
        logger.info("Loading environment from %s", env_path)
        try:
            load_dotenv(env_path, override=True)
        except Exception as e:
            logger.error(
                "Failed to load .env file from %s: %s",
                env_path,
                e,
                extra={"path": str(env_path), "error": str(e)},
                exc_info=True,
            )
            raise InvalidConfigurationError(
                f"Failed to load environment file: {e}",
                details={"path": str(env_path), "error": str(e)},
            ) from e
    else:
        logger.debug("No .env file found, using environment variables only")

    # Auto-detect cache backend: Redis if REDIS_URL is set, else memory
    redis_url = os.getenv("REDIS_URL")
    cache_backend = "redis" if redis_url else "memory"

    try:
        config_dict = {
            "environment": os.getenv("ENVIRONMENT", "development"),
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            "cache": {
                "backend": os.getenv("CACHE_BACKEND", cache_backend),
                "ttl_seconds": int(os.getenv("CACHE_TTL_SECONDS", "300")),
                "max_size": _max_size(),
                "namespace": os.getenv("CACHE_NAMESPACE", "storekeeper"),
                "codec": os.getenv("CACHE_CODEC") or None,
                "sqlite_path": os.getenv("CACHE_SQLITE_PATH", ":memory:"),
                "sqlite_table": os.getenv("CACHE_SQLITE_TABLE", "Cache"),
                "file_path": os.getenv("CACHE_FILE_PATH"),
                "redis_url": redis_url,
                "redis_max_connections": int(os.getenv("REDIS_MAX_CONNECTIONS", "10")),
                "redis_socket_timeout": int(os.getenv("REDIS_SOCKET_TIMEOUT", "5")),
            },
        }
        _config_instance = StorekeeperConfig(**config_dict)  # type: ignore[arg-type]
    except ValidationError as e:
        logger.error(
            "Configuration validation failed: %s",
            e,
            extra={"validation_errors": e.errors()},
            exc_info=True,
        )
        raise InvalidConfigurationError(
            "Configuration validation failed. Check your environment variables and configuration.",
            details={"validation_errors": e.errors()},
        ) from e
    except ValueError as e:
        # Non-numeric value in a numeric environment variable
        logger.error("Invalid configuration value: %s", e, extra={"error": str(e)}, exc_info=True)
        raise InvalidConfigurationError(
            f"Invalid configuration value: {e}",
            details={"error": str(e)},
        ) from e

    logger.info(
        "Configuration loaded successfully (environment: %s)",
        _config_instance.environment,
        extra={
            "environment": _config_instance.environment,
            "cache_backend": CacheBackend(_config_instance.cache.backend).value,
        },
    )
    return _config_instance


def get_config() -> StorekeeperConfig:
    """
    Get the current configuration instance, loading it on first access.

    Returns:
        Current StorekeeperConfig instance
    """
    if _config_instance is None:
        return load_config()

    return _config_instance


def reload_config(env_file: str | None = None) -> StorekeeperConfig:
    """
    Force reload configuration.

    Args:
        env_file: Optional path to .env file

    Returns:
        Reloaded StorekeeperConfig instance
    """
    return load_config(env_file=env_file, reload=True)


def configure_logging(level: str | None = None) -> None:
    """
    Configure root logging for applications embedding Storekeeper.

    Library modules never call this; applications opt in.

    Args:
        level: Log level name (default: the configured log_level)
    """
    if level is None:
        level = str(get_config().log_level)

    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
