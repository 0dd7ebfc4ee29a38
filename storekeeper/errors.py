"""
Storekeeper — Core Error Types

Defines the exception hierarchy for the cache facade.
All exceptions inherit from StorekeeperError for consistent error handling.

Taxonomy:
- InvalidConfigurationError: bad TTL, malformed registration, invalid config
- NotConfiguredError: registry misuse (no default store, unknown store name)
- StoreUnavailableError: backend connection, I/O or permission failure
- SchemaError: persistent store cannot establish its table structure
- CacheOperationError: a value cannot be used by the requested operation
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes attached to every Storekeeper exception."""

    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    NOT_CONFIGURED = "NOT_CONFIGURED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    SCHEMA_ERROR = "SCHEMA_ERROR"
    CACHE_FAILURE = "CACHE_FAILURE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class StorekeeperError(Exception):
    """Base exception for all Storekeeper errors."""

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary (for logs and API responses)."""
        return {
            "error": self.__class__.__name__,
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details,
        }


class InvalidConfigurationError(StorekeeperError):
    """Raised when a TTL, a registration or the configuration is invalid."""

    error_code = ErrorCode.INVALID_CONFIGURATION


class NotConfiguredError(StorekeeperError):
    """Raised when the registry has no default store or the store name is unknown."""

    error_code = ErrorCode.NOT_CONFIGURED


class CacheError(StorekeeperError):
    """Base exception for backend failures."""

    error_code = ErrorCode.CACHE_FAILURE


class StoreUnavailableError(CacheError):
    """Raised when a cache backend cannot be reached or read/written."""

    error_code = ErrorCode.STORE_UNAVAILABLE

    def __init__(self, backend: str, details: dict[str, Any] | None = None):
        message = f"Cache backend unavailable: {backend}"
        super().__init__(message, details)
        self.backend = backend


class SchemaError(CacheError):
    """Raised when a persistent store cannot establish or verify its structure."""

    error_code = ErrorCode.SCHEMA_ERROR


class CacheOperationError(CacheError):
    """Raised when a cache operation cannot be applied to a value."""

    pass


def extract_error_code(error: Exception) -> ErrorCode:
    """
    Extract the ErrorCode for an exception.

    Args:
        error: Exception to categorize

    Returns:
        The exception's ErrorCode, INTERNAL_ERROR for foreign exceptions
    """
    if isinstance(error, StorekeeperError):
        return error.error_code

    return ErrorCode.INTERNAL_ERROR
