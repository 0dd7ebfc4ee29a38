"""
Storekeeper — Expiration Policy

Pure functions shared by every backend so TTL semantics are identical
regardless of where entries live.

Instants are integer milliseconds since the Unix epoch. TTLs are whole seconds.
A TTL of 0 means "never expires" and maps to the NEVER_EXPIRES sentinel.
"""

import math
import time

from ..errors import InvalidConfigurationError

NEVER_EXPIRES = 0


def now_ms() -> int:
    """Current wall-clock instant in epoch milliseconds."""
    return int(time.time() * 1000)


def normalize_ttl(ttl: int | None, default_ttl: int) -> int:
    """
    Resolve the effective TTL for a write.

    Args:
        ttl: Requested TTL in seconds (None = use default_ttl)
        default_ttl: The store's configured default TTL in seconds

    Returns:
        Effective TTL in whole seconds (0 = never expires); fractions round up

    Raises:
        InvalidConfigurationError: If the effective TTL is negative
    """
    if ttl is None:
        ttl = default_ttl

    if ttl < 0:
        raise InvalidConfigurationError(
            "TTL could not be negative",
            details={"ttl": ttl},
        )

    # Fractions round up so a short TTL never becomes NEVER_EXPIRES
    return math.ceil(ttl)


def expires_at(ttl: int, now: int | None = None) -> int:
    """Absolute expiry instant for a TTL, or NEVER_EXPIRES when ttl is 0."""
    if ttl == 0:
        return NEVER_EXPIRES

    if now is None:
        now = now_ms()

    return now + ttl * 1000


def is_expired(timestamp: int | None, now: int | None = None) -> bool:
    """
    Decide whether an expiry instant denotes a dead entry.

    - None (missing timestamp) is expired
    - NEVER_EXPIRES is never expired
    - negative instants are expired (corrupt data)
    - positive instants at or before now are expired
    """
    if timestamp is None:
        return True

    timestamp = int(timestamp)
    if timestamp == NEVER_EXPIRES:
        return False

    if timestamp < 0:
        return True

    if now is None:
        now = now_ms()

    return timestamp <= now
