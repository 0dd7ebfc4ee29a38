"""
Storekeeper — Redis Cache Backend

Thin pass-through over redis-py:
- Codec serialization for values (JSON by default)
- Native TTL via Redis EX seconds (expiry is enforced by the server)
- Namespace prefixing for safe multi-tenant usage
- Batch operations using MGET, pipelines and chunked DEL
- Native INCRBY / DECRBY / INCRBYFLOAT for the numeric combinators

Example:
    cache = RedisCacheBackend(redis_url="redis://localhost:6379", namespace="storekeeper", default_ttl=300)
    cache.set("greeting", {"msg": "hello"}, ttl=60)
    val = cache.get("greeting")
"""

from __future__ import annotations

import logging
import pickle
from collections.abc import Iterable, Mapping
from typing import Any

from redis import Redis
from redis.exceptions import RedisError, ResponseError

from ...errors import CacheOperationError, InvalidConfigurationError, StoreUnavailableError
from ..codec import Codec, JsonCodec
from ..interface import DEFAULT_TTL, MISSING, CacheStore

logger = logging.getLogger(__name__)

_BATCH_SIZE = 1000


class RedisCacheBackend(CacheStore):
    """
    Redis cache backend.

    Notes:
    - Keys are prefixed with the configured namespace to avoid collisions.
    - TTL is applied via Redis EX seconds (None -> default_ttl, 0 -> no expiry).
    - Native increments only work on values the codec stores as decimal text
      (the JSON codec does).
    """

    def __init__(
        self,
        redis_url: str | None = None,
        namespace: str = "storekeeper",
        default_ttl: int = DEFAULT_TTL,
        max_connections: int = 10,
        socket_timeout: int = 5,
        codec: Codec | None = None,
        client: Redis | None = None,
    ) -> None:
        """
        Initialize Redis cache backend.

        Args:
            redis_url: Connection URL, e.g., redis://localhost:6379/0 or rediss:// for TLS
            namespace: Prefix for all keys
            default_ttl: Default TTL in seconds (0 => no expiry)
            max_connections: Connection pool size
            socket_timeout: Socket timeout in seconds
            codec: Value codec (JSON by default)
            client: Existing Redis client to use instead of redis_url
        """
        super().__init__(default_ttl)

        if client is None and not redis_url:
            raise InvalidConfigurationError("redis_url is required", details={"backend": "redis"})

        self.namespace = namespace.strip() or "storekeeper"
        self.codec = codec or JsonCodec()
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0

        # Lazy connection; connects on first command
        self._client: Redis = client or Redis.from_url(
            redis_url,
            max_connections=max_connections,
            socket_timeout=socket_timeout,
        )

    # ------------ Helpers ------------

    def _make_key(self, key: str) -> str:
        """Create namespaced key."""
        return f"{self.namespace}:{key}"

    def _ex(self, ttl: int | None) -> int | None:
        """Redis EX argument: None for entries that never expire."""
        return self._normalize_ttl(ttl) or None

    def _dumps(self, key: str, value: Any) -> bytes:
        try:
            return self.codec.serialize(value)
        except (TypeError, ValueError, AttributeError, pickle.PicklingError) as e:
            logger.error(
                "Failed to serialize value for key '%s': %s",
                key,
                e,
                extra={"key": key, "value_type": type(value).__name__, "error": str(e)},
                exc_info=True,
            )
            raise CacheOperationError(
                f"Value for key '{key}' cannot be serialized with the {self.codec.name} codec",
                details={"key": key, "value_type": type(value).__name__, "error": str(e)},
            ) from e

    def _loads(self, key: str, data: bytes | None) -> Any:
        """Decoded value, or MISSING when absent or undecodable."""
        if data is None:
            return MISSING
        try:
            return self.codec.deserialize(data)
        except Exception as e:
            logger.warning(
                "Failed to decode cache value for key '%s': %s",
                key,
                e,
                extra={"key": key, "codec": self.codec.name, "error": str(e)},
            )
            return MISSING

    def _unavailable(self, operation: str, error: RedisError, **context: Any) -> StoreUnavailableError:
        logger.error(
            "Redis cache %s failed: %s",
            operation,
            error,
            extra={"operation": operation, "namespace": self.namespace, "error": str(error), **context},
            exc_info=True,
        )
        return StoreUnavailableError(
            "redis",
            details={"operation": operation, "namespace": self.namespace, "error": str(error), **context},
        )

    # ------------ Core Interface ------------

    def has(self, key: str) -> bool:
        try:
            return bool(self._client.exists(self._make_key(key)))
        except RedisError as e:
            raise self._unavailable("has", e, key=key) from e

    def get(self, key: str, default: Any = None) -> Any:
        try:
            data = self._client.get(self._make_key(key))
        except RedisError as e:
            raise self._unavailable("get", e, key=key) from e

        value = self._loads(key, data)
        if value is MISSING:
            self._misses += 1
            return default

        self._hits += 1
        return value

    def set(self, key: str, value: Any, ttl: int | None = None) -> RedisCacheBackend:
        ex = self._ex(ttl)
        payload = self._dumps(key, value)
        try:
            self._client.set(self._make_key(key), payload, ex=ex)
        except RedisError as e:
            raise self._unavailable("set", e, key=key, ttl=ttl) from e

        self._sets += 1
        return self

    def add(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """SET NX: atomic on the server."""
        ex = self._ex(ttl)
        payload = self._dumps(key, value)
        try:
            stored = bool(self._client.set(self._make_key(key), payload, ex=ex, nx=True))
        except RedisError as e:
            raise self._unavailable("add", e, key=key, ttl=ttl) from e

        if stored:
            self._sets += 1
        return stored

    def delete(self, key: str) -> RedisCacheBackend:
        try:
            self._deletes += int(self._client.delete(self._make_key(key)))
        except RedisError as e:
            raise self._unavailable("delete", e, key=key) from e

        return self

    def clear(self) -> RedisCacheBackend:
        """
        Clear all entries under the namespace.

        Implementation: SCAN match "<namespace>:*" and DEL in batches.
        """
        pattern = f"{self.namespace}:*"
        total_deleted = 0
        try:
            cursor = 0
            while True:
                cursor, keys = self._client.scan(cursor=cursor, match=pattern, count=_BATCH_SIZE)
                if keys:
                    total_deleted += int(self._client.delete(*keys))
                if cursor == 0:
                    break
        except RedisError as e:
            raise self._unavailable("clear", e) from e

        self._deletes += total_deleted
        logger.info("Cleared %d keys from namespace '%s'", total_deleted, self.namespace)
        return self

    # ------------ Batch operations ------------

    def get_multiple(self, keys: Iterable[str], default: Any = None) -> dict[str, Any]:
        """Retrieve multiple values in one round-trip using MGET."""
        keys = list(keys)
        if not keys:
            return {}

        try:
            values = self._client.mget([self._make_key(k) for k in keys])
        except RedisError as e:
            raise self._unavailable("get_multiple", e, key_count=len(keys)) from e

        result: dict[str, Any] = {}
        # MGET preserves request order
        for key, raw in zip(keys, values):
            value = self._loads(key, raw)
            if value is MISSING:
                self._misses += 1
                result[key] = default
            else:
                self._hits += 1
                result[key] = value

        return result

    def has_multiple(self, keys: Iterable[str]) -> bool:
        """EXISTS counts every present key, duplicates included."""
        keys = list(keys)
        if not keys:
            return True

        try:
            return int(self._client.exists(*[self._make_key(k) for k in keys])) == len(keys)
        except RedisError as e:
            raise self._unavailable("has_multiple", e, key_count=len(keys)) from e

    def set_multiple(self, values: Mapping[str, Any], ttl: int | None = None) -> RedisCacheBackend:
        """Store multiple values using a pipeline with one TTL for all items."""
        ex = self._ex(ttl)
        payloads = {self._make_key(key): self._dumps(key, value) for key, value in values.items()}
        if not payloads:
            return self

        try:
            pipe = self._client.pipeline(transaction=False)
            for ns_key, payload in payloads.items():
                pipe.set(ns_key, payload, ex=ex)
            pipe.execute()
        except RedisError as e:
            raise self._unavailable("set_multiple", e, key_count=len(payloads), ttl=ttl) from e

        self._sets += len(payloads)
        return self

    def delete_multiple(self, keys: Iterable[str]) -> RedisCacheBackend:
        """Delete multiple keys with one DEL per chunk."""
        ns_keys = [self._make_key(k) for k in keys]
        try:
            for i in range(0, len(ns_keys), _BATCH_SIZE):
                self._deletes += int(self._client.delete(*ns_keys[i : i + _BATCH_SIZE]))
        except RedisError as e:
            raise self._unavailable("delete_multiple", e, key_count=len(ns_keys)) from e

        return self

    # ------------ Native numeric primitives ------------

    def _incr(self, operation: str, key: str, amount: int | float) -> Any:
        ns_key = self._make_key(key)
        try:
            if isinstance(amount, float):
                return float(self._client.incrbyfloat(ns_key, amount))
            return int(self._client.incrby(ns_key, amount))
        except ResponseError as e:
            # Server rejects non-numeric values
            raise CacheOperationError(
                f"Value stored under '{key}' is not numeric",
                details={"key": key, "error": str(e)},
            ) from e
        except RedisError as e:
            raise self._unavailable(operation, e, key=key) from e

    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """INCRBY: atomic on the server. ttl is ignored; the key keeps its TTL."""
        return self._incr("increment", key, int(amount))

    def decrement(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        return self._incr("decrement", key, -int(amount))

    def increment_float(self, key: str, amount: float = 1.0, ttl: int | None = None) -> float:
        """INCRBYFLOAT: atomic on the server."""
        return self._incr("increment_float", key, float(amount))

    def decrement_float(self, key: str, amount: float = 1.0, ttl: int | None = None) -> float:
        return self._incr("decrement_float", key, -float(amount))

    # ------------ Lifecycle ------------

    def get_stats(self) -> dict[str, Any]:
        """Return cache statistics and basic Redis info."""
        stats: dict[str, Any] = {
            "backend": "redis",
            "namespace": self.namespace,
            "codec": self.codec.name,
            "default_ttl": self.default_ttl,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": 0.0,
            "sets": self._sets,
            "deletes": self._deletes,
            "connected": False,
        }

        total_requests = self._hits + self._misses
        stats["hit_rate"] = round((self._hits / total_requests) * 100, 2) if total_requests else 0.0

        try:
            stats["connected"] = bool(self._client.ping())
            info = self._client.info(section="server")
            stats["redis_version"] = info.get("redis_version")
            stats["redis_mode"] = info.get("redis_mode")
        except RedisError as e:
            # INFO may be restricted; keep minimal stats
            logger.warning("Failed to get Redis INFO (restricted or unavailable): %s", e, extra={"error": str(e)})

        return stats

    def close(self) -> None:
        """Close the Redis client and release pooled connections."""
        try:
            self._client.close()
            logger.info("Closed Redis cache backend for namespace '%s'", self.namespace)
        except RedisError as e:
            raise self._unavailable("close", e) from e
        finally:
            self._client.connection_pool.disconnect()
