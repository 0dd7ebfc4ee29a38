"""
Storekeeper — Redis Cache Backend Tests

Error mapping and argument shaping run against a mocked client. The rest of
the suite talks to a live server on localhost:6379 (or TEST_REDIS_URL) and is
skipped when none is reachable.
"""

import socket
import time
from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from storekeeper.cache.backends.redis import RedisCacheBackend
from storekeeper.cache.codec import PickleCodec
from storekeeper.errors import CacheOperationError, InvalidConfigurationError, StoreUnavailableError

# Check if Redis is available
try:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.settimeout(1)
    redis_available = sock.connect_ex(("localhost", 6379)) == 0
    sock.close()
except OSError:
    redis_available = False


class TestRedisBackendWithMockClient:
    @pytest.fixture
    def client(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def cache(self, client: MagicMock) -> RedisCacheBackend:
        return RedisCacheBackend(client=client, namespace="ns", default_ttl=60)

    def test_url_or_client_required(self) -> None:
        with pytest.raises(InvalidConfigurationError):
            RedisCacheBackend()

    def test_set_uses_namespace_and_ttl(self, cache: RedisCacheBackend, client: MagicMock) -> None:
        cache.set("k", "v")
        client.set.assert_called_with("ns:k", b'"v"', ex=60)

        cache.set("k", "v", ttl=5)
        client.set.assert_called_with("ns:k", b'"v"', ex=5)

    def test_zero_ttl_sets_no_expiry(self, cache: RedisCacheBackend, client: MagicMock) -> None:
        cache.set_forever("k", "v")

        client.set.assert_called_once_with("ns:k", b'"v"', ex=None)

    def test_negative_ttl_rejected(self, cache: RedisCacheBackend, client: MagicMock) -> None:
        with pytest.raises(InvalidConfigurationError):
            cache.set("k", "v", ttl=-1)

        client.set.assert_not_called()

    def test_get_decodes_or_returns_default(self, cache: RedisCacheBackend, client: MagicMock) -> None:
        client.get.return_value = b'{"a":1}'
        assert cache.get("k") == {"a": 1}

        client.get.return_value = None
        assert cache.get("k", "default") == "default"

    def test_get_multiple_preserves_order(self, cache: RedisCacheBackend, client: MagicMock) -> None:
        client.mget.return_value = [b"2", None, b"1"]

        result = cache.get_multiple(["b", "x", "a"], "default")

        client.mget.assert_called_once_with(["ns:b", "ns:x", "ns:a"])
        assert list(result.items()) == [("b", 2), ("x", "default"), ("a", 1)]

    def test_has_multiple_compares_exists_count(self, cache: RedisCacheBackend, client: MagicMock) -> None:
        client.exists.return_value = 1
        assert cache.has_multiple(["a", "b"]) is False

        client.exists.return_value = 2
        assert cache.has_multiple(["a", "b"]) is True

    def test_connection_failure_surfaces_unavailable(self, cache: RedisCacheBackend, client: MagicMock) -> None:
        client.get.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(StoreUnavailableError) as exc_info:
            cache.get("k")

        assert exc_info.value.backend == "redis"
        assert exc_info.value.details["operation"] == "get"

    def test_non_numeric_increment(self, cache: RedisCacheBackend, client: MagicMock) -> None:
        client.incrby.side_effect = ResponseError("value is not an integer or out of range")

        with pytest.raises(CacheOperationError):
            cache.increment("k")

    def test_decrement_uses_negative_amount(self, cache: RedisCacheBackend, client: MagicMock) -> None:
        client.incrby.return_value = 7

        assert cache.decrement("k", 3) == 7
        client.incrby.assert_called_once_with("ns:k", -3)

    def test_unserializable_value(self, cache: RedisCacheBackend, client: MagicMock) -> None:
        with pytest.raises(CacheOperationError):
            cache.set("k", object())

        client.set.assert_not_called()

    def test_unpicklable_value_with_pickle_codec(self, client: MagicMock) -> None:
        cache = RedisCacheBackend(client=client, codec=PickleCodec())

        with pytest.raises(CacheOperationError):
            cache.set("k", lambda: None)

        client.set.assert_not_called()

    def test_close_releases_pool(self, cache: RedisCacheBackend, client: MagicMock) -> None:
        cache.close()

        client.close.assert_called_once_with()
        client.connection_pool.disconnect.assert_called_once_with()


@pytest.mark.skipif(not redis_available, reason="Redis server not available")
class TestRedisCacheBackend:
    """Test suite for RedisCacheBackend against a live server."""

    @pytest.fixture
    def cache(self, test_redis_url: str) -> Generator[RedisCacheBackend, None, None]:
        """Create a fresh Redis cache instance for each test."""
        cache = RedisCacheBackend(
            redis_url=test_redis_url,
            namespace="test",
            default_ttl=3600,
            max_connections=5,
            socket_timeout=2,
        )
        # Clear any existing data
        cache.clear()
        yield cache
        # Cleanup after test
        cache.clear()
        cache.close()

    def test_initialization(self, test_redis_url: str) -> None:
        cache = RedisCacheBackend(redis_url=test_redis_url, namespace="custom", default_ttl=1800)

        assert cache.namespace == "custom"
        assert cache.default_ttl == 1800

        stats = cache.get_stats()
        assert stats["backend"] == "redis"
        assert stats["namespace"] == "custom"
        assert stats["connected"] is True

        cache.close()

    def test_set_and_get(self, cache: RedisCacheBackend) -> None:
        assert cache.set("key1", "value1") is cache
        assert cache.get("key1") == "value1"

        stats = cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 0

    def test_set_with_various_types(self, cache: RedisCacheBackend, sample_cache_data: dict[str, Any]) -> None:
        for key, value in sample_cache_data.items():
            cache.set(key, value)

        for key, expected_value in sample_cache_data.items():
            assert cache.get(key) == expected_value

    def test_has_and_delete(self, cache: RedisCacheBackend) -> None:
        assert cache.has("key1") is False

        cache.set("key1", "value1")
        assert cache.has("key1") is True

        cache.delete("key1").delete("key1")
        assert cache.has("key1") is False
        assert cache.get_stats()["deletes"] == 1

    def test_clear_only_touches_namespace(self, cache: RedisCacheBackend, test_redis_url: str) -> None:
        other = RedisCacheBackend(redis_url=test_redis_url, namespace="other")
        try:
            other.set("key1", "keep")
            for i in range(5):
                cache.set(f"key{i}", i)

            cache.clear()

            assert cache.has_multiple([f"key{i}" for i in range(5)]) is False
            assert other.get("key1") == "keep"
        finally:
            other.clear()
            other.close()

    def test_ttl_expiration(self, cache: RedisCacheBackend) -> None:
        cache.set("a", "X", ttl=1)
        assert cache.get("a") == "X"

        time.sleep(1.5)

        assert cache.get("a", "missing") == "missing"

    def test_ttl_zero_no_expiry(self, cache: RedisCacheBackend) -> None:
        cache.set("key1", "value1", ttl=0)

        assert cache._client.ttl("test:key1") == -1

    def test_batch_operations(self, cache: RedisCacheBackend) -> None:
        cache.set_multiple({"a": 1, "b": 2, "c": 3}, ttl=60)

        assert cache.get_multiple(["c", "missing", "a"]) == {"c": 3, "missing": None, "a": 1}
        assert cache.has_multiple(["a", "b", "c"]) is True

        cache.delete_multiple(["a", "b"])
        assert cache.has_multiple(["a", "c"]) is False
        assert cache.has("c") is True

    def test_add_is_set_if_absent(self, cache: RedisCacheBackend) -> None:
        assert cache.add("k", "first") is True
        assert cache.add("k", "second") is False
        assert cache.get("k") == "first"

    def test_native_increments(self, cache: RedisCacheBackend) -> None:
        assert cache.increment("n") == 1
        assert cache.increment("n", 4) == 5
        assert cache.decrement("n", 2) == 3
        assert cache.get("n") == 3
        assert cache.increment_float("f", 1.5) == 1.5

    def test_fetch_and_pull(self, cache: RedisCacheBackend) -> None:
        assert cache.fetch("k", lambda: {"computed": True}) == {"computed": True}
        assert cache.fetch("k", lambda: pytest.fail("producer should not run")) == {"computed": True}

        assert cache.pull("k") == {"computed": True}
        assert cache.has("k") is False
