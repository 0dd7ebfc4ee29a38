"""
Storekeeper — File Cache Backend Tests
"""

import hashlib
from pathlib import Path
from typing import Any

import pytest

from storekeeper.cache.backends.file import FileCacheBackend
from storekeeper.cache.codec import JsonCodec
from storekeeper.cache.expiration import now_ms
from storekeeper.errors import CacheOperationError, InvalidConfigurationError, StoreUnavailableError


def entry_file(directory: str, key: str) -> Path:
    return Path(directory) / (hashlib.md5(key.encode("utf-8")).hexdigest() + ".cache")


@pytest.fixture
def cache(temp_cache_dir: str) -> FileCacheBackend:
    return FileCacheBackend(temp_cache_dir, default_ttl=300)


def test_round_trip(cache: FileCacheBackend, sample_cache_data: dict[str, Any]) -> None:
    for key, value in sample_cache_data.items():
        assert cache.set(key, value) is cache

    for key, value in sample_cache_data.items():
        assert cache.get(key) == value
        assert cache.has(key) is True


def test_entry_layout(cache: FileCacheBackend, temp_cache_dir: str, clock) -> None:
    cache.set("greeting", {"msg": "hi"}, ttl=60)

    header, _, _ = entry_file(temp_cache_dir, "greeting").read_bytes().partition(b"\n")
    assert int(header) == now_ms() + 60_000


def test_directory_created_on_first_write(tmp_path: Path) -> None:
    cache = FileCacheBackend(tmp_path / "a" / "b")

    assert cache.get("k", "default") == "default"
    cache.set("k", "v")

    assert (tmp_path / "a" / "b").is_dir()
    assert cache.get("k") == "v"


def test_missing_key_returns_default(cache: FileCacheBackend) -> None:
    assert cache.has("undefined") is False
    assert cache.get("undefined") is None
    assert cache.get("undefined", "default") == "default"


def test_expired_entry_is_removed_on_read(cache: FileCacheBackend, temp_cache_dir: str, clock) -> None:
    cache.set("k", "v", ttl=1)
    clock.advance(1)

    assert cache.get("k", "gone") == "gone"
    assert not entry_file(temp_cache_dir, "k").exists()


def test_forever_entry(cache: FileCacheBackend, clock) -> None:
    cache.set_forever("k", "v")
    clock.advance(10**8)

    assert cache.get("k") == "v"


def test_corrupt_header_counts_as_expired(cache: FileCacheBackend, temp_cache_dir: str) -> None:
    entry_file(temp_cache_dir, "k").write_bytes(b"garbage\npayload")

    assert cache.has("k") is False
    assert not entry_file(temp_cache_dir, "k").exists()


def test_undecodable_payload_is_dropped(cache: FileCacheBackend, temp_cache_dir: str) -> None:
    entry_file(temp_cache_dir, "k").write_bytes(b"0\nnot a pickle")

    assert cache.get("k", "default") == "default"
    assert not entry_file(temp_cache_dir, "k").exists()


def test_negative_ttl_rejected(cache: FileCacheBackend, temp_cache_dir: str) -> None:
    with pytest.raises(InvalidConfigurationError):
        cache.set("k", "v", ttl=-1)

    assert not entry_file(temp_cache_dir, "k").exists()


def test_unserializable_value(temp_cache_dir: str) -> None:
    cache = FileCacheBackend(temp_cache_dir, codec=JsonCodec())

    with pytest.raises(CacheOperationError):
        cache.set("k", object())


def test_no_temporary_files_left_behind(cache: FileCacheBackend, temp_cache_dir: str) -> None:
    for i in range(5):
        cache.set("k", i)

    assert [p.suffix for p in Path(temp_cache_dir).iterdir()] == [".cache"]


def test_delete_and_clear(cache: FileCacheBackend) -> None:
    cache.set_multiple({"a": 1, "b": 2, "c": 3})

    cache.delete("a").delete("undefined")
    assert cache.get_multiple(["a", "b"]) == {"a": None, "b": 2}

    cache.clear()
    assert cache.has_multiple(["b", "c"]) is False
    assert cache.get_stats()["size"] == 0


def test_clear_ignores_foreign_files(cache: FileCacheBackend, temp_cache_dir: str) -> None:
    keep = Path(temp_cache_dir) / "README.txt"
    keep.write_text("not a cache entry")
    cache.set("k", "v")

    cache.clear()

    assert keep.exists()


def test_increment(cache: FileCacheBackend) -> None:
    assert cache.increment("n", 2) == 2
    assert cache.decrement("n") == 1

    cache.set("s", "abc")
    with pytest.raises(CacheOperationError):
        cache.increment("s")


def test_unwritable_directory(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("")
    cache = FileCacheBackend(blocker / "cache")

    with pytest.raises(StoreUnavailableError) as exc_info:
        cache.set("k", "v")

    assert exc_info.value.backend == "file"
    assert exc_info.value.details["operation"] == "write"


def test_get_stats(cache: FileCacheBackend) -> None:
    cache.set("k", "v")
    cache.get("k")
    cache.get("missing")

    stats = cache.get_stats()
    assert stats["backend"] == "file"
    assert stats["size"] == 1
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 50.0


def test_has_agrees_with_get_on_undecodable_payload(cache: FileCacheBackend, temp_cache_dir: str) -> None:
    entry_file(temp_cache_dir, "k").write_bytes(b"0\nnot a pickle")

    assert cache.has("k") is False
    assert not entry_file(temp_cache_dir, "k").exists()
    assert cache.add("k", "fresh") is True
    assert cache.get("k") == "fresh"


def test_fetch_runs_producer_once(cache: FileCacheBackend, clock) -> None:
    calls: list[int] = []

    def producer() -> list[int]:
        calls.append(1)
        return [len(calls)]

    assert cache.fetch("k", producer, ttl=1) == [1]
    assert cache.fetch("k", producer, ttl=1) == [1]
    assert len(calls) == 1

    clock.advance(1)
    assert cache.fetch("k", producer, ttl=1) == [2]


def test_pull_and_touch(cache: FileCacheBackend, temp_cache_dir: str, clock) -> None:
    cache.set("k", "v", ttl=2)
    clock.advance(1)

    assert cache.touch("k", ttl=2) is True
    clock.advance(1.5)
    assert cache.pull("k") == "v"
    assert not entry_file(temp_cache_dir, "k").exists()
    assert cache.touch("k") is False
