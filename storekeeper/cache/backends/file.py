"""
Storekeeper — File Cache Backend

One file per key under a cache directory. The file name is the md5 of the
key; the content is a header line holding the expiry instant followed by the
codec payload:

    b"<expires_at>\\n<payload>"

Writes go through a temporary file and os.replace(), so readers never see a
partially written entry.
"""

import hashlib
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from ...errors import CacheOperationError, StoreUnavailableError
from ..codec import Codec, PickleCodec
from ..expiration import is_expired
from ..interface import DEFAULT_TTL, MISSING, CacheStore

logger = logging.getLogger(__name__)

ENTRY_SUFFIX = ".cache"


class FileCacheBackend(CacheStore):
    """File-per-key cache backend with opportunistic delete on read."""

    def __init__(
        self,
        path: str | os.PathLike[str],
        default_ttl: int = DEFAULT_TTL,
        codec: Codec | None = None,
    ) -> None:
        super().__init__(default_ttl)
        self.path = Path(path)
        self.codec = codec or PickleCodec()

        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0

        self._lock = threading.RLock()

    # ------------ Helpers ------------

    def _entry_path(self, key: str) -> Path:
        return self.path / (hashlib.md5(key.encode("utf-8")).hexdigest() + ENTRY_SUFFIX)

    def _unavailable(self, operation: str, key: str | None, error: OSError) -> StoreUnavailableError:
        logger.error(
            "File cache %s failed: %s",
            operation,
            error,
            extra={"operation": operation, "key": key, "path": str(self.path), "error": str(error)},
            exc_info=True,
        )
        return StoreUnavailableError(
            "file",
            details={"operation": operation, "key": key, "path": str(self.path), "error": str(error)},
        )

    def _read(self, key: str) -> tuple[int | None, bytes] | None:
        """(expires_at, payload) for key, None if no file exists."""
        try:
            raw = self._entry_path(key).read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise self._unavailable("read", key, e) from e

        header, _, payload = raw.partition(b"\n")
        try:
            expiry: int | None = int(header)
        except ValueError:
            # Unreadable header counts as expired
            expiry = None

        return expiry, payload

    def _remove(self, key: str) -> bool:
        try:
            self._entry_path(key).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise self._unavailable("delete", key, e) from e
        return True

    def _write(self, key: str, value: Any, expiry: int) -> None:
        try:
            payload = self.codec.serialize(value)
        except Exception as e:
            raise CacheOperationError(
                f"Value for key '{key}' cannot be serialized with the {self.codec.name} codec",
                details={"key": key, "value_type": type(value).__name__, "error": str(e)},
            ) from e

        target = self._entry_path(key)
        try:
            self.path.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path, suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(b"%d\n" % expiry)
                    handle.write(payload)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise self._unavailable("write", key, e) from e

    def _load(self, key: str) -> Any:
        """Live value for key or MISSING. Expired or corrupt entries are removed."""
        entry = self._read(key)
        if entry is None:
            return MISSING

        expiry, payload = entry
        if is_expired(expiry):
            self._remove(key)
            return MISSING

        try:
            return self.codec.deserialize(payload)
        except Exception as e:
            logger.warning(
                "Dropping undecodable cache file for key '%s': %s",
                key,
                e,
                extra={"key": key, "codec": self.codec.name, "error": str(e)},
            )
            self._remove(key)
            return MISSING

    # ------------ Core Interface ------------

    def has(self, key: str) -> bool:
        """True for a live, decodable entry; anything else is removed."""
        with self._lock:
            return self._load(key) is not MISSING

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            value = self._load(key)
            if value is MISSING:
                self._misses += 1
                return default

            self._hits += 1
            return value

    def set(self, key: str, value: Any, ttl: int | None = None) -> "FileCacheBackend":
        expiry = self._expires_at(ttl)

        with self._lock:
            self._write(key, value, expiry)
            self._sets += 1

        return self

    def delete(self, key: str) -> "FileCacheBackend":
        with self._lock:
            if self._remove(key):
                self._deletes += 1

        return self

    def clear(self) -> "FileCacheBackend":
        """Remove every entry file in the cache directory."""
        removed = 0
        with self._lock:
            if not self.path.exists():
                return self

            try:
                for entry in self.path.glob(f"*{ENTRY_SUFFIX}"):
                    entry.unlink(missing_ok=True)
                    removed += 1
            except OSError as e:
                raise self._unavailable("clear", None, e) from e

            self._deletes += removed

        logger.info("Cleared %d entries from file cache '%s'", removed, self.path)
        return self

    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        with self._lock:
            return super().increment(key, amount, ttl)

    def increment_float(self, key: str, amount: float = 1.0, ttl: int | None = None) -> float:
        with self._lock:
            return super().increment_float(key, amount, ttl)

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            size = len(list(self.path.glob(f"*{ENTRY_SUFFIX}"))) if self.path.exists() else 0
            total_requests = self._hits + self._misses
            hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0

            return {
                "backend": "file",
                "path": str(self.path),
                "codec": self.codec.name,
                "default_ttl": self.default_ttl,
                "size": size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(hit_rate, 2),
                "sets": self._sets,
                "deletes": self._deletes,
            }

    def close(self) -> None:
        logger.debug("File cache backend closed for '%s'", self.path)
