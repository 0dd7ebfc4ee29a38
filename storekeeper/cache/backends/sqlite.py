"""
Storekeeper — SQLite Cache Backend

Persistent cache stored in a single SQLite table:

    "Key"        VARCHAR(255) PRIMARY KEY
    "Value"      BLOB      (codec output, stored verbatim)
    "ExpiresAt"  INTEGER   (epoch milliseconds, 0 = never expires)

SQLite has no native expiry, so expiration is enforced on read: rows found
expired are deleted inside the same transaction and reported as absent.
An index on "ExpiresAt" keeps purge_expired() sweeps cheap; nothing runs
the sweep automatically.

The table is created on first use. The existence check and CREATE are not
coordinated across store instances; run the first use from a single
process when several share one database file.
"""

import logging
import pickle
import re
import sqlite3
import threading
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ...errors import CacheOperationError, InvalidConfigurationError, SchemaError, StoreUnavailableError
from ..codec import Codec, PickleCodec
from ..expiration import is_expired, now_ms
from ..interface import DEFAULT_TTL, MISSING, CacheStore

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Matches rows is_expired() treats as dead: missing, negative, or past a positive instant
_EXPIRED_CLAUSE = '("ExpiresAt" IS NULL OR "ExpiresAt" < 0 OR ("ExpiresAt" > 0 AND "ExpiresAt" <= ?))'


def _placeholders(count: int) -> str:
    """Bind list for an IN (...) clause with exactly count parameters."""
    return ", ".join("?" * count)


class SQLiteCacheBackend(CacheStore):
    """
    SQLite cache backend.

    Notes:
    - Either pass an open sqlite3 connection (caller keeps ownership) or a
      db_path the store connects to lazily and closes in close().
    - Writes use a single INSERT ... ON CONFLICT upsert, so concurrent set()
      calls for one key never duplicate rows or fail on the primary key.
    - Batched reads bind one placeholder per requested key; very large key
      lists are bounded by SQLite's host parameter limit.
    - All statements on one instance are serialized by an instance lock.
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        connection: sqlite3.Connection | None = None,
        default_ttl: int = DEFAULT_TTL,
        codec: Codec | None = None,
        table: str = "Cache",
        timeout: float = 5.0,
    ) -> None:
        """
        Initialize SQLite cache backend.

        Args:
            db_path: Database file path (ignored when connection is given)
            connection: Existing connection to use instead of db_path
            default_ttl: Default TTL in seconds (0 = no expiry)
            codec: Value codec (pickle by default)
            table: Cache table name
            timeout: Seconds to wait on a locked database file
        """
        super().__init__(default_ttl)

        if not _IDENTIFIER.match(table):
            raise InvalidConfigurationError(
                f"Invalid cache table name: {table!r}",
                details={"table": table},
            )

        self.db_path = db_path
        self.table = table
        self.codec = codec or PickleCodec()
        self.timeout = timeout

        self._connection = connection
        self._owns_connection = connection is None
        self._schema_ready = False
        self._schema_error: SchemaError | None = None

        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._expired = 0

        self._lock = threading.RLock()

    # ------------ Connection & schema ------------

    def _connect(self) -> sqlite3.Connection:
        """Open the owned connection. Caller holds the lock."""
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            connection = sqlite3.connect(self.db_path, timeout=self.timeout, check_same_thread=False)
        except (sqlite3.Error, OSError) as e:
            logger.error(
                "Failed to open SQLite cache database '%s': %s",
                self.db_path,
                e,
                extra={"db_path": self.db_path, "error": str(e)},
                exc_info=True,
            )
            raise StoreUnavailableError("sqlite", details={"db_path": self.db_path, "error": str(e)}) from e

        logger.debug("Opened SQLite cache database '%s'", self.db_path)
        return connection

    def _structure_exists(self, connection: sqlite3.Connection) -> bool:
        row = connection.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (self.table,),
        ).fetchone()
        return row is not None

    def _build_structure(self, connection: sqlite3.Connection) -> None:
        with connection:
            connection.execute(
                f'CREATE TABLE "{self.table}" ('
                '"Key" VARCHAR(255) NOT NULL PRIMARY KEY, '
                '"Value" BLOB, '
                '"ExpiresAt" INTEGER NOT NULL DEFAULT 0)'
            )
            connection.execute(f'CREATE INDEX "{self.table}ExpiresAt" ON "{self.table}" ("ExpiresAt")')

    def _ensure_schema(self, connection: sqlite3.Connection) -> None:
        """Check for the cache table once per instance and create it when absent."""
        try:
            if not self._structure_exists(connection):
                self._build_structure(connection)
                logger.info(
                    "Created SQLite cache table '%s'",
                    self.table,
                    extra={"db_path": self.db_path, "table": self.table},
                )
            else:
                logger.debug("SQLite cache table '%s' already exists", self.table)
        except sqlite3.Error as e:
            logger.error(
                "Failed to establish SQLite cache table '%s': %s",
                self.table,
                e,
                extra={"db_path": self.db_path, "table": self.table, "error": str(e)},
                exc_info=True,
            )
            self._schema_error = SchemaError(
                f"Could not establish cache table '{self.table}': {e}",
                details={"db_path": self.db_path, "table": self.table, "error": str(e)},
            )
            raise self._schema_error from e

        self._schema_ready = True

    def _get_connection(self) -> sqlite3.Connection:
        """Connection with a verified schema. Caller holds the lock."""
        if self._schema_error is not None:
            raise SchemaError(self._schema_error.message, self._schema_error.details)

        if self._connection is None:
            self._connection = self._connect()

        if not self._schema_ready:
            self._ensure_schema(self._connection)

        return self._connection

    @contextmanager
    def _transaction(self, operation: str, **context: Any) -> Iterator[sqlite3.Connection]:
        """
        Run statements in one transaction under the instance lock.

        sqlite3 errors are logged and surfaced as StoreUnavailableError.
        """
        with self._lock:
            connection = self._get_connection()
            try:
                with connection:
                    yield connection
            except sqlite3.Error as e:
                logger.error(
                    "SQLite cache %s failed: %s",
                    operation,
                    e,
                    extra={"operation": operation, "table": self.table, "error": str(e), **context},
                    exc_info=True,
                )
                raise StoreUnavailableError(
                    "sqlite",
                    details={"operation": operation, "table": self.table, "error": str(e), **context},
                ) from e

    @staticmethod
    def _rows(connection: sqlite3.Connection, sql: str, params: Sequence[Any]) -> list[sqlite3.Row]:
        """Execute a query and return rows as field mappings."""
        cursor = connection.cursor()
        cursor.row_factory = sqlite3.Row
        return cursor.execute(sql, params).fetchall()

    # ------------ Encoding ------------

    def _encode(self, key: str, value: Any) -> sqlite3.Binary:
        try:
            return sqlite3.Binary(self.codec.serialize(value))
        except (TypeError, ValueError, AttributeError, pickle.PicklingError) as e:
            logger.error(
                "Failed to serialize value for key '%s': %s",
                key,
                e,
                extra={"key": key, "value_type": type(value).__name__, "codec": self.codec.name},
                exc_info=True,
            )
            raise CacheOperationError(
                f"Value for key '{key}' cannot be serialized with the {self.codec.name} codec",
                details={"key": key, "value_type": type(value).__name__, "error": str(e)},
            ) from e

    def _decode(self, key: str, payload: bytes | None) -> Any:
        """Decoded value, or MISSING for an empty or undecodable payload."""
        if not payload:
            return MISSING

        try:
            return self.codec.deserialize(bytes(payload))
        except Exception as e:
            logger.warning(
                "Dropping undecodable cache entry '%s': %s",
                key,
                e,
                extra={"key": key, "codec": self.codec.name, "error": str(e)},
            )
            return MISSING

    def _delete_keys(self, connection: sqlite3.Connection, keys: Sequence[str]) -> int:
        if not keys:
            return 0
        cursor = connection.execute(
            f'DELETE FROM "{self.table}" WHERE "Key" IN ({_placeholders(len(keys))})',
            list(keys),
        )
        return cursor.rowcount

    # ------------ Core Interface ------------

    def has(self, key: str) -> bool:
        """Check for a live, decodable row; expired or undecodable rows are deleted."""
        with self._transaction("has", key=key) as connection:
            rows = self._rows(
                connection,
                f'SELECT "Value", "ExpiresAt" FROM "{self.table}" WHERE "Key" = ?',
                (key,),
            )
            if not rows:
                return False

            row = rows[0]
            if is_expired(row["ExpiresAt"]):
                self._expired += 1
            elif self._decode(key, row["Value"]) is not MISSING:
                return True

            self._delete_keys(connection, [key])
            return False

    def has_multiple(self, keys: Iterable[str]) -> bool:
        """True iff every key has a live, decodable row. Dead rows are deleted."""
        keys = list(keys)
        if not keys:
            return True

        with self._transaction("has_multiple", key_count=len(keys)) as connection:
            rows = self._rows(
                connection,
                f'SELECT "Key", "Value", "ExpiresAt" FROM "{self.table}" '
                f'WHERE "Key" IN ({_placeholders(len(keys))})',
                keys,
            )

            now = now_ms()
            live: set[str] = set()
            dead: list[str] = []
            for row in rows:
                row_key = row["Key"]
                if is_expired(row["ExpiresAt"], now):
                    self._expired += 1
                    dead.append(row_key)
                elif self._decode(row_key, row["Value"]) is MISSING:
                    dead.append(row_key)
                else:
                    live.add(row_key)

            self._delete_keys(connection, dead)

        return all(key in live for key in keys)

    def get(self, key: str, default: Any = None) -> Any:
        """Retrieve a value; expired or undecodable rows are deleted."""
        with self._transaction("get", key=key) as connection:
            rows = self._rows(
                connection,
                f'SELECT "Value", "ExpiresAt" FROM "{self.table}" WHERE "Key" = ?',
                (key,),
            )

            value = MISSING
            if rows:
                row = rows[0]
                if is_expired(row["ExpiresAt"]):
                    self._expired += 1
                else:
                    value = self._decode(key, row["Value"])

                if value is MISSING:
                    self._delete_keys(connection, [key])

            if value is MISSING:
                self._misses += 1
                return default

            self._hits += 1
            return value

    def get_multiple(self, keys: Iterable[str], default: Any = None) -> dict[str, Any]:
        """
        Retrieve multiple values with one query.

        Returns:
            One entry per requested key, in request order; default for keys
            without a live row
        """
        keys = list(keys)
        if not keys:
            return {}

        with self._transaction("get_multiple", key_count=len(keys)) as connection:
            rows = self._rows(
                connection,
                f'SELECT "Key", "Value", "ExpiresAt" FROM "{self.table}" '
                f'WHERE "Key" IN ({_placeholders(len(keys))})',
                keys,
            )

            now = now_ms()
            found: dict[str, Any] = {}
            dead: list[str] = []
            for row in rows:
                row_key = row["Key"]
                if is_expired(row["ExpiresAt"], now):
                    self._expired += 1
                    dead.append(row_key)
                    continue

                value = self._decode(row_key, row["Value"])
                if value is MISSING:
                    dead.append(row_key)
                else:
                    found[row_key] = value

            self._delete_keys(connection, dead)

            result: dict[str, Any] = {}
            for key in keys:
                if key in found:
                    self._hits += 1
                    result[key] = found[key]
                else:
                    self._misses += 1
                    result[key] = default

            return result

    def set(self, key: str, value: Any, ttl: int | None = None) -> "SQLiteCacheBackend":
        """Insert or replace the row for key in one statement."""
        expiry = self._expires_at(ttl)
        payload = self._encode(key, value)

        with self._transaction("set", key=key, ttl=ttl) as connection:
            connection.execute(self._upsert_sql(), (key, payload, expiry))
            self._sets += 1

        return self

    def set_multiple(self, values: Mapping[str, Any], ttl: int | None = None) -> "SQLiteCacheBackend":
        """Upsert multiple rows in one transaction."""
        expiry = self._expires_at(ttl)
        rows = [(key, self._encode(key, value), expiry) for key, value in values.items()]
        if not rows:
            return self

        with self._transaction("set_multiple", key_count=len(rows), ttl=ttl) as connection:
            connection.executemany(self._upsert_sql(), rows)
            self._sets += len(rows)

        return self

    def add(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """
        Store a value only when the key has no live row.

        A single upsert whose update branch only fires over an expired row,
        so two concurrent add() calls cannot both succeed.
        An undecodable row is removed first, matched on its exact payload so a
        concurrent valid write is never discarded.
        """
        expiry = self._expires_at(ttl)
        payload = self._encode(key, value)

        with self._transaction("add", key=key, ttl=ttl) as connection:
            rows = self._rows(connection, f'SELECT "Value" FROM "{self.table}" WHERE "Key" = ?', (key,))
            if rows and self._decode(key, rows[0]["Value"]) is MISSING:
                connection.execute(
                    f'DELETE FROM "{self.table}" WHERE "Key" = ? AND "Value" IS ?',
                    (key, rows[0]["Value"]),
                )

            cursor = connection.execute(
                f'INSERT INTO "{self.table}" ("Key", "Value", "ExpiresAt") VALUES (?, ?, ?) '
                'ON CONFLICT ("Key") DO UPDATE SET "Value" = excluded."Value", "ExpiresAt" = excluded."ExpiresAt" '
                f"WHERE {_EXPIRED_CLAUSE}",
                (key, payload, expiry, now_ms()),
            )
            stored = cursor.rowcount > 0
            if stored:
                self._sets += 1

        return stored

    def delete(self, key: str) -> "SQLiteCacheBackend":
        """Delete the row for key regardless of expiry."""
        with self._transaction("delete", key=key) as connection:
            self._deletes += self._delete_keys(connection, [key])

        return self

    def delete_multiple(self, keys: Iterable[str]) -> "SQLiteCacheBackend":
        """Delete rows for all keys with one statement."""
        keys = list(keys)
        if not keys:
            return self

        with self._transaction("delete_multiple", key_count=len(keys)) as connection:
            self._deletes += self._delete_keys(connection, keys)

        return self

    def clear(self) -> "SQLiteCacheBackend":
        """Delete every row in the cache table."""
        with self._transaction("clear") as connection:
            deleted = connection.execute(f'DELETE FROM "{self.table}"').rowcount
            self._deletes += deleted

        logger.info("Cleared %d rows from SQLite cache table '%s'", deleted, self.table)
        return self

    def purge_expired(self) -> int:
        """
        Delete every expired row in one statement (uses the ExpiresAt index).

        Returns:
            Number of rows removed
        """
        with self._transaction("purge_expired") as connection:
            purged = connection.execute(
                f'DELETE FROM "{self.table}" WHERE {_EXPIRED_CLAUSE}',
                (now_ms(),),
            ).rowcount
            self._expired += purged

        logger.debug("Purged %d expired rows from SQLite cache table '%s'", purged, self.table)
        return purged

    # ------------ Numeric combinators ------------

    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """Read-modify-write under the instance lock (not across processes)."""
        with self._lock:
            return super().increment(key, amount, ttl)

    def increment_float(self, key: str, amount: float = 1.0, ttl: int | None = None) -> float:
        with self._lock:
            return super().increment_float(key, amount, ttl)

    # ------------ Lifecycle ------------

    def get_stats(self) -> dict[str, Any]:
        """Return cache statistics, including the current row count."""
        with self._transaction("get_stats") as connection:
            size = connection.execute(f'SELECT COUNT(*) FROM "{self.table}"').fetchone()[0]

            total_requests = self._hits + self._misses
            hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0

            return {
                "backend": "sqlite",
                "db_path": self.db_path,
                "table": self.table,
                "codec": self.codec.name,
                "default_ttl": self.default_ttl,
                "size": size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(hit_rate, 2),
                "sets": self._sets,
                "deletes": self._deletes,
                "expired": self._expired,
            }

    def close(self) -> None:
        """Close the owned connection; an injected connection is left open."""
        with self._lock:
            if self._connection is None or not self._owns_connection:
                return

            try:
                self._connection.close()
                logger.info("Closed SQLite cache backend '%s'", self.db_path)
            except sqlite3.Error as e:
                logger.error(
                    "Error closing SQLite cache connection: %s",
                    e,
                    extra={"db_path": self.db_path, "error": str(e)},
                    exc_info=True,
                )
                raise StoreUnavailableError("sqlite", details={"db_path": self.db_path, "error": str(e)}) from e
            finally:
                self._connection = None
                self._schema_ready = False

    def _upsert_sql(self) -> str:
        return (
            f'INSERT INTO "{self.table}" ("Key", "Value", "ExpiresAt") VALUES (?, ?, ?) '
            'ON CONFLICT ("Key") DO UPDATE SET "Value" = excluded."Value", "ExpiresAt" = excluded."ExpiresAt"'
        )
