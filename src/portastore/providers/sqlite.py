"""SQLite key-value provider.

A single two-column table holds the pairs. SQLite has no expiry, so any
positive TTL is rejected with TTLNotSupportedError.

Note: All calls run synchronously on the event loop thread. SQLite
operations are typically sub-millisecond for local files; wrap the provider
in ``asyncio.to_thread`` if that stops being true.
"""

from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from ..config.providers import KeyValueConfig
from ..errors import (
    ConstraintError,
    NotFoundError,
    ReadOnlyError,
    StorageError,
    TTLNotSupportedError,
)
from ..interfaces import KeyValueProvider, ProviderHealth, ProviderStatus

logger = logging.getLogger(__name__)

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@contextmanager
def _mapped_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.IntegrityError as e:
        raise ConstraintError(f"sqlite {operation} failed: {e}") from e
    except sqlite3.OperationalError as e:
        if "readonly" in str(e):
            raise ReadOnlyError(f"sqlite {operation} failed: {e}") from e
        raise StorageError(f"sqlite {operation} failed: {e}") from e
    except sqlite3.Error as e:
        raise StorageError(f"sqlite {operation} failed: {e}") from e


class SQLiteKeyValueProvider(KeyValueProvider[KeyValueConfig]):
    """Key-value pairs in a SQLite table. Batch writes run in one transaction."""

    atomic_batches = True
    supports_ttl = False

    def __init__(self, config: KeyValueConfig):
        super().__init__(config)
        if not _TABLE_NAME.match(config.table_name):
            raise ValueError(f"Invalid table name: {config.table_name!r}")
        self._conn: Optional[sqlite3.Connection] = None

    async def initialize(self) -> None:
        path = self.config.path or ":memory:"
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path)
        with _mapped_errors("initialize"):
            self._conn.execute(
                f"CREATE TABLE IF NOT EXISTS {self.config.table_name} ("
                "key TEXT PRIMARY KEY, value BLOB NOT NULL)"
            )
            self._conn.commit()
        self._initialized = True
        logger.info(f"SQLite key-value store ready at {path} (table {self.config.table_name})")

    async def shutdown(self) -> None:
        if self._conn is not None:
            self._conn.close()
        self._conn = None
        self._initialized = False

    async def health_check(self) -> ProviderHealth:
        if self._conn is None:
            return ProviderHealth(
                status=ProviderStatus.UNAVAILABLE,
                message="Connection not initialized",
            )
        try:
            start = time.perf_counter()
            self._conn.execute("SELECT 1").fetchone()
            latency = (time.perf_counter() - start) * 1000
            return ProviderHealth(status=ProviderStatus.HEALTHY, latency_ms=latency)
        except sqlite3.Error as e:
            return ProviderHealth(status=ProviderStatus.DEGRADED, message=str(e))

    @property
    def _db(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("SQLite key-value store not initialized")
        return self._conn

    def _key(self, key: str) -> str:
        return f"{self.config.namespace}{key}"

    def _check_ttl(self, ttl: float) -> None:
        if ttl > 0:
            raise TTLNotSupportedError("SQLite key-value store does not support TTL")

    async def get(self, key: str) -> bytes:
        with _mapped_errors("get"):
            row = self._db.execute(
                f"SELECT value FROM {self.config.table_name} WHERE key = ?",
                (self._key(key),),
            ).fetchone()
        if row is None:
            raise NotFoundError(f"key not found: {key}")
        return bytes(row[0])

    async def set(self, key: str, value: bytes, ttl: float = 0) -> None:
        self._check_ttl(ttl)
        with _mapped_errors("set"), self._db:
            self._db.execute(
                f"INSERT OR REPLACE INTO {self.config.table_name} (key, value) VALUES (?, ?)",
                (self._key(key), sqlite3.Binary(value)),
            )

    async def delete(self, key: str) -> None:
        with _mapped_errors("delete"), self._db:
            cursor = self._db.execute(
                f"DELETE FROM {self.config.table_name} WHERE key = ?",
                (self._key(key),),
            )
        if cursor.rowcount == 0:
            raise NotFoundError(f"key not found: {key}")

    async def exists(self, key: str) -> bool:
        with _mapped_errors("exists"):
            row = self._db.execute(
                f"SELECT 1 FROM {self.config.table_name} WHERE key = ?",
                (self._key(key),),
            ).fetchone()
        return row is not None

    async def list(self, prefix: str = "", limit: int = 0) -> list[str]:
        full_prefix = self._key(prefix)
        strip = len(self.config.namespace)
        keys = []
        with _mapped_errors("list"):
            cursor = self._db.execute(
                f"SELECT key FROM {self.config.table_name} "
                "WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(full_prefix), full_prefix),
            )
            for (key,) in cursor:
                await asyncio.sleep(0)
                keys.append(key[strip:])
                if limit > 0 and len(keys) >= limit:
                    break
        return keys

    async def get_batch(self, keys: list[str]) -> dict[str, bytes]:
        if not keys:
            return {}
        placeholders = ", ".join("?" for _ in keys)
        with _mapped_errors("get_batch"):
            rows = self._db.execute(
                f"SELECT key, value FROM {self.config.table_name} WHERE key IN ({placeholders})",
                [self._key(k) for k in keys],
            ).fetchall()
        strip = len(self.config.namespace)
        return {key[strip:]: bytes(value) for key, value in rows}

    async def set_batch(self, items: dict[str, bytes], ttl: float = 0) -> None:
        self._check_ttl(ttl)
        with _mapped_errors("set_batch"), self._db:
            self._db.executemany(
                f"INSERT OR REPLACE INTO {self.config.table_name} (key, value) VALUES (?, ?)",
                [(self._key(k), sqlite3.Binary(v)) for k, v in items.items()],
            )
