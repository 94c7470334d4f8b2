"""Redis providers (redis.asyncio).

Both providers accept an existing client, which they then do not close, or
build one from ``config.url`` on initialize. Every command is bounded by
``config.timeout_seconds``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Optional, TypeVar

from redis.asyncio import Redis
from redis.exceptions import ConnectionError, RedisError, TimeoutError
from redis.exceptions import ReadOnlyError as RedisReadOnlyError

from ..config.providers import CollectionConfig, KeyValueConfig
from ..errors import InvalidKeyError, NotFoundError, ReadOnlyError, StorageError
from ..interfaces import (
    CollectionProvider,
    KeyValueProvider,
    ProviderHealth,
    ProviderStatus,
)

logger = logging.getLogger(__name__)

R = TypeVar("R")

# Glob metacharacters in SCAN MATCH patterns
_GLOB_SPECIAL = "*?[]\\"


def escape_glob(text: str) -> str:
    return "".join("\\" + ch if ch in _GLOB_SPECIAL else ch for ch in text)


def _parse_cursor(cursor: str) -> tuple[int, int]:
    """Split a list cursor into (SCAN position, keys already returned from that page)."""
    if not cursor:
        return 0, 0
    position, _, skip = cursor.partition(":")
    try:
        return int(position), int(skip or 0)
    except ValueError:
        raise InvalidKeyError(f"invalid cursor: {cursor!r}") from None


class _RedisClient:
    """Client lifecycle, timeouts and error mapping shared by both providers."""

    def _setup_client(self, client: Optional[Redis]) -> None:
        self._client = client
        self._owns_client = client is None

    async def _connect(self, url: Optional[str], timeout: float) -> None:
        if self._client is None:
            if not url:
                raise ValueError("Redis provider requires url or client")
            self._client = Redis.from_url(url)
        await self._call("ping", self._client.ping(), timeout)
        logger.info(f"{type(self).__name__} connected")

    async def _disconnect(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _health(self, timeout: float) -> ProviderHealth:
        if self._client is None:
            return ProviderHealth(
                status=ProviderStatus.UNAVAILABLE,
                message="Client not initialized",
            )
        try:
            start = time.perf_counter()
            await asyncio.wait_for(self._client.ping(), timeout=timeout)
            latency = (time.perf_counter() - start) * 1000
            return ProviderHealth(status=ProviderStatus.HEALTHY, latency_ms=latency)
        except (ConnectionError, TimeoutError, RedisError, asyncio.TimeoutError) as e:
            return ProviderHealth(status=ProviderStatus.UNAVAILABLE, message=str(e))

    @property
    def client(self) -> Redis:
        if self._client is None:
            raise StorageError(f"{type(self).__name__} not initialized")
        return self._client

    async def _call(self, operation: str, awaitable: Awaitable[R], timeout: float) -> R:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except RedisReadOnlyError as e:
            raise ReadOnlyError(f"redis {operation} failed: {e}") from e
        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.warning(f"Redis {operation} failed: {type(e).__name__}: {e}")
            raise StorageError(f"redis {operation} failed: {e}") from e
        except asyncio.TimeoutError as e:
            logger.warning(f"Redis {operation} timed out after {timeout}s")
            raise StorageError(f"redis {operation} timed out") from e


class RedisKeyValueProvider(_RedisClient, KeyValueProvider[KeyValueConfig]):
    """Key-value storage on Redis strings with native expiry.

    Keys are stored under ``config.namespace``. ``set_batch`` runs in a
    MULTI/EXEC pipeline, so batches are all-or-nothing.
    """

    atomic_batches = True
    supports_ttl = True

    def __init__(self, config: KeyValueConfig, client: Optional[Redis] = None):
        super().__init__(config)
        self._setup_client(client)

    async def initialize(self) -> None:
        await self._connect(self.config.url, self.config.timeout_seconds)
        self._initialized = True

    async def shutdown(self) -> None:
        await self._disconnect()
        self._initialized = False

    async def health_check(self) -> ProviderHealth:
        return await self._health(self.config.timeout_seconds)

    def _key(self, key: str) -> str:
        return f"{self.config.namespace}{key}"

    def _strip(self, key: Any) -> str:
        if isinstance(key, bytes):
            key = key.decode("utf-8")
        return key[len(self.config.namespace):]

    async def get(self, key: str) -> bytes:
        value = await self._call("get", self.client.get(self._key(key)), self.config.timeout_seconds)
        if value is None:
            raise NotFoundError(f"key not found: {key}")
        return value

    async def set(self, key: str, value: bytes, ttl: float = 0) -> None:
        if ttl > 0:
            command = self.client.set(self._key(key), value, px=max(1, int(ttl * 1000)))
        else:
            command = self.client.set(self._key(key), value)
        await self._call("set", command, self.config.timeout_seconds)

    async def delete(self, key: str) -> None:
        removed = await self._call("delete", self.client.delete(self._key(key)), self.config.timeout_seconds)
        if not removed:
            raise NotFoundError(f"key not found: {key}")

    async def exists(self, key: str) -> bool:
        count = await self._call("exists", self.client.exists(self._key(key)), self.config.timeout_seconds)
        return count > 0

    async def list(self, prefix: str = "", limit: int = 0) -> list[str]:
        pattern = escape_glob(self._key(prefix)) + "*"
        keys = []
        seen = set()
        try:
            async for key in self.client.scan_iter(match=pattern, count=100):
                await asyncio.sleep(0)
                # SCAN may repeat a key across a rehash
                if key in seen:
                    continue
                seen.add(key)
                keys.append(self._strip(key))
                if limit > 0 and len(keys) >= limit:
                    break
        except RedisError as e:
            raise StorageError(f"redis scan failed: {e}") from e
        return keys

    async def get_batch(self, keys: list[str]) -> dict[str, bytes]:
        if not keys:
            return {}
        values = await self._call(
            "mget", self.client.mget([self._key(k) for k in keys]), self.config.timeout_seconds
        )
        return {k: v for k, v in zip(keys, values) if v is not None}

    async def set_batch(self, items: dict[str, bytes], ttl: float = 0) -> None:
        if not items:
            return
        pipe = self.client.pipeline(transaction=True)
        for key, value in items.items():
            if ttl > 0:
                pipe.set(self._key(key), value, px=max(1, int(ttl * 1000)))
            else:
                pipe.set(self._key(key), value)
        await self._call("set_batch", pipe.execute(), self.config.timeout_seconds)


class RedisCollectionProvider(_RedisClient, CollectionProvider[CollectionConfig]):
    """Collection of Redis strings under ``{collection}:``.

    ``list`` pages with SCAN. The cursor is Redis's SCAN cursor, suffixed
    with ``:<n>`` when a SCAN batch held more than ``limit`` keys and the
    next call must skip the first ``n`` of it.
    """

    def __init__(self, config: CollectionConfig, client: Optional[Redis] = None):
        super().__init__(config)
        self._setup_client(client)

    async def initialize(self) -> None:
        await self._connect(self.config.url, self.config.timeout_seconds)
        self._initialized = True

    async def shutdown(self) -> None:
        await self._disconnect()
        self._initialized = False

    async def health_check(self) -> ProviderHealth:
        return await self._health(self.config.timeout_seconds)

    @property
    def _prefix(self) -> str:
        return f"{self.config.collection}:"

    def _key(self, key: str) -> str:
        return self._prefix + key

    def _strip(self, key: Any) -> str:
        if isinstance(key, bytes):
            key = key.decode("utf-8")
        return key[len(self._prefix):]

    @property
    def _pattern(self) -> str:
        return escape_glob(self._prefix) + "*"

    async def get(self, key: str) -> bytes:
        value = await self._call("get", self.client.get(self._key(key)), self.config.timeout_seconds)
        if value is None:
            raise NotFoundError(f"record not found: {key}")
        return value

    async def set(self, key: str, data: bytes) -> None:
        await self._call("set", self.client.set(self._key(key), data), self.config.timeout_seconds)

    async def exists(self, key: str) -> bool:
        count = await self._call("exists", self.client.exists(self._key(key)), self.config.timeout_seconds)
        return count > 0

    async def count(self) -> int:
        total = 0
        cursor = 0
        while True:
            cursor, keys = await self._call(
                "scan",
                self.client.scan(cursor=cursor, match=self._pattern, count=1000),
                self.config.timeout_seconds,
            )
            total += len(keys)
            await asyncio.sleep(0)
            if cursor == 0:
                return total

    async def list(self, cursor: str = "", limit: int = 0) -> tuple[list[str], str]:
        position, skip = _parse_cursor(cursor)
        count = limit if limit > 0 else self.config.scan_count

        keys: list[str] = []
        while True:
            next_position, page = await self._call(
                "scan",
                self.client.scan(cursor=position, match=self._pattern, count=count),
                self.config.timeout_seconds,
            )
            await asyncio.sleep(0)
            page = [self._strip(k) for k in page][skip:]
            if limit > 0 and len(keys) + len(page) > limit:
                taken = limit - len(keys)
                keys.extend(page[:taken])
                # Resume inside this SCAN page on the next call
                return keys, f"{position}:{skip + taken}"
            keys.extend(page)
            position, skip = next_position, 0
            if position == 0:
                return keys, ""
            if limit > 0 and len(keys) == limit:
                return keys, str(position)

    async def delete(self, key: str) -> None:
        removed = await self._call("delete", self.client.delete(self._key(key)), self.config.timeout_seconds)
        if not removed:
            raise NotFoundError(f"record not found: {key}")
