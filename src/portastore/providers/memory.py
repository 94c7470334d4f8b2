"""In-memory providers for testing and development.

Every category has an in-memory implementation. None of them awaits while
mutating, so batch writes are all-or-nothing within the event loop.
"""

from __future__ import annotations

import asyncio
import bisect
import hashlib
import json
import logging
import time
from dataclasses import replace
from typing import Any, Optional
import uuid

from ..config.providers import BlobConfig, CollectionConfig, KeyValueConfig, VectorConfig
from ..distance import distance, rank, validate_vector
from ..errors import FilterNotSupportedError, NotFoundError
from ..filters import Filter, lookup, matches
from ..interfaces import (
    BlobProvider,
    CollectionProvider,
    KeyValueProvider,
    ObjectInfo,
    ProviderHealth,
    ProviderStatus,
    VectorInfo,
    VectorProvider,
    VectorRecord,
    VectorResult,
)

logger = logging.getLogger(__name__)


class MemoryCollectionProvider(CollectionProvider[CollectionConfig]):
    """In-memory collection with keyset cursors.

    The cursor is the last key of the previous page; keys are listed in
    sorted order, so pages stay consistent under concurrent inserts.
    """

    atomic_batches = True

    def __init__(self, config: Optional[CollectionConfig] = None):
        super().__init__(config or CollectionConfig())
        self._data: dict[str, bytes] = {}

    async def initialize(self) -> None:
        self._initialized = True

    async def shutdown(self) -> None:
        self._data.clear()
        self._initialized = False

    async def health_check(self) -> ProviderHealth:
        return ProviderHealth(
            status=ProviderStatus.HEALTHY,
            latency_ms=0.1,
            message=f"In-memory collection with {len(self._data)} records",
        )

    async def get(self, key: str) -> bytes:
        try:
            return self._data[key]
        except KeyError:
            raise NotFoundError(f"record not found: {key}") from None

    async def set(self, key: str, data: bytes) -> None:
        self._data[key] = bytes(data)

    async def exists(self, key: str) -> bool:
        return key in self._data

    async def count(self) -> int:
        return len(self._data)

    async def list(self, cursor: str = "", limit: int = 0) -> tuple[list[str], str]:
        ordered = sorted(self._data)
        start = bisect.bisect_right(ordered, cursor) if cursor else 0
        keys = []
        for key in ordered[start:]:
            await asyncio.sleep(0)
            keys.append(key)
            if limit > 0 and len(keys) == limit:
                break
        next_cursor = ""
        if limit > 0 and keys and start + len(keys) < len(ordered):
            next_cursor = keys[-1]
        return keys, next_cursor

    async def delete(self, key: str) -> None:
        if key not in self._data:
            raise NotFoundError(f"record not found: {key}")
        del self._data[key]


class MemoryKeyValueProvider(KeyValueProvider[KeyValueConfig]):
    """In-memory key-value store with expiry.

    Expired entries are dropped lazily, on the first access after their
    deadline.
    """

    atomic_batches = True
    supports_ttl = True

    def __init__(self, config: Optional[KeyValueConfig] = None, clock=time.monotonic):
        super().__init__(config or KeyValueConfig())
        self._clock = clock
        self._data: dict[str, tuple[bytes, Optional[float]]] = {}

    async def initialize(self) -> None:
        self._initialized = True

    async def shutdown(self) -> None:
        self._data.clear()
        self._initialized = False

    async def health_check(self) -> ProviderHealth:
        return ProviderHealth(
            status=ProviderStatus.HEALTHY,
            latency_ms=0.1,
            message=f"In-memory key-value store with {len(self._data)} entries",
        )

    def _live(self, key: str) -> Optional[bytes]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def _put(self, key: str, value: bytes, ttl: float) -> None:
        expires_at = self._clock() + ttl if ttl > 0 else None
        self._data[key] = (bytes(value), expires_at)

    async def get(self, key: str) -> bytes:
        value = self._live(key)
        if value is None:
            raise NotFoundError(f"key not found: {key}")
        return value

    async def set(self, key: str, value: bytes, ttl: float = 0) -> None:
        self._put(key, value, ttl)

    async def delete(self, key: str) -> None:
        if self._live(key) is None:
            raise NotFoundError(f"key not found: {key}")
        del self._data[key]

    async def exists(self, key: str) -> bool:
        return self._live(key) is not None

    async def list(self, prefix: str = "", limit: int = 0) -> list[str]:
        keys = []
        for key in sorted(self._data):
            await asyncio.sleep(0)
            if not key.startswith(prefix) or self._live(key) is None:
                continue
            keys.append(key)
            if limit > 0 and len(keys) >= limit:
                break
        return keys

    async def get_batch(self, keys: list[str]) -> dict[str, bytes]:
        found = {}
        for key in keys:
            value = self._live(key)
            if value is not None:
                found[key] = value
        return found

    async def set_batch(self, items: dict[str, bytes], ttl: float = 0) -> None:
        for key, value in items.items():
            self._put(key, value, ttl)


class MemoryBlobProvider(BlobProvider[BlobConfig]):
    """In-memory blob store; etags are MD5 digests of the content."""

    def __init__(self, config: Optional[BlobConfig] = None):
        super().__init__(config or BlobConfig())
        self._data: dict[str, tuple[bytes, ObjectInfo]] = {}

    async def initialize(self) -> None:
        self._initialized = True

    async def shutdown(self) -> None:
        self._data.clear()
        self._initialized = False

    async def health_check(self) -> ProviderHealth:
        return ProviderHealth(
            status=ProviderStatus.HEALTHY,
            latency_ms=0.1,
            message=f"In-memory blob store with {len(self._data)} objects",
        )

    async def get(self, key: str) -> tuple[bytes, ObjectInfo]:
        try:
            data, info = self._data[key]
        except KeyError:
            raise NotFoundError(f"object not found: {key}") from None
        return data, replace(info, metadata=dict(info.metadata))

    async def put(self, key: str, data: bytes, info: ObjectInfo) -> None:
        data = bytes(data)
        stored = ObjectInfo(
            key=key,
            content_type=info.content_type,
            size=len(data),
            etag=hashlib.md5(data).hexdigest(),
            metadata=dict(info.metadata),
        )
        self._data[key] = (data, stored)

    async def delete(self, key: str) -> None:
        if key not in self._data:
            raise NotFoundError(f"object not found: {key}")
        del self._data[key]

    async def exists(self, key: str) -> bool:
        return key in self._data

    async def list(self, prefix: str = "", limit: int = 0) -> list[ObjectInfo]:
        infos = []
        for key in sorted(self._data):
            await asyncio.sleep(0)
            if not key.startswith(prefix):
                continue
            info = self._data[key][1]
            infos.append(replace(info, metadata=dict(info.metadata)))
            if limit > 0 and len(infos) >= limit:
                break
        return infos


def decode_metadata(data: Optional[bytes]) -> Optional[dict[str, Any]]:
    """JSON metadata as a dict; anything else is treated as opaque."""
    if data is None:
        return None
    try:
        decoded = json.loads(data)
    except (TypeError, ValueError):
        return None
    return decoded if isinstance(decoded, dict) else None


def matches_equality(metadata: Optional[dict[str, Any]], match: Optional[dict[str, Any]]) -> bool:
    if not match:
        return True
    if metadata is None:
        return False
    return all(lookup(metadata, k) == v for k, v in match.items())


class MemoryVectorProvider(VectorProvider[VectorConfig]):
    """Exact nearest-neighbour search over vectors held in memory.

    Supports every metric and every filter node. When ``config.dimension``
    is 0 the first stored vector fixes the dimension.
    """

    atomic_batches = True
    supports_filter = True

    def __init__(self, config: Optional[VectorConfig] = None):
        super().__init__(config or VectorConfig())
        self._dimension = self.config.dimension
        self._vectors: dict[uuid.UUID, tuple[list[float], Optional[bytes]]] = {}

    @property
    def dimension(self) -> int:
        return self._dimension

    async def initialize(self) -> None:
        self._initialized = True

    async def shutdown(self) -> None:
        self._vectors.clear()
        self._initialized = False

    async def health_check(self) -> ProviderHealth:
        return ProviderHealth(
            status=ProviderStatus.HEALTHY,
            latency_ms=0.1,
            message=f"In-memory vector index with {len(self._vectors)} vectors",
        )

    def _check(self, vector: list[float]) -> None:
        validate_vector(vector, self._dimension)

    def _store(self, id: uuid.UUID, vector: list[float], metadata: Optional[bytes]) -> None:
        self._vectors[id] = (
            [float(x) for x in vector],
            bytes(metadata) if metadata is not None else None,
        )
        if not self._dimension:
            self._dimension = len(vector)

    async def upsert(self, id: uuid.UUID, vector: list[float], metadata: Optional[bytes]) -> None:
        self._check(vector)
        self._store(id, vector, metadata)

    async def upsert_batch(self, records: list[VectorRecord]) -> None:
        dimension = self._dimension or (len(records[0].vector) if records else 0)
        for r in records:
            validate_vector(r.vector, dimension)
        for r in records:
            self._store(r.id, r.vector, r.metadata)

    async def get(self, id: uuid.UUID) -> tuple[list[float], VectorInfo]:
        try:
            vector, metadata = self._vectors[id]
        except KeyError:
            raise NotFoundError(f"vector not found: {id}") from None
        return list(vector), VectorInfo(id=id, dimension=len(vector), metadata=metadata)

    async def delete(self, id: uuid.UUID) -> None:
        if id not in self._vectors:
            raise NotFoundError(f"vector not found: {id}")
        del self._vectors[id]

    async def delete_batch(self, ids: list[uuid.UUID]) -> None:
        for id in ids:
            self._vectors.pop(id, None)

    async def _rank(self, vector: list[float], k: int, predicate) -> list[VectorResult]:
        self._check(vector)
        scored = []
        for id, (stored, metadata) in list(self._vectors.items()):
            await asyncio.sleep(0)
            if not predicate(metadata):
                continue
            d = distance(self.config.metric, vector, stored)
            scored.append((d, (id, stored, metadata)))
        return [
            VectorResult(id=id, vector=list(stored), metadata=metadata, score=d)
            for d, (id, stored, metadata) in rank(scored, k)
        ]

    async def search(
        self,
        vector: list[float],
        k: int,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[VectorResult]:
        return await self._rank(
            vector, k, lambda metadata: matches_equality(decode_metadata(metadata), filter)
        )

    async def query(
        self,
        vector: list[float],
        k: int,
        filter: Optional[Filter] = None,
    ) -> list[VectorResult]:
        if filter is not None:
            filter.validate()
        return await self._rank(
            vector, k, lambda metadata: matches(filter, decode_metadata(metadata))
        )

    async def filter(self, filter: Optional[Filter], limit: int = 0) -> list[VectorResult]:
        if not self.supports_filter:
            raise FilterNotSupportedError(
                f"{type(self).__name__} does not support metadata-only filtering"
            )
        if filter is not None:
            filter.validate()
        results = []
        for id, (stored, metadata) in list(self._vectors.items()):
            await asyncio.sleep(0)
            if not matches(filter, decode_metadata(metadata)):
                continue
            results.append(VectorResult(id=id, vector=list(stored), metadata=metadata))
            if limit > 0 and len(results) >= limit:
                break
        return results

    async def list(self, limit: int = 0) -> list[uuid.UUID]:
        ids = list(self._vectors)
        if limit > 0:
            return ids[:limit]
        return ids

    async def exists(self, id: uuid.UUID) -> bool:
        return id in self._vectors
