"""Typed blob storage."""

from __future__ import annotations

import logging
from typing import Generic, Optional, TypeVar

from .atomic.bucket import AtomicBucket
from .codec import Codec, JSONCodec
from .hooks import (
    call_after_delete,
    call_after_load,
    call_after_save,
    call_before_delete,
    call_before_save,
)
from .interfaces import BlobProvider, Object, ObjectInfo
from .schema import inspect
from .utils import decode_record, encode_record, validate_key

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Bucket(Generic[T]):
    """Type-safe blob storage for T.

    The payload of each object is a codec-encoded T; the envelope
    (content type, size, etag, user metadata) is kept by the provider.

    Usage:
        reports = Bucket(provider, Report)
        await reports.put(Object(key="2024/q1.json", data=report))
        obj = await reports.get("2024/q1.json")
    """

    def __init__(self, provider: BlobProvider, record_type: type, codec: Optional[Codec] = None):
        self.provider = provider
        self.spec = inspect(record_type)
        self.codec = codec or JSONCodec()
        self._atomic: Optional[AtomicBucket] = None

    async def get(self, key: str) -> Object[T]:
        validate_key(key)
        data, info = await self.provider.get(key)
        payload = decode_record(self.codec, data, self.spec)
        await call_after_load(payload)
        return Object(
            key=info.key or key,
            data=payload,
            content_type=info.content_type,
            size=info.size,
            etag=info.etag,
            metadata=dict(info.metadata),
        )

    async def put(self, obj: Object[T]) -> None:
        """Store obj.data at obj.key.

        Size is always the encoded payload length; an empty content type
        defaults to the codec's.
        """
        validate_key(obj.key)
        await call_before_save(obj.data)
        data = encode_record(self.codec, obj.data, self.spec)
        info = ObjectInfo(
            key=obj.key,
            content_type=obj.content_type or self.codec.content_type,
            size=len(data),
            etag=obj.etag,
            metadata=dict(obj.metadata),
        )
        await self.provider.put(obj.key, data, info)
        logger.debug(f"Stored {self.spec.type_name} object {obj.key!r} ({info.size} bytes)")
        await call_after_save(obj.data)

    async def delete(self, key: str) -> None:
        validate_key(key)
        await call_before_delete(self.spec)
        await self.provider.delete(key)
        logger.debug(f"Deleted {self.spec.type_name} object {key!r}")
        await call_after_delete(self.spec)

    async def exists(self, key: str) -> bool:
        validate_key(key)
        return await self.provider.exists(key)

    async def list(self, prefix: str = "", limit: int = 0) -> list[ObjectInfo]:
        return await self.provider.list(prefix, limit)

    def atomic(self) -> AtomicBucket:
        if self._atomic is None:
            self._atomic = AtomicBucket(self.provider, self.spec, self.codec)
        return self._atomic
