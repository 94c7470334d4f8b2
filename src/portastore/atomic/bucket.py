"""Atom-typed blob storage."""

from dataclasses import dataclass, field
from typing import Optional

from ..atom import Atom, Atomizer
from ..codec import Codec, JSONCodec
from ..interfaces import BlobProvider, ObjectInfo
from ..schema import Spec
from ..utils import decode_record, encode_record, validate_key
from .store import deatomize_for_write


@dataclass
class AtomicObject:
    """Blob envelope around an Atom payload."""
    key: str
    data: Atom
    content_type: str = ""
    size: int = 0
    etag: str = ""
    metadata: dict[str, str] = field(default_factory=dict)


class AtomicBucket:
    """Blob access through Atoms, sharing the typed Bucket's key space."""

    def __init__(self, provider: BlobProvider, spec: Spec, codec: Optional[Codec] = None):
        self.provider = provider
        self.spec = spec
        self.codec = codec or JSONCodec()
        self._atomizer = Atomizer.from_spec(spec)

    async def get(self, key: str) -> AtomicObject:
        validate_key(key)
        data, info = await self.provider.get(key)
        value = decode_record(self.codec, data, self.spec)
        return AtomicObject(
            key=info.key or key,
            data=self._atomizer.atomize(value),
            content_type=info.content_type,
            size=info.size,
            etag=info.etag,
            metadata=dict(info.metadata),
        )

    async def put(self, key: str, obj: AtomicObject) -> None:
        validate_key(key)
        value = deatomize_for_write(self._atomizer, obj.data)
        data = encode_record(self.codec, value, self.spec)
        info = ObjectInfo(
            key=key,
            content_type=obj.content_type or self.codec.content_type,
            size=len(data),
            etag=obj.etag,
            metadata=dict(obj.metadata),
        )
        await self.provider.put(key, data, info)

    async def delete(self, key: str) -> None:
        validate_key(key)
        await self.provider.delete(key)

    async def exists(self, key: str) -> bool:
        validate_key(key)
        return await self.provider.exists(key)
