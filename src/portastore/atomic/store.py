"""Atom-typed key-value storage."""

from typing import Optional

from ..atom import Atom, Atomizer
from ..codec import Codec, JSONCodec
from ..errors import DecodeError, EncodeError
from ..interfaces import TTL, KeyValueProvider
from ..schema import Spec
from ..utils import check_ttl, decode_record, encode_record, validate_key


def deatomize_for_write(atomizer: Atomizer, atom: Atom):
    """Rebuild a record for a write; incompatible atoms raise EncodeError."""
    try:
        return atomizer.deatomize(atom)
    except DecodeError as e:
        raise EncodeError(str(e)) from e


class AtomicStore:
    """Key-value access through Atoms, sharing the typed Store's key space.

    Hooks do not run on this path.
    """

    def __init__(self, provider: KeyValueProvider, spec: Spec, codec: Optional[Codec] = None):
        self.provider = provider
        self.spec = spec
        self.codec = codec or JSONCodec()
        self._atomizer = Atomizer.from_spec(spec)

    async def get(self, key: str) -> Atom:
        validate_key(key)
        data = await self.provider.get(key)
        value = decode_record(self.codec, data, self.spec)
        return self._atomizer.atomize(value)

    async def set(self, key: str, atom: Atom, ttl: Optional[TTL] = 0) -> None:
        validate_key(key)
        seconds = check_ttl(self.provider, ttl)
        value = deatomize_for_write(self._atomizer, atom)
        data = encode_record(self.codec, value, self.spec)
        await self.provider.set(key, data, seconds)

    async def delete(self, key: str) -> None:
        validate_key(key)
        await self.provider.delete(key)

    async def exists(self, key: str) -> bool:
        validate_key(key)
        return await self.provider.exists(key)
