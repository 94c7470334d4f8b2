"""Typed key-value storage."""

from __future__ import annotations

import logging
from typing import Generic, Optional, TypeVar

from .atomic.store import AtomicStore
from .codec import Codec, JSONCodec
from .hooks import (
    call_after_delete,
    call_after_load,
    call_after_save,
    call_before_delete,
    call_before_save,
)
from .interfaces import TTL, KeyValueProvider
from .schema import inspect
from .utils import check_ttl, decode_record, encode_record, validate_key

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Store(Generic[T]):
    """Type-safe key-value storage for T.

    Usage:
        sessions = Store(provider, Session)
        await sessions.set("s:1", session, ttl=timedelta(minutes=30))
        session = await sessions.get("s:1")
    """

    def __init__(self, provider: KeyValueProvider, record_type: type, codec: Optional[Codec] = None):
        self.provider = provider
        self.spec = inspect(record_type)
        self.codec = codec or JSONCodec()
        self._atomic: Optional[AtomicStore] = None

    async def get(self, key: str) -> T:
        validate_key(key)
        data = await self.provider.get(key)
        value = decode_record(self.codec, data, self.spec)
        await call_after_load(value)
        return value

    async def set(self, key: str, value: T, ttl: Optional[TTL] = 0) -> None:
        """Store value at key, expiring after ttl when positive.

        Raises TTLNotSupportedError before any hook runs if the provider
        has no expiry.
        """
        validate_key(key)
        seconds = check_ttl(self.provider, ttl)
        await call_before_save(value)
        data = encode_record(self.codec, value, self.spec)
        await self.provider.set(key, data, seconds)
        logger.debug(f"Stored {self.spec.type_name} at {key!r} (ttl={seconds}s)")
        await call_after_save(value)

    async def delete(self, key: str) -> None:
        validate_key(key)
        await call_before_delete(self.spec)
        await self.provider.delete(key)
        logger.debug(f"Deleted {self.spec.type_name} at {key!r}")
        await call_after_delete(self.spec)

    async def exists(self, key: str) -> bool:
        validate_key(key)
        return await self.provider.exists(key)

    async def list(self, prefix: str = "", limit: int = 0) -> list[str]:
        """Keys sharing prefix; ``limit <= 0`` returns all of them."""
        return await self.provider.list(prefix, limit)

    async def get_batch(self, keys: list[str]) -> dict[str, T]:
        """Records for the keys that exist; missing keys are omitted."""
        for key in keys:
            validate_key(key)
        raw = await self.provider.get_batch(list(keys))
        values = {}
        for key, data in raw.items():
            values[key] = decode_record(self.codec, data, self.spec)
        for value in values.values():
            await call_after_load(value)
        return values

    async def set_batch(self, items: dict[str, T], ttl: Optional[TTL] = 0) -> None:
        """Store several records.

        Every BeforeSave hook runs before anything is written. Whether the
        write itself is all-or-nothing depends on
        ``provider.atomic_batches``.
        """
        for key in items:
            validate_key(key)
        seconds = check_ttl(self.provider, ttl)
        for value in items.values():
            await call_before_save(value)
        encoded = {
            key: encode_record(self.codec, value, self.spec)
            for key, value in items.items()
        }
        await self.provider.set_batch(encoded, seconds)
        logger.debug(f"Stored {len(encoded)} {self.spec.type_name} records (ttl={seconds}s)")
        for value in items.values():
            await call_after_save(value)

    def atomic(self) -> AtomicStore:
        """Atom-typed view over the same provider and key space."""
        if self._atomic is None:
            self._atomic = AtomicStore(self.provider, self.spec, self.codec)
        return self._atomic
