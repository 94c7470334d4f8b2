"""Typed CRUD over a cursor-listing collection."""

import time
from typing import Any, Generic, Optional, TypeVar

from .codec import Codec, JSONCodec
from .events import Event, EventBus, Signal
from .hooks import (
    call_after_delete,
    call_after_load,
    call_after_save,
    call_before_delete,
    call_before_save,
)
from .interfaces import CollectionProvider
from .schema import inspect
from .utils import decode_record, encode_record, validate_key

T = TypeVar("T")


class Service(Generic[T]):
    """Type-safe record storage for T over a CollectionProvider.

    Usage:
        users = Service(provider, User)
        await users.set("u1", User(id="u1", name="Ada"))
        user = await users.get("u1")
        keys, cursor = await users.list(limit=100)

    When an ``events`` bus is given, every operation publishes its
    started/completed/failed signals on it.
    """

    def __init__(
        self,
        provider: CollectionProvider,
        record_type: type,
        codec: Optional[Codec] = None,
        events: Optional[EventBus] = None,
    ):
        self.provider = provider
        self.spec = inspect(record_type)
        self.codec = codec or JSONCodec()
        self.events = events

    async def _emit(
        self,
        signal: Signal,
        key: Optional[str] = None,
        started: Optional[float] = None,
        error: Optional[BaseException] = None,
        **fields: Any,
    ) -> None:
        if self.events is None:
            return
        duration_ms = None
        if started is not None:
            duration_ms = (time.perf_counter() - started) * 1000
        await self.events.emit(Event(
            signal=signal,
            record_type=self.spec.qualified_name,
            key=key,
            duration_ms=duration_ms,
            error=error,
            fields=fields,
        ))

    async def get(self, key: str) -> T:
        """Load the record at key. Raises NotFoundError or DecodeError."""
        validate_key(key)
        await self._emit(Signal.GET_STARTED, key)
        started = time.perf_counter()
        try:
            data = await self.provider.get(key)
            value = decode_record(self.codec, data, self.spec)
            await call_after_load(value)
        except Exception as e:
            await self._emit(Signal.GET_FAILED, key, started, error=e)
            raise
        await self._emit(Signal.GET_COMPLETED, key, started)
        return value

    async def set(self, key: str, value: T) -> None:
        """Create or overwrite the record at key."""
        validate_key(key)
        await self._emit(Signal.SET_STARTED, key)
        started = time.perf_counter()
        try:
            await call_before_save(value)
            data = encode_record(self.codec, value, self.spec)
            await self.provider.set(key, data)
            await call_after_save(value)
        except Exception as e:
            await self._emit(Signal.SET_FAILED, key, started, error=e)
            raise
        await self._emit(Signal.SET_COMPLETED, key, started, size=len(data))

    async def delete(self, key: str) -> None:
        """Remove the record at key. Raises NotFoundError if absent."""
        validate_key(key)
        await self._emit(Signal.DELETE_STARTED, key)
        started = time.perf_counter()
        try:
            await call_before_delete(self.spec)
            await self.provider.delete(key)
            await call_after_delete(self.spec)
        except Exception as e:
            await self._emit(Signal.DELETE_FAILED, key, started, error=e)
            raise
        await self._emit(Signal.DELETE_COMPLETED, key, started)

    async def exists(self, key: str) -> bool:
        validate_key(key)
        started = time.perf_counter()
        found = await self.provider.exists(key)
        await self._emit(Signal.EXISTS_COMPLETED, key, started, exists=found)
        return found

    async def count(self) -> int:
        started = time.perf_counter()
        total = await self.provider.count()
        await self._emit(Signal.COUNT_COMPLETED, None, started, count=total)
        return total

    async def list(self, cursor: str = "", limit: int = 0) -> tuple[list[str], str]:
        """One page of keys and the cursor for the next page.

        The cursor is passed to the provider unmodified; an empty next
        cursor means the listing is exhausted.
        """
        started = time.perf_counter()
        keys, next_cursor = await self.provider.list(cursor, limit)
        await self._emit(
            Signal.LIST_COMPLETED, None, started,
            cursor=cursor, keys=len(keys), next_cursor=next_cursor,
        )
        return keys, next_cursor
