"""Typed vector index."""

from __future__ import annotations

import logging
from typing import Any, Generic, Optional, TypeVar
import uuid

from .atomic.index import AtomicIndex
from .codec import Codec, JSONCodec
from .filters import Filter, FilterBuilder
from .hooks import (
    call_after_delete,
    call_after_load,
    call_after_save,
    call_before_delete,
    call_before_save,
)
from .interfaces import Vector, VectorProvider, VectorRecord, VectorResult
from .schema import inspect
from .utils import as_uuid, decode_record, encode_record, metadata_filter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Index(Generic[T]):
    """Type-safe vector storage with T as the metadata type.

    Hooks run on the metadata value when there is one.

    Usage:
        docs = Index(provider, DocMeta)
        await docs.upsert(doc_id, embedding, DocMeta(title="Intro", lang="en"))
        hits = await docs.search(query_embedding, k=5)
        b = docs.filter_builder()
        english = await docs.query(query_embedding, 5, b.where("lang").eq("en"))
    """

    def __init__(self, provider: VectorProvider, record_type: type, codec: Optional[Codec] = None):
        self.provider = provider
        self.spec = inspect(record_type)
        self.codec = codec or JSONCodec()
        self._atomic: Optional[AtomicIndex] = None

    def filter_builder(self) -> FilterBuilder:
        """A FilterBuilder checking field names against T."""
        return FilterBuilder(self.spec.record_type)

    async def _encode_metadata(self, metadata: Optional[T]) -> Optional[bytes]:
        if metadata is None:
            return None
        await call_before_save(metadata)
        return encode_record(self.codec, metadata, self.spec)

    def _to_vector(self, result: VectorResult) -> Vector[T]:
        metadata = None
        if result.metadata is not None:
            metadata = decode_record(self.codec, result.metadata, self.spec)
        return Vector(id=result.id, vector=result.vector, metadata=metadata, score=result.score)

    async def _to_vectors(self, results: list[VectorResult]) -> list[Vector[T]]:
        vectors = []
        for r in results:
            vectors.append(self._to_vector(r))
        for v in vectors:
            if v.metadata is not None:
                await call_after_load(v.metadata)
        return vectors

    async def upsert(self, id: uuid.UUID, vector: list[float], metadata: Optional[T] = None) -> None:
        """Insert or replace the vector at id."""
        id = as_uuid(id)
        data = await self._encode_metadata(metadata)
        await self.provider.upsert(id, list(vector), data)
        logger.debug(f"Upserted vector {id} ({len(vector)} dims)")
        if metadata is not None:
            await call_after_save(metadata)

    async def upsert_batch(self, vectors: list[Vector[T]]) -> None:
        """Insert or replace several vectors.

        All BeforeSave hooks run before the provider is called. Atomicity
        follows ``provider.atomic_batches``.
        """
        records = []
        for v in vectors:
            data = await self._encode_metadata(v.metadata)
            records.append(VectorRecord(id=as_uuid(v.id), vector=list(v.vector), metadata=data))
        await self.provider.upsert_batch(records)
        logger.debug(f"Upserted {len(records)} vectors")
        for v in vectors:
            if v.metadata is not None:
                await call_after_save(v.metadata)

    async def get(self, id: uuid.UUID) -> Vector[T]:
        id = as_uuid(id)
        vector, info = await self.provider.get(id)
        metadata = None
        if info.metadata is not None:
            metadata = decode_record(self.codec, info.metadata, self.spec)
            await call_after_load(metadata)
        return Vector(id=id, vector=vector, metadata=metadata, score=info.score)

    async def delete(self, id: uuid.UUID) -> None:
        id = as_uuid(id)
        await call_before_delete(self.spec)
        await self.provider.delete(id)
        logger.debug(f"Deleted vector {id}")
        await call_after_delete(self.spec)

    async def delete_batch(self, ids: list[uuid.UUID]) -> None:
        await self.provider.delete_batch([as_uuid(i) for i in ids])

    async def search(self, vector: list[float], k: int, filter: Any = None) -> list[Vector[T]]:
        """The k nearest vectors, closest first.

        ``filter`` is a T or a mapping of metadata fields to required
        values. ``k <= 0`` returns every match. ``score`` on each result is
        its distance to ``vector``.
        """
        match = metadata_filter(self.codec, self.spec, filter)
        results = await self.provider.search(list(vector), k, match)
        return await self._to_vectors(results)

    async def query(self, vector: list[float], k: int, filter: Optional[Filter] = None) -> list[Vector[T]]:
        """Similarity search constrained by a structured filter."""
        results = await self.provider.query(list(vector), k, filter)
        return await self._to_vectors(results)

    async def filter(self, filter: Optional[Filter], limit: int = 0) -> list[Vector[T]]:
        """Vectors whose metadata matches filter, in provider order."""
        results = await self.provider.filter(filter, limit)
        return await self._to_vectors(results)

    async def list(self, limit: int = 0) -> list[uuid.UUID]:
        return await self.provider.list(limit)

    async def exists(self, id: uuid.UUID) -> bool:
        return await self.provider.exists(as_uuid(id))

    def atomic(self) -> AtomicIndex:
        if self._atomic is None:
            self._atomic = AtomicIndex(self.provider, self.spec, self.codec)
        return self._atomic
