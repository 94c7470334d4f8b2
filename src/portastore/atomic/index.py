"""Atom-typed vector index."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import uuid

from ..atom import Atom, Atomizer
from ..codec import Codec, JSONCodec
from ..filters import Filter
from ..interfaces import VectorProvider, VectorResult
from ..schema import Spec
from ..utils import as_uuid, decode_record, encode_record, metadata_filter
from .store import deatomize_for_write


@dataclass
class AtomicVector:
    """A vector with its metadata as an Atom (None when none was stored)."""
    id: uuid.UUID
    vector: list[float]
    score: float = 0.0
    metadata: Optional[Atom] = None


class AtomicIndex:
    """Vector access through Atoms, sharing the typed Index's id space.

    Get, search, query and filter fail as a whole on the first metadata
    that cannot be decoded; no partial results are returned.
    """

    def __init__(self, provider: VectorProvider, spec: Spec, codec: Optional[Codec] = None):
        self.provider = provider
        self.spec = spec
        self.codec = codec or JSONCodec()
        self._atomizer = Atomizer.from_spec(spec)

    def _to_atom(self, data: Optional[bytes]) -> Optional[Atom]:
        if data is None:
            return None
        return self._atomizer.atomize(decode_record(self.codec, data, self.spec))

    def _from_atom(self, atom: Optional[Atom]) -> Optional[bytes]:
        if atom is None:
            return None
        value = deatomize_for_write(self._atomizer, atom)
        return encode_record(self.codec, value, self.spec)

    def _results(self, results: list[VectorResult]) -> list[AtomicVector]:
        return [
            AtomicVector(id=r.id, vector=r.vector, score=r.score, metadata=self._to_atom(r.metadata))
            for r in results
        ]

    async def get(self, id: uuid.UUID) -> AtomicVector:
        id = as_uuid(id)
        vector, info = await self.provider.get(id)
        return AtomicVector(id=id, vector=vector, score=info.score, metadata=self._to_atom(info.metadata))

    async def upsert(self, id: uuid.UUID, vector: list[float], metadata: Optional[Atom] = None) -> None:
        await self.provider.upsert(as_uuid(id), list(vector), self._from_atom(metadata))

    async def delete(self, id: uuid.UUID) -> None:
        await self.provider.delete(as_uuid(id))

    async def exists(self, id: uuid.UUID) -> bool:
        return await self.provider.exists(as_uuid(id))

    async def search(self, vector: list[float], k: int, filter: Optional[Atom] = None) -> list[AtomicVector]:
        """Nearest vectors; an Atom filter matches on its non-None fields."""
        match = None
        if filter is not None:
            match = metadata_filter(self.codec, self.spec, deatomize_for_write(self._atomizer, filter))
        return self._results(await self.provider.search(list(vector), k, match))

    async def query(self, vector: list[float], k: int, filter: Optional[Filter] = None) -> list[AtomicVector]:
        return self._results(await self.provider.query(list(vector), k, filter))

    async def filter(self, filter: Optional[Filter], limit: int = 0) -> list[AtomicVector]:
        return self._results(await self.provider.filter(filter, limit))
