"""Chroma vector provider.

Chroma's API is synchronous; every call is wrapped with ``asyncio.to_thread``.
Chroma metadata only holds flat scalars, so the codec-encoded metadata is kept
base64-encoded under ``_payload`` and the top-level scalar fields of JSON
metadata are copied alongside it for ``where`` filtering.

Filters translate to Chroma ``where`` documents. LIKE and CONTAINS have no
equivalent; NOT is pushed down onto equality and membership nodes, and a
range comparison under NOT is rejected.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from typing import Any, Optional
import uuid

import chromadb
from chromadb.config import Settings

from ..config.providers import VectorConfig
from ..distance import validate_vector
from ..errors import (
    IndexNotReadyError,
    InvalidQueryError,
    NotFoundError,
    OperatorNotSupportedError,
    StorageError,
)
from ..filters import Filter, FilterVisitor, Op
from ..interfaces import (
    DistanceMetric,
    ProviderHealth,
    ProviderStatus,
    VectorInfo,
    VectorProvider,
    VectorRecord,
    VectorResult,
)
from .memory import decode_metadata

logger = logging.getLogger(__name__)

PAYLOAD_KEY = "_payload"
ID_KEY = "_id"

_SPACES = {
    DistanceMetric.L2: "l2",
    DistanceMetric.COSINE: "cosine",
    DistanceMetric.INNER_PRODUCT: "ip",
}

_NEGATED = {
    Op.EQ: "$ne",
    Op.NE: "$eq",
    Op.IN: "$nin",
    Op.NIN: "$in",
}

_SCALARS = (str, int, float, bool)


def chroma_metadata(id: uuid.UUID, metadata: Optional[bytes]) -> dict[str, Any]:
    """Flat Chroma metadata for a stored vector."""
    flat: dict[str, Any] = {ID_KEY: str(id)}
    decoded = decode_metadata(metadata) or {}
    for key, value in decoded.items():
        if isinstance(value, _SCALARS) and not key.startswith("_"):
            flat[key] = value
    if metadata is not None:
        flat[PAYLOAD_KEY] = base64.b64encode(metadata).decode("ascii")
    return flat


def payload(flat: Optional[dict[str, Any]]) -> Optional[bytes]:
    if not flat or PAYLOAD_KEY not in flat:
        return None
    return base64.b64decode(flat[PAYLOAD_KEY])


class ChromaWhereTranslator(FilterVisitor[dict]):
    """Renders a filter as a Chroma ``where`` document."""

    provider_name = "chroma"

    def _scalar(self, node: Filter) -> Any:
        if not isinstance(node.value, _SCALARS):
            raise InvalidQueryError(
                f"chroma cannot compare {node.field} with {node.value!r}"
            )
        return node.value

    def _compare(self, node: Filter, operator: str) -> dict:
        return {node.field: {operator: self._scalar(node)}}

    def _range(self, node: Filter, operator: str) -> dict:
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise OperatorNotSupportedError(
                f"chroma supports {node.op.value} on numbers only"
            )
        return {node.field: {operator: node.value}}

    def _members(self, node: Filter, operator: str) -> dict:
        values = list(node.value or [])
        for v in values:
            if not isinstance(v, _SCALARS):
                raise InvalidQueryError(f"chroma cannot match {node.field} with {v!r}")
        return {node.field: {operator: values}}

    def visit_eq(self, node: Filter) -> dict:
        return self._compare(node, "$eq")

    def visit_ne(self, node: Filter) -> dict:
        return self._compare(node, "$ne")

    def visit_gt(self, node: Filter) -> dict:
        return self._range(node, "$gt")

    def visit_gte(self, node: Filter) -> dict:
        return self._range(node, "$gte")

    def visit_lt(self, node: Filter) -> dict:
        return self._range(node, "$lt")

    def visit_lte(self, node: Filter) -> dict:
        return self._range(node, "$lte")

    def visit_in(self, node: Filter) -> dict:
        return self._members(node, "$in")

    def visit_nin(self, node: Filter) -> dict:
        return self._members(node, "$nin")

    def _join(self, operator: str, clauses: list[dict]) -> dict:
        if len(clauses) == 1:
            return clauses[0]
        return {operator: clauses}

    def visit_and(self, node: Filter) -> dict:
        return self._join("$and", [self.visit(c) for c in node.children])

    def visit_or(self, node: Filter) -> dict:
        return self._join("$or", [self.visit(c) for c in node.children])

    def visit_not(self, node: Filter) -> dict:
        return self._negate(node.children[0])

    def _negate(self, node: Filter) -> dict:
        if node.op in _NEGATED:
            operator = _NEGATED[node.op]
            if node.op in (Op.IN, Op.NIN):
                return self._members(node, operator)
            return self._compare(node, operator)
        if node.op is Op.NOT:
            return self.visit(node.children[0])
        if node.op is Op.AND:
            return self._join("$or", [self._negate(c) for c in node.children])
        if node.op is Op.OR:
            return self._join("$and", [self._negate(c) for c in node.children])
        raise OperatorNotSupportedError(
            f"chroma cannot negate {node.op.value} filters"
        )


class ChromaVectorProvider(VectorProvider[VectorConfig]):
    """Chroma-backed vector index.

    With ``config.path`` the collection is persisted there; otherwise an
    in-process ephemeral client is used. Scores are Chroma's distances
    (squared L2 for the l2 space).
    """

    supports_filter = True

    def __init__(self, config: VectorConfig, client: Any = None):
        super().__init__(config)
        self._client = client
        self._collection = None
        self._translator = ChromaWhereTranslator()

    async def initialize(self) -> None:
        def _open():
            if self._client is None:
                settings = Settings(anonymized_telemetry=False)
                if self.config.path:
                    self._client = chromadb.PersistentClient(path=self.config.path, settings=settings)
                else:
                    self._client = chromadb.EphemeralClient(settings=settings)
            return self._client.get_or_create_collection(
                name=self.config.table_name,
                metadata={"hnsw:space": _SPACES[self.config.metric]},
            )

        self._collection = await self._run("initialize", _open)
        self._initialized = True
        logger.info(f"Chroma vector index ready: collection={self.config.table_name}")

    async def shutdown(self) -> None:
        self._collection = None
        self._initialized = False

    async def health_check(self) -> ProviderHealth:
        if self._collection is None:
            return ProviderHealth(
                status=ProviderStatus.UNAVAILABLE,
                message="Collection not initialized",
            )
        try:
            start = time.perf_counter()
            count = await asyncio.to_thread(self._collection.count)
            latency = (time.perf_counter() - start) * 1000
            return ProviderHealth(
                status=ProviderStatus.HEALTHY,
                latency_ms=latency,
                message=f"Chroma with {count} vectors",
            )
        except Exception as e:
            return ProviderHealth(status=ProviderStatus.DEGRADED, message=str(e))

    @property
    def collection(self):
        if self._collection is None:
            raise IndexNotReadyError("Chroma collection not initialized")
        return self._collection

    async def _run(self, operation: str, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except (NotFoundError, InvalidQueryError, IndexNotReadyError):
            raise
        except Exception as e:
            logger.error(f"Chroma {operation} failed: {e}")
            raise StorageError(f"chroma {operation} failed: {e}") from e

    def _check(self, vector: list[float]) -> None:
        validate_vector(vector, self.config.dimension)

    def _where(self, filter: Optional[Filter]) -> Optional[dict]:
        if filter is None:
            return None
        filter.validate()
        return self._translator.visit(filter)

    @staticmethod
    def _rows(result: dict[str, Any]) -> list[VectorResult]:
        embeddings = result.get("embeddings")
        metadatas = result.get("metadatas")
        rows = []
        for i, id in enumerate(result["ids"]):
            vector = [float(x) for x in embeddings[i]] if embeddings is not None else []
            flat = metadatas[i] if metadatas is not None else None
            rows.append(VectorResult(id=uuid.UUID(id), vector=vector, metadata=payload(flat)))
        return rows

    async def upsert(self, id: uuid.UUID, vector: list[float], metadata: Optional[bytes]) -> None:
        await self.upsert_batch([VectorRecord(id=id, vector=vector, metadata=metadata)])

    async def upsert_batch(self, records: list[VectorRecord]) -> None:
        if not records:
            return
        for r in records:
            self._check(r.vector)
        await self._run(
            "upsert",
            self.collection.upsert,
            ids=[str(r.id) for r in records],
            embeddings=[[float(x) for x in r.vector] for r in records],
            metadatas=[chroma_metadata(r.id, r.metadata) for r in records],
        )

    async def get(self, id: uuid.UUID) -> tuple[list[float], VectorInfo]:
        result = await self._run(
            "get", self.collection.get, ids=[str(id)], include=["embeddings", "metadatas"]
        )
        rows = self._rows(result)
        if not rows:
            raise NotFoundError(f"vector not found: {id}")
        row = rows[0]
        return row.vector, VectorInfo(id=id, dimension=len(row.vector), metadata=row.metadata)

    async def delete(self, id: uuid.UUID) -> None:
        if not await self.exists(id):
            raise NotFoundError(f"vector not found: {id}")
        await self._run("delete", self.collection.delete, ids=[str(id)])

    async def delete_batch(self, ids: list[uuid.UUID]) -> None:
        if not ids:
            return
        await self._run("delete_batch", self.collection.delete, ids=[str(i) for i in ids])

    async def _query(self, vector: list[float], k: int, where: Optional[dict]) -> list[VectorResult]:
        self._check(vector)
        total = await self._run("count", self.collection.count)
        if total == 0:
            return []
        n = min(k, total) if k > 0 else total
        result = await self._run(
            "query",
            self.collection.query,
            query_embeddings=[[float(x) for x in vector]],
            n_results=n,
            where=where or None,
            include=["embeddings", "metadatas", "distances"],
        )
        page = {
            "ids": result["ids"][0],
            "embeddings": result["embeddings"][0] if result.get("embeddings") is not None else None,
            "metadatas": result["metadatas"][0] if result.get("metadatas") is not None else None,
        }
        rows = self._rows(page)
        for row, d in zip(rows, result["distances"][0]):
            row.score = float(d)
        return rows

    async def search(
        self,
        vector: list[float],
        k: int,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[VectorResult]:
        where = None
        if filter:
            clauses = [{f: {"$eq": v}} for f, v in filter.items()]
            where = clauses[0] if len(clauses) == 1 else {"$and": clauses}
        return await self._query(vector, k, where)

    async def query(
        self,
        vector: list[float],
        k: int,
        filter: Optional[Filter] = None,
    ) -> list[VectorResult]:
        return await self._query(vector, k, self._where(filter))

    async def filter(self, filter: Optional[Filter], limit: int = 0) -> list[VectorResult]:
        where = self._where(filter)
        result = await self._run(
            "filter",
            self.collection.get,
            where=where or None,
            limit=limit if limit > 0 else None,
            include=["embeddings", "metadatas"],
        )
        return self._rows(result)

    async def list(self, limit: int = 0) -> list[uuid.UUID]:
        result = await self._run(
            "list", self.collection.get, limit=limit if limit > 0 else None, include=[]
        )
        return [uuid.UUID(id) for id in result["ids"]]

    async def exists(self, id: uuid.UUID) -> bool:
        result = await self._run("exists", self.collection.get, ids=[str(id)], include=[])
        return len(result["ids"]) > 0
