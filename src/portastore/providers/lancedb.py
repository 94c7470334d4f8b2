"""LanceDB vector provider.

Vectors, ids and codec-encoded metadata are stored in one table. Metadata
fields listed in ``config.metadata_columns`` are also copied into typed
columns; structured filters are translated to SQL over those columns only.
Without promoted columns the provider cannot filter by metadata alone, and
``filter`` raises FilterNotSupportedError.

Column declarations are ``name`` (string) or ``name:type`` with type one of
``str``, ``int``, ``float``, ``bool``.
"""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Any, Optional
import uuid

import pyarrow as pa

from ..config.providers import VectorConfig
from ..distance import validate_vector
from ..errors import (
    FilterNotSupportedError,
    IndexNotReadyError,
    InvalidQueryError,
    NotFoundError,
    StorageError,
)
from ..filters import Filter, FilterVisitor
from ..interfaces import (
    DistanceMetric,
    ProviderHealth,
    ProviderStatus,
    VectorInfo,
    VectorProvider,
    VectorRecord,
    VectorResult,
)
from .memory import decode_metadata, matches_equality

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_RESERVED = {"id", "vector", "metadata", "_distance"}

_COLUMN_TYPES = {
    "str": (pa.string(), str),
    "int": (pa.int64(), int),
    "float": (pa.float64(), float),
    "bool": (pa.bool_(), bool),
}

_DISTANCE_TYPES = {
    DistanceMetric.L2: "l2",
    DistanceMetric.COSINE: "cosine",
    DistanceMetric.INNER_PRODUCT: "dot",
}


def parse_columns(declarations: list[str]) -> dict[str, tuple[Any, type]]:
    """Parse ``name[:type]`` declarations into arrow/python types."""
    columns = {}
    for decl in declarations:
        name, _, type_name = decl.partition(":")
        name = name.strip()
        type_name = type_name.strip() or "str"
        if not _IDENTIFIER.match(name) or name in _RESERVED:
            raise ValueError(f"Invalid metadata column name: {name!r}")
        if type_name not in _COLUMN_TYPES:
            raise ValueError(f"Invalid metadata column type for {name}: {type_name!r}")
        columns[name] = _COLUMN_TYPES[type_name]
    return columns


def sql_literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    raise InvalidQueryError(f"unsupported filter value {value!r}")


class LanceFilterTranslator(FilterVisitor[str]):
    """Renders a filter as a LanceDB SQL predicate.

    Every node except CONTAINS is supported. Fields must be promoted
    metadata columns.
    """

    provider_name = "lancedb"

    def __init__(self, columns: dict[str, tuple[Any, type]]):
        self.columns = columns

    def _column(self, node: Filter) -> str:
        if node.field not in self.columns:
            raise InvalidQueryError(
                f"field {node.field!r} is not a filterable metadata column"
            )
        return node.field

    def _compare(self, node: Filter, op: str) -> str:
        return f"{self._column(node)} {op} {sql_literal(node.value)}"

    def visit_eq(self, node: Filter) -> str:
        if node.value is None:
            return f"{self._column(node)} IS NULL"
        return self._compare(node, "=")

    def visit_ne(self, node: Filter) -> str:
        column = self._column(node)
        if node.value is None:
            return f"{column} IS NOT NULL"
        return f"({column} IS NULL OR {column} != {sql_literal(node.value)})"

    def visit_gt(self, node: Filter) -> str:
        return self._compare(node, ">")

    def visit_gte(self, node: Filter) -> str:
        return self._compare(node, ">=")

    def visit_lt(self, node: Filter) -> str:
        return self._compare(node, "<")

    def visit_lte(self, node: Filter) -> str:
        return self._compare(node, "<=")

    def _members(self, node: Filter) -> str:
        if not node.value:
            return ""
        return ", ".join(sql_literal(v) for v in node.value)

    def visit_in(self, node: Filter) -> str:
        members = self._members(node)
        if not members:
            return "FALSE"
        return f"{self._column(node)} IN ({members})"

    def visit_nin(self, node: Filter) -> str:
        members = self._members(node)
        column = self._column(node)
        if not members:
            return "TRUE"
        return f"({column} IS NULL OR {column} NOT IN ({members}))"

    def visit_like(self, node: Filter) -> str:
        return self._compare(node, "LIKE")

    def visit_and(self, node: Filter) -> str:
        return "(" + " AND ".join(self.visit(c) for c in node.children) + ")"

    def visit_or(self, node: Filter) -> str:
        return "(" + " OR ".join(self.visit(c) for c in node.children) + ")"

    def visit_not(self, node: Filter) -> str:
        return f"(NOT {self.visit(node.children[0])})"


def _quote_id(id: uuid.UUID) -> str:
    return f"id = '{id}'"


class LanceDBVectorProvider(VectorProvider[VectorConfig]):
    """LanceDB-backed vector index."""

    def __init__(self, config: VectorConfig):
        super().__init__(config)
        self._columns = parse_columns(config.metadata_columns)
        self._translator = LanceFilterTranslator(self._columns)
        self._db = None
        self._table = None

    @property
    def supports_filter(self) -> bool:
        return bool(self._columns)

    async def initialize(self) -> None:
        try:
            import lancedb
        except ImportError:
            raise ImportError("LanceDB not installed. Run: pip install lancedb")

        if self.config.dimension <= 0:
            raise ValueError("LanceDB requires a positive dimension")
        if self.config.uri:
            self._db = lancedb.connect(self.config.uri, api_key=self.config.api_key)
        elif self.config.path:
            Path(self.config.path).mkdir(parents=True, exist_ok=True)
            self._db = lancedb.connect(self.config.path)
        else:
            raise ValueError("LanceDB requires path or uri")

        if self.config.table_name in self._db.table_names():
            self._table = self._db.open_table(self.config.table_name)
        else:
            self._table = self._db.create_table(self.config.table_name, schema=self._schema())

        self._initialized = True
        logger.info(
            f"LanceDB vector index ready: table={self.config.table_name} "
            f"dimension={self.config.dimension} columns={list(self._columns)}"
        )

    async def shutdown(self) -> None:
        self._db = None
        self._table = None
        self._initialized = False

    async def health_check(self) -> ProviderHealth:
        if not self._table:
            return ProviderHealth(
                status=ProviderStatus.UNAVAILABLE,
                message="Table not initialized"
            )

        try:
            start = time.perf_counter()
            count = self._table.count_rows()
            latency = (time.perf_counter() - start) * 1000
            return ProviderHealth(
                status=ProviderStatus.HEALTHY,
                latency_ms=latency,
                message=f"LanceDB with {count} vectors"
            )
        except Exception as e:
            return ProviderHealth(
                status=ProviderStatus.DEGRADED,
                message=str(e)
            )

    def _schema(self) -> pa.Schema:
        fields = [
            pa.field("id", pa.string()),
            pa.field("vector", pa.list_(pa.float32(), self.config.dimension)),
            pa.field("metadata", pa.binary()),
        ]
        for name, (arrow_type, _) in self._columns.items():
            fields.append(pa.field(name, arrow_type))
        return pa.schema(fields)

    @property
    def table(self):
        if self._table is None:
            raise IndexNotReadyError("LanceDB table not initialized")
        return self._table

    def _row(self, id: uuid.UUID, vector: list[float], metadata: Optional[bytes]) -> dict[str, Any]:
        validate_vector(vector, self.config.dimension)
        row = {"id": str(id), "vector": [float(x) for x in vector], "metadata": metadata}
        decoded = decode_metadata(metadata) or {}
        for name, (_, py_type) in self._columns.items():
            value = decoded.get(name)
            if value is not None:
                try:
                    value = py_type(value)
                except (TypeError, ValueError):
                    value = None
            row[name] = value
        return row

    def _result(self, row: dict[str, Any], score: float = 0.0) -> VectorResult:
        return VectorResult(
            id=uuid.UUID(row["id"]),
            vector=[float(x) for x in row["vector"]],
            metadata=row.get("metadata"),
            score=score,
        )

    def _where(self, filter: Optional[Filter]) -> Optional[str]:
        if filter is None:
            return None
        filter.validate()
        return self._translator.visit(filter)

    def _run(self, operation: str, fn):
        try:
            return fn()
        except (NotFoundError, InvalidQueryError, IndexNotReadyError):
            raise
        except Exception as e:
            logger.error(f"LanceDB {operation} failed: {e}")
            raise StorageError(f"lancedb {operation} failed: {e}") from e

    async def upsert(self, id: uuid.UUID, vector: list[float], metadata: Optional[bytes]) -> None:
        await self.upsert_batch([VectorRecord(id=id, vector=vector, metadata=metadata)])

    async def upsert_batch(self, records: list[VectorRecord]) -> None:
        if not records:
            return
        rows = [self._row(r.id, r.vector, r.metadata) for r in records]
        self._run(
            "upsert",
            lambda: (
                self.table.merge_insert("id")
                .when_matched_update_all()
                .when_not_matched_insert_all()
                .execute(rows)
            ),
        )

    async def get(self, id: uuid.UUID) -> tuple[list[float], VectorInfo]:
        rows = self._run(
            "get", lambda: self.table.search().where(_quote_id(id)).limit(1).to_list()
        )
        if not rows:
            raise NotFoundError(f"vector not found: {id}")
        result = self._result(rows[0])
        return result.vector, VectorInfo(id=id, dimension=len(result.vector), metadata=result.metadata)

    async def delete(self, id: uuid.UUID) -> None:
        if not await self.exists(id):
            raise NotFoundError(f"vector not found: {id}")
        self._run("delete", lambda: self.table.delete(_quote_id(id)))

    async def delete_batch(self, ids: list[uuid.UUID]) -> None:
        if not ids:
            return
        members = ", ".join(f"'{i}'" for i in ids)
        self._run("delete_batch", lambda: self.table.delete(f"id IN ({members})"))

    def _nearest(self, vector: list[float], k: int, where: Optional[str]) -> list[dict[str, Any]]:
        query = self.table.search(vector).distance_type(_DISTANCE_TYPES[self.config.metric])
        if where:
            query = query.where(where, prefilter=True)
        limit = k if k > 0 else max(self.table.count_rows(), 1)
        return query.limit(limit).to_list()

    async def search(
        self,
        vector: list[float],
        k: int,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[VectorResult]:
        validate_vector(vector, self.config.dimension)
        promoted = {f: v for f, v in (filter or {}).items() if f in self._columns}
        rest = {f: v for f, v in (filter or {}).items() if f not in self._columns}
        where = " AND ".join(
            f"{f} IS NULL" if v is None else f"{f} = {sql_literal(v)}"
            for f, v in promoted.items()
        )
        rows = self._run("search", lambda: self._nearest(vector, 0 if rest else k, where or None))
        results = []
        for row in rows:
            if rest and not matches_equality(decode_metadata(row.get("metadata")), rest):
                continue
            results.append(self._result(row, float(row.get("_distance", 0.0))))
            if k > 0 and len(results) >= k:
                break
        return results

    async def query(
        self,
        vector: list[float],
        k: int,
        filter: Optional[Filter] = None,
    ) -> list[VectorResult]:
        validate_vector(vector, self.config.dimension)
        where = self._where(filter)
        rows = self._run("query", lambda: self._nearest(vector, k, where))
        return [self._result(row, float(row.get("_distance", 0.0))) for row in rows]

    async def filter(self, filter: Optional[Filter], limit: int = 0) -> list[VectorResult]:
        if not self.supports_filter:
            raise FilterNotSupportedError(
                "LanceDB filtering requires promoted metadata columns"
            )
        where = self._where(filter)

        def scan():
            query = self.table.search()
            if where:
                query = query.where(where)
            return query.limit(limit if limit > 0 else max(self.table.count_rows(), 1)).to_list()

        return [self._result(row) for row in self._run("filter", scan)]

    async def list(self, limit: int = 0) -> list[uuid.UUID]:
        def scan():
            n = limit if limit > 0 else max(self.table.count_rows(), 1)
            return self.table.search().select(["id"]).limit(n).to_list()

        return [uuid.UUID(row["id"]) for row in self._run("list", scan)]

    async def exists(self, id: uuid.UUID) -> bool:
        return self._run("exists", lambda: self.table.count_rows(_quote_id(id))) > 0
