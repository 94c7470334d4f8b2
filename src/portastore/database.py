"""Typed relational tables.

Rows are addressed by the record's single primary key. Every operation has
a ``*_tx`` variant that runs on a caller-owned transaction handle with the
same statements and the same error semantics; the table never begins,
commits or rolls back a transaction.

    users = Table(executor, User)
    await users.set("1", User(id="1", email="ada@example.com"))

    async with engine.begin() as tx:
        await users.set_tx(tx, "2", User(id="2", email="bob@example.com"))
        n = await users.aggregate_tx(tx, COUNT_ALL)
"""

from __future__ import annotations

import logging
from typing import Any, Generic, Optional, TypeVar

from .atomic.database import AtomicTable
from .hooks import (
    call_after_delete,
    call_after_load,
    call_after_load_all,
    call_after_save,
    call_before_delete,
    call_before_save,
)
from .interfaces import RelationalExecutor
from .schema import inspect
from .statements import (
    COUNT_ALL,
    QUERY_ALL,
    AggregateStatement,
    QueryStatement,
    SelectStatement,
    UpdateStatement,
)
from .utils import record_to_row, row_to_record

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Table(Generic[T]):
    """Type-safe relational storage for T.

    Raises NoPrimaryKeyError at construction when T declares no
    ``primarykey`` field.
    """

    def __init__(self, executor: RelationalExecutor, record_type: type):
        self.executor = executor
        self.spec = inspect(record_type)
        self.primary_key = self.spec.require_primary_key()
        self._atomic: Optional[AtomicTable] = None

    @property
    def table_name(self) -> str:
        return self.executor.table_name

    async def get(self, key: Any) -> T:
        return await self._get(key, None)

    async def set(self, key: Any, value: T) -> None:
        """Insert value, or replace every non-key column if the key exists."""
        await self._set(key, value, None)

    async def delete(self, key: Any) -> None:
        await self._delete(key, None)

    async def exists(self, key: Any) -> bool:
        return await self.executor.exists(self.spec.coerce_key(key))

    async def query(self, statement: QueryStatement = QUERY_ALL, params: Optional[dict[str, Any]] = None) -> list[T]:
        return await self._query(statement, params, None)

    async def select(self, statement: SelectStatement, params: Optional[dict[str, Any]] = None) -> T:
        return await self._select(statement, params, None)

    async def update(self, statement: UpdateStatement, params: Optional[dict[str, Any]] = None) -> T:
        return await self._update(statement, params, None)

    async def aggregate(self, statement: AggregateStatement = COUNT_ALL, params: Optional[dict[str, Any]] = None) -> float:
        return await self.executor.aggregate(statement, dict(params or {}))

    async def get_tx(self, tx: Any, key: Any) -> T:
        return await self._get(key, tx)

    async def set_tx(self, tx: Any, key: Any, value: T) -> None:
        await self._set(key, value, tx)

    async def delete_tx(self, tx: Any, key: Any) -> None:
        await self._delete(key, tx)

    async def exists_tx(self, tx: Any, key: Any) -> bool:
        return await self.executor.exists(self.spec.coerce_key(key), tx)

    async def query_tx(self, tx: Any, statement: QueryStatement = QUERY_ALL, params: Optional[dict[str, Any]] = None) -> list[T]:
        return await self._query(statement, params, tx)

    async def select_tx(self, tx: Any, statement: SelectStatement, params: Optional[dict[str, Any]] = None) -> T:
        return await self._select(statement, params, tx)

    async def update_tx(self, tx: Any, statement: UpdateStatement, params: Optional[dict[str, Any]] = None) -> T:
        return await self._update(statement, params, tx)

    async def aggregate_tx(self, tx: Any, statement: AggregateStatement = COUNT_ALL, params: Optional[dict[str, Any]] = None) -> float:
        return await self.executor.aggregate(statement, dict(params or {}), tx)

    async def _get(self, key: Any, tx: Any) -> T:
        row = await self.executor.get(self.spec.coerce_key(key), tx)
        value = row_to_record(self.spec, row)
        await call_after_load(value)
        return value

    async def _set(self, key: Any, value: T, tx: Any) -> None:
        await call_before_save(value)
        row = record_to_row(self.spec, key, value)
        await self.executor.upsert(row, tx)
        logger.debug(f"Upserted {self.spec.type_name} row {key!r}")
        await call_after_save(value)

    async def _delete(self, key: Any, tx: Any) -> None:
        key = self.spec.coerce_key(key)
        await call_before_delete(self.spec)
        await self.executor.delete(key, tx)
        logger.debug(f"Deleted {self.spec.type_name} row {key!r}")
        await call_after_delete(self.spec)

    async def _query(self, statement: QueryStatement, params: Optional[dict[str, Any]], tx: Any) -> list[T]:
        rows = await self.executor.query(statement, dict(params or {}), tx)
        values = [row_to_record(self.spec, row) for row in rows]
        await call_after_load_all(values)
        return values

    async def _select(self, statement: SelectStatement, params: Optional[dict[str, Any]], tx: Any) -> T:
        row = await self.executor.select(statement, dict(params or {}), tx)
        value = row_to_record(self.spec, row)
        await call_after_load(value)
        return value

    async def _update(self, statement: UpdateStatement, params: Optional[dict[str, Any]], tx: Any) -> T:
        row = await self.executor.update(statement, dict(params or {}), tx)
        value = row_to_record(self.spec, row)
        await call_after_load(value)
        return value

    def atomic(self) -> AtomicTable:
        if self._atomic is None:
            self._atomic = AtomicTable(self.executor, self.spec)
        return self._atomic
