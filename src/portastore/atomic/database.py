"""Atom-typed relational tables."""

from typing import Any, Optional

from ..atom import Atom, Atomizer
from ..interfaces import RelationalExecutor
from ..schema import Spec
from ..statements import QUERY_ALL, QueryStatement, SelectStatement
from ..utils import record_to_row, row_to_record
from .store import deatomize_for_write


class AtomicTable:
    """Relational access through Atoms, sharing the typed Table's rows.

    ``set`` issues the same full-replace upsert as ``Table.set``. The
    ``*_tx`` variants take a caller-owned transaction handle and behave
    exactly like their non-transactional counterparts.
    """

    def __init__(self, executor: RelationalExecutor, spec: Spec):
        spec.require_primary_key()
        self.executor = executor
        self.spec = spec
        self._atomizer = Atomizer.from_spec(spec)

    def _atom(self, row: dict[str, Any]) -> Atom:
        return self._atomizer.atomize(row_to_record(self.spec, row))

    async def _get(self, key: Any, tx: Any) -> Atom:
        return self._atom(await self.executor.get(self.spec.coerce_key(key), tx))

    async def _set(self, key: Any, atom: Atom, tx: Any) -> None:
        value = deatomize_for_write(self._atomizer, atom)
        await self.executor.upsert(record_to_row(self.spec, key, value), tx)

    async def _query(self, statement: QueryStatement, params: Optional[dict[str, Any]], tx: Any) -> list[Atom]:
        rows = await self.executor.query(statement, dict(params or {}), tx)
        return [self._atom(row) for row in rows]

    async def _select(self, statement: SelectStatement, params: Optional[dict[str, Any]], tx: Any) -> Atom:
        return self._atom(await self.executor.select(statement, dict(params or {}), tx))

    async def get(self, key: Any) -> Atom:
        return await self._get(key, None)

    async def set(self, key: Any, atom: Atom) -> None:
        await self._set(key, atom, None)

    async def delete(self, key: Any) -> None:
        await self.executor.delete(self.spec.coerce_key(key))

    async def exists(self, key: Any) -> bool:
        return await self.executor.exists(self.spec.coerce_key(key))

    async def query(self, statement: QueryStatement = QUERY_ALL, params: Optional[dict[str, Any]] = None) -> list[Atom]:
        return await self._query(statement, params, None)

    async def select(self, statement: SelectStatement, params: Optional[dict[str, Any]] = None) -> Atom:
        return await self._select(statement, params, None)

    async def get_tx(self, tx: Any, key: Any) -> Atom:
        return await self._get(key, tx)

    async def set_tx(self, tx: Any, key: Any, atom: Atom) -> None:
        await self._set(key, atom, tx)

    async def delete_tx(self, tx: Any, key: Any) -> None:
        await self.executor.delete(self.spec.coerce_key(key), tx)

    async def exists_tx(self, tx: Any, key: Any) -> bool:
        return await self.executor.exists(self.spec.coerce_key(key), tx)

    async def query_tx(self, tx: Any, statement: QueryStatement = QUERY_ALL, params: Optional[dict[str, Any]] = None) -> list[Atom]:
        return await self._query(statement, params, tx)

    async def select_tx(self, tx: Any, statement: SelectStatement, params: Optional[dict[str, Any]] = None) -> Atom:
        return await self._select(statement, params, tx)
