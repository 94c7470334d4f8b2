"""Relational executor on SQLAlchemy's asyncio extension.

One executor serves one table, derived from the record's Spec. Statements are
rendered with the SQLAlchemy expression language, so the same statement runs
on any dialect with an async driver (aiosqlite, asyncpg, aiomysql).

Transactions are caller-owned ``AsyncConnection`` objects:

    async with engine.begin() as tx:
        await executor.upsert(row, tx)

Without a handle each call runs in its own ``engine.begin()`` block.
"""

from __future__ import annotations

import logging
import re
import time
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Iterator, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Float,
    LargeBinary,
    MetaData,
    String,
    Table,
    Text,
    delete,
    func,
    insert,
    literal,
    select,
    text,
    update,
)
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from ..config.providers import RelationalConfig
from ..errors import (
    ConflictError,
    ConstraintError,
    DuplicateError,
    InvalidQueryError,
    NotFoundError,
    ReadOnlyError,
    StorageError,
)
from ..interfaces import ProviderHealth, ProviderStatus, RelationalExecutor
from ..schema import FieldKind, FieldSpec, Spec, inspect
from ..statements import (
    NULLARY_OPERATORS,
    OPERATORS,
    AggregateFunc,
    AggregateStatement,
    Condition,
    QueryStatement,
    SelectStatement,
    UpdateStatement,
)

logger = logging.getLogger(__name__)


class ISODateTime(TypeDecorator):
    """Datetimes stored as ISO-8601 text, preserving the UTC offset."""

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.isoformat()
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, datetime):
            return value
        return datetime.fromisoformat(value)


_COLUMN_TYPES = {
    FieldKind.INT: BigInteger,
    FieldKind.FLOAT: Float,
    FieldKind.BOOL: Boolean,
    FieldKind.BYTES: LargeBinary,
    FieldKind.TIME: ISODateTime,
}


def default_table_name(record_type: type) -> str:
    """``UserProfile`` -> ``user_profile``."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", record_type.__name__).lower()


def column_type(f: FieldSpec):
    if f.kind is FieldKind.STRING:
        # Keys and unique columns need a bounded length on MySQL
        if f.primary_key or f.unique:
            return String(255)
        return Text()
    if f.kind in _COLUMN_TYPES:
        return _COLUMN_TYPES[f.kind]()
    return Text()


def build_table(spec: Spec, name: str, metadata: MetaData) -> Table:
    """SQLAlchemy table for the stored fields of spec."""
    columns = []
    for f in spec.fields:
        if f.column is None:
            continue
        columns.append(Column(
            f.column,
            column_type(f),
            primary_key=f.primary_key,
            autoincrement=False,
            nullable=not f.not_null,
            unique=f.unique and not f.primary_key,
        ))
    return Table(name, metadata, *columns)


def create_engine(config: RelationalConfig) -> AsyncEngine:
    """Async engine for config.url.

    In-memory SQLite databases live per connection, so they get a single
    shared connection.
    """
    if config.url.startswith("sqlite") and (":memory:" in config.url or config.url.endswith("://")):
        return create_async_engine(config.url, echo=config.echo, poolclass=StaticPool)
    return create_async_engine(config.url, echo=config.echo)


@contextmanager
def _mapped_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as e:
        message = str(e.orig).lower()
        if "unique" in message or "duplicate" in message:
            raise DuplicateError(f"{operation} failed: {e.orig}") from e
        raise ConstraintError(f"{operation} failed: {e.orig}") from e
    except OperationalError as e:
        message = str(e.orig).lower()
        if "readonly" in message or "read-only" in message or "read only" in message:
            raise ReadOnlyError(f"{operation} failed: {e.orig}") from e
        if "deadlock" in message or "could not serialize" in message or "locked" in message:
            raise ConflictError(f"{operation} failed: {e.orig}") from e
        raise StorageError(f"{operation} failed: {e.orig}") from e
    except DBAPIError as e:
        raise StorageError(f"{operation} failed: {e.orig}") from e
    except SQLAlchemyError as e:
        raise StorageError(f"{operation} failed: {e}") from e


def _param_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_param_value(v) for v in value]
    return value


class SQLAlchemyExecutor(RelationalExecutor[RelationalConfig]):
    """Executes rows and statements for one record table."""

    def __init__(
        self,
        config: RelationalConfig,
        record_type: type,
        table_name: Optional[str] = None,
        engine: Optional[AsyncEngine] = None,
    ):
        super().__init__(config)
        self.spec = inspect(record_type)
        self.primary_key = self.spec.require_primary_key()
        self.table = build_table(
            self.spec, table_name or default_table_name(record_type), MetaData()
        )
        self._engine = engine
        self._owns_engine = engine is None

    @property
    def table_name(self) -> str:
        return self.table.name

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise StorageError("Relational executor not initialized")
        return self._engine

    async def initialize(self) -> None:
        if self._engine is None:
            self._engine = create_engine(self.config)
        if self.config.create_tables:
            await self.create_table()
        self._initialized = True
        logger.info(f"Relational executor ready: table={self.table_name}")

    async def shutdown(self) -> None:
        if self._engine is not None and self._owns_engine:
            await self._engine.dispose()
            self._engine = None
        self._initialized = False

    async def health_check(self) -> ProviderHealth:
        if self._engine is None:
            return ProviderHealth(
                status=ProviderStatus.UNAVAILABLE,
                message="Engine not initialized",
            )
        try:
            start = time.perf_counter()
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            latency = (time.perf_counter() - start) * 1000
            return ProviderHealth(status=ProviderStatus.HEALTHY, latency_ms=latency)
        except SQLAlchemyError as e:
            return ProviderHealth(status=ProviderStatus.UNAVAILABLE, message=str(e))

    async def create_table(self) -> None:
        with _mapped_errors(f"create table {self.table_name}"):
            async with self.engine.begin() as conn:
                await conn.run_sync(lambda sync_conn: self.table.create(sync_conn, checkfirst=True))

    async def drop_table(self) -> None:
        with _mapped_errors(f"drop table {self.table_name}"):
            async with self.engine.begin() as conn:
                await conn.run_sync(lambda sync_conn: self.table.drop(sync_conn, checkfirst=True))

    @asynccontextmanager
    async def _connection(self, tx: Optional[AsyncConnection]) -> AsyncIterator[AsyncConnection]:
        if tx is not None:
            yield tx
            return
        async with self.engine.begin() as conn:
            yield conn

    # -- statement rendering ---------------------------------------------------

    def _column(self, name: str):
        f = self.spec.resolve(name)
        if f is None or f.column is None:
            raise InvalidQueryError(f"unknown column {name!r} for table {self.table_name}")
        return self.table.c[f.column]

    @staticmethod
    def _param(params: dict[str, Any], name: str, statement_name: str) -> Any:
        if name not in params:
            raise InvalidQueryError(f"statement {statement_name!r} requires parameter {name!r}")
        return _param_value(params[name])

    def _condition(self, condition: Condition, params: dict[str, Any], statement_name: str):
        operator = condition.operator.lower()
        if operator not in OPERATORS:
            raise InvalidQueryError(f"unsupported operator {condition.operator!r}")
        column = self._column(condition.field)
        if operator in NULLARY_OPERATORS:
            return column.is_(None) if operator == "is null" else column.is_not(None)
        value = self._param(params, condition.param, statement_name)
        if operator in ("in", "not in"):
            if not isinstance(value, list):
                raise InvalidQueryError(f"parameter {condition.param!r} must be a list")
            return column.in_(value) if operator == "in" else column.not_in(value)
        if operator == "like":
            return column.like(value)
        return _COMPARATORS[operator](column, value)

    def _where(self, statement, params: dict[str, Any]) -> list:
        return [self._condition(c, params, statement.name) for c in statement.where]

    def _order_by(self, statement) -> list:
        clauses = []
        for order in statement.order_by:
            direction = order.direction.lower()
            if direction not in ("asc", "desc"):
                raise InvalidQueryError(f"invalid order direction {order.direction!r}")
            column = self._column(order.field)
            clauses.append(column.asc() if direction == "asc" else column.desc())
        return clauses

    @staticmethod
    def _bound(fixed: Optional[int], param: str, params: dict[str, Any], label: str) -> Optional[int]:
        if param:
            if param not in params:
                raise InvalidQueryError(f"missing {label} parameter {param!r}")
            value = params[param]
        else:
            value = fixed
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidQueryError(f"{label} must be a non-negative integer")
        return value

    def _key_clause(self, key: Any):
        return self.table.c[self.primary_key.column] == key

    # -- rows --------------------------------------------------------------------

    async def get(self, key: Any, tx: Any = None) -> dict[str, Any]:
        with _mapped_errors(f"get {self.table_name}"):
            async with self._connection(tx) as conn:
                result = await conn.execute(select(self.table).where(self._key_clause(key)))
                row = result.mappings().first()
        if row is None:
            raise NotFoundError(f"{self.table_name}: no row with key {key!r}")
        return dict(row)

    def _upsert_statement(self, conn: AsyncConnection, row: dict[str, Any]):
        pk = self.primary_key.column
        dialect = conn.dialect.name
        if dialect in ("sqlite", "postgresql"):
            stmt = (sqlite_insert if dialect == "sqlite" else postgresql_insert)(self.table).values(row)
            changes = {c: stmt.excluded[c] for c in row if c != pk}
            if not changes:
                return stmt.on_conflict_do_nothing(index_elements=[pk])
            return stmt.on_conflict_do_update(index_elements=[pk], set_=changes)
        if dialect in ("mysql", "mariadb"):
            stmt = mysql_insert(self.table).values(row)
            changes = {c: stmt.inserted[c] for c in row if c != pk}
            return stmt.on_duplicate_key_update(**(changes or {pk: stmt.inserted[pk]}))
        return None

    async def upsert(self, row: dict[str, Any], tx: Any = None) -> None:
        pk = self.primary_key.column
        with _mapped_errors(f"upsert {self.table_name}"):
            async with self._connection(tx) as conn:
                stmt = self._upsert_statement(conn, row)
                if stmt is not None:
                    await conn.execute(stmt)
                    return
                changes = {c: v for c, v in row.items() if c != pk}
                if changes:
                    result = await conn.execute(
                        update(self.table).where(self._key_clause(row[pk])).values(**changes)
                    )
                    if result.rowcount:
                        return
                elif await self._exists(conn, row[pk]):
                    return
                await conn.execute(insert(self.table).values(row))

    async def delete(self, key: Any, tx: Any = None) -> None:
        with _mapped_errors(f"delete {self.table_name}"):
            async with self._connection(tx) as conn:
                result = await conn.execute(delete(self.table).where(self._key_clause(key)))
        if result.rowcount == 0:
            raise NotFoundError(f"{self.table_name}: no row with key {key!r}")

    async def _exists(self, conn: AsyncConnection, key: Any) -> bool:
        result = await conn.execute(
            select(literal(1)).select_from(self.table).where(self._key_clause(key)).limit(1)
        )
        return result.scalar() is not None

    async def exists(self, key: Any, tx: Any = None) -> bool:
        with _mapped_errors(f"exists {self.table_name}"):
            async with self._connection(tx) as conn:
                return await self._exists(conn, key)

    # -- statements ----------------------------------------------------------

    async def query(
        self, statement: QueryStatement, params: dict[str, Any], tx: Any = None
    ) -> list[dict[str, Any]]:
        stmt = select(self.table).where(*self._where(statement, params))
        stmt = stmt.order_by(*self._order_by(statement))
        limit = self._bound(statement.limit, statement.limit_param, params, "limit")
        offset = self._bound(statement.offset, statement.offset_param, params, "offset")
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        with _mapped_errors(f"query {statement.name}"):
            async with self._connection(tx) as conn:
                result = await conn.execute(stmt)
                return [dict(row) for row in result.mappings()]

    async def select(
        self, statement: SelectStatement, params: dict[str, Any], tx: Any = None
    ) -> dict[str, Any]:
        stmt = (
            select(self.table)
            .where(*self._where(statement, params))
            .order_by(*self._order_by(statement))
            .limit(1)
        )
        with _mapped_errors(f"select {statement.name}"):
            async with self._connection(tx) as conn:
                result = await conn.execute(stmt)
                row = result.mappings().first()
        if row is None:
            raise NotFoundError(f"{self.table_name}: {statement.name} matched no rows")
        return dict(row)

    async def update(
        self, statement: UpdateStatement, params: dict[str, Any], tx: Any = None
    ) -> dict[str, Any]:
        if not statement.set:
            raise InvalidQueryError(f"statement {statement.name!r} sets no columns")
        values = {
            self._column(column).name: self._param(params, param, statement.name)
            for column, param in statement.set.items()
        }
        where = self._where(statement, params)
        with _mapped_errors(f"update {statement.name}"):
            async with self._connection(tx) as conn:
                stmt = update(self.table).where(*where).values(**values)
                if conn.dialect.update_returning:
                    result = await conn.execute(stmt.returning(*self.table.c))
                    row = result.mappings().first()
                else:
                    # The update may rewrite the columns in where, so rows are
                    # located by primary key before and after it
                    pk = self.table.c[self.primary_key.column]
                    keys = (await conn.execute(select(pk).where(*where))).scalars().all()
                    row = None
                    if keys:
                        await conn.execute(
                            update(self.table).where(pk.in_(keys)).values(**values)
                        )
                        first = values.get(pk.name, keys[0])
                        found = await conn.execute(select(self.table).where(pk == first))
                        row = found.mappings().first()
        if row is None:
            raise NotFoundError(f"{self.table_name}: {statement.name} matched no rows")
        return dict(row)

    async def aggregate(
        self, statement: AggregateStatement, params: dict[str, Any], tx: Any = None
    ) -> float:
        if statement.field:
            column = self._column(statement.field)
        elif statement.func is AggregateFunc.COUNT:
            column = None
        else:
            raise InvalidQueryError(f"{statement.func.value} requires a field")
        if column is None:
            expression = func.count()
        else:
            expression = getattr(func, statement.func.value)(column)
        stmt = select(expression).select_from(self.table).where(*self._where(statement, params))
        with _mapped_errors(f"aggregate {statement.name}"):
            async with self._connection(tx) as conn:
                value = (await conn.execute(stmt)).scalar()
        return float(value) if value is not None else 0.0


_COMPARATORS = {
    "=": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
}
