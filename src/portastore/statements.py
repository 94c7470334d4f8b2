"""Declarative relational statements.

Statements describe a query by structure (conditions, ordering, paging,
aggregates) instead of SQL text; the relational executor renders them for
its dialect. Values never appear in a statement: conditions name a
parameter, and the caller supplies parameters per execution.

    by_min_age = QueryStatement(
        "by-min-age",
        where=(Condition("age", ">=", "min_age"),),
        order_by=(OrderBy("age"),),
    )
    users = await table.query(by_min_age, {"min_age": 30})
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

OPERATORS = frozenset({"=", "!=", ">", ">=", "<", "<=", "like", "in", "not in", "is null", "is not null"})

# Operators that take no parameter
NULLARY_OPERATORS = frozenset({"is null", "is not null"})


class AggregateFunc(Enum):
    COUNT = "count"
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"


@dataclass(frozen=True)
class Condition:
    """``column <operator> :param``."""
    field: str
    operator: str = "="
    param: str = ""


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: str = "asc"


@dataclass(frozen=True)
class QueryStatement:
    """Zero or more rows.

    ``limit``/``offset`` are fixed values; ``limit_param``/``offset_param``
    name parameters read at execution time instead.
    """
    name: str
    description: str = ""
    where: tuple = ()
    order_by: tuple = ()
    limit: Optional[int] = None
    offset: Optional[int] = None
    limit_param: str = ""
    offset_param: str = ""


@dataclass(frozen=True)
class SelectStatement:
    """Exactly one row."""
    name: str
    description: str = ""
    where: tuple = ()
    order_by: tuple = ()


@dataclass(frozen=True)
class UpdateStatement:
    """``set`` maps column name to the parameter holding its new value."""
    name: str
    description: str = ""
    set: dict = field(default_factory=dict)
    where: tuple = ()


@dataclass(frozen=True)
class AggregateStatement:
    """A single aggregate over ``field`` (any row for COUNT when empty)."""
    name: str
    func: AggregateFunc = AggregateFunc.COUNT
    description: str = ""
    field: str = ""
    where: tuple = ()


QUERY_ALL = QueryStatement("query", "Query all records")
COUNT_ALL = AggregateStatement("count", AggregateFunc.COUNT, "Count all records")
