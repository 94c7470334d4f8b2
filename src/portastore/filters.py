"""Structured metadata filters.

A filter is a tree over a closed set of node kinds: field conditions
(equality, ordering, membership, pattern, containment) combined with AND,
OR and NOT. Build one directly:

    f = and_(eq("category", "news"), not_(in_("lang", ["de", "fr"])))

or through a ``FilterBuilder`` that checks field names against a record
type, so typos surface as InvalidQueryError instead of empty results:

    b = FilterBuilder(Article)
    f = b.and_(b.where("category").eq("news"), b.where("views").gte(100))

Providers translate filters with a ``FilterVisitor``; every node kind a
provider does not implement raises OperatorNotSupportedError.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from .errors import InvalidQueryError, OperatorNotSupportedError
from .schema import FieldKind, inspect

R = TypeVar("R")


class Op(Enum):
    """Filter node kinds."""
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NIN = "nin"
    LIKE = "like"
    CONTAINS = "contains"
    AND = "and"
    OR = "or"
    NOT = "not"


LOGICAL_OPS = frozenset({Op.AND, Op.OR, Op.NOT})
RANGE_OPS = frozenset({Op.GT, Op.GTE, Op.LT, Op.LTE})


@dataclass(frozen=True)
class Filter:
    """One node of a filter tree.

    Attributes:
        op: Node kind.
        field: Metadata field name (conditions only).
        value: Comparison operand (conditions only).
        children: Sub-filters (AND, OR, NOT only).
        errors: Validation errors recorded while building this node.
    """
    op: Op
    field: str = ""
    value: Any = None
    children: tuple = ()
    errors: tuple = ()

    @property
    def is_logical(self) -> bool:
        return self.op in LOGICAL_OPS

    def err(self) -> Optional[str]:
        """First validation error in the tree, or None."""
        if self.errors:
            return self.errors[0]
        if self.op is Op.NOT and len(self.children) != 1:
            return "NOT requires exactly one child"
        if self.op in (Op.AND, Op.OR) and not self.children:
            return f"{self.op.value.upper()} requires at least one child"
        if not self.is_logical and not self.field:
            return f"{self.op.value} condition requires a field"
        if self.op in (Op.IN, Op.NIN) and not isinstance(self.value, (list, tuple)):
            return f"{self.op.value} on {self.field!r} requires a list of values"
        if self.op is Op.LIKE and not isinstance(self.value, str):
            return f"like on {self.field!r} requires a string pattern"
        for child in self.children:
            error = child.err()
            if error:
                return error
        return None

    def validate(self) -> None:
        """Raise InvalidQueryError if the tree is invalid."""
        error = self.err()
        if error:
            raise InvalidQueryError(error)


def eq(field: str, value: Any) -> Filter:
    return Filter(Op.EQ, field, value)


def ne(field: str, value: Any) -> Filter:
    return Filter(Op.NE, field, value)


def gt(field: str, value: Any) -> Filter:
    return Filter(Op.GT, field, value)


def gte(field: str, value: Any) -> Filter:
    return Filter(Op.GTE, field, value)


def lt(field: str, value: Any) -> Filter:
    return Filter(Op.LT, field, value)


def lte(field: str, value: Any) -> Filter:
    return Filter(Op.LTE, field, value)


def in_(field: str, values: Any) -> Filter:
    return Filter(Op.IN, field, list(values) if isinstance(values, (list, tuple, set)) else values)


def nin(field: str, values: Any) -> Filter:
    return Filter(Op.NIN, field, list(values) if isinstance(values, (list, tuple, set)) else values)


def like(field: str, pattern: str) -> Filter:
    """SQL-style pattern: ``%`` matches any run, ``_`` one character."""
    return Filter(Op.LIKE, field, pattern)


def contains(field: str, value: Any) -> Filter:
    """List membership, or substring match for string fields."""
    return Filter(Op.CONTAINS, field, value)


def and_(*children: Filter) -> Filter:
    return Filter(Op.AND, children=tuple(children))


def or_(*children: Filter) -> Filter:
    return Filter(Op.OR, children=tuple(children))


def not_(child: Filter) -> Filter:
    return Filter(Op.NOT, children=(child,))


_NUMERIC_KINDS = {FieldKind.INT, FieldKind.FLOAT}
_LIST_KINDS = {FieldKind.INT_LIST, FieldKind.FLOAT_LIST, FieldKind.STRING_LIST, FieldKind.BOOL_LIST}


class FieldCondition:
    """Conditions on one field of a FilterBuilder's record type."""

    def __init__(self, name: str, json_name: str, kind: Optional[FieldKind], error: Optional[str]):
        self._name = name
        self._json_name = json_name
        self._kind = kind
        self._error = error

    def _make(self, op: Op, value: Any) -> Filter:
        errors = []
        if self._error:
            errors.append(self._error)
        elif op in RANGE_OPS and self._kind not in _NUMERIC_KINDS | {FieldKind.STRING, FieldKind.TIME}:
            errors.append(f"{op.value} is not valid for field {self._name!r}")
        elif op is Op.LIKE and self._kind is not FieldKind.STRING:
            errors.append(f"like requires a string field, {self._name!r} is not")
        elif op is Op.CONTAINS and self._kind not in _LIST_KINDS | {FieldKind.STRING}:
            errors.append(f"contains requires a list or string field, {self._name!r} is not")
        return Filter(op, self._json_name, value, errors=tuple(errors))

    def eq(self, value: Any) -> Filter:
        return self._make(Op.EQ, value)

    def ne(self, value: Any) -> Filter:
        return self._make(Op.NE, value)

    def gt(self, value: Any) -> Filter:
        return self._make(Op.GT, value)

    def gte(self, value: Any) -> Filter:
        return self._make(Op.GTE, value)

    def lt(self, value: Any) -> Filter:
        return self._make(Op.LT, value)

    def lte(self, value: Any) -> Filter:
        return self._make(Op.LTE, value)

    def in_(self, values: Any) -> Filter:
        return self._make(Op.IN, list(values))

    def nin(self, values: Any) -> Filter:
        return self._make(Op.NIN, list(values))

    def like(self, pattern: str) -> Filter:
        return self._make(Op.LIKE, pattern)

    def contains(self, value: Any) -> Filter:
        return self._make(Op.CONTAINS, value)


class FilterBuilder:
    """Builds filters whose field names are checked against a record type.

    Conditions address fields by declared name; the resulting filter uses
    the codec (``json``) names, which is how metadata is stored.
    """

    def __init__(self, record_type: type):
        self.spec = inspect(record_type)

    def where(self, name: str) -> FieldCondition:
        f = self.spec.field(name)
        if f is None:
            return FieldCondition(
                name, name, None, f"unknown field {name!r} for {self.spec.type_name}"
            )
        return FieldCondition(name, f.json_name, f.kind, None)

    def and_(self, *children: Filter) -> Filter:
        return and_(*children)

    def or_(self, *children: Filter) -> Filter:
        return or_(*children)

    def not_(self, child: Filter) -> Filter:
        return not_(child)


class FilterVisitor(Generic[R]):
    """Dispatches on filter node kind.

    Subclasses override the ``visit_*`` methods for the nodes they can
    translate. The defaults raise OperatorNotSupportedError naming the
    provider, so unsupported clauses fail instead of being dropped.
    """

    provider_name = "provider"

    def visit(self, node: Filter) -> R:
        method = getattr(self, f"visit_{node.op.value}")
        return method(node)

    def unsupported(self, node: Filter) -> OperatorNotSupportedError:
        return OperatorNotSupportedError(
            f"{self.provider_name} does not support the {node.op.value} operator"
        )

    def visit_eq(self, node: Filter) -> R:
        raise self.unsupported(node)

    def visit_ne(self, node: Filter) -> R:
        raise self.unsupported(node)

    def visit_gt(self, node: Filter) -> R:
        raise self.unsupported(node)

    def visit_gte(self, node: Filter) -> R:
        raise self.unsupported(node)

    def visit_lt(self, node: Filter) -> R:
        raise self.unsupported(node)

    def visit_lte(self, node: Filter) -> R:
        raise self.unsupported(node)

    def visit_in(self, node: Filter) -> R:
        raise self.unsupported(node)

    def visit_nin(self, node: Filter) -> R:
        raise self.unsupported(node)

    def visit_like(self, node: Filter) -> R:
        raise self.unsupported(node)

    def visit_contains(self, node: Filter) -> R:
        raise self.unsupported(node)

    def visit_and(self, node: Filter) -> R:
        raise self.unsupported(node)

    def visit_or(self, node: Filter) -> R:
        raise self.unsupported(node)

    def visit_not(self, node: Filter) -> R:
        raise self.unsupported(node)


_MISSING = object()


def lookup(metadata: Any, path: str) -> Any:
    """Resolve a dotted path in nested dicts; returns a sentinel if absent."""
    current = metadata
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def like_to_regex(pattern: str) -> "re.Pattern[str]":
    parts = []
    for ch in pattern:
        if ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("^" + "".join(parts) + "$", re.DOTALL)


class MetadataMatcher(FilterVisitor[bool]):
    """Evaluates a filter against one decoded metadata dict.

    Supports every node kind. Absent fields never satisfy a condition except
    NE and NIN; comparisons between incompatible types are false.
    """

    provider_name = "memory"

    def __init__(self, metadata: Optional[dict[str, Any]]):
        self.metadata = metadata or {}

    def _value(self, node: Filter) -> Any:
        return lookup(self.metadata, node.field)

    def _compare(self, node: Filter, fn) -> bool:
        value = self._value(node)
        if value is _MISSING or value is None:
            return False
        try:
            return bool(fn(value, node.value))
        except TypeError:
            return False

    def visit_eq(self, node: Filter) -> bool:
        value = self._value(node)
        return value is not _MISSING and value == node.value

    def visit_ne(self, node: Filter) -> bool:
        value = self._value(node)
        return value is _MISSING or value != node.value

    def visit_gt(self, node: Filter) -> bool:
        return self._compare(node, lambda a, b: a > b)

    def visit_gte(self, node: Filter) -> bool:
        return self._compare(node, lambda a, b: a >= b)

    def visit_lt(self, node: Filter) -> bool:
        return self._compare(node, lambda a, b: a < b)

    def visit_lte(self, node: Filter) -> bool:
        return self._compare(node, lambda a, b: a <= b)

    def visit_in(self, node: Filter) -> bool:
        value = self._value(node)
        return value is not _MISSING and value in node.value

    def visit_nin(self, node: Filter) -> bool:
        value = self._value(node)
        return value is _MISSING or value not in node.value

    def visit_like(self, node: Filter) -> bool:
        value = self._value(node)
        if not isinstance(value, str):
            return False
        return like_to_regex(node.value).match(value) is not None

    def visit_contains(self, node: Filter) -> bool:
        value = self._value(node)
        if isinstance(value, list):
            return node.value in value
        if isinstance(value, str) and isinstance(node.value, str):
            return node.value in value
        return False

    def visit_and(self, node: Filter) -> bool:
        return all(self.visit(child) for child in node.children)

    def visit_or(self, node: Filter) -> bool:
        return any(self.visit(child) for child in node.children)

    def visit_not(self, node: Filter) -> bool:
        return not self.visit(node.children[0])


def matches(filter: Optional[Filter], metadata: Optional[dict[str, Any]]) -> bool:
    """True when metadata satisfies filter; a None filter matches everything."""
    if filter is None:
        return True
    return MetadataMatcher(metadata).visit(filter)
