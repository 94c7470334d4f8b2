"""Record schema derivation.

A record type is a dataclass. Per-field storage options are declared in
``dataclasses.field(metadata=...)``:

    @dataclass
    class User:
        id: str = field(metadata={"db": "user_id", "constraints": "primarykey"})
        name: str = field(default="", metadata={"constraints": "notnull"})
        email: Optional[str] = field(default=None, metadata={"json": "mail"})

``inspect`` turns such a type into a ``Spec``: an immutable fact sheet that is
derived once per type and shared by the typed facades, the codec, and the
atomizer. The Spec also knows how to move values between the record, plain
JSON-compatible dicts, and relational rows.
"""

import base64
import binascii
import dataclasses
import functools
import json
import threading
import types
import typing
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .errors import DecodeError, InvalidKeyError, MultiplePrimaryKeysError, NoPrimaryKeyError

PRIMARY_KEY = "primarykey"
NOT_NULL = "notnull"
UNIQUE = "unique"

ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)


class FieldKind(Enum):
    """Storage kind of a record field; selects its Atom partition."""
    INT = "int"
    FLOAT = "float"
    STRING = "string"
    BOOL = "bool"
    BYTES = "bytes"
    TIME = "time"
    INT_LIST = "int_list"
    FLOAT_LIST = "float_list"
    STRING_LIST = "string_list"
    BOOL_LIST = "bool_list"
    STRING_MAP = "string_map"
    NESTED = "nested"


_SCALAR_KINDS = {
    int: FieldKind.INT,
    float: FieldKind.FLOAT,
    str: FieldKind.STRING,
    bool: FieldKind.BOOL,
    bytes: FieldKind.BYTES,
    datetime: FieldKind.TIME,
}

_LIST_KINDS = {
    int: FieldKind.INT_LIST,
    float: FieldKind.FLOAT_LIST,
    str: FieldKind.STRING_LIST,
    bool: FieldKind.BOOL_LIST,
}

# Kinds stored as JSON text in relational rows.
_JSON_COLUMN_KINDS = {
    FieldKind.INT_LIST,
    FieldKind.FLOAT_LIST,
    FieldKind.STRING_LIST,
    FieldKind.BOOL_LIST,
    FieldKind.STRING_MAP,
    FieldKind.NESTED,
}


@dataclass(frozen=True)
class FieldSpec:
    """Schema facts for one declared field.

    Attributes:
        name: Declared attribute name; the key used by Atoms.
        column: Storage column name, or None when excluded with ``db: "-"``.
        json_name: Key used by the JSON codec.
        kind: Storage kind.
        nullable: True for ``Optional[...]`` fields.
        constraints: Parsed ``constraints`` metadata.
        enum_type: Enum class when the field holds enum members.
        nested: Spec of a nested record type.
    """
    name: str
    column: Optional[str]
    json_name: str
    kind: FieldKind
    nullable: bool
    constraints: frozenset
    init: bool = True
    has_default: bool = False
    enum_type: Optional[type] = None
    nested: Optional["Spec"] = None

    @property
    def primary_key(self) -> bool:
        return PRIMARY_KEY in self.constraints

    @property
    def not_null(self) -> bool:
        return NOT_NULL in self.constraints or self.primary_key

    @property
    def unique(self) -> bool:
        return UNIQUE in self.constraints

    def zero(self) -> Any:
        """Zero value of this field (None when nullable)."""
        if self.nullable:
            return None
        if self.enum_type is not None:
            return next(iter(self.enum_type))
        if self.kind is FieldKind.NESTED:
            return self.nested.zero()
        return _ZERO_VALUES[self.kind]()


_ZERO_VALUES = {
    FieldKind.INT: int,
    FieldKind.FLOAT: float,
    FieldKind.STRING: str,
    FieldKind.BOOL: bool,
    FieldKind.BYTES: bytes,
    FieldKind.TIME: lambda: ZERO_TIME,
    FieldKind.INT_LIST: list,
    FieldKind.FLOAT_LIST: list,
    FieldKind.STRING_LIST: list,
    FieldKind.BOOL_LIST: list,
    FieldKind.STRING_MAP: dict,
}


@dataclass(frozen=True)
class Spec:
    """Immutable schema of a record type.

    Attributes:
        type_name: Class name.
        module: Module qualifier of the class.
        record_type: The dataclass itself.
        fields: Ordered field specs, in declaration order.
    """
    type_name: str
    module: str
    record_type: type
    fields: tuple

    @property
    def qualified_name(self) -> str:
        return f"{self.module}.{self.type_name}"

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    @property
    def primary_key(self) -> Optional[FieldSpec]:
        for f in self.fields:
            if f.primary_key:
                return f
        return None

    def require_primary_key(self) -> FieldSpec:
        """Return the primary key field, or raise NoPrimaryKeyError."""
        pk = self.primary_key
        if pk is None or pk.column is None:
            raise NoPrimaryKeyError(f"{self.qualified_name} has no primarykey field")
        return pk

    def field(self, name: str) -> Optional[FieldSpec]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def by_column(self, column: str) -> Optional[FieldSpec]:
        for f in self.fields:
            if f.column == column:
                return f
        return None

    def resolve(self, name: str) -> Optional[FieldSpec]:
        """Find a field by declared name, falling back to column name."""
        return self.field(name) or self.by_column(name)

    @property
    def columns(self) -> list[str]:
        return [f.column for f in self.fields if f.column is not None]

    def zero(self) -> Any:
        """Build the zero value of the record, bypassing ``__init__``."""
        value = object.__new__(self.record_type)
        for f in self.fields:
            object.__setattr__(value, f.name, f.zero())
        return value

    def coerce_key(self, key: Any) -> Any:
        """Convert a string key to the primary key's Python type."""
        pk = self.require_primary_key()
        if key is None or key == "":
            raise InvalidKeyError("key cannot be empty")
        if pk.kind is FieldKind.INT and not isinstance(key, int):
            try:
                return int(key)
            except (TypeError, ValueError) as e:
                raise InvalidKeyError(f"key {key!r} is not a valid {pk.name}") from e
        if pk.kind is FieldKind.STRING and not isinstance(key, str):
            return str(key)
        return key

    # -- JSON-compatible dicts -------------------------------------------------

    def to_primitive(self, value: Any) -> dict[str, Any]:
        """Convert a record into a JSON-compatible dict keyed by json names."""
        out = {}
        for f in self.fields:
            out[f.json_name] = _to_primitive(f, getattr(value, f.name))
        return out

    def from_primitive(self, data: Any) -> Any:
        """Build a record from a JSON-compatible dict.

        Raises DecodeError when a required field is missing or a value
        does not match the declared kind.
        """
        if not isinstance(data, dict):
            raise DecodeError(
                f"{self.qualified_name}: expected an object, got {type(data).__name__}"
            )
        values = {}
        for f in self.fields:
            if f.json_name not in data:
                if f.has_default:
                    continue
                if f.nullable:
                    values[f.name] = None
                    continue
                raise DecodeError(f"{self.qualified_name}: missing field {f.json_name!r}")
            values[f.name] = _from_primitive(self, f, data[f.json_name])
        return self.build(values)

    # -- relational rows -------------------------------------------------------

    def to_row(self, value: Any) -> dict[str, Any]:
        """Convert a record into a row keyed by column name."""
        row = {}
        for f in self.fields:
            if f.column is None:
                continue
            v = getattr(value, f.name)
            if v is None:
                row[f.column] = None
            elif f.kind in _JSON_COLUMN_KINDS:
                row[f.column] = json.dumps(_to_primitive(f, v))
            elif f.enum_type is not None:
                row[f.column] = v.value
            else:
                row[f.column] = v
        return row

    def from_row(self, row: Any) -> Any:
        """Build a record from a row mapping keyed by column name."""
        values = {}
        for f in self.fields:
            if f.column is None or f.column not in row:
                if f.has_default:
                    continue
                values[f.name] = f.zero()
                continue
            raw = row[f.column]
            if raw is not None and f.kind in _JSON_COLUMN_KINDS and isinstance(raw, str):
                try:
                    raw = json.loads(raw)
                except ValueError as e:
                    raise DecodeError(
                        f"{self.qualified_name}: column {f.column!r} is not valid JSON"
                    ) from e
            if raw is not None and f.kind is FieldKind.TIME and isinstance(raw, datetime):
                values[f.name] = raw
                continue
            if raw is not None and f.kind is FieldKind.BOOL and isinstance(raw, int):
                raw = bool(raw)
            if raw is not None and f.kind is FieldKind.BYTES and isinstance(raw, (bytes, memoryview)):
                values[f.name] = bytes(raw)
                continue
            values[f.name] = _from_primitive(self, f, raw)
        return self.build(values)

    def build(self, values: dict[str, Any]) -> Any:
        """Construct the record from declared-name values."""
        init_args = {}
        late = {}
        for f in self.fields:
            if f.name not in values:
                continue
            if f.init:
                init_args[f.name] = values[f.name]
            else:
                late[f.name] = values[f.name]
        try:
            value = self.record_type(**init_args)
        except (TypeError, ValueError) as e:
            raise DecodeError(f"{self.qualified_name}: {e}") from e
        for name, v in late.items():
            object.__setattr__(value, name, v)
        return value


def _to_primitive(f: FieldSpec, v: Any) -> Any:
    if v is None:
        return None
    if f.enum_type is not None:
        return v.value
    if f.kind is FieldKind.BYTES:
        return base64.b64encode(v).decode("ascii")
    if f.kind is FieldKind.TIME:
        return v.isoformat()
    if f.kind is FieldKind.NESTED:
        return f.nested.to_primitive(v)
    if f.kind in (FieldKind.INT_LIST, FieldKind.FLOAT_LIST, FieldKind.STRING_LIST, FieldKind.BOOL_LIST):
        return list(v)
    if f.kind is FieldKind.STRING_MAP:
        return dict(v)
    return v


def check_scalar(kind: FieldKind, v: Any) -> Any:
    if kind is FieldKind.INT:
        if isinstance(v, bool) or not isinstance(v, int):
            raise TypeError("expected int")
        return v
    if kind is FieldKind.FLOAT:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise TypeError("expected float")
        return float(v)
    if kind is FieldKind.STRING:
        if not isinstance(v, str):
            raise TypeError("expected string")
        return v
    if kind is FieldKind.BOOL:
        if not isinstance(v, bool):
            raise TypeError("expected bool")
        return v
    raise TypeError(f"unexpected kind {kind.value}")


LIST_ELEMENT_KINDS = {
    FieldKind.INT_LIST: FieldKind.INT,
    FieldKind.FLOAT_LIST: FieldKind.FLOAT,
    FieldKind.STRING_LIST: FieldKind.STRING,
    FieldKind.BOOL_LIST: FieldKind.BOOL,
}


def _from_primitive(spec: Spec, f: FieldSpec, v: Any) -> Any:
    if v is None:
        if f.nullable:
            return None
        raise DecodeError(f"{spec.qualified_name}: field {f.name!r} cannot be null")
    try:
        if f.enum_type is not None:
            return f.enum_type(v)
        if f.kind is FieldKind.BYTES:
            if isinstance(v, bytes):
                return v
            return base64.b64decode(v, validate=True)
        if f.kind is FieldKind.TIME:
            if isinstance(v, datetime):
                return v
            return datetime.fromisoformat(v)
        if f.kind is FieldKind.NESTED:
            return f.nested.from_primitive(v)
        if f.kind in LIST_ELEMENT_KINDS:
            if not isinstance(v, list):
                raise TypeError("expected list")
            return [check_scalar(LIST_ELEMENT_KINDS[f.kind], item) for item in v]
        if f.kind is FieldKind.STRING_MAP:
            if not isinstance(v, dict):
                raise TypeError("expected object")
            return {str(k): check_scalar(FieldKind.STRING, item) for k, item in v.items()}
        return check_scalar(f.kind, v)
    except (TypeError, ValueError, binascii.Error) as e:
        raise DecodeError(f"{spec.qualified_name}: field {f.name!r}: {e}") from e


def _unwrap_optional(tp: Any) -> tuple[Any, bool]:
    origin = typing.get_origin(tp)
    if origin is typing.Union or (hasattr(types, "UnionType") and origin is types.UnionType):
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        if len(args) == 1 and len(typing.get_args(tp)) == 2:
            return args[0], True
        raise TypeError(f"unsupported union type {tp!r}")
    return tp, False


def _parse_constraints(raw: Any) -> frozenset:
    if not raw:
        return frozenset()
    if isinstance(raw, str):
        raw = raw.split(",")
    return frozenset(c.strip().lower() for c in raw if c and c.strip())


_inspecting = threading.local()


@functools.lru_cache(maxsize=None)
def inspect(record_type: type) -> Spec:
    """Derive the Spec of a dataclass record type.

    The result is cached per type. Raises TypeError for types that are not
    dataclasses or that use unsupported field types, and
    MultiplePrimaryKeysError when more than one field is a primary key.
    """
    if not (isinstance(record_type, type) and dataclasses.is_dataclass(record_type)):
        raise TypeError(f"{record_type!r} is not a dataclass type")

    stack = getattr(_inspecting, "stack", None)
    if stack is None:
        stack = _inspecting.stack = set()
    if record_type in stack:
        raise TypeError(f"recursive record type {record_type.__name__} is not supported")
    stack.add(record_type)
    try:
        return _derive(record_type)
    finally:
        stack.discard(record_type)


def _derive(record_type: type) -> Spec:
    hints = typing.get_type_hints(record_type)
    fields = []
    for dc_field in dataclasses.fields(record_type):
        meta = dc_field.metadata or {}
        tp, nullable = _unwrap_optional(hints[dc_field.name])

        enum_type = None
        nested = None
        if isinstance(tp, type) and issubclass(tp, Enum):
            enum_type = tp
            sample = next(iter(tp)).value
            kind = FieldKind.INT if isinstance(sample, int) else FieldKind.STRING
        elif tp in _SCALAR_KINDS:
            kind = _SCALAR_KINDS[tp]
        elif isinstance(tp, type) and dataclasses.is_dataclass(tp):
            kind = FieldKind.NESTED
            nested = inspect(tp)
        elif typing.get_origin(tp) is list and typing.get_args(tp)[0] in _LIST_KINDS:
            kind = _LIST_KINDS[typing.get_args(tp)[0]]
        elif typing.get_origin(tp) is dict and typing.get_args(tp) == (str, str):
            kind = FieldKind.STRING_MAP
        else:
            raise TypeError(
                f"{record_type.__name__}.{dc_field.name}: unsupported field type {tp!r}"
            )

        column = meta.get("db", dc_field.name)
        if column == "-":
            column = None

        fields.append(FieldSpec(
            name=dc_field.name,
            column=column,
            json_name=meta.get("json", dc_field.name),
            kind=kind,
            nullable=nullable,
            constraints=_parse_constraints(meta.get("constraints")),
            init=dc_field.init,
            has_default=(
                dc_field.default is not dataclasses.MISSING
                or dc_field.default_factory is not dataclasses.MISSING
            ),
            enum_type=enum_type,
            nested=nested,
        ))

    primary = [f.name for f in fields if f.primary_key]
    if len(primary) > 1:
        raise MultiplePrimaryKeysError(
            f"{record_type.__name__} declares multiple primary keys: {', '.join(primary)}"
        )

    return Spec(
        type_name=record_type.__name__,
        module=record_type.__module__,
        record_type=record_type,
        fields=tuple(fields),
    )
