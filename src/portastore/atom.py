"""Dynamic records.

An ``Atom`` is a type-erased view of a record: field values are partitioned by
storage kind and keyed by the record's declared field names (never by the
``db`` or ``json`` aliases). Optional fields live in a parallel nullable
partition and are represented by presence: an unset optional field has no
entry at all.

The ``Atomizer`` converts between a record type and its Atoms:

    atomizer = Atomizer(User)
    atom = atomizer.atomize(user)
    atom.strings["name"] = "renamed"
    user = atomizer.deatomize(atom)
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar

from .errors import DecodeError
from .schema import LIST_ELEMENT_KINDS, FieldKind, FieldSpec, Spec, check_scalar, inspect

T = TypeVar("T")

# Partition attribute per kind: (required, nullable)
_PARTITIONS = {
    FieldKind.INT: ("ints", "nullable_ints"),
    FieldKind.FLOAT: ("floats", "nullable_floats"),
    FieldKind.STRING: ("strings", "nullable_strings"),
    FieldKind.BOOL: ("bools", "nullable_bools"),
    FieldKind.BYTES: ("blobs", "nullable_blobs"),
    FieldKind.TIME: ("times", "nullable_times"),
    FieldKind.INT_LIST: ("int_lists", "int_lists"),
    FieldKind.FLOAT_LIST: ("float_lists", "float_lists"),
    FieldKind.STRING_LIST: ("string_lists", "string_lists"),
    FieldKind.BOOL_LIST: ("bool_lists", "bool_lists"),
    FieldKind.STRING_MAP: ("string_maps", "string_maps"),
    FieldKind.NESTED: ("nested", "nullable_nested"),
}

_PARTITION_TYPES = {
    FieldKind.INT: int,
    FieldKind.FLOAT: float,
    FieldKind.STRING: str,
    FieldKind.BOOL: bool,
    FieldKind.BYTES: bytes,
    FieldKind.TIME: datetime,
}


@dataclass
class Atom:
    """Field-named, kind-partitioned dynamic record.

    Attributes:
        type_name: Qualified name of the record type this atom came from.
    """
    type_name: str = ""
    ints: dict[str, int] = field(default_factory=dict)
    floats: dict[str, float] = field(default_factory=dict)
    strings: dict[str, str] = field(default_factory=dict)
    bools: dict[str, bool] = field(default_factory=dict)
    blobs: dict[str, bytes] = field(default_factory=dict)
    times: dict[str, datetime] = field(default_factory=dict)
    nullable_ints: dict[str, int] = field(default_factory=dict)
    nullable_floats: dict[str, float] = field(default_factory=dict)
    nullable_strings: dict[str, str] = field(default_factory=dict)
    nullable_bools: dict[str, bool] = field(default_factory=dict)
    nullable_blobs: dict[str, bytes] = field(default_factory=dict)
    nullable_times: dict[str, datetime] = field(default_factory=dict)
    int_lists: dict[str, list[int]] = field(default_factory=dict)
    float_lists: dict[str, list[float]] = field(default_factory=dict)
    string_lists: dict[str, list[str]] = field(default_factory=dict)
    bool_lists: dict[str, list[bool]] = field(default_factory=dict)
    string_maps: dict[str, dict[str, str]] = field(default_factory=dict)
    nested: dict[str, "Atom"] = field(default_factory=dict)
    nullable_nested: dict[str, "Atom"] = field(default_factory=dict)

    def field_names(self) -> set[str]:
        """All field names present in any partition."""
        names = set()
        for required, nullable in _PARTITIONS.values():
            names.update(getattr(self, required))
            names.update(getattr(self, nullable))
        return names


def _partition_name(f: FieldSpec) -> str:
    required, nullable = _PARTITIONS[f.kind]
    return nullable if f.nullable else required


class Atomizer(Generic[T]):
    """Converts records of one type to and from Atoms."""

    def __init__(self, record_type: type):
        self._spec = inspect(record_type)

    @classmethod
    def from_spec(cls, spec: Spec) -> "Atomizer":
        atomizer = cls.__new__(cls)
        atomizer._spec = spec
        return atomizer

    @property
    def spec(self) -> Spec:
        return self._spec

    def atomize(self, value: T) -> Atom:
        """Decompose a record into an Atom."""
        return _atomize(self._spec, value)

    def deatomize(self, atom: Atom) -> T:
        """Rebuild a record from an Atom.

        Raises DecodeError when a required field is absent, a value sits in
        the wrong partition, or the atom names a field the type lacks.
        """
        return _deatomize(self._spec, atom)


def _atomize(spec: Spec, value: Any) -> Atom:
    if not isinstance(value, spec.record_type):
        raise TypeError(f"expected {spec.type_name}, got {type(value).__name__}")
    atom = Atom(type_name=spec.qualified_name)
    for f in spec.fields:
        v = getattr(value, f.name)
        if v is None:
            if f.nullable:
                continue
            raise DecodeError(f"{spec.qualified_name}: field {f.name!r} is None")
        partition = getattr(atom, _partition_name(f))
        if f.enum_type is not None:
            v = v.value
        if f.kind is FieldKind.NESTED:
            partition[f.name] = _atomize(f.nested, v)
        elif f.kind is FieldKind.STRING_MAP:
            partition[f.name] = dict(v)
        elif f.kind in (FieldKind.INT_LIST, FieldKind.FLOAT_LIST, FieldKind.STRING_LIST, FieldKind.BOOL_LIST):
            partition[f.name] = list(v)
        else:
            partition[f.name] = v
    return atom


def _deatomize(spec: Spec, atom: Atom) -> Any:
    if not isinstance(atom, Atom):
        raise DecodeError(f"expected Atom, got {type(atom).__name__}")
    known = set(spec.field_names)
    unknown = atom.field_names() - known
    if unknown:
        raise DecodeError(
            f"{spec.qualified_name}: unknown fields {', '.join(sorted(unknown))}"
        )

    values = {}
    for f in spec.fields:
        partition_name = _partition_name(f)
        partition = getattr(atom, partition_name)
        if f.name not in partition:
            # A value in some other partition is a kind mismatch, not an absence.
            for other_required, other_nullable in _PARTITIONS.values():
                for other in (other_required, other_nullable):
                    if other != partition_name and f.name in getattr(atom, other):
                        raise DecodeError(
                            f"{spec.qualified_name}: field {f.name!r} found in "
                            f"{other}, expected {partition_name}"
                        )
            if f.nullable:
                values[f.name] = None
                continue
            raise DecodeError(f"{spec.qualified_name}: required field {f.name!r} is absent")

        raw = partition[f.name]
        values[f.name] = _restore(spec, f, raw)
    return spec.build(values)


def _element(spec: Spec, f: FieldSpec, kind: FieldKind, v: Any) -> Any:
    try:
        return check_scalar(kind, v)
    except TypeError as e:
        raise DecodeError(f"{spec.qualified_name}: field {f.name!r}: {e}") from e


def _restore(spec: Spec, f: FieldSpec, raw: Any) -> Any:
    if f.kind is FieldKind.NESTED:
        return _deatomize(f.nested, raw)
    if f.kind is FieldKind.STRING_MAP:
        if not isinstance(raw, dict):
            raise DecodeError(f"{spec.qualified_name}: field {f.name!r} expected a mapping")
        return {k: _element(spec, f, FieldKind.STRING, v) for k, v in raw.items()}
    if f.kind in LIST_ELEMENT_KINDS:
        if not isinstance(raw, list):
            raise DecodeError(f"{spec.qualified_name}: field {f.name!r} expected a list")
        return [_element(spec, f, LIST_ELEMENT_KINDS[f.kind], v) for v in raw]

    expected = _PARTITION_TYPES[f.kind]
    if f.kind is FieldKind.FLOAT and isinstance(raw, int) and not isinstance(raw, bool):
        raw = float(raw)
    if isinstance(raw, bool) and expected is not bool:
        raise DecodeError(f"{spec.qualified_name}: field {f.name!r} expected {expected.__name__}")
    if not isinstance(raw, expected):
        raise DecodeError(
            f"{spec.qualified_name}: field {f.name!r} expected {expected.__name__}, "
            f"got {type(raw).__name__}"
        )
    if f.enum_type is not None:
        try:
            return f.enum_type(raw)
        except ValueError as e:
            raise DecodeError(f"{spec.qualified_name}: field {f.name!r}: {e}") from e
    return raw

