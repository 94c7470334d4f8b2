"""portastore: typed, backend-agnostic storage access for asyncio.

Define a record type once as a dataclass and use it with a typed facade over
any supported backend:

    from portastore import Store
    from portastore.providers import MemoryKeyValueProvider

    sessions = Store(MemoryKeyValueProvider(), Session)
    await sessions.set("s:1", session, ttl=1800)

Backends plug in as providers (see ``portastore.providers``); a Container
builds them from a StorageConfig.
"""

from .atom import Atom, Atomizer
from .bucket import Bucket
from .codec import Codec, JSONCodec
from .config import StorageConfig
from .container import Container
from .database import Table
from .errors import (
    ConflictError,
    ConstraintError,
    DecodeError,
    DimensionMismatchError,
    DuplicateError,
    EncodeError,
    FilterNotSupportedError,
    HookError,
    IndexNotReadyError,
    InvalidKeyError,
    InvalidQueryError,
    InvalidVectorError,
    MultiplePrimaryKeysError,
    NoPrimaryKeyError,
    NotFoundError,
    OperatorNotSupportedError,
    ReadOnlyError,
    StorageError,
    TableExistsError,
    TableNotFoundError,
    TTLNotSupportedError,
    UnsupportedError,
)
from .events import Event, EventBus, Signal
from .filters import Filter, FilterBuilder, FilterVisitor, MetadataMatcher, Op
from .index import Index
from .interfaces import (
    DistanceMetric,
    Object,
    ObjectInfo,
    Vector,
    VectorInfo,
    VectorRecord,
    VectorResult,
)
from .schema import FieldKind, FieldSpec, Spec, inspect
from .service import Service
from .statements import (
    COUNT_ALL,
    QUERY_ALL,
    AggregateFunc,
    AggregateStatement,
    Condition,
    OrderBy,
    QueryStatement,
    SelectStatement,
    UpdateStatement,
)
from .store import Store

__version__ = "0.1.0"

__all__ = [
    "Atom",
    "Atomizer",
    "Bucket",
    "Codec",
    "JSONCodec",
    "StorageConfig",
    "Container",
    "Table",
    "ConflictError",
    "ConstraintError",
    "DecodeError",
    "DimensionMismatchError",
    "DuplicateError",
    "EncodeError",
    "FilterNotSupportedError",
    "HookError",
    "IndexNotReadyError",
    "InvalidKeyError",
    "InvalidQueryError",
    "InvalidVectorError",
    "MultiplePrimaryKeysError",
    "NoPrimaryKeyError",
    "NotFoundError",
    "OperatorNotSupportedError",
    "ReadOnlyError",
    "StorageError",
    "TableExistsError",
    "TableNotFoundError",
    "TTLNotSupportedError",
    "UnsupportedError",
    "Event",
    "EventBus",
    "Signal",
    "Filter",
    "FilterBuilder",
    "FilterVisitor",
    "MetadataMatcher",
    "Op",
    "Index",
    "DistanceMetric",
    "Object",
    "ObjectInfo",
    "Vector",
    "VectorInfo",
    "VectorRecord",
    "VectorResult",
    "FieldKind",
    "FieldSpec",
    "Spec",
    "inspect",
    "Service",
    "COUNT_ALL",
    "QUERY_ALL",
    "AggregateFunc",
    "AggregateStatement",
    "Condition",
    "OrderBy",
    "QueryStatement",
    "SelectStatement",
    "UpdateStatement",
    "Store",
]
