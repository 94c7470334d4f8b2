"""Provider contracts and storage envelopes.

These define the surface a backend adapter must implement, grouped by storage
category. Adapters are thin pass-throughs to native clients; everything that
knows about record types lives in the facades.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union
import uuid

from .filters import Filter
from .statements import (
    AggregateStatement,
    QueryStatement,
    SelectStatement,
    UpdateStatement,
)

T = TypeVar("T")

# Type variable for provider-specific configuration
TConfig = TypeVar("TConfig")

TTL = Union[float, int, timedelta]


def ttl_seconds(ttl: Optional[TTL]) -> float:
    """Normalize a TTL to seconds. ``None`` and 0 mean no expiry."""
    if ttl is None:
        return 0.0
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    return float(ttl)


class ProviderStatus(Enum):
    """Provider health status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"
    INITIALIZING = "initializing"


@dataclass
class ProviderHealth:
    """Health check result for a provider."""
    status: ProviderStatus
    latency_ms: Optional[float] = None
    message: Optional[str] = None
    last_check: Optional[datetime] = None

    def __post_init__(self):
        if self.last_check is None:
            self.last_check = datetime.now(timezone.utc)


class DistanceMetric(Enum):
    """Distance function used to rank similarity search candidates."""
    L2 = "l2"
    COSINE = "cosine"
    INNER_PRODUCT = "inner_product"


@dataclass
class ObjectInfo:
    """Backend-observed attributes of a blob."""
    key: str
    content_type: str = ""
    size: int = 0
    etag: str = ""
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class Object(Generic[T]):
    """Blob metadata wrapped around a typed payload."""
    key: str
    data: T
    content_type: str = ""
    size: int = 0
    etag: str = ""
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class VectorInfo:
    """Provider-level metadata for a stored vector.

    Attributes:
        id: Vector identifier.
        dimension: Vector dimensionality.
        score: Distance to the query vector (search results only).
        metadata: Codec-encoded metadata, or None when none was stored.
    """
    id: uuid.UUID
    dimension: int = 0
    score: float = 0.0
    metadata: Optional[bytes] = None


@dataclass
class VectorRecord:
    """A vector for batch writes."""
    id: uuid.UUID
    vector: list[float]
    metadata: Optional[bytes] = None


@dataclass
class VectorResult:
    """A search result. Lower ``score`` means closer."""
    id: uuid.UUID
    vector: list[float]
    metadata: Optional[bytes] = None
    score: float = 0.0


@dataclass
class Vector(Generic[T]):
    """A vector with typed metadata."""
    id: uuid.UUID
    vector: list[float]
    metadata: Optional[T] = None
    score: float = 0.0


class Provider(ABC, Generic[TConfig]):
    """Base class for all providers.

    Provides common functionality:
    - Configuration management
    - Health checking
    - Lifecycle management (init/shutdown)

    ``atomic_batches`` declares whether batch writes are all-or-nothing.
    Providers without native batch transactions leave it False: a failed
    batch call may have written some of its items.
    """

    atomic_batches: bool = False

    def __init__(self, config: TConfig):
        self.config = config
        self._initialized = False

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the provider. Called once before first use."""
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """Gracefully shutdown the provider."""
        pass

    @abstractmethod
    async def health_check(self) -> ProviderHealth:
        """Check provider health and connectivity."""
        pass

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def __aenter__(self):
        if not self._initialized:
            await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()


class CollectionProvider(Provider[TConfig]):
    """Raw byte storage scoped to a collection, with cursor pagination."""

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Return the bytes at key. Raises NotFoundError if absent."""
        pass

    @abstractmethod
    async def set(self, key: str, data: bytes) -> None:
        """Create or overwrite the record at key."""
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    async def count(self) -> int:
        """Total number of records in the collection."""
        pass

    @abstractmethod
    async def list(self, cursor: str = "", limit: int = 0) -> tuple[list[str], str]:
        """Return one page of keys and the cursor of the next page.

        An empty cursor starts from the beginning; an empty next cursor
        means there are no more pages. ``limit <= 0`` returns all keys.
        The cursor is opaque to callers.
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the record at key. Raises NotFoundError if absent."""
        pass


class KeyValueProvider(Provider[TConfig]):
    """Key-value storage with optional expiry."""

    supports_ttl: bool = True

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Return the bytes at key. Raises NotFoundError if absent."""
        pass

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl: float = 0) -> None:
        """Store value at key; ``ttl`` seconds, 0 means no expiry.

        Providers without expiry raise TTLNotSupportedError for ttl > 0.
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Raises NotFoundError if absent."""
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    async def list(self, prefix: str = "", limit: int = 0) -> list[str]:
        """Keys sharing prefix; ``limit <= 0`` means all."""
        pass

    @abstractmethod
    async def get_batch(self, keys: list[str]) -> dict[str, bytes]:
        """Values for the keys that exist; missing keys are omitted."""
        pass

    @abstractmethod
    async def set_batch(self, items: dict[str, bytes], ttl: float = 0) -> None:
        pass


class BlobProvider(Provider[TConfig]):
    """Blob storage with per-object metadata."""

    @abstractmethod
    async def get(self, key: str) -> tuple[bytes, ObjectInfo]:
        """Raises NotFoundError if absent."""
        pass

    @abstractmethod
    async def put(self, key: str, data: bytes, info: ObjectInfo) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Raises NotFoundError if absent."""
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    async def list(self, prefix: str = "", limit: int = 0) -> list[ObjectInfo]:
        """Object info for keys sharing prefix; ``limit <= 0`` means all."""
        pass


class VectorProvider(Provider[TConfig]):
    """Vector index with opaque metadata bytes.

    ``supports_filter`` is a static capability: providers that cannot list
    by metadata alone raise FilterNotSupportedError from every ``filter``
    call regardless of arguments.
    """

    supports_filter: bool = True

    @abstractmethod
    async def upsert(self, id: uuid.UUID, vector: list[float], metadata: Optional[bytes]) -> None:
        pass

    @abstractmethod
    async def upsert_batch(self, records: list[VectorRecord]) -> None:
        pass

    @abstractmethod
    async def get(self, id: uuid.UUID) -> tuple[list[float], VectorInfo]:
        """Raises NotFoundError if absent."""
        pass

    @abstractmethod
    async def delete(self, id: uuid.UUID) -> None:
        """Raises NotFoundError if absent."""
        pass

    @abstractmethod
    async def delete_batch(self, ids: list[uuid.UUID]) -> None:
        """Remove the given ids; ids that do not exist are ignored."""
        pass

    @abstractmethod
    async def search(
        self,
        vector: list[float],
        k: int,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[VectorResult]:
        """The k nearest neighbours, in non-decreasing distance order.

        ``k <= 0`` means unbounded. ``filter`` is an equality match on
        metadata fields.
        """
        pass

    @abstractmethod
    async def query(
        self,
        vector: list[float],
        k: int,
        filter: Optional[Filter] = None,
    ) -> list[VectorResult]:
        """Similarity search constrained by a structured filter.

        Raises InvalidQueryError for filters that failed validation and
        OperatorNotSupportedError for nodes the provider cannot translate.
        """
        pass

    @abstractmethod
    async def filter(self, filter: Optional[Filter], limit: int = 0) -> list[VectorResult]:
        """Vectors matching the filter, without a similarity component."""
        pass

    @abstractmethod
    async def list(self, limit: int = 0) -> list[uuid.UUID]:
        pass

    @abstractmethod
    async def exists(self, id: uuid.UUID) -> bool:
        pass


class RelationalExecutor(Provider[TConfig]):
    """Row storage for one table.

    Rows are dicts keyed by column name. Every method takes an optional
    caller-owned transaction handle; the executor never begins, commits or
    rolls back a transaction it was handed.
    """

    @property
    @abstractmethod
    def table_name(self) -> str:
        pass

    @abstractmethod
    async def get(self, key: Any, tx: Any = None) -> dict[str, Any]:
        """Row whose primary key equals key. Raises NotFoundError if absent."""
        pass

    @abstractmethod
    async def upsert(self, row: dict[str, Any], tx: Any = None) -> None:
        """Insert row; on primary-key conflict replace every non-key column."""
        pass

    @abstractmethod
    async def delete(self, key: Any, tx: Any = None) -> None:
        """Raises NotFoundError if no row was removed."""
        pass

    @abstractmethod
    async def exists(self, key: Any, tx: Any = None) -> bool:
        pass

    @abstractmethod
    async def query(
        self, statement: QueryStatement, params: dict[str, Any], tx: Any = None
    ) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def select(
        self, statement: SelectStatement, params: dict[str, Any], tx: Any = None
    ) -> dict[str, Any]:
        """Exactly one row. Raises NotFoundError when nothing matches."""
        pass

    @abstractmethod
    async def update(
        self, statement: UpdateStatement, params: dict[str, Any], tx: Any = None
    ) -> dict[str, Any]:
        """Apply the update and return the first updated row."""
        pass

    @abstractmethod
    async def aggregate(
        self, statement: AggregateStatement, params: dict[str, Any], tx: Any = None
    ) -> float:
        pass
