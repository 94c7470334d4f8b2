"""Provider-specific configuration classes."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..interfaces import DistanceMetric


class CollectionProviderType(Enum):
    """Available cursor-listing collection providers."""
    MEMORY = "memory"
    REDIS = "redis"


class KeyValueProviderType(Enum):
    """Available key-value providers."""
    MEMORY = "memory"
    REDIS = "redis"
    SQLITE = "sqlite"


class BlobProviderType(Enum):
    """Available blob providers."""
    MEMORY = "memory"
    FILESYSTEM = "filesystem"


class VectorProviderType(Enum):
    """Available vector providers."""
    MEMORY = "memory"
    LANCEDB = "lancedb"
    CHROMA = "chroma"


@dataclass
class CollectionConfig:
    """Configuration for the collection provider.

    Attributes:
        provider: Which collection provider to use
        url: Redis connection URL
        collection: Collection name; scopes every key
        timeout_seconds: Per-command timeout
        scan_count: Keys requested per SCAN round trip
    """
    provider: CollectionProviderType = CollectionProviderType.MEMORY
    url: Optional[str] = None
    collection: str = "records"
    timeout_seconds: float = 5.0
    scan_count: int = 100


@dataclass
class KeyValueConfig:
    """Configuration for the key-value provider.

    Attributes:
        provider: Which key-value provider to use
        url: Redis connection URL
        path: SQLite database file (":memory:" for a private in-memory db)
        namespace: Prefix applied to every stored key
        table_name: SQLite table holding the pairs
        timeout_seconds: Per-command timeout
    """
    provider: KeyValueProviderType = KeyValueProviderType.MEMORY
    url: Optional[str] = None
    path: Optional[str] = None
    namespace: str = ""
    table_name: str = "kv"
    timeout_seconds: float = 5.0


@dataclass
class BlobConfig:
    """Configuration for the blob provider.

    Attributes:
        provider: Which blob provider to use
        path: Root directory for filesystem blobs
    """
    provider: BlobProviderType = BlobProviderType.MEMORY
    path: Optional[str] = None


@dataclass
class VectorConfig:
    """Configuration for the vector provider.

    Attributes:
        provider: Which vector provider to use
        path: Local database directory (LanceDB, Chroma)
        uri: Cloud database URI (LanceDB Cloud)
        api_key: API key for cloud storage
        table_name: Table or collection name
        dimension: Expected vector size; 0 adopts the first vector's size
        metric: Distance used to rank search results
        metadata_columns: Metadata fields promoted to columns (LanceDB),
            as "name" or "name:type" with type str, int, float or bool;
            structured filters may only reference these
    """
    provider: VectorProviderType = VectorProviderType.MEMORY
    path: Optional[str] = None
    uri: Optional[str] = None
    api_key: Optional[str] = None
    table_name: str = "vectors"
    dimension: int = 0
    metric: DistanceMetric = DistanceMetric.L2
    metadata_columns: list[str] = field(default_factory=list)


@dataclass
class RelationalConfig:
    """Configuration for the relational executor.

    Attributes:
        url: SQLAlchemy async database URL
        echo: Log every statement SQLAlchemy emits
        create_tables: Create missing tables when an executor initializes
    """
    url: str = "sqlite+aiosqlite:///:memory:"
    echo: bool = False
    create_tables: bool = False
