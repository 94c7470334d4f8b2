"""Storage-wide configuration."""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from ..interfaces import DistanceMetric
from .providers import (
    BlobConfig,
    BlobProviderType,
    CollectionConfig,
    CollectionProviderType,
    KeyValueConfig,
    KeyValueProviderType,
    RelationalConfig,
    VectorConfig,
    VectorProviderType,
)


def _section(config_type: type, provider_type: type, data: Optional[dict[str, Any]]):
    """Build one provider config from a plain mapping, coercing enum values."""
    if not data:
        return config_type()
    known = {f.name for f in fields(config_type)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(
            f"unknown {config_type.__name__} options: {', '.join(sorted(unknown))}"
        )
    values = dict(data)
    if "provider" in values and provider_type is not None:
        values["provider"] = provider_type(values["provider"])
    if "metric" in values:
        values["metric"] = DistanceMetric(values["metric"])
    return config_type(**values)


@dataclass
class StorageConfig:
    """Complete storage configuration.

    Combines the configuration of every provider category. Can be loaded
    from environment variables, a YAML file, or constructed
    programmatically.

    Attributes:
        collection: Cursor-listing collection provider
        key_value: Key-value provider
        blob: Blob provider
        vector: Vector provider
        relational: Relational executor; None disables it
        debug: Enable debug logging
    """
    collection: CollectionConfig = field(default_factory=CollectionConfig)
    key_value: KeyValueConfig = field(default_factory=KeyValueConfig)
    blob: BlobConfig = field(default_factory=BlobConfig)
    vector: VectorConfig = field(default_factory=VectorConfig)
    relational: Optional[RelationalConfig] = None
    debug: bool = False

    @classmethod
    def from_env(cls, prefix: str = "PORTASTORE") -> "StorageConfig":
        """Load configuration from environment variables.

        Environment variables:
            {prefix}_DEBUG: Enable debug mode

            {prefix}_COLLECTION_PROVIDER: memory|redis
            {prefix}_COLLECTION_URL: Redis URL
            {prefix}_COLLECTION_NAME: Collection name

            {prefix}_KV_PROVIDER: memory|redis|sqlite
            {prefix}_KV_URL: Redis URL
            {prefix}_KV_PATH: SQLite database path
            {prefix}_KV_NAMESPACE: Key prefix

            {prefix}_BLOB_PROVIDER: memory|filesystem
            {prefix}_BLOB_PATH: Root directory

            {prefix}_VECTOR_PROVIDER: memory|lancedb|chroma
            {prefix}_VECTOR_PATH: Local database directory
            {prefix}_VECTOR_URI: Cloud database URI
            {prefix}_VECTOR_DIMENSION: Vector size
            {prefix}_VECTOR_METRIC: l2|cosine|inner_product
            {prefix}_VECTOR_METADATA_COLUMNS: Comma separated field names

            {prefix}_DATABASE_URL: SQLAlchemy async URL (enables relational)
        """
        def get(key: str, default: Optional[str] = None) -> Optional[str]:
            return os.environ.get(f"{prefix}_{key}", default)

        def get_bool(key: str, default: bool = False) -> bool:
            val = get(key)
            if val is None:
                return default
            return val.lower() in ("true", "1", "yes")

        def get_float(key: str, default: float) -> float:
            val = get(key)
            return float(val) if val else default

        def get_int(key: str, default: int) -> int:
            val = get(key)
            return int(val) if val else default

        collection = CollectionConfig(
            provider=CollectionProviderType(get("COLLECTION_PROVIDER", "memory")),
            url=get("COLLECTION_URL") or os.environ.get("REDIS_URL"),
            collection=get("COLLECTION_NAME", "records"),
            timeout_seconds=get_float("COLLECTION_TIMEOUT", 5.0),
        )

        key_value = KeyValueConfig(
            provider=KeyValueProviderType(get("KV_PROVIDER", "memory")),
            url=get("KV_URL") or os.environ.get("REDIS_URL"),
            path=get("KV_PATH"),
            namespace=get("KV_NAMESPACE", ""),
            timeout_seconds=get_float("KV_TIMEOUT", 5.0),
        )

        blob = BlobConfig(
            provider=BlobProviderType(get("BLOB_PROVIDER", "memory")),
            path=get("BLOB_PATH"),
        )

        columns = get("VECTOR_METADATA_COLUMNS", "")
        vector = VectorConfig(
            provider=VectorProviderType(get("VECTOR_PROVIDER", "memory")),
            path=get("VECTOR_PATH"),
            uri=get("VECTOR_URI"),
            api_key=get("VECTOR_API_KEY") or os.environ.get("LANCEDB_API_KEY"),
            table_name=get("VECTOR_TABLE", "vectors"),
            dimension=get_int("VECTOR_DIMENSION", 0),
            metric=DistanceMetric(get("VECTOR_METRIC", "l2")),
            metadata_columns=[c.strip() for c in columns.split(",") if c.strip()],
        )

        relational = None
        database_url = get("DATABASE_URL")
        if database_url:
            relational = RelationalConfig(
                url=database_url,
                echo=get_bool("DATABASE_ECHO", False),
                create_tables=get_bool("DATABASE_CREATE_TABLES", False),
            )

        return cls(
            collection=collection,
            key_value=key_value,
            blob=blob,
            vector=vector,
            relational=relational,
            debug=get_bool("DEBUG", False),
        )

    @classmethod
    def from_dict(cls, data: dict) -> "StorageConfig":
        """Create configuration from a dictionary.

        Sections are optional; enum-valued options take their string values.
        Raises ValueError for unknown options.
        """
        relational_data = data.get("relational")
        return cls(
            collection=_section(CollectionConfig, CollectionProviderType, data.get("collection")),
            key_value=_section(KeyValueConfig, KeyValueProviderType, data.get("key_value")),
            blob=_section(BlobConfig, BlobProviderType, data.get("blob")),
            vector=_section(VectorConfig, VectorProviderType, data.get("vector")),
            relational=(
                _section(RelationalConfig, None, relational_data)
                if relational_data is not None else None
            ),
            debug=bool(data.get("debug", False)),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "StorageConfig":
        """Load configuration from a YAML file; a missing file gives defaults."""
        path = Path(path).expanduser()
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    @classmethod
    def for_testing(cls) -> "StorageConfig":
        """Create a configuration suitable for testing.

        Uses in-memory providers throughout and an in-memory SQLite
        database for the relational executor.
        """
        return cls(
            collection=CollectionConfig(provider=CollectionProviderType.MEMORY),
            key_value=KeyValueConfig(provider=KeyValueProviderType.MEMORY),
            blob=BlobConfig(provider=BlobProviderType.MEMORY),
            vector=VectorConfig(provider=VectorProviderType.MEMORY),
            relational=RelationalConfig(create_tables=True),
            debug=True,
        )

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if self.collection.provider == CollectionProviderType.REDIS and not self.collection.url:
            errors.append("Redis collection requires url")
        if not self.collection.collection.strip():
            errors.append("collection name cannot be empty")
        if self.collection.timeout_seconds <= 0:
            errors.append(
                f"collection.timeout_seconds must be positive, got {self.collection.timeout_seconds}"
            )
        if self.collection.scan_count <= 0:
            errors.append(f"collection.scan_count must be positive, got {self.collection.scan_count}")

        if self.key_value.provider == KeyValueProviderType.REDIS and not self.key_value.url:
            errors.append("Redis key-value storage requires url")
        if self.key_value.provider == KeyValueProviderType.SQLITE and not self.key_value.path:
            errors.append("SQLite key-value storage requires path")
        if self.key_value.timeout_seconds <= 0:
            errors.append(
                f"key_value.timeout_seconds must be positive, got {self.key_value.timeout_seconds}"
            )

        if self.blob.provider == BlobProviderType.FILESYSTEM and not self.blob.path:
            errors.append("Filesystem blob storage requires path")

        if self.vector.provider == VectorProviderType.LANCEDB:
            if not self.vector.path and not self.vector.uri:
                errors.append("LanceDB vector storage requires path or uri")
            if self.vector.dimension <= 0:
                errors.append("LanceDB vector storage requires a positive dimension")
        if self.vector.dimension < 0:
            errors.append(f"vector.dimension cannot be negative, got {self.vector.dimension}")
        if not self.vector.table_name.strip():
            errors.append("vector.table_name cannot be empty")

        if self.relational is not None and not self.relational.url:
            errors.append("relational.url cannot be empty")

        return errors
