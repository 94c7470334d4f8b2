"""Configuration for portastore providers.

Provides strongly-typed configuration objects that can be loaded from:
- Environment variables
- YAML files
- Programmatic construction
"""

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
from .system import StorageConfig

__all__ = [
    "StorageConfig",
    "BlobConfig",
    "BlobProviderType",
    "CollectionConfig",
    "CollectionProviderType",
    "KeyValueConfig",
    "KeyValueProviderType",
    "RelationalConfig",
    "VectorConfig",
    "VectorProviderType",
]
