"""Provider adapters.

The LanceDB and Chroma adapters pull in heavy native libraries and are
imported from their own modules:

    from portastore.providers.lancedb import LanceDBVectorProvider
    from portastore.providers.chroma import ChromaVectorProvider
"""

from .filesystem import FilesystemBlobProvider
from .memory import (
    MemoryBlobProvider,
    MemoryCollectionProvider,
    MemoryKeyValueProvider,
    MemoryVectorProvider,
)
from .redis import RedisCollectionProvider, RedisKeyValueProvider
from .sqlalchemy import SQLAlchemyExecutor, create_engine
from .sqlite import SQLiteKeyValueProvider

__all__ = [
    "FilesystemBlobProvider",
    "MemoryBlobProvider",
    "MemoryCollectionProvider",
    "MemoryKeyValueProvider",
    "MemoryVectorProvider",
    "RedisCollectionProvider",
    "RedisKeyValueProvider",
    "SQLAlchemyExecutor",
    "SQLiteKeyValueProvider",
    "create_engine",
]
