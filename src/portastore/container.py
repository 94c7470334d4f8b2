"""Provider container.

Builds the providers named by a StorageConfig, owns their lifecycle, and
hands out typed facades bound to them.
"""

import logging
from typing import Optional

from .bucket import Bucket
from .codec import Codec
from .config import (
    BlobProviderType,
    CollectionProviderType,
    KeyValueProviderType,
    StorageConfig,
    VectorProviderType,
)
from .database import Table
from .errors import TableExistsError, TableNotFoundError
from .events import EventBus
from .index import Index
from .interfaces import (
    BlobProvider,
    CollectionProvider,
    KeyValueProvider,
    ProviderHealth,
    VectorProvider,
)
from .service import Service
from .store import Store

logger = logging.getLogger(__name__)


class Container:
    """Dependency injection container for storage providers.

    Usage:
        container = Container(StorageConfig.from_env())
        await container.initialize()

        sessions = container.store(Session)
        users = await container.table(User)

        await container.shutdown()

    Providers are initialized in category order (collection, key-value,
    blob, vector, relational) and shut down in reverse. Relational tables
    share one engine and are created on first request.
    """

    def __init__(self, config: StorageConfig, events: Optional[EventBus] = None):
        self.config = config
        self.events = events or EventBus()
        self._collection: Optional[CollectionProvider] = None
        self._key_value: Optional[KeyValueProvider] = None
        self._blob: Optional[BlobProvider] = None
        self._vector: Optional[VectorProvider] = None
        self._engine = None
        self._executors: dict = {}
        self._initialized = False

    async def initialize(self) -> None:
        """Validate the configuration and initialize every provider.

        Raises ValueError listing every configuration problem.
        """
        if self._initialized:
            return

        errors = self.config.validate()
        if errors:
            raise ValueError("Invalid storage configuration: " + "; ".join(errors))

        if self.config.debug:
            logging.getLogger("portastore").setLevel(logging.DEBUG)

        logger.info("Initializing storage container")

        started = []
        try:
            self._collection = self._create_collection_provider()
            await self._collection.initialize()
            started.append(self._collection)

            self._key_value = self._create_key_value_provider()
            await self._key_value.initialize()
            started.append(self._key_value)

            self._blob = self._create_blob_provider()
            await self._blob.initialize()
            started.append(self._blob)

            self._vector = self._create_vector_provider()
            await self._vector.initialize()
            started.append(self._vector)

            if self.config.relational is not None:
                from .providers.sqlalchemy import create_engine
                self._engine = create_engine(self.config.relational)
        except Exception:
            logger.error("Storage container initialization failed, shutting down started providers")
            for provider in reversed(started):
                try:
                    await provider.shutdown()
                except Exception as e:
                    logger.warning(f"Shutdown of {type(provider).__name__} failed: {e}")
            self._collection = self._key_value = self._blob = self._vector = None
            raise

        self._initialized = True
        logger.info("Storage container initialized")

    async def shutdown(self) -> None:
        """Shutdown all providers gracefully."""
        if not self._initialized:
            return

        logger.info("Shutting down storage container")

        for executor in reversed(list(self._executors.values())):
            await executor.shutdown()
        self._executors.clear()
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

        # Shutdown in reverse order
        await self._vector.shutdown()
        await self._blob.shutdown()
        await self._key_value.shutdown()
        await self._collection.shutdown()

        self._initialized = False
        logger.info("Storage container shutdown complete")

    async def __aenter__(self) -> "Container":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    async def health_check(self) -> dict[str, ProviderHealth]:
        """Check health of all providers."""
        results = {}

        if self._collection:
            results["collection"] = await self._collection.health_check()
        if self._key_value:
            results["key_value"] = await self._key_value.health_check()
        if self._blob:
            results["blob"] = await self._blob.health_check()
        if self._vector:
            results["vector"] = await self._vector.health_check()
        for name, executor in self._executors.items():
            results[f"table:{name}"] = await executor.health_check()

        return results

    @property
    def collection(self) -> CollectionProvider:
        """Get the collection provider."""
        if not self._collection:
            raise RuntimeError("Container not initialized. Call initialize() first.")
        return self._collection

    @property
    def key_value(self) -> KeyValueProvider:
        """Get the key-value provider."""
        if not self._key_value:
            raise RuntimeError("Container not initialized. Call initialize() first.")
        return self._key_value

    @property
    def blob(self) -> BlobProvider:
        """Get the blob provider."""
        if not self._blob:
            raise RuntimeError("Container not initialized. Call initialize() first.")
        return self._blob

    @property
    def vector(self) -> VectorProvider:
        """Get the vector provider."""
        if not self._vector:
            raise RuntimeError("Container not initialized. Call initialize() first.")
        return self._vector

    def service(self, record_type: type, codec: Optional[Codec] = None) -> Service:
        return Service(self.collection, record_type, codec, events=self.events)

    def store(self, record_type: type, codec: Optional[Codec] = None) -> Store:
        return Store(self.key_value, record_type, codec)

    def bucket(self, record_type: type, codec: Optional[Codec] = None) -> Bucket:
        return Bucket(self.blob, record_type, codec)

    def index(self, record_type: type, codec: Optional[Codec] = None) -> Index:
        return Index(self.vector, record_type, codec)

    async def executor(self, record_type: type, table_name: Optional[str] = None):
        """The relational executor for record_type, created on first use.

        Raises TableExistsError when table_name is already bound to a
        different record type.
        """
        from .providers.sqlalchemy import SQLAlchemyExecutor, default_table_name

        if self._engine is None:
            raise RuntimeError("Relational storage is not configured or not initialized")

        name = table_name or default_table_name(record_type)
        existing = self._executors.get(name)
        if existing is not None:
            if existing.spec.record_type is not record_type:
                raise TableExistsError(
                    f"table {name} is already bound to {existing.spec.qualified_name}"
                )
            return existing

        executor = SQLAlchemyExecutor(
            self.config.relational, record_type, table_name=name, engine=self._engine
        )
        await executor.initialize()
        self._executors[name] = executor
        return executor

    def registered(self, table_name: str):
        """The executor previously created for table_name."""
        try:
            return self._executors[table_name]
        except KeyError:
            raise TableNotFoundError(f"table {table_name} is not registered") from None

    async def table(self, record_type: type, table_name: Optional[str] = None) -> Table:
        return Table(await self.executor(record_type, table_name), record_type)

    def _create_collection_provider(self) -> CollectionProvider:
        """Create collection provider based on config."""
        from .providers.memory import MemoryCollectionProvider
        from .providers.redis import RedisCollectionProvider

        cfg = self.config.collection

        if cfg.provider == CollectionProviderType.REDIS:
            return RedisCollectionProvider(cfg)
        elif cfg.provider == CollectionProviderType.MEMORY:
            return MemoryCollectionProvider(cfg)
        else:
            raise ValueError(f"Unknown collection provider: {cfg.provider}")

    def _create_key_value_provider(self) -> KeyValueProvider:
        """Create key-value provider based on config."""
        from .providers.memory import MemoryKeyValueProvider
        from .providers.redis import RedisKeyValueProvider
        from .providers.sqlite import SQLiteKeyValueProvider

        cfg = self.config.key_value

        if cfg.provider == KeyValueProviderType.REDIS:
            return RedisKeyValueProvider(cfg)
        elif cfg.provider == KeyValueProviderType.SQLITE:
            return SQLiteKeyValueProvider(cfg)
        elif cfg.provider == KeyValueProviderType.MEMORY:
            return MemoryKeyValueProvider(cfg)
        else:
            raise ValueError(f"Unknown key-value provider: {cfg.provider}")

    def _create_blob_provider(self) -> BlobProvider:
        """Create blob provider based on config."""
        from .providers.filesystem import FilesystemBlobProvider
        from .providers.memory import MemoryBlobProvider

        cfg = self.config.blob

        if cfg.provider == BlobProviderType.FILESYSTEM:
            return FilesystemBlobProvider(cfg)
        elif cfg.provider == BlobProviderType.MEMORY:
            return MemoryBlobProvider(cfg)
        else:
            raise ValueError(f"Unknown blob provider: {cfg.provider}")

    def _create_vector_provider(self) -> VectorProvider:
        """Create vector provider based on config."""
        from .providers.memory import MemoryVectorProvider

        cfg = self.config.vector

        if cfg.provider == VectorProviderType.LANCEDB:
            from .providers.lancedb import LanceDBVectorProvider
            return LanceDBVectorProvider(cfg)
        elif cfg.provider == VectorProviderType.CHROMA:
            from .providers.chroma import ChromaVectorProvider
            return ChromaVectorProvider(cfg)
        elif cfg.provider == VectorProviderType.MEMORY:
            return MemoryVectorProvider(cfg)
        else:
            raise ValueError(f"Unknown vector provider: {cfg.provider}")
