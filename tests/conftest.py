"""Pytest fixtures for portastore tests."""

import pytest

from portastore.config import RelationalConfig, VectorConfig
from portastore.providers import (
    MemoryBlobProvider,
    MemoryCollectionProvider,
    MemoryKeyValueProvider,
    MemoryVectorProvider,
    SQLAlchemyExecutor,
)
from portastore.testing import HookedRecord


@pytest.fixture(autouse=True)
def reset_hook_log():
    """HookedRecord keeps its call log on the class."""
    HookedRecord.reset()
    yield
    HookedRecord.reset()


@pytest.fixture
async def collection_provider():
    p = MemoryCollectionProvider()
    await p.initialize()
    yield p
    await p.shutdown()


@pytest.fixture
async def kv_provider():
    p = MemoryKeyValueProvider()
    await p.initialize()
    yield p
    await p.shutdown()


@pytest.fixture
async def blob_provider():
    p = MemoryBlobProvider()
    await p.initialize()
    yield p
    await p.shutdown()


@pytest.fixture
async def vector_provider():
    p = MemoryVectorProvider(VectorConfig(dimension=3))
    await p.initialize()
    yield p
    await p.shutdown()


@pytest.fixture
def relational_config(tmp_path):
    """File-backed SQLite so every connection sees the same database."""
    return RelationalConfig(
        url=f"sqlite+aiosqlite:///{tmp_path / 'portastore.db'}",
        create_tables=True,
    )


@pytest.fixture
async def make_executor(relational_config):
    """Factory for initialized executors, shut down after the test."""
    created = []

    async def factory(record_type, table_name=None):
        executor = SQLAlchemyExecutor(relational_config, record_type, table_name)
        await executor.initialize()
        created.append(executor)
        return executor

    yield factory

    for executor in created:
        await executor.shutdown()
