"""Tests for the SQLite key-value provider."""

import pytest

from portastore.config import KeyValueConfig, KeyValueProviderType
from portastore.errors import NotFoundError, TTLNotSupportedError
from portastore.interfaces import ProviderStatus
from portastore.providers import SQLiteKeyValueProvider
from portastore.store import Store
from portastore.testing import User


@pytest.fixture
async def provider(tmp_path):
    p = SQLiteKeyValueProvider(KeyValueConfig(
        provider=KeyValueProviderType.SQLITE,
        path=str(tmp_path / "kv.db"),
        namespace="app:",
    ))
    await p.initialize()
    yield p
    await p.shutdown()


class TestSQLiteKeyValueProvider:
    """Tests for SQLiteKeyValueProvider."""

    async def test_crud(self, provider):
        await provider.set("a", b"1")
        assert await provider.get("a") == b"1"
        assert await provider.exists("a")

        await provider.set("a", b"2")
        assert await provider.get("a") == b"2"

        await provider.delete("a")
        assert not await provider.exists("a")
        with pytest.raises(NotFoundError):
            await provider.get("a")
        with pytest.raises(NotFoundError):
            await provider.delete("a")

    async def test_namespace_is_hidden(self, provider):
        await provider.set("user:1", b"x")
        row = provider._db.execute("SELECT key FROM kv").fetchone()
        assert row[0] == "app:user:1"
        assert await provider.list() == ["user:1"]

    async def test_list_prefix_and_limit(self, provider):
        for key in ("b:1", "a:2", "a:1", "a_x"):
            await provider.set(key, b"v")
        assert await provider.list("a:") == ["a:1", "a:2"]
        assert await provider.list("a", limit=2) == ["a:1", "a:2"]

    async def test_prefix_is_literal(self, provider):
        await provider.set("a%b", b"v")
        await provider.set("axb", b"v")
        assert await provider.list("a%") == ["a%b"]

    async def test_batches(self, provider):
        await provider.set_batch({"a": b"1", "b": b"2"})
        assert await provider.get_batch(["a", "b", "c"]) == {"a": b"1", "b": b"2"}
        assert await provider.get_batch([]) == {}

    async def test_ttl_rejected(self, provider):
        with pytest.raises(TTLNotSupportedError):
            await provider.set("a", b"1", ttl=1)
        with pytest.raises(TTLNotSupportedError):
            await provider.set_batch({"a": b"1"}, ttl=1)
        assert not await provider.exists("a")

    async def test_store_fails_fast_on_ttl(self, provider):
        store = Store(provider, User)
        with pytest.raises(TTLNotSupportedError):
            await store.set("u", User(id="u"), ttl=30)

    async def test_survives_reopen(self, tmp_path):
        config = KeyValueConfig(provider=KeyValueProviderType.SQLITE, path=str(tmp_path / "kv.db"))
        first = SQLiteKeyValueProvider(config)
        await first.initialize()
        await first.set("k", b"persisted")
        await first.shutdown()

        second = SQLiteKeyValueProvider(config)
        await second.initialize()
        assert await second.get("k") == b"persisted"
        await second.shutdown()

    async def test_health(self, provider):
        assert (await provider.health_check()).status == ProviderStatus.HEALTHY
        await provider.shutdown()
        assert (await provider.health_check()).status == ProviderStatus.UNAVAILABLE

    def test_rejects_bad_table_name(self):
        with pytest.raises(ValueError, match="Invalid table name"):
            SQLiteKeyValueProvider(KeyValueConfig(table_name="kv; DROP TABLE x"))
