"""Tests for storage configuration."""

import os
from unittest.mock import patch

import pytest

from portastore.config import (
    BlobProviderType,
    CollectionProviderType,
    KeyValueProviderType,
    StorageConfig,
    VectorConfig,
    VectorProviderType,
)
from portastore.interfaces import DistanceMetric


class TestDefaults:
    """Tests for default values."""

    def test_in_memory_everywhere(self):
        config = StorageConfig()
        assert config.collection.provider == CollectionProviderType.MEMORY
        assert config.key_value.provider == KeyValueProviderType.MEMORY
        assert config.blob.provider == BlobProviderType.MEMORY
        assert config.vector.provider == VectorProviderType.MEMORY
        assert config.relational is None
        assert config.validate() == []

    def test_for_testing(self):
        config = StorageConfig.for_testing()
        assert config.relational is not None
        assert config.relational.create_tables is True
        assert config.debug is True
        assert config.validate() == []


class TestFromEnv:
    """Tests for environment loading."""

    def test_reads_prefixed_variables(self):
        env = {
            "PORTASTORE_KV_PROVIDER": "sqlite",
            "PORTASTORE_KV_PATH": "/tmp/kv.db",
            "PORTASTORE_VECTOR_PROVIDER": "lancedb",
            "PORTASTORE_VECTOR_PATH": "/tmp/lance",
            "PORTASTORE_VECTOR_DIMENSION": "384",
            "PORTASTORE_VECTOR_METRIC": "cosine",
            "PORTASTORE_VECTOR_METADATA_COLUMNS": "lang, views:int,",
            "PORTASTORE_DATABASE_URL": "sqlite+aiosqlite:///tmp/app.db",
            "PORTASTORE_DATABASE_CREATE_TABLES": "yes",
            "PORTASTORE_DEBUG": "true",
        }
        with patch.dict(os.environ, env, clear=True):
            config = StorageConfig.from_env()

        assert config.key_value.provider == KeyValueProviderType.SQLITE
        assert config.key_value.path == "/tmp/kv.db"
        assert config.vector.provider == VectorProviderType.LANCEDB
        assert config.vector.dimension == 384
        assert config.vector.metric == DistanceMetric.COSINE
        assert config.vector.metadata_columns == ["lang", "views:int"]
        assert config.relational.url == "sqlite+aiosqlite:///tmp/app.db"
        assert config.relational.create_tables is True
        assert config.debug is True
        assert config.validate() == []

    def test_custom_prefix_and_redis_fallback(self):
        env = {
            "APP_COLLECTION_PROVIDER": "redis",
            "REDIS_URL": "redis://localhost:6379/0",
        }
        with patch.dict(os.environ, env, clear=True):
            config = StorageConfig.from_env(prefix="APP")
        assert config.collection.provider == CollectionProviderType.REDIS
        assert config.collection.url == "redis://localhost:6379/0"

    def test_invalid_provider(self):
        with patch.dict(os.environ, {"PORTASTORE_BLOB_PROVIDER": "s3"}, clear=True):
            with pytest.raises(ValueError):
                StorageConfig.from_env()

    def test_no_database_url_disables_relational(self):
        with patch.dict(os.environ, {}, clear=True):
            assert StorageConfig.from_env().relational is None


class TestFromYaml:
    """Tests for YAML loading."""

    def test_load(self, tmp_path):
        path = tmp_path / "storage.yaml"
        path.write_text(
            "debug: true\n"
            "key_value:\n"
            "  provider: redis\n"
            "  url: redis://cache:6379\n"
            "  namespace: 'app:'\n"
            "vector:\n"
            "  provider: chroma\n"
            "  metric: inner_product\n"
            "relational:\n"
            "  url: sqlite+aiosqlite:///app.db\n"
        )
        config = StorageConfig.from_yaml(path)

        assert config.debug is True
        assert config.key_value.provider == KeyValueProviderType.REDIS
        assert config.key_value.namespace == "app:"
        assert config.vector.provider == VectorProviderType.CHROMA
        assert config.vector.metric == DistanceMetric.INNER_PRODUCT
        assert config.relational.url == "sqlite+aiosqlite:///app.db"
        assert config.blob.provider == BlobProviderType.MEMORY

    def test_missing_file_gives_defaults(self, tmp_path):
        assert StorageConfig.from_yaml(tmp_path / "absent.yaml") == StorageConfig()

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert StorageConfig.from_yaml(path) == StorageConfig()

    def test_unknown_option(self):
        with pytest.raises(ValueError, match="unknown KeyValueConfig options: colour"):
            StorageConfig.from_dict({"key_value": {"colour": "blue"}})


class TestValidate:
    """Tests for validate()."""

    def test_collects_every_error(self):
        config = StorageConfig.from_dict({
            "collection": {"provider": "redis", "timeout_seconds": 0},
            "key_value": {"provider": "sqlite"},
            "blob": {"provider": "filesystem"},
            "vector": {"provider": "lancedb"},
        })
        errors = config.validate()
        assert "Redis collection requires url" in errors
        assert "SQLite key-value storage requires path" in errors
        assert "Filesystem blob storage requires path" in errors
        assert "LanceDB vector storage requires path or uri" in errors
        assert "LanceDB vector storage requires a positive dimension" in errors
        assert any("timeout_seconds" in e for e in errors)

    def test_negative_dimension(self):
        config = StorageConfig(vector=VectorConfig(dimension=-1))
        assert any("cannot be negative" in e for e in config.validate())
