"""
Unit tests for configuration and logging setup.

Tests cover:
- Defaults and environment loading
- Validation
- Store client factory
- Root logger configuration
"""

import logging

import json_log_formatter
import pytest

from sdk.entmap_sdk.config import (
    DynamoDBConfig,
    EntMapConfig,
    ObservabilityConfig,
    StoreBackend,
    TableConfig,
)
from sdk.entmap_sdk.logs import setup_logging
from sdk.entmap_sdk.store import DynamoDBStoreClient, InMemoryStoreClient, create_store_client

ENV_VARS = (
    "ENTMAP_TABLE_NAME",
    "ENTMAP_REF_INDEX",
    "ENTMAP_KEY_DELIMITER",
    "ENTMAP_LABEL_DELIMITER",
    "ENTMAP_PAGINATION_TTL_SECONDS",
    "ENTMAP_STORE_BACKEND",
    "AWS_REGION",
    "AWS_DEFAULT_REGION",
    "DYNAMODB_ENDPOINT_URL",
    "DYNAMODB_TIMEOUT_SECONDS",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestTableConfig:
    """Tests for TableConfig."""

    def test_defaults(self, clean_env):
        config = TableConfig.from_env()

        assert config == TableConfig()
        assert config.table_name == "entmap"
        assert config.ref_index_name == "ref-index"
        assert config.key_delimiter == "#"
        assert config.label_delimiter == "/"
        assert config.pagination_ttl_seconds == 86400

    def test_from_env(self, clean_env):
        clean_env.setenv("ENTMAP_TABLE_NAME", "shop")
        clean_env.setenv("ENTMAP_KEY_DELIMITER", "|")
        clean_env.setenv("ENTMAP_PAGINATION_TTL_SECONDS", "60")

        config = TableConfig.from_env()

        assert config.table_name == "shop"
        assert config.key_delimiter == "|"
        assert config.pagination_ttl_seconds == 60

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"table_name": ""},
            {"key_delimiter": ""},
            {"key_delimiter": "/", "label_delimiter": "/"},
            {"pagination_ttl_seconds": 0},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            TableConfig(**kwargs)


class TestEntMapConfig:
    """Tests for EntMapConfig."""

    def test_defaults(self, clean_env):
        config = EntMapConfig.from_env()

        assert config.store_backend == StoreBackend.DYNAMODB
        assert config.dynamodb.region == "us-east-1"
        assert config.dynamodb.endpoint_url is None
        assert config.dynamodb.timeout_seconds == 30.0
        assert config.observability.log_format == "json"

    def test_region_fallback(self, clean_env):
        clean_env.setenv("AWS_DEFAULT_REGION", "eu-west-1")
        assert DynamoDBConfig.from_env().region == "eu-west-1"

        clean_env.setenv("AWS_REGION", "eu-central-1")
        assert DynamoDBConfig.from_env().region == "eu-central-1"

    def test_memory_backend(self, clean_env):
        clean_env.setenv("ENTMAP_STORE_BACKEND", "MEMORY")
        assert EntMapConfig.from_env().store_backend == StoreBackend.MEMORY

    def test_invalid_backend(self, clean_env):
        clean_env.setenv("ENTMAP_STORE_BACKEND", "cassandra")

        with pytest.raises(ValueError, match="memory, dynamodb"):
            EntMapConfig.from_env()

    def test_secrets_not_in_repr(self):
        config = DynamoDBConfig(access_key_id="AKIA", secret_access_key="s3cret")
        assert "s3cret" not in repr(config)

    def test_log_config_redacts_secrets(self, caplog):
        config = EntMapConfig(dynamodb=DynamoDBConfig(secret_access_key="s3cret"))

        with caplog.at_level(logging.INFO):
            config.log_config()

        assert "EntMap configuration loaded" in caplog.text
        assert all("s3cret" not in str(record.__dict__) for record in caplog.records)


class TestCreateStoreClient:
    """Tests for create_store_client."""

    def test_memory(self):
        client = create_store_client(EntMapConfig(store_backend=StoreBackend.MEMORY))
        assert isinstance(client, InMemoryStoreClient)

    def test_dynamodb(self):
        config = EntMapConfig(table=TableConfig(table_name="shop"))

        client = create_store_client(config)

        assert isinstance(client, DynamoDBStoreClient)
        assert client.table_name == "shop"
        assert not client.is_connected


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_json(self):
        setup_logging(ObservabilityConfig(log_level="debug", log_format="json"))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
        assert logging.getLogger("botocore").level == logging.WARNING

    def test_text(self):
        setup_logging(ObservabilityConfig(log_level="nonsense", log_format="text"))

        root = logging.getLogger()
        assert root.level == logging.INFO
        assert not isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
