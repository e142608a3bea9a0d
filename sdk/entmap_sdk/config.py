"""
Configuration management for EntMap.

Configuration is read from environment variables; there are no config
files. This module provides typed, frozen configuration classes with
validation.

Invariants:
    - All settings have sensible defaults for local development
    - Delimiters are part of the stored data; changing them breaks reads of
      existing rows
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep from_env() and the dataclass defaults in agreement
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from .labels import DEFAULT_KEY_DELIMITER, DEFAULT_LABEL_DELIMITER

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Supported store backends."""

    MEMORY = "memory"
    DYNAMODB = "dynamodb"


@dataclass(frozen=True)
class TableConfig:
    """Single-table layout configuration.

    Attributes:
        table_name: Main table name
        ref_index_name: Name of the label index (partition label, sort gsi1_sk)
        key_delimiter: Delimiter joining prefix and id in keys
        label_delimiter: Delimiter joining label segments
        pagination_ttl_seconds: Lifetime of stored pagination cursors
    """

    table_name: str = "entmap"
    ref_index_name: str = "ref-index"
    key_delimiter: str = DEFAULT_KEY_DELIMITER
    label_delimiter: str = DEFAULT_LABEL_DELIMITER
    pagination_ttl_seconds: int = 24 * 60 * 60

    def __post_init__(self) -> None:
        if not self.table_name:
            raise ValueError("ENTMAP_TABLE_NAME must not be empty")
        if not self.ref_index_name:
            raise ValueError("ENTMAP_REF_INDEX must not be empty")
        if not self.key_delimiter or not self.label_delimiter:
            raise ValueError("Key and label delimiters must not be empty")
        if self.key_delimiter == self.label_delimiter:
            raise ValueError(
                f"Key and label delimiters must differ, both are {self.key_delimiter!r}"
            )
        if self.pagination_ttl_seconds <= 0:
            raise ValueError("ENTMAP_PAGINATION_TTL_SECONDS must be positive")

    @classmethod
    def from_env(cls) -> TableConfig:
        """Load configuration from environment variables."""
        return cls(
            table_name=os.getenv("ENTMAP_TABLE_NAME", "entmap"),
            ref_index_name=os.getenv("ENTMAP_REF_INDEX", "ref-index"),
            key_delimiter=os.getenv("ENTMAP_KEY_DELIMITER", DEFAULT_KEY_DELIMITER),
            label_delimiter=os.getenv("ENTMAP_LABEL_DELIMITER", DEFAULT_LABEL_DELIMITER),
            pagination_ttl_seconds=int(os.getenv("ENTMAP_PAGINATION_TTL_SECONDS", "86400")),
        )


@dataclass(frozen=True)
class DynamoDBConfig:
    """DynamoDB connection configuration.

    Attributes:
        region: AWS region
        endpoint_url: Custom endpoint URL (for DynamoDB Local)
        access_key_id: Explicit access key; the default credential chain is used when unset
        secret_access_key: Explicit secret key
        timeout_seconds: Per-call timeout
    """

    region: str = "us-east-1"
    endpoint_url: str | None = None
    access_key_id: str | None = field(default=None, repr=False)
    secret_access_key: str | None = field(default=None, repr=False)
    timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> DynamoDBConfig:
        """Load configuration from environment variables."""
        return cls(
            region=os.getenv("AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")),
            endpoint_url=os.getenv("DYNAMODB_ENDPOINT_URL"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            timeout_seconds=float(os.getenv("DYNAMODB_TIMEOUT_SECONDS", "30")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class EntMapConfig:
    """Complete EntMap configuration.

    Attributes:
        store_backend: Which store backend to use
        table: Table layout
        dynamodb: DynamoDB connection (if store_backend is DYNAMODB)
        observability: Logging
    """

    store_backend: StoreBackend = StoreBackend.DYNAMODB
    table: TableConfig = field(default_factory=TableConfig)
    dynamodb: DynamoDBConfig = field(default_factory=DynamoDBConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> EntMapConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid
        """
        backend_str = os.getenv("ENTMAP_STORE_BACKEND", "dynamodb").lower()
        try:
            store_backend = StoreBackend(backend_str)
        except ValueError:
            choices = ", ".join(backend.value for backend in StoreBackend)
            raise ValueError(
                f"Invalid ENTMAP_STORE_BACKEND '{backend_str}'. Must be one of: {choices}"
            )

        return cls(
            store_backend=store_backend,
            table=TableConfig.from_env(),
            dynamodb=DynamoDBConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "EntMap configuration loaded",
            extra={
                "store_backend": self.store_backend.value,
                "table": self.table.table_name,
                "ref_index": self.table.ref_index_name,
                "dynamodb_region": self.dynamodb.region
                if self.store_backend == StoreBackend.DYNAMODB
                else None,
                "dynamodb_endpoint": self.dynamodb.endpoint_url
                if self.store_backend == StoreBackend.DYNAMODB
                else None,
                "log_level": self.observability.log_level,
            },
        )
