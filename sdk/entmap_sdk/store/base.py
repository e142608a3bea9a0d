"""
Base protocol and types for store clients.

This module defines the StoreClient protocol that every backend implements,
along with the query page type and the store error taxonomy.

Items are plain dicts keyed by the persisted attribute names (hk, sk,
label, created_at, updated_at, expires, data, gsi1_sk). Backends convert
to and from their wire format at the edge.

Invariants:
    - Every call is a single request; clients never retry
    - query returns items in sort-key order for the requested direction
    - last_key is set only when more items may follow

How to change safely:
    - Protocol changes require updating all implementations
    - Keep the item shape backend-neutral; no wire types in return values
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    runtime_checkable,
)
import logging

from ..errors import EntMapError

if TYPE_CHECKING:
    from ..config import EntMapConfig
    from ..query import QueryPlan
    from ..update import UpdateBuilder

logger = logging.getLogger(__name__)

Item = Dict[str, Any]


class StoreError(EntMapError):
    """Base exception for store operations."""

    def __init__(self, message: str, operation: Optional[str] = None) -> None:
        super().__init__(message, code="STORE_ERROR", details={"operation": operation})
        self.operation = operation


class StoreConnectionError(StoreError):
    """Connection to the store failed, or the client is not connected."""

    def __init__(self, message: str, operation: Optional[str] = None) -> None:
        super().__init__(message, operation=operation)
        self.code = "STORE_CONNECTION_ERROR"


class StoreTimeoutError(StoreError):
    """A store call timed out or was throttled."""

    def __init__(self, message: str, operation: Optional[str] = None) -> None:
        super().__init__(message, operation=operation)
        self.code = "STORE_TIMEOUT"


@dataclass
class QueryPage:
    """One page of query results.

    Attributes:
        items: Items in sort-key order
        last_key: Continuation key for the next page, None on the last page
    """

    items: List[Item] = field(default_factory=list)
    last_key: Optional[Item] = None

    def __len__(self) -> int:
        return len(self.items)


@runtime_checkable
class StoreClient(Protocol):
    """Protocol for single-table store backends.

    Example:
        >>> client = InMemoryStoreClient()
        >>> await client.connect()
        >>> await client.put_item(request.item)
        >>> page = await client.query(plan)
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the backend.

        Must be called before any other operation.

        Raises:
            StoreConnectionError: If the backend or table is unreachable
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the connection."""
        ...

    @abstractmethod
    async def put_item(self, item: Item) -> None:
        """Unconditionally write one item."""
        ...

    @abstractmethod
    async def batch_write(self, items: List[Item]) -> None:
        """Write up to 25 items in one non-atomic request.

        Raises:
            StoreError: If the batch is too large or items were left unprocessed
        """
        ...

    @abstractmethod
    async def get_item(self, key: Dict[str, str]) -> Optional[Item]:
        """Read one item by primary key; None if absent."""
        ...

    @abstractmethod
    async def delete_item(self, key: Dict[str, str]) -> None:
        """Delete one item by primary key; absent items are not an error."""
        ...

    @abstractmethod
    async def update_item(self, key: Dict[str, str], update: UpdateBuilder) -> Item:
        """Apply an update and return all post-update attributes."""
        ...

    @abstractmethod
    async def query(self, plan: QueryPlan) -> QueryPage:
        """Execute one query page."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected."""
        ...


def create_store_client(config: EntMapConfig) -> StoreClient:
    """Factory function to create a store client from configuration.

    Args:
        config: EntMap configuration

    Returns:
        Appropriate StoreClient implementation

    Raises:
        ValueError: If the backend is not supported
    """
    from ..config import StoreBackend

    if config.store_backend == StoreBackend.MEMORY:
        from .memory import InMemoryStoreClient

        return InMemoryStoreClient()
    elif config.store_backend == StoreBackend.DYNAMODB:
        from .dynamodb import DynamoDBStoreClient

        return DynamoDBStoreClient(config.dynamodb, config.table.table_name)
    else:
        raise ValueError(f"Unsupported store backend: {config.store_backend}")
