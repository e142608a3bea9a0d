"""
EntMap - single-table entity mapping for DynamoDB.

This SDK maps an application's entity graph onto one DynamoDB table:
- Entities describe their own record and named relationships
- Table marshals entities into put, batch, get, delete, update and query
  requests
- Unmarshaling rebuilds entities from self and reference records
- Pagination hides store continuation keys behind stored, expiring cursors
- EntityStore runs it all over a pluggable store client

Example:
    >>> from entmap_sdk import EntityStore, InMemoryStoreClient, QueryList, Table
    >>>
    >>> store = EntityStore(InMemoryStoreClient(), Table("ecommerce"))
    >>> async with store:
    ...     await store.put_batch(order)
    ...     page = await store.query_list(QueryList(label="product", limit=10), Product)

Invariants:
    - Every entity has exactly one self record (hk == sk)
    - Relationship records live in the source entity's partition
    - Labels have 1 (entity type) or 3 (prefix/id/name) segments

Version: 1.0.0
"""

__version__ = "1.0.0"

from .client import EntityStore, QueryResult
from .config import (
    DynamoDBConfig,
    EntMapConfig,
    ObservabilityConfig,
    StoreBackend,
    TableConfig,
)
from .entity import Marshaler, RefMarshaler, RefUnmarshaler, SelfUnmarshaler
from .errors import (
    ConfigurationError,
    EntMapError,
    InvalidKeyError,
    InvalidLabelError,
    ItemNotFoundError,
    MarshalError,
    PaginationError,
    QueryError,
    RelationshipError,
    UnmarshalError,
)
from .labels import (
    DEFAULT_KEY_DELIMITER,
    DEFAULT_LABEL_DELIMITER,
    composite_key,
    relationship_label,
    split_key,
    split_label,
)
from .logs import setup_logging
from .marshal import RelationshipContext, marshal_relationships
from .pagination import PageCursor, Paginator, TablePaginator
from .query import (
    QueryEntity,
    QueryList,
    QueryMarshaler,
    QueryPlan,
    created_after,
    created_before,
    created_between,
    data_attribute,
    expires_after,
    expires_before,
    expires_in,
    max_age,
    min_age,
    period_after,
    period_before,
    period_between,
    updated_after,
    updated_before,
    updated_between,
)
from .records import MarshalOptions, RefData, Relationship, new_marshal_options, new_relationship
from .store import (
    DynamoDBStoreClient,
    InMemoryStoreClient,
    QueryPage,
    StoreClient,
    StoreConnectionError,
    StoreError,
    StoreTimeoutError,
    create_store_client,
)
from .table import (
    MAX_BATCH_SIZE,
    BatchWriteRequest,
    KeyRequest,
    PutRequest,
    Table,
    UpdateRequest,
)
from .unmarshal import unmarshal_entity, unmarshal_list, unmarshal_self, unmarshal_table_key
from .update import UpdateBuilder, UpdateExpression, Updater

__all__ = [
    # Version
    "__version__",
    # Entity protocols
    "Marshaler",
    "RefMarshaler",
    "SelfUnmarshaler",
    "RefUnmarshaler",
    # Records and options
    "MarshalOptions",
    "new_marshal_options",
    "RefData",
    "Relationship",
    "new_relationship",
    # Keys and labels
    "DEFAULT_KEY_DELIMITER",
    "DEFAULT_LABEL_DELIMITER",
    "composite_key",
    "split_key",
    "relationship_label",
    "split_label",
    # Marshaling
    "RelationshipContext",
    "marshal_relationships",
    "unmarshal_entity",
    "unmarshal_list",
    "unmarshal_self",
    "unmarshal_table_key",
    # Table
    "MAX_BATCH_SIZE",
    "Table",
    "PutRequest",
    "BatchWriteRequest",
    "KeyRequest",
    "UpdateRequest",
    # Updates
    "UpdateBuilder",
    "UpdateExpression",
    "Updater",
    # Queries
    "QueryEntity",
    "QueryList",
    "QueryMarshaler",
    "QueryPlan",
    "data_attribute",
    "period_before",
    "period_after",
    "period_between",
    "created_before",
    "created_after",
    "created_between",
    "updated_before",
    "updated_after",
    "updated_between",
    "min_age",
    "max_age",
    "expires_before",
    "expires_after",
    "expires_in",
    # Pagination
    "PageCursor",
    "Paginator",
    "TablePaginator",
    # Stores
    "StoreClient",
    "QueryPage",
    "DynamoDBStoreClient",
    "InMemoryStoreClient",
    "create_store_client",
    # Client
    "EntityStore",
    "QueryResult",
    # Configuration
    "EntMapConfig",
    "TableConfig",
    "DynamoDBConfig",
    "ObservabilityConfig",
    "StoreBackend",
    "setup_logging",
    # Errors
    "EntMapError",
    "MarshalError",
    "RelationshipError",
    "UnmarshalError",
    "InvalidLabelError",
    "InvalidKeyError",
    "ItemNotFoundError",
    "ConfigurationError",
    "QueryError",
    "PaginationError",
    "StoreError",
    "StoreConnectionError",
    "StoreTimeoutError",
]
