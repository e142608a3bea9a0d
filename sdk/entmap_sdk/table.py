"""
Table facade.

Table binds a single-table configuration (name, ref index, delimiters,
pagination TTL) to the marshaling engine and produces store-ready
requests. It performs no I/O; see client.EntityStore for execution.

Table schema:
    - hk (partition key): source entity key (prefix#id)
    - sk (sort key): target entity key (prefix#id)
    - ref index: partition key ``label``, sort key ``gsi1_sk``
    - expires: TTL attribute (unix seconds)

Invariants:
    - marshal_put always yields exactly the self record
    - Batch requests hold at most MAX_BATCH_SIZE items and preserve order
    - Every update stamps updated_at
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .entity import Marshaler, RefMarshaler
from .errors import ConfigurationError, MarshalError
from .labels import DEFAULT_KEY_DELIMITER, DEFAULT_LABEL_DELIMITER
from .marshal import marshal_relationships
from .query import QueryMarshaler, QueryPlan
from .records import ATTRIBUTE_UPDATED, Clock, MarshalOptions, default_clock, format_timestamp
from .update import UpdateBuilder, Updater

if TYPE_CHECKING:
    from .config import TableConfig
    from .pagination import TablePaginator
    from .store.base import StoreClient

logger = logging.getLogger(__name__)

# Maximum number of items DynamoDB accepts in one BatchWriteItem call.
MAX_BATCH_SIZE = 25

DEFAULT_REF_INDEX = "ref-index"
DEFAULT_PAGINATION_TTL = timedelta(hours=24)


@dataclass(frozen=True)
class PutRequest:
    """Unconditional upsert of one item."""

    item: Dict[str, Any]


@dataclass(frozen=True)
class BatchWriteRequest:
    """Non-atomic write of up to MAX_BATCH_SIZE items."""

    items: List[Dict[str, Any]]


@dataclass(frozen=True)
class KeyRequest:
    """Get or delete by full primary key."""

    key: Dict[str, str]


@dataclass(frozen=True)
class UpdateRequest:
    """Partial update by primary key; returns all post-update attributes."""

    key: Dict[str, str]
    update: UpdateBuilder


@dataclass
class Table:
    """Single-table configuration and request marshaling.

    Attributes:
        table_name: Main table name
        ref_index_name: Name of the label index (label + gsi1_sk)
        key_delimiter: Delimiter for hash and sort keys
        label_delimiter: Delimiter for label segments
        pagination_ttl: Lifetime of stored pagination cursors
        tick: Clock used for record timestamps

    Example:
        >>> table = Table("ecommerce")
        >>> request = table.marshal_put(product)
        >>> await client.put_item(request.item)
    """

    table_name: str
    ref_index_name: str = DEFAULT_REF_INDEX
    key_delimiter: str = DEFAULT_KEY_DELIMITER
    label_delimiter: str = DEFAULT_LABEL_DELIMITER
    pagination_ttl: timedelta = DEFAULT_PAGINATION_TTL
    tick: Clock = field(default=default_clock, repr=False)

    @classmethod
    def from_config(cls, config: TableConfig) -> Table:
        return cls(
            table_name=config.table_name,
            ref_index_name=config.ref_index_name,
            key_delimiter=config.key_delimiter,
            label_delimiter=config.label_delimiter,
            pagination_ttl=timedelta(seconds=config.pagination_ttl_seconds),
        )

    def marshal_options(self, **overrides: Any) -> MarshalOptions:
        """Default options seeded with this table's delimiters and clock."""
        return MarshalOptions(**self._overrides(overrides))

    def _overrides(self, overrides: Dict[str, Any], **forced: Any) -> Dict[str, Any]:
        merged: Dict[str, Any] = {
            "key_delimiter": self.key_delimiter,
            "label_delimiter": self.label_delimiter,
            "tick": self.tick,
        }
        merged.update(overrides)
        # Forced options win over caller overrides.
        merged.update(forced)
        return merged

    def _self_options(self, entity: Marshaler, overrides: Dict[str, Any]) -> MarshalOptions:
        opts = self.marshal_options(**overrides).with_overrides(skip_refs=True)
        try:
            return entity.marshal_self(opts)
        except Exception as e:
            raise MarshalError(
                f"failed to marshal self: {e}",
                entity_type=type(entity).__name__,
            ) from e

    def marshal_put(self, entity: Marshaler, **overrides: Any) -> PutRequest:
        """Marshal the entity's self record into a put request.

        To write relationships as well, use marshal_batch.

        Raises:
            MarshalError: If marshaling fails or yields more than the self record
        """
        relationships = marshal_relationships(entity, **self._overrides(overrides, skip_refs=True))
        if len(relationships) != 1:
            raise MarshalError(
                f"expected exactly 1 relationship for put, got {len(relationships)}",
                entity_type=type(entity).__name__,
            )
        return PutRequest(item=relationships[0].to_item())

    def marshal_batch(self, entity: RefMarshaler, **overrides: Any) -> List[BatchWriteRequest]:
        """Marshal the entity and all its relationships into batch requests.

        Items are chunked into requests of at most MAX_BATCH_SIZE, in order.
        """
        relationships = marshal_relationships(entity, **self._overrides(overrides, skip_refs=False))
        items = [rel.to_item() for rel in relationships]

        batches = [
            BatchWriteRequest(items=items[start : start + MAX_BATCH_SIZE])
            for start in range(0, len(items), MAX_BATCH_SIZE)
        ]

        logger.debug(
            "Batch marshaled",
            extra={
                "table": self.table_name,
                "records": len(items),
                "batches": len(batches),
            },
        )
        return batches

    def marshal_get(self, entity: Marshaler, **overrides: Any) -> KeyRequest:
        """Key of the entity's self record, for a get."""
        return KeyRequest(key=self._self_options(entity, overrides).item_key())

    def marshal_delete(self, entity: Marshaler, **overrides: Any) -> KeyRequest:
        """Key of the entity's self record, for a delete."""
        return KeyRequest(key=self._self_options(entity, overrides).item_key())

    def marshal_update(
        self,
        entity: Marshaler,
        updater: Optional[Updater],
        **overrides: Any,
    ) -> UpdateRequest:
        """Marshal an update of the entity's self record.

        updated_at is always set from the clock before the updater's own
        actions are added.

        Raises:
            ConfigurationError: If updater is None
            MarshalError: If the entity cannot describe itself
        """
        if updater is None:
            raise ConfigurationError("updater is required", option="updater")

        opts = self._self_options(entity, overrides)
        update = UpdateBuilder().set(ATTRIBUTE_UPDATED, format_timestamp(opts.tick()))
        update = updater.update_relationship(update)

        return UpdateRequest(key=opts.item_key(), update=update)

    def marshal_query(self, query: QueryMarshaler, **overrides: Any) -> QueryPlan:
        """Plan a query and select its index."""
        opts = self.marshal_options(**overrides)
        plan = dataclasses.replace(
            query.marshal_query(opts),
            table_name=self.table_name,
            index_name=query.use_index(self),
        )

        logger.debug(
            "Query planned",
            extra={
                "table": self.table_name,
                "index": plan.index_name,
                "limit": plan.limit,
                "scan_forward": plan.scan_forward,
            },
        )
        return plan

    def paginator(self, client: StoreClient) -> TablePaginator:
        """Cursor store backed by this table."""
        from .pagination import TablePaginator

        return TablePaginator(self, client)
