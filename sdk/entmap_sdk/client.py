"""
EntityStore: entity-level operations over a store client.

This module wires the Table facade, the unmarshaling engine and the
pagination cursor store to a StoreClient:
- put / put_batch: write an entity, with or without its relationships
- get / delete / update: operate on an entity's self record
- query_entity / query_list: read an entity partition or a labeled
  collection, one page at a time, with opaque cursors

Example:
    >>> async with EntityStore.from_config(EntMapConfig.from_env()) as store:
    ...     await store.put_batch(order)
    ...     result = await store.query_entity(QueryEntity(source=order), Order(id="O1"))
    ...     page = await store.query_list(QueryList(label="product", limit=10), Product)
    ...     next_page = await store.query_list(QueryList(label="product", limit=10), Product, page.cursor)

Invariants:
    - Store calls are issued one at a time and never retried
    - put_batch writes chunks in order; a failing chunk does not roll back
      the chunks before it
    - A result cursor is "" exactly when the store reported no more items
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from .config import EntMapConfig
from .entity import Marshaler, RefMarshaler
from .errors import ItemNotFoundError
from .pagination import TablePaginator
from .query import QueryMarshaler, QueryPlan
from .records import Relationship
from .store.base import QueryPage, StoreClient, create_store_client
from .table import Table
from .unmarshal import unmarshal_entity, unmarshal_list, unmarshal_self
from .update import Updater

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class QueryResult(Generic[T]):
    """One page of decoded query results.

    Attributes:
        items: Decoded entities (list queries) or the populated entity
            (entity queries)
        relationships: Decoded records, in store order
        cursor: Cursor for the next page; "" when there is none
    """

    items: List[T] = field(default_factory=list)
    relationships: List[Relationship] = field(default_factory=list)
    cursor: str = ""


class EntityStore:
    """Entity-level access to one table.

    Attributes:
        client: Store client executing requests
        table: Table configuration and marshaling
    """

    def __init__(self, client: StoreClient, table: Table) -> None:
        self.client = client
        self.table = table
        self._paginator = table.paginator(client)

    @classmethod
    def from_config(cls, config: EntMapConfig) -> EntityStore:
        """Build a store with the configured backend and table layout."""
        return cls(create_store_client(config), Table.from_config(config.table))

    @property
    def paginator(self) -> TablePaginator:
        return self._paginator

    async def connect(self) -> None:
        await self.client.connect()

    async def close(self) -> None:
        await self.client.close()

    async def __aenter__(self) -> EntityStore:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def put(self, entity: Marshaler, **overrides: Any) -> None:
        """Write the entity's self record only."""
        request = self.table.marshal_put(entity, **overrides)
        await self.client.put_item(request.item)

    async def put_batch(self, entity: RefMarshaler, **overrides: Any) -> int:
        """Write the entity and all its relationships.

        Returns:
            Number of batch requests written
        """
        batches = self.table.marshal_batch(entity, **overrides)
        for batch in batches:
            await self.client.batch_write(batch.items)

        logger.debug(
            "Entity graph written",
            extra={"entity_type": type(entity).__name__, "batches": len(batches)},
        )
        return len(batches)

    async def get(self, entity: Marshaler, out_type: Optional[Type[T]] = None) -> T:
        """Read the entity's self record.

        Args:
            entity: Any instance that can describe the record's identity
            out_type: Type to decode into; defaults to type(entity)

        Raises:
            ItemNotFoundError: If the record does not exist
        """
        request = self.table.marshal_get(entity)
        item = await self.client.get_item(request.key)
        if item is None:
            raise ItemNotFoundError(key=request.key["hk"])

        decoded, _ = unmarshal_self(item, out_type or type(entity))
        return decoded

    async def delete(self, entity: Marshaler) -> None:
        """Delete the entity's self record; relationship records are kept."""
        request = self.table.marshal_delete(entity)
        await self.client.delete_item(request.key)

    async def update(self, entity: Marshaler, updater: Optional[Updater]) -> Dict[str, Any]:
        """Update the entity's self record.

        Returns:
            All attributes of the record after the update
        """
        request = self.table.marshal_update(entity, updater)
        return await self.client.update_item(request.key, request.update)

    async def _run(self, query: QueryMarshaler, cursor: str) -> QueryPage:
        plan: QueryPlan = self.table.marshal_query(query)

        start_key = await self._paginator.start_key(cursor)
        if start_key:
            plan = dataclasses.replace(plan, start_key=start_key)

        return await self.client.query(plan)

    async def query_entity(self, query: QueryMarshaler, out: T, cursor: str = "") -> QueryResult[T]:
        """Read one page of an entity partition into out.

        Raises:
            ItemNotFoundError: If the first page is empty
        """
        page = await self._run(query, cursor)
        next_cursor = await self._paginator.page_cursor(page.last_key)

        if not page.items and (cursor or next_cursor):
            return QueryResult(items=[out], cursor=next_cursor)

        relationships = unmarshal_entity(page.items, out, self.table.label_delimiter)
        return QueryResult(items=[out], relationships=relationships, cursor=next_cursor)

    async def query_list(self, query: QueryMarshaler, out_type: Type[T], cursor: str = "") -> QueryResult[T]:
        """Read one page of a labeled collection."""
        page = await self._run(query, cursor)
        entities, relationships = unmarshal_list(page.items, out_type)
        next_cursor = await self._paginator.page_cursor(page.last_key)

        return QueryResult(items=entities, relationships=relationships, cursor=next_cursor)
