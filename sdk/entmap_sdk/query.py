"""
Query planning.

Two access patterns are supported:

- QueryList: a labeled collection on the ref index
  (partition = label, sort = gsi1_sk)
- QueryEntity: an entity partition on the table's primary key
  (partition = hk, sort = sk), i.e. an entity and everything it relates to

Both produce a QueryPlan, an abstract description that store clients
execute. Conditions are boto3 condition objects
(``boto3.dynamodb.conditions.Key`` / ``Attr``).

Invariants:
    - Index selection follows the query type, never the query shape
    - A QueryEntity whose source cannot describe itself builds no plan

Example:
    >>> from boto3.dynamodb.conditions import Key
    >>> query = QueryList(label="product", ref_sort_filter=Key("gsi1_sk").begins_with("elec"))
    >>> plan = table.marshal_query(query)
    >>> plan.index_name
    'ref-index'
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, runtime_checkable

from boto3.dynamodb.conditions import Attr, ConditionBase, Key

from .entity import Marshaler
from .errors import QueryError
from .records import (
    ATTRIBUTE_CREATED,
    ATTRIBUTE_DATA,
    ATTRIBUTE_EXPIRES,
    ATTRIBUTE_LABEL,
    ATTRIBUTE_SOURCE,
    ATTRIBUTE_UPDATED,
    MarshalOptions,
    default_clock,
    format_timestamp,
)

if TYPE_CHECKING:
    from .table import Table

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryPlan:
    """Abstract description of one store query.

    Attributes:
        key_condition: Partition equality, optionally and-ed with a sort key condition
        filter_condition: Optional filter applied to evaluated items
        limit: Maximum number of items to evaluate (None = store default)
        start_key: Exclusive start key from a previous page
        scan_forward: Ascending sort-key order when True
        index_name: Secondary index to query, None for the table itself
        table_name: Table the plan was built for
    """

    key_condition: ConditionBase
    filter_condition: Optional[ConditionBase] = None
    limit: Optional[int] = None
    start_key: Optional[Dict[str, Any]] = None
    scan_forward: bool = True
    index_name: Optional[str] = None
    table_name: Optional[str] = None


@runtime_checkable
class QueryMarshaler(Protocol):
    """Can plan itself into a QueryPlan."""

    def marshal_query(self, opts: MarshalOptions) -> QueryPlan: ...

    def use_index(self, table: Table) -> Optional[str]:
        """Index to query, or None for the table."""
        ...


@dataclass(frozen=True)
class QueryList:
    """Searches the ref index for a labeled collection.

    Attributes:
        label: The label, e.g. "product" or "order/O1/products"
        ref_sort_filter: Optional key condition on gsi1_sk
        condition_filter: Optional filter on the records
        limit: Maximum number of items to evaluate; 0 means no limit
        start_key: Exclusive start key for pagination
        sort_descending: Scan direction (default ascending)
    """

    label: str
    ref_sort_filter: Optional[ConditionBase] = None
    condition_filter: Optional[ConditionBase] = None
    limit: int = 0
    start_key: Optional[Dict[str, Any]] = None
    sort_descending: bool = False

    def marshal_query(self, opts: MarshalOptions) -> QueryPlan:
        if not self.label:
            raise QueryError("label is required for a list query")

        key_condition = Key(ATTRIBUTE_LABEL).eq(self.label)
        if self.ref_sort_filter is not None:
            key_condition = key_condition & self.ref_sort_filter

        return QueryPlan(
            key_condition=key_condition,
            filter_condition=self.condition_filter,
            limit=self.limit if self.limit > 0 else None,
            start_key=self.start_key or None,
            scan_forward=not self.sort_descending,
        )

    def use_index(self, table: Table) -> Optional[str]:
        return table.ref_index_name


@dataclass(frozen=True)
class QueryEntity:
    """Searches an entity's partition for its self record and relationships.

    Results are decoded with unmarshal_entity.

    Attributes:
        source: The entity whose partition is queried
        target_filter: Optional key condition on sk
        condition_filter: Optional filter on the records
        limit: Maximum number of items to evaluate; 0 means no limit
        start_key: Exclusive start key for pagination
        sort_descending: If True, scans backward
    """

    source: Marshaler
    target_filter: Optional[ConditionBase] = None
    condition_filter: Optional[ConditionBase] = None
    limit: int = 0
    start_key: Optional[Dict[str, Any]] = None
    sort_descending: bool = False

    def marshal_query(self, opts: MarshalOptions) -> QueryPlan:
        try:
            source_opts = self.source.marshal_self(dataclasses.replace(opts, skip_refs=True))
        except Exception as e:
            raise QueryError(f"failed to marshal source: {e}") from e

        key_condition = Key(ATTRIBUTE_SOURCE).eq(source_opts.source_key())
        if self.target_filter is not None:
            key_condition = key_condition & self.target_filter

        return QueryPlan(
            key_condition=key_condition,
            filter_condition=self.condition_filter,
            limit=self.limit if self.limit > 0 else None,
            start_key=self.start_key or None,
            scan_forward=not self.sort_descending,
        )

    def use_index(self, table: Table) -> Optional[str]:
        return None


def data_attribute(suffix: str) -> str:
    """Path of a field inside the record payload.

    Example:
        >>> Attr(data_attribute("category")).eq("electronics")
    """
    return f"{ATTRIBUTE_DATA}.{suffix}"


def period_before(name: str, moment: datetime) -> ConditionBase:
    """Timestamp attribute at or before moment."""
    return Attr(name).lte(format_timestamp(moment))


def period_after(name: str, moment: datetime) -> ConditionBase:
    """Timestamp attribute at or after moment."""
    return Attr(name).gte(format_timestamp(moment))


def period_between(name: str, start: datetime, end: datetime) -> ConditionBase:
    return Attr(name).between(format_timestamp(start), format_timestamp(end))


def created_before(moment: datetime) -> ConditionBase:
    return period_before(ATTRIBUTE_CREATED, moment)


def created_after(moment: datetime) -> ConditionBase:
    return period_after(ATTRIBUTE_CREATED, moment)


def created_between(start: datetime, end: datetime) -> ConditionBase:
    return period_between(ATTRIBUTE_CREATED, start, end)


def updated_before(moment: datetime) -> ConditionBase:
    return period_before(ATTRIBUTE_UPDATED, moment)


def updated_after(moment: datetime) -> ConditionBase:
    return period_after(ATTRIBUTE_UPDATED, moment)


def updated_between(start: datetime, end: datetime) -> ConditionBase:
    return period_between(ATTRIBUTE_UPDATED, start, end)


def min_age(age: timedelta, now: Optional[datetime] = None) -> ConditionBase:
    """Records created at least age ago."""
    return created_before((now or default_clock()) - age)


def max_age(age: timedelta, now: Optional[datetime] = None) -> ConditionBase:
    """Records created at most age ago."""
    return created_after((now or default_clock()) - age)


def expires_before(moment: datetime) -> ConditionBase:
    """Records that expire strictly before moment."""
    return Attr(ATTRIBUTE_EXPIRES).lt(int(moment.timestamp()))


def expires_after(moment: datetime) -> ConditionBase:
    """Records that expire strictly after moment."""
    return Attr(ATTRIBUTE_EXPIRES).gt(int(moment.timestamp()))


def expires_in(period: timedelta, now: Optional[datetime] = None) -> ConditionBase:
    """Records that expire between now and now + period."""
    now = now or default_clock()
    return Attr(ATTRIBUTE_EXPIRES).between(
        int(now.timestamp()),
        int((now + period).timestamp()),
    )
