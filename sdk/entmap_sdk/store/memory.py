"""
In-memory store client implementation for testing.

This module provides an in-memory single-table backend for:
- Unit tests
- Integration tests
- Local development without DynamoDB

It honours both key schemas (hk/sk on the table, label/gsi1_sk on the
sparse ref index), scan direction, limits, exclusive start keys, boto3
key and filter conditions, update builders and TTL.

Invariants:
    - All data is lost on process exit
    - An item whose expires is at or before the clock's now is invisible
    - Limit counts evaluated items; filters apply after the limit, as in DynamoDB
    - Stored and returned items are copies; callers cannot mutate the table

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep query semantics aligned with DynamoDB; tests rely on them
"""

from __future__ import annotations

import asyncio
import copy
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from boto3.dynamodb.conditions import (
    And,
    AttributeExists,
    AttributeNotExists,
    BeginsWith,
    Between,
    ConditionBase,
    Contains,
    Equals,
    GreaterThan,
    GreaterThanEquals,
    In,
    LessThan,
    LessThanEquals,
    Not,
    NotEquals,
    Or,
)

from ..query import QueryPlan
from ..records import (
    ATTRIBUTE_EXPIRES,
    ATTRIBUTE_LABEL,
    ATTRIBUTE_REF_SORT_KEY,
    ATTRIBUTE_SOURCE,
    ATTRIBUTE_TARGET,
    Clock,
    default_clock,
)
from ..table import MAX_BATCH_SIZE
from ..update import UpdateBuilder
from .base import (
    Item,
    QueryPage,
    StoreConnectionError,
    StoreError,
)

logger = logging.getLogger(__name__)

_MISSING = object()


def _resolve(item: Item, path: str) -> Any:
    node: Any = item
    for segment in path.split("."):
        if not isinstance(node, dict) or segment not in node:
            return _MISSING
        node = node[segment]
    return node


def _comparable(left: Any, right: Any) -> bool:
    numbers = (int, float, Decimal)
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool)
    if isinstance(left, numbers) and isinstance(right, numbers):
        return True
    if isinstance(left, str) and isinstance(right, str):
        return True
    return isinstance(left, (bytes, bytearray)) and isinstance(right, (bytes, bytearray))


def evaluate_condition(condition: ConditionBase, item: Item) -> bool:
    """Evaluate a boto3 condition against a plain item.

    A comparison between values of different types is false, as in
    DynamoDB. Dotted attribute names address nested map fields.

    Raises:
        StoreError: If the condition type is not supported
    """
    values = condition.get_expression()["values"]

    if isinstance(condition, And):
        return all(evaluate_condition(value, item) for value in values)
    if isinstance(condition, Or):
        return any(evaluate_condition(value, item) for value in values)
    if isinstance(condition, Not):
        return not evaluate_condition(values[0], item)

    actual = _resolve(item, values[0].name)

    if isinstance(condition, AttributeExists):
        return actual is not _MISSING
    if isinstance(condition, AttributeNotExists):
        return actual is _MISSING
    if actual is _MISSING:
        return False

    if isinstance(condition, Equals):
        return _comparable(actual, values[1]) and actual == values[1]
    if isinstance(condition, NotEquals):
        return not (_comparable(actual, values[1]) and actual == values[1])
    if isinstance(condition, In):
        return any(_comparable(actual, v) and actual == v for v in values[1])
    if isinstance(condition, BeginsWith):
        return _comparable(actual, values[1]) and actual.startswith(values[1])
    if isinstance(condition, Contains):
        if isinstance(actual, str):
            return isinstance(values[1], str) and values[1] in actual
        if isinstance(actual, (list, set, frozenset)):
            return values[1] in actual
        return False
    if isinstance(condition, Between):
        low, high = values[1], values[2]
        return _comparable(actual, low) and _comparable(actual, high) and low <= actual <= high

    comparisons = {
        LessThan: lambda a, b: a < b,
        LessThanEquals: lambda a, b: a <= b,
        GreaterThan: lambda a, b: a > b,
        GreaterThanEquals: lambda a, b: a >= b,
    }
    compare = comparisons.get(type(condition))
    if compare is None:
        raise StoreError(
            f"unsupported condition: {type(condition).__name__}",
            operation="query",
        )
    return _comparable(actual, values[1]) and compare(actual, values[1])


class InMemoryStoreClient:
    """In-memory implementation of StoreClient for testing.

    Attributes:
        calls: ``(operation, item_count)`` for every call received, in order

    Thread safety:
        Uses an asyncio lock. Safe to use from multiple coroutines.

    Example:
        >>> client = InMemoryStoreClient()
        >>> await client.connect()
        >>> await client.put_item({"hk": "order#O1", "sk": "order#O1", "label": "order"})
        >>> await client.get_item({"hk": "order#O1", "sk": "order#O1"})
    """

    def __init__(self, clock: Clock = default_clock) -> None:
        """Initialize the in-memory store.

        Args:
            clock: Source of "now" for TTL checks
        """
        self.clock = clock
        self.calls: List[Tuple[str, int]] = []
        self._items: Dict[Tuple[str, str], Item] = {}
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryStoreClient connected")

    async def close(self) -> None:
        """Close; stored items are kept until clear()."""
        self._connected = False
        logger.debug("InMemoryStoreClient closed")

    def clear(self) -> None:
        """Drop all items and recorded calls."""
        self._items.clear()
        self.calls.clear()

    def items(self) -> List[Item]:
        """Copies of every stored item, expired ones included, in key order."""
        return [copy.deepcopy(self._items[key]) for key in sorted(self._items)]

    def _check_connected(self, operation: str) -> None:
        if not self._connected:
            raise StoreConnectionError("Not connected", operation=operation)

    @staticmethod
    def _key_of(key: Dict[str, Any], operation: str) -> Tuple[str, str]:
        source = key.get(ATTRIBUTE_SOURCE)
        target = key.get(ATTRIBUTE_TARGET)
        if not isinstance(source, str) or not isinstance(target, str):
            raise StoreError("item key must contain hk and sk strings", operation=operation)
        return source, target

    def _is_live(self, item: Item) -> bool:
        expires = item.get(ATTRIBUTE_EXPIRES)
        if not isinstance(expires, (int, Decimal)) or isinstance(expires, bool):
            return True
        return int(expires) > int(self.clock().timestamp())

    async def put_item(self, item: Item) -> None:
        self._check_connected("put_item")
        key = self._key_of(item, "put_item")
        async with self._lock:
            self._items[key] = copy.deepcopy(item)
            self.calls.append(("put_item", 1))

    async def batch_write(self, items: List[Item]) -> None:
        self._check_connected("batch_write")
        if len(items) > MAX_BATCH_SIZE:
            raise StoreError(
                f"batch of {len(items)} items exceeds the limit of {MAX_BATCH_SIZE}",
                operation="batch_write",
            )
        keys = [self._key_of(item, "batch_write") for item in items]
        async with self._lock:
            for key, item in zip(keys, items):
                self._items[key] = copy.deepcopy(item)
            self.calls.append(("batch_write", len(items)))

    async def get_item(self, key: Dict[str, str]) -> Optional[Item]:
        self._check_connected("get_item")
        lookup = self._key_of(key, "get_item")
        async with self._lock:
            self.calls.append(("get_item", 1))
            item = self._items.get(lookup)
            if item is None or not self._is_live(item):
                return None
            return copy.deepcopy(item)

    async def delete_item(self, key: Dict[str, str]) -> None:
        self._check_connected("delete_item")
        lookup = self._key_of(key, "delete_item")
        async with self._lock:
            self._items.pop(lookup, None)
            self.calls.append(("delete_item", 1))

    async def update_item(self, key: Dict[str, str], update: UpdateBuilder) -> Item:
        """Apply update, creating the item if absent, as DynamoDB does."""
        self._check_connected("update_item")
        lookup = self._key_of(key, "update_item")
        async with self._lock:
            current = self._items.get(lookup)
            if current is None or not self._is_live(current):
                current = {ATTRIBUTE_SOURCE: lookup[0], ATTRIBUTE_TARGET: lookup[1]}
            try:
                updated = update.apply(current)
            except (TypeError, ValueError) as e:
                raise StoreError(f"failed to apply update: {e}", operation="update_item") from e
            self._items[lookup] = updated
            self.calls.append(("update_item", 1))
            return copy.deepcopy(updated)

    async def query(self, plan: QueryPlan) -> QueryPage:
        """Run one query page.

        Items on the ref index must carry both label and gsi1_sk.
        """
        self._check_connected("query")

        if plan.index_name:
            required = (ATTRIBUTE_LABEL, ATTRIBUTE_REF_SORT_KEY)

            def position(item: Item) -> Tuple[str, ...]:
                return (
                    str(item[ATTRIBUTE_REF_SORT_KEY]),
                    item[ATTRIBUTE_SOURCE],
                    item[ATTRIBUTE_TARGET],
                )

            key_names = (ATTRIBUTE_SOURCE, ATTRIBUTE_TARGET, ATTRIBUTE_LABEL, ATTRIBUTE_REF_SORT_KEY)
        else:
            required = (ATTRIBUTE_SOURCE, ATTRIBUTE_TARGET)

            def position(item: Item) -> Tuple[str, ...]:
                return (item[ATTRIBUTE_TARGET], item[ATTRIBUTE_SOURCE])

            key_names = (ATTRIBUTE_SOURCE, ATTRIBUTE_TARGET)

        async with self._lock:
            candidates = [
                item
                for item in self._items.values()
                if all(name in item for name in required)
                and self._is_live(item)
                and evaluate_condition(plan.key_condition, item)
            ]

            candidates.sort(key=position, reverse=not plan.scan_forward)

            if plan.start_key:
                try:
                    start = position(plan.start_key)
                except KeyError as e:
                    raise StoreError(f"start key is missing {e}", operation="query") from e
                if plan.scan_forward:
                    candidates = [item for item in candidates if position(item) > start]
                else:
                    candidates = [item for item in candidates if position(item) < start]

            evaluated = candidates
            last_key: Optional[Item] = None
            if plan.limit is not None and len(candidates) > plan.limit:
                evaluated = candidates[: plan.limit]
                if evaluated:
                    last_key = {name: evaluated[-1][name] for name in key_names}

            if plan.filter_condition is not None:
                matched = [item for item in evaluated if evaluate_condition(plan.filter_condition, item)]
            else:
                matched = evaluated

            self.calls.append(("query", len(matched)))

            logger.debug(
                "In-memory query",
                extra={
                    "index": plan.index_name,
                    "evaluated": len(evaluated),
                    "matched": len(matched),
                    "has_more": last_key is not None,
                },
            )

            return QueryPage(items=copy.deepcopy(matched), last_key=last_key)
